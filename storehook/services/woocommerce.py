"""
WooCommerce REST API client.

Thin async wrapper over httpx for the /wp-json/wc/v3 endpoints used to manage
webhooks. Clients are built by WooCommerceClientFactory and cached per store
credentials.
"""
from typing import Any

import httpx

from storehook.config import settings
from storehook.logging_config import get_logger
from storehook.models.store import Store
from storehook.routes.metrics import track_remote_call


logger = get_logger(component="woocommerce")


class WooCommerceError(Exception):
    """Remote API call failed (non-2xx response or transport error)."""

    def __init__(self, message: str, status_code: int | None = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"WooCommerce API returned HTTP {response.status_code}"


class WooCommerceClient:
    """Async client bound to one store's REST API credentials."""

    def __init__(
        self,
        url: str,
        consumer_key: str,
        consumer_secret: str,
        version: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.version = version or settings.WOOCOMMERCE_API_VERSION
        self._client = httpx.AsyncClient(
            base_url=f"{self.url}/wp-json/{self.version}/",
            auth=(consumer_key, consumer_secret),
            timeout=timeout if timeout is not None else settings.WOOCOMMERCE_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> Any:
        """
        Send a request and return the decoded JSON body.

        Raises:
            WooCommerceError: on transport failure or a non-2xx response
        """
        try:
            response = await self._client.request(method, path.lstrip("/"), json=json, params=params)
        except httpx.HTTPError as e:
            track_remote_call(method, "error")
            logger.error("woocommerce_request_failed", method=method, path=path, error=str(e))
            raise WooCommerceError(f"WooCommerce connectivity error: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            track_remote_call(method, "rejected")
            message = _error_message(response)
            logger.warning(
                "woocommerce_request_rejected",
                method=method,
                path=path,
                status_code=response.status_code,
                message=message
            )
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            raise WooCommerceError(message, status_code=response.status_code, payload=payload)

        track_remote_call(method, "success")
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get(self, path: str, params: dict | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, data: dict | None = None) -> Any:
        return await self.request("POST", path, json=data or {})

    async def put(self, path: str, data: dict | None = None) -> Any:
        return await self.request("PUT", path, json=data or {})

    async def delete(self, path: str, params: dict | None = None) -> Any:
        return await self.request("DELETE", path, params=params)

    async def aclose(self):
        await self._client.aclose()


class WooCommerceClientFactory:
    """
    Builds WooCommerce clients from store credentials.

    One client per (store, url, key, secret); rotating credentials yields a
    fresh client and closes the stale one.
    """

    def __init__(
        self,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self.transport = transport
        self._clients: dict[str, tuple[tuple, WooCommerceClient]] = {}

    async def for_store(self, store: Store) -> WooCommerceClient:
        if not store.has_api_credentials:
            raise WooCommerceError("Store is missing WooCommerce API credentials")

        key = (store.url, store.api_key, store.secret_key)
        cached = self._clients.get(store.id)
        if cached and cached[0] == key:
            return cached[1]
        if cached:
            await cached[1].aclose()

        client = WooCommerceClient(
            url=store.url,
            consumer_key=store.api_key,
            consumer_secret=store.secret_key,
            timeout=self.timeout,
            transport=self.transport,
        )
        self._clients[store.id] = (key, client)
        return client

    async def aclose(self):
        for _, client in self._clients.values():
            await client.aclose()
        self._clients.clear()


# Process-wide factory used by the API and the worker
client_factory = WooCommerceClientFactory()


def get_client_factory() -> WooCommerceClientFactory:
    """FastAPI dependency returning the shared client factory."""
    return client_factory
