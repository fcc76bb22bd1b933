"""
Store resolution for inbound webhooks.

Maps the routing identifier embedded in a delivery URL back to the store and
organization that own the webhook.
"""
from dataclasses import dataclass
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storehook.exceptions import NotFoundError
from storehook.logging_config import get_logger
from storehook.models.store import Store
from storehook.models.webhook import WebhookRegistration


ROUTE_MARKER = "woocommerce"

logger = get_logger(component="store_resolver")


@dataclass
class StoreContext:
    """Tenant context needed to process a delivery."""
    store_id: str
    organization_id: str
    user_id: str | None
    webhook_secret: str | None
    name: str
    url: str
    webhook: WebhookRegistration


def build_delivery_url(base_url: str, webhook_identifier: str, topic: str) -> str:
    """Delivery URL configured on the remote store for a registration."""
    return f"{base_url.rstrip('/')}/api/webhooks/{ROUTE_MARKER}/{webhook_identifier}/{topic}"


def extract_webhook_identifier(url: str) -> str | None:
    """
    Return the path segment that follows the 'woocommerce' marker.

    Accepts a full URL or a bare path. Returns None when the marker or the
    identifier is missing.
    """
    path = urlparse(url).path if "://" in url else url.split("?", 1)[0]
    parts = [p for p in path.split("/") if p]
    try:
        index = parts.index(ROUTE_MARKER)
    except ValueError:
        return None
    if index + 1 >= len(parts):
        return None
    return parts[index + 1]


async def get_registration_by_identifier(
    db: AsyncSession,
    webhook_identifier: str
) -> WebhookRegistration | None:
    stmt = select(WebhookRegistration).where(
        WebhookRegistration.webhook_identifier == webhook_identifier
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_store(db: AsyncSession, webhook_identifier: str | None) -> StoreContext:
    """
    Resolve a routing identifier to its store context.

    Raises:
        NotFoundError: identifier missing, unknown, or its store was removed
    """
    if not webhook_identifier:
        raise NotFoundError("Webhook identifier missing from delivery URL", error="Store not found")

    webhook = await get_registration_by_identifier(db, webhook_identifier)
    if not webhook:
        logger.warning("webhook_identifier_unknown", webhook_identifier=webhook_identifier)
        raise NotFoundError(
            f"No webhook registered for identifier {webhook_identifier}",
            error="Store not found"
        )

    store = await db.get(Store, webhook.store_id)
    if not store:
        logger.warning(
            "webhook_store_missing",
            webhook_identifier=webhook_identifier,
            store_id=webhook.store_id
        )
        raise NotFoundError(
            f"Store {webhook.store_id} for webhook {webhook_identifier} no longer exists",
            error="Store not found"
        )

    return StoreContext(
        store_id=store.id,
        organization_id=store.organization_id,
        user_id=store.user_id,
        webhook_secret=webhook.secret,
        name=store.name,
        url=store.url,
        webhook=webhook,
    )


async def resolve_store_from_url(db: AsyncSession, url: str) -> StoreContext:
    """Resolve a store from a full delivery URL or request path."""
    return await resolve_store(db, extract_webhook_identifier(url))
