"""Test helpers: fake WooCommerce API, registration factory and request signing."""
import json
import re

import httpx

from storehook.config import settings
from storehook.dependencies.auth import TokenPayload
from storehook.models.webhook import WebhookRegistration, WebhookTopic
from storehook.services.signature import sign_payload
from storehook.services.store_resolver import build_delivery_url


WEBHOOK_SECRET = "s3cr3t-webhook-key"
OPERATOR = TokenPayload(sub="operator-1", org_id="org-ops", role="admin", email="ops@example.com")


class FakeWooCommerce:
    """In-memory stand-in for the WooCommerce /wp-json/wc/v3/webhooks API."""

    def __init__(self):
        self.webhooks: dict[int, dict] = {}
        self.next_id = 100
        self.requests: list[httpx.Request] = []
        self.failing_ids: set[int] = set()
        self.rejected_topics: set[str] = set()
        self.down = False

    def add(self, **fields) -> dict:
        hook = {
            "id": self.next_id,
            "name": "Existing hook",
            "status": "active",
            "topic": "order.created",
            "delivery_url": "https://hooks.example.com/x",
            "hooks": [],
            **fields,
        }
        self.webhooks[hook["id"]] = hook
        self.next_id += 1
        return hook

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.down:
            return httpx.Response(503, json={"message": "Service unavailable"})

        path = request.url.path.split("/wp-json/wc/v3/", 1)[-1]
        body = json.loads(request.content) if request.content else {}

        if path == "webhooks" and request.method == "GET":
            return httpx.Response(200, json=list(self.webhooks.values()))

        if path == "webhooks" and request.method == "POST":
            if body.get("topic") in self.rejected_topics:
                return httpx.Response(400, json={"code": "rest_invalid_param", "message": "Invalid topic"})
            resource, event = body["topic"].split(".")
            hook = self.add(
                name=body["name"],
                topic=body["topic"],
                delivery_url=body["delivery_url"],
                resource=resource,
                event=event,
                hooks=[f"woocommerce_new_{resource}"],
            )
            return httpx.Response(201, json=hook)

        match = re.fullmatch(r"webhooks/(\d+)(/deliveries)?", path)
        if not match:
            return httpx.Response(404, json={"message": "No route"})

        hook_id = int(match.group(1))
        if hook_id not in self.webhooks:
            return httpx.Response(404, json={"code": "woocommerce_rest_webhook_invalid_id", "message": "Invalid ID."})
        if hook_id in self.failing_ids:
            return httpx.Response(500, json={"message": "Remote store exploded"})

        if match.group(2):
            return httpx.Response(201, json={"id": 1, "webhook_id": hook_id})
        if request.method == "PUT":
            self.webhooks[hook_id].update(body)
            return httpx.Response(200, json=self.webhooks[hook_id])
        if request.method == "DELETE":
            return httpx.Response(200, json=self.webhooks.pop(hook_id))
        return httpx.Response(200, json=self.webhooks[hook_id])

    def calls(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]


async def make_registration(
    db,
    store,
    woo,
    topic: WebhookTopic = WebhookTopic.ORDER_CREATED,
    identifier: str | None = None,
    secret: str = WEBHOOK_SECRET,
) -> WebhookRegistration:
    """Persist a registration mirrored by a hook on the fake remote store."""
    identifier = identifier or f"{store.id}-{woo.next_id}"
    delivery_url = build_delivery_url(settings.API_BASE_URL, identifier, topic.value)
    remote = woo.add(topic=topic.value, delivery_url=delivery_url, name=f"{topic.value} hook")
    webhook = WebhookRegistration(
        store_id=store.id,
        organization_id=store.organization_id,
        remote_id=remote["id"],
        webhook_identifier=identifier,
        name=remote["name"],
        topic=topic,
        delivery_url=delivery_url,
        secret=secret,
        resource=topic.resource,
        event=topic.event,
    )
    db.add(webhook)
    await db.commit()
    await db.refresh(webhook)
    return webhook


def signed_headers(body: bytes, topic: str, secret: str = WEBHOOK_SECRET, **extra) -> dict:
    resource, event = topic.split(".")
    headers = {
        "Content-Type": "application/json",
        "X-WC-Webhook-Signature": sign_payload(body, secret),
        "X-WC-Webhook-Topic": topic,
        "X-WC-Webhook-Resource": resource,
        "X-WC-Webhook-Event": event,
        "X-WC-Webhook-ID": "101",
        "X-WC-Webhook-Delivery-ID": "d-1",
    }
    headers.update(extra)
    return headers
