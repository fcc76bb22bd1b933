import json

import pytest
from sqlalchemy import func, select

from storehook.config import settings
from storehook.exceptions import BadRequestError
from storehook.models.audit_log import AuditLog
from storehook.models.customer import Customer
from storehook.models.order import Order
from storehook.models.product import Product
from storehook.models.store import Store
from storehook.models.webhook import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookRegistration,
    WebhookStatus,
    WebhookTopic,
)
from storehook.services.store_resolver import resolve_store
from storehook.services.webhook_processor import WebhookHeaders, WebhookProcessor, load_payload

from helpers import make_registration, signed_headers


def inbound_path(webhook: WebhookRegistration, topic: str | None = None) -> str:
    topic = topic or webhook.topic.value
    return f"/api/webhooks/woocommerce/{webhook.webhook_identifier}/{topic}"


async def post_signed(client, webhook, payload: dict, topic: str | None = None, **header_overrides):
    topic = topic or webhook.topic.value
    body = json.dumps(payload).encode()
    headers = signed_headers(body, topic, **header_overrides)
    return await client.post(inbound_path(webhook, topic), content=body, headers=headers)


async def count(session_factory, model, *where) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model).where(*where))
        return result.scalar_one()


async def fetch_all(session_factory, model, *where):
    async with session_factory() as session:
        result = await session.execute(select(model).where(*where))
        return list(result.scalars().all())


async def fetch(session_factory, model, ident):
    async with session_factory() as session:
        return await session.get(model, ident)


def test_headers_are_case_insensitive():
    headers = WebhookHeaders.from_headers({
        "x-wc-webhook-signature": "abc",
        "X-WC-Webhook-Topic": "order.created",
        "X-Wc-Webhook-Delivery-Id": "77",
    })
    assert headers.signature == "abc"
    assert headers.topic == "order.created"
    assert headers.delivery_id == "77"
    assert headers.webhook_id is None


# ============================================
# End-to-end inbound deliveries
# ============================================

async def test_order_created_is_stored_and_recorded(client, session_factory, store, registration):
    response = await post_signed(client, registration, {"id": 123, "status": "processing", "total": "49.90"})

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "order created processed successfully"}

    orders = await fetch_all(session_factory, Order)
    assert len(orders) == 1
    assert orders[0].order_id == "123"
    assert orders[0].store_id == store.id
    assert orders[0].organization_id == store.organization_id
    assert orders[0].total == 49.9

    deliveries = await fetch_all(session_factory, WebhookDelivery)
    assert len(deliveries) == 1
    assert deliveries[0].status == DeliveryStatus.SUCCESS
    assert deliveries[0].webhook_id == registration.id
    assert deliveries[0].delivery_id == "d-1"
    assert deliveries[0].response_code == 200
    assert deliveries[0].request_body["id"] == 123

    webhook = await fetch(session_factory, WebhookRegistration, registration.id)
    assert webhook.failure_count == 0
    assert webhook.last_delivery is not None

    audit = await fetch_all(session_factory, AuditLog, AuditLog.action == "webhook_order.created")
    assert len(audit) == 1
    assert audit[0].organization_id == store.organization_id


async def test_tampered_signature_is_rejected(client, session_factory, registration):
    body = json.dumps({"id": 123}).encode()
    headers = signed_headers(body, "order.created")
    tampered = body.replace(b"123", b"124")

    response = await client.post(inbound_path(registration), content=tampered, headers=headers)

    assert response.status_code == 401
    assert response.json()["error"] == "Invalid signature"
    assert await count(session_factory, Order) == 0

    deliveries = await fetch_all(session_factory, WebhookDelivery)
    assert len(deliveries) == 1
    assert deliveries[0].status == DeliveryStatus.FAILED
    assert deliveries[0].response_code == 401

    webhook = await fetch(session_factory, WebhookRegistration, registration.id)
    assert webhook.failure_count == 1


async def test_missing_signature_is_rejected(client, session_factory, registration):
    body = json.dumps({"id": 5}).encode()
    headers = signed_headers(body, "order.created")
    del headers["X-WC-Webhook-Signature"]

    response = await client.post(inbound_path(registration), content=body, headers=headers)

    assert response.status_code == 401
    assert await count(session_factory, Order) == 0


async def test_unsigned_delivery_requires_opt_in(client, session_factory, db, store, woo, monkeypatch):
    webhook = await make_registration(db, store, woo, identifier="unsigned-hook", secret="")
    body = json.dumps({"id": 9}).encode()
    headers = {"Content-Type": "application/json", "X-WC-Webhook-ID": "1"}

    response = await client.post(inbound_path(webhook), content=body, headers=headers)
    assert response.status_code == 401

    monkeypatch.setattr(settings, "WEBHOOK_ALLOW_UNSIGNED", True)
    response = await client.post(inbound_path(webhook), content=body, headers=headers)
    assert response.status_code == 200
    assert await count(session_factory, Order, Order.order_id == "9") == 1


async def test_unknown_identifier_returns_not_found(client, session_factory, registration):
    body = json.dumps({"id": 1}).encode()
    response = await client.post(
        "/api/webhooks/woocommerce/does-not-exist/order.created",
        content=body,
        headers=signed_headers(body, "order.created"),
    )

    assert response.status_code == 404
    assert response.json()["error"] == "Store not found"

    deliveries = await fetch_all(session_factory, WebhookDelivery)
    assert len(deliveries) == 1
    assert deliveries[0].status == DeliveryStatus.FAILED
    assert deliveries[0].webhook_id is None
    assert deliveries[0].remote_webhook_id == "101"


async def test_unknown_topic_is_a_bad_request(client, registration):
    response = await client.post(
        inbound_path(registration, "order.refunded"),
        content=b"{}",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"


async def test_processing_failure_returns_500_and_records_failure(client, session_factory, registration):
    # order payload without an id cannot be keyed
    response = await post_signed(client, registration, {"status": "processing"})

    assert response.status_code == 500
    assert response.json()["error"] == "Webhook processing failed"
    assert await count(session_factory, Order) == 0

    deliveries = await fetch_all(session_factory, WebhookDelivery)
    assert len(deliveries) == 1
    assert deliveries[0].status == DeliveryStatus.FAILED
    assert deliveries[0].response_code == 500
    assert "id" in deliveries[0].error_message

    webhook = await fetch(session_factory, WebhookRegistration, registration.id)
    assert webhook.failure_count == 1


async def test_five_failures_disable_and_success_resets(client, session_factory, db, store, woo):
    webhook = await make_registration(db, store, woo, identifier="flaky-hook")
    body = json.dumps({"id": 1}).encode()
    bad_headers = signed_headers(body, "order.created", secret="wrong-secret")

    for _ in range(4):
        response = await client.post(inbound_path(webhook), content=body, headers=bad_headers)
        assert response.status_code == 401

    assert (await fetch(session_factory, WebhookRegistration, webhook.id)).failure_count == 4

    response = await post_signed(client, webhook, {"id": 1})
    assert response.status_code == 200
    refreshed = await fetch(session_factory, WebhookRegistration, webhook.id)
    assert refreshed.failure_count == 0
    assert refreshed.status == WebhookStatus.ACTIVE

    for _ in range(5):
        await client.post(inbound_path(webhook), content=body, headers=bad_headers)

    refreshed = await fetch(session_factory, WebhookRegistration, webhook.id)
    assert refreshed.failure_count == 5
    assert refreshed.status == WebhookStatus.DISABLED


async def test_customer_and_product_topics(client, session_factory, db, store, woo):
    customer_hook = await make_registration(db, store, woo, WebhookTopic.CUSTOMER_UPDATED, identifier="cust")
    product_hook = await make_registration(db, store, woo, WebhookTopic.PRODUCT_CREATED, identifier="prod")

    assert (await post_signed(client, customer_hook, {"id": 3, "email": "c@x.io"})).status_code == 200
    assert (await post_signed(client, product_hook, {"id": 4, "name": "Hat"})).status_code == 200

    customers = await fetch_all(session_factory, Customer)
    products = await fetch_all(session_factory, Product)
    assert [c.customer_id for c in customers] == ["3"]
    assert [p.name for p in products] == ["Hat"]


async def test_delivery_for_another_topic_is_rejected(client, session_factory, registration):
    body = json.dumps({"id": 123}).encode()
    headers = signed_headers(body, "order.created")
    assert (await client.post(inbound_path(registration), content=body, headers=headers)).status_code == 200

    # same signed body and headers pointed at the delete route
    response = await client.post(inbound_path(registration, "order.deleted"), content=body, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "Topic mismatch"
    assert await count(session_factory, Order, Order.order_id == "123") == 1

    failed = await fetch_all(session_factory, WebhookDelivery, WebhookDelivery.status == DeliveryStatus.FAILED)
    assert len(failed) == 1
    assert failed[0].response_code == 400
    assert failed[0].topic == "order.deleted"
    assert (await fetch(session_factory, WebhookRegistration, registration.id)).failure_count == 0


async def test_topic_header_must_match_registration(client, session_factory, registration):
    body = json.dumps({"id": 55}).encode()
    headers = signed_headers(body, "order.created", **{"X-WC-Webhook-Topic": "product.deleted"})

    response = await client.post(inbound_path(registration), content=body, headers=headers)

    assert response.status_code == 400
    assert await count(session_factory, Order) == 0


async def test_replay_refuses_mismatched_topic(db, registration):
    delivery = WebhookDelivery(
        webhook_id=registration.id,
        topic="order.deleted",
        resource="order",
        event="deleted",
        request_body={"id": 1},
    )

    with pytest.raises(BadRequestError):
        await WebhookProcessor(db).replay(delivery)


async def test_non_finite_numbers_do_not_fail_delivery(client, session_factory, db, store, woo):
    webhook = await make_registration(db, store, woo, WebhookTopic.PRODUCT_CREATED, identifier="inf-hook")
    body = b'{"id": 12, "name": "Lamp", "stock_quantity": 1e400, "price": 1e400}'

    response = await client.post(inbound_path(webhook), content=body, headers=signed_headers(body, "product.created"))

    assert response.status_code == 200
    products = await fetch_all(session_factory, Product)
    assert products[0].stock_quantity == 0
    assert products[0].price == 0

    deliveries = await fetch_all(session_factory, WebhookDelivery)
    assert deliveries[0].request_body["stock_quantity"] is None


def test_load_payload_drops_non_finite_numbers():
    payload = load_payload(b'{"a": 1e400, "b": NaN, "c": -Infinity, "d": 2.5, "e": 3}')
    assert payload == {"a": None, "b": None, "c": None, "d": 2.5, "e": 3}


# ============================================
# Mutation semantics
# ============================================

@pytest.fixture
async def context(db, registration):
    return await resolve_store(db, registration.webhook_identifier)


async def test_upsert_is_idempotent_and_last_write_wins(db, session_factory, context):
    processor = WebhookProcessor(db)

    await processor.apply(WebhookTopic.ORDER_CREATED, {"id": 500, "total": "10.00"}, context)
    await processor.apply(WebhookTopic.ORDER_CREATED, {"id": 500, "total": "12.00"}, context)
    await db.commit()

    orders = await fetch_all(session_factory, Order)
    assert len(orders) == 1
    assert orders[0].total == 12.0


async def test_update_before_create_still_yields_one_record(db, session_factory, context):
    processor = WebhookProcessor(db)

    await processor.apply(WebhookTopic.ORDER_UPDATED, {"id": 600, "status": "completed"}, context)
    await processor.apply(WebhookTopic.ORDER_CREATED, {"id": 600, "status": "pending"}, context)
    await db.commit()

    orders = await fetch_all(session_factory, Order)
    assert len(orders) == 1
    assert orders[0].status == "pending"


async def test_delete_is_idempotent(db, session_factory, context):
    processor = WebhookProcessor(db)

    assert await processor.apply(WebhookTopic.PRODUCT_DELETED, {"id": 700}, context) is None

    local_id = await processor.apply(WebhookTopic.PRODUCT_CREATED, {"id": 700, "name": "Cup"}, context)
    deleted_id = await processor.apply(WebhookTopic.PRODUCT_DELETED, {"id": 700}, context)
    await db.commit()

    assert deleted_id == local_id
    assert await count(session_factory, Product) == 0


async def test_records_are_scoped_per_store(db, session_factory, context, organization, woo):
    other_store = Store(
        organization_id=organization.id,
        user_id="owner-2",
        name="Other Shop",
        url="https://other.example.com",
        api_key="ck",
        secret_key="cs",
    )
    db.add(other_store)
    await db.commit()
    other_hook = await make_registration(db, other_store, woo, identifier="other-hook")
    other_context = await resolve_store(db, other_hook.webhook_identifier)

    processor = WebhookProcessor(db)
    await processor.apply(WebhookTopic.ORDER_CREATED, {"id": 1}, context)
    await processor.apply(WebhookTopic.ORDER_CREATED, {"id": 1}, other_context)
    await db.commit()

    assert await count(session_factory, Order) == 2


async def test_non_object_payload_is_rejected(db, context):
    with pytest.raises(ValueError):
        await WebhookProcessor(db).apply(WebhookTopic.ORDER_CREATED, [1, 2], context)
