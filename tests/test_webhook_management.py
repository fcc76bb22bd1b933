import asyncio
import json
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from storehook.config import settings
from storehook.models.audit_log import AuditLog
from storehook.models.order import Order
from storehook.models.store import Store
from storehook.models.webhook import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookRegistration,
    WebhookStatus,
    WebhookTopic,
)
from storehook.services import webhook_service

from helpers import make_registration, signed_headers


async def fetch(session_factory, model, ident):
    async with session_factory() as session:
        return await session.get(model, ident)


async def audit_actions(session_factory) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(select(AuditLog.action))
        return list(result.scalars().all())


# ============================================
# Register
# ============================================

async def test_register_creates_remote_and_local_webhook(client, session_factory, store, woo):
    response = await client.post("/api/webhooks", json={"storeId": store.id, "topic": "order.created"})

    assert response.status_code == 201
    data = response.json()
    assert data["success"] is True
    webhook = data["webhook"]
    assert webhook["topic"] == "order.created"
    assert webhook["status"] == "active"
    assert webhook["storeId"] == store.id
    assert webhook["organizationId"] == store.organization_id
    assert webhook["webhookIdentifier"].startswith(f"{store.id}-")
    assert webhook["copyableUrl"] == (
        f"https://api.storehook.test/api/webhooks/woocommerce/{webhook['webhookIdentifier']}/order.created"
    )
    assert webhook["copyableUrl"] in webhook["instructions"]
    assert "secret" not in webhook

    remote_call = woo.calls("POST")[0]
    sent = json.loads(remote_call.content)
    assert remote_call.url.path == "/wp-json/wc/v3/webhooks"
    assert sent["delivery_url"] == webhook["copyableUrl"]
    assert sent["name"] == "Order Created - Acme Shop"
    assert len(sent["secret"]) == 64

    stored = await fetch(session_factory, WebhookRegistration, webhook["id"])
    assert stored.remote_id == webhook["remoteId"]
    assert stored.secret == sent["secret"]
    assert "webhook_created" in await audit_actions(session_factory)


async def test_registered_webhook_accepts_signed_deliveries(client, session_factory, store, woo):
    created = (await client.post("/api/webhooks", json={"storeId": store.id, "topic": "order.created"})).json()
    secret = json.loads(woo.calls("POST")[0].content)["secret"]

    body = json.dumps({"id": 123}).encode()
    url = created["webhook"]["copyableUrl"].replace("https://api.storehook.test", "")
    response = await client.post(url, content=body, headers=signed_headers(body, "order.created", secret=secret))

    assert response.status_code == 200
    async with session_factory() as session:
        orders = (await session.execute(select(Order))).scalars().all()
    assert [o.order_id for o in orders] == ["123"]


async def test_register_unknown_store(client):
    response = await client.post("/api/webhooks", json={"storeId": "missing", "topic": "order.created"})
    assert response.status_code == 404
    assert response.json()["error"] == "Store not found"


async def test_register_requires_store_credentials(client, db, store, woo):
    store.api_key = None
    await db.commit()

    response = await client.post("/api/webhooks", json={"storeId": store.id, "topic": "order.created"})

    assert response.status_code == 400
    assert woo.requests == []


async def test_register_remote_rejection(client, session_factory, store, woo):
    woo.rejected_topics.add("product.deleted")

    response = await client.post("/api/webhooks", json={"storeId": store.id, "topic": "product.deleted"})

    assert response.status_code == 400
    assert response.json()["message"] == "Invalid topic"
    async with session_factory() as session:
        assert (await session.execute(select(WebhookRegistration))).first() is None


async def test_register_invalid_topic(client, store):
    response = await client.post("/api/webhooks", json={"storeId": store.id, "topic": "order.exploded"})
    assert response.status_code == 400


async def test_failed_local_save_removes_remote_webhook(client, session_factory, store, woo, monkeypatch):
    # a frozen clock makes the second registration reuse the first identifier
    monkeypatch.setattr(webhook_service, "time", SimpleNamespace(time=lambda: 1_700_000_000.0))
    payload = {"storeId": store.id, "topic": "order.created"}

    first = await client.post("/api/webhooks", json=payload)
    second = await client.post("/api/webhooks", json=payload)

    assert first.status_code == 201
    assert second.status_code == 500
    assert second.json()["error"] == "Webhook creation failed"
    assert list(woo.webhooks) == [first.json()["webhook"]["remoteId"]]
    assert len(woo.calls("DELETE")) == 1

    async with session_factory() as session:
        rows = (await session.execute(select(WebhookRegistration))).scalars().all()
    assert [r.id for r in rows] == [first.json()["webhook"]["id"]]


# ============================================
# List / get / update / delete
# ============================================

async def test_list_with_summary(client, db, store, woo):
    await make_registration(db, store, woo, identifier="a")
    paused = await make_registration(db, store, woo, WebhookTopic.ORDER_UPDATED, identifier="b")
    paused.status = WebhookStatus.PAUSED
    await db.commit()

    response = await client.get("/api/webhooks", params={"storeId": store.id})
    data = response.json()

    assert response.status_code == 200
    assert len(data["webhooks"]) == 2
    assert data["summary"] == {"total": 2, "active": 1, "paused": 1, "disabled": 0}

    response = await client.get("/api/webhooks", params={"status": "paused"})
    assert [w["id"] for w in response.json()["webhooks"]] == [paused.id]


async def test_get_webhook(client, registration):
    response = await client.get(f"/api/webhooks/{registration.id}")
    assert response.status_code == 200
    assert response.json()["webhook"]["webhookIdentifier"] == registration.webhook_identifier

    assert (await client.get("/api/webhooks/nope")).status_code == 404


async def test_update_goes_remote_then_local(client, session_factory, registration, woo):
    response = await client.put(f"/api/webhooks/{registration.id}", json={"name": "Renamed", "status": "paused"})

    assert response.status_code == 200
    assert response.json()["webhook"]["name"] == "Renamed"
    assert woo.webhooks[registration.remote_id]["status"] == "paused"

    stored = await fetch(session_factory, WebhookRegistration, registration.id)
    assert stored.name == "Renamed"
    assert stored.status == WebhookStatus.PAUSED


async def test_update_remote_failure_leaves_local_untouched(client, session_factory, registration, woo):
    woo.failing_ids.add(registration.remote_id)

    response = await client.put(f"/api/webhooks/{registration.id}", json={"name": "Renamed"})

    assert response.status_code == 500
    stored = await fetch(session_factory, WebhookRegistration, registration.id)
    assert stored.name == registration.name


async def test_update_cannot_change_routing_identifier(client, registration, woo):
    response = await client.put(
        f"/api/webhooks/{registration.id}",
        json={"deliveryUrl": "https://api.storehook.test/api/webhooks/woocommerce/other-id/order.created"},
    )

    assert response.status_code == 400
    assert woo.calls("PUT") == []


async def test_update_delivery_url_must_resolve_to_same_webhook(client, db, store, registration, woo):
    other = await make_registration(db, store, woo, identifier="other-hook")
    base = "https://api.storehook.test/api/webhooks/woocommerce"

    response = await client.put(
        f"/api/webhooks/{registration.id}",
        json={"deliveryUrl": f"{base}/{other.webhook_identifier}/order.created"},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid delivery URL"

    moved = f"https://hooks.storehook.test/api/webhooks/woocommerce/{registration.webhook_identifier}/order.created"
    response = await client.put(f"/api/webhooks/{registration.id}", json={"deliveryUrl": moved})
    assert response.status_code == 200
    assert response.json()["webhook"]["deliveryUrl"] == moved
    assert woo.webhooks[registration.remote_id]["delivery_url"] == moved


async def test_reactivating_resets_failure_streak(client, db, session_factory, registration):
    registration.failure_count = 5
    registration.status = WebhookStatus.DISABLED
    await db.commit()

    response = await client.put(f"/api/webhooks/{registration.id}", json={"status": "active"})

    assert response.status_code == 200
    stored = await fetch(session_factory, WebhookRegistration, registration.id)
    assert stored.status == WebhookStatus.ACTIVE
    assert stored.failure_count == 0


async def test_delete_removes_remote_and_local(client, session_factory, registration, woo):
    response = await client.delete(f"/api/webhooks/{registration.id}")

    assert response.status_code == 200
    assert registration.remote_id not in woo.webhooks
    assert woo.calls("DELETE")[0].url.params["force"] == "true"
    assert await fetch(session_factory, WebhookRegistration, registration.id) is None


async def test_delete_treats_remote_404_as_deleted(client, session_factory, registration, woo):
    woo.webhooks.pop(registration.remote_id)

    response = await client.delete(f"/api/webhooks/{registration.id}")

    assert response.status_code == 200
    assert await fetch(session_factory, WebhookRegistration, registration.id) is None


async def test_delete_remote_failure_keeps_local(client, session_factory, registration, woo):
    woo.down = True

    response = await client.delete(f"/api/webhooks/{registration.id}")

    assert response.status_code == 500
    assert await fetch(session_factory, WebhookRegistration, registration.id) is not None


# ============================================
# Bulk status
# ============================================

async def test_bulk_disable_reports_per_item_failures(client, session_factory, db, store, woo):
    webhooks = [
        await make_registration(db, store, woo, identifier=f"bulk-{i}")
        for i in range(5)
    ]
    ids = [w.id for w in webhooks[:3]] + ["missing-1"] + [w.id for w in webhooks[3:]] + ["missing-2"]

    response = await client.put("/api/webhooks/bulk/update", json={"webhookIds": ids, "status": "disabled"})

    assert response.status_code == 200
    results = response.json()["results"]
    assert results["total"] == 7
    assert results["successful"] == 5
    assert results["failed"] == 2
    assert sorted(e["webhookId"] for e in results["errors"]) == ["missing-1", "missing-2"]
    assert all(e["error"] == "Webhook not found" for e in results["errors"])

    for webhook in webhooks:
        stored = await fetch(session_factory, WebhookRegistration, webhook.id)
        assert stored.status == WebhookStatus.DISABLED
        assert woo.webhooks[webhook.remote_id]["status"] == "disabled"


async def test_bulk_collects_remote_errors(client, session_factory, db, store, woo):
    good = await make_registration(db, store, woo, identifier="good")
    bad = await make_registration(db, store, woo, identifier="bad")
    woo.failing_ids.add(bad.remote_id)

    response = await client.put(
        "/api/webhooks/bulk/update",
        json={"webhookIds": [good.id, bad.id], "status": "paused"},
    )

    results = response.json()["results"]
    assert results["successful"] == 1
    assert results["errors"] == [{"webhookId": bad.id, "error": "Remote store exploded"}]
    assert (await fetch(session_factory, WebhookRegistration, bad.id)).status == WebhookStatus.ACTIVE


async def test_bulk_runs_in_batches_with_a_pause(client, db, store, woo, monkeypatch):
    webhooks = [await make_registration(db, store, woo, identifier=f"batch-{i}") for i in range(7)]
    pauses = []

    async def record_pause(seconds):
        pauses.append((seconds, len(woo.calls("PUT"))))

    monkeypatch.setattr(settings, "WEBHOOK_BULK_BATCH_DELAY_SECONDS", 1.0)
    monkeypatch.setattr(
        webhook_service,
        "asyncio",
        SimpleNamespace(gather=asyncio.gather, sleep=record_pause),
    )

    response = await client.put(
        "/api/webhooks/bulk/update",
        json={"webhookIds": [w.id for w in webhooks], "status": "paused"},
    )

    assert response.json()["results"]["successful"] == 7
    # one pause, taken after the first batch of five remote updates
    assert pauses == [(1.0, 5)]
    put_ids = [int(r.url.path.rsplit("/", 1)[-1]) for r in woo.calls("PUT")]
    assert set(put_ids[:5]) == {w.remote_id for w in webhooks[:5]}
    assert set(put_ids[5:]) == {w.remote_id for w in webhooks[5:]}


async def test_bulk_requires_ids(client):
    response = await client.put("/api/webhooks/bulk/update", json={"webhookIds": [], "status": "paused"})
    assert response.status_code == 400


# ============================================
# Deliveries, test and stats
# ============================================

@pytest.fixture
async def deliveries(db, store, registration):
    records = []
    for index, status in enumerate([DeliveryStatus.SUCCESS, DeliveryStatus.FAILED, DeliveryStatus.SUCCESS]):
        delivery = WebhookDelivery(
            webhook_id=registration.id,
            delivery_id=f"remote-{index}",
            topic="order.created",
            resource="order",
            event="created",
            status=status,
            response_code=200 if status == DeliveryStatus.SUCCESS else 500,
            request_body={"id": index + 1},
            duration=10.0 * (index + 1),
            store_id=store.id,
            organization_id=store.organization_id,
        )
        db.add(delivery)
        records.append(delivery)
    await db.commit()
    return records


async def test_list_and_get_deliveries(client, registration, deliveries):
    response = await client.get(f"/api/webhooks/{registration.id}/deliveries")
    assert response.status_code == 200
    assert len(response.json()["deliveries"]) == 3

    response = await client.get(f"/api/webhooks/{registration.id}/deliveries/remote-1")
    assert response.json()["delivery"]["status"] == "failed"

    response = await client.get(f"/api/webhooks/{registration.id}/deliveries/{deliveries[0].id}")
    assert response.json()["delivery"]["deliveryId"] == "remote-0"

    assert (await client.get(f"/api/webhooks/{registration.id}/deliveries/nope")).status_code == 404


async def test_retry_failed_delivery(client, session_factory, registration, deliveries):
    response = await client.post(f"/api/webhooks/{registration.id}/deliveries/remote-1/retry")

    assert response.status_code == 200
    assert response.json()["delivery"]["status"] == "pending"
    stored = await fetch(session_factory, WebhookDelivery, deliveries[1].id)
    assert stored.next_retry_at is not None

    response = await client.post(f"/api/webhooks/{registration.id}/deliveries/remote-0/retry")
    assert response.status_code == 400


async def test_rejected_deliveries_cannot_be_retried(client, db, store, registration):
    for code in (400, 401):
        db.add(WebhookDelivery(
            webhook_id=registration.id,
            delivery_id=f"rejected-{code}",
            topic="order.deleted",
            resource="order",
            event="deleted",
            status=DeliveryStatus.FAILED,
            response_code=code,
            store_id=store.id,
            organization_id=store.organization_id,
        ))
    await db.commit()

    for code in (400, 401):
        response = await client.post(f"/api/webhooks/{registration.id}/deliveries/rejected-{code}/retry")
        assert response.status_code == 400
        assert response.json()["error"] == "Delivery not retryable"


async def test_test_webhook_triggers_remote_delivery(client, registration, woo):
    response = await client.post(f"/api/webhooks/{registration.id}/test")

    assert response.status_code == 200
    sent = woo.calls("POST")[-1]
    assert sent.url.path == f"/wp-json/wc/v3/webhooks/{registration.remote_id}/deliveries"
    assert json.loads(sent.content) == {"topic": "order.created", "delivery_url": registration.delivery_url}


async def test_stats(client, store, registration, deliveries):
    response = await client.get("/api/webhooks/stats", params={"storeId": store.id, "days": 7})

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["statusStats"] == [{"status": "active", "count": 1}]
    assert stats["topicStats"] == [{"topic": "order.created", "count": 1}]
    recent = {row["status"]: row["count"] for row in stats["recentDeliveries"]}
    assert recent == {"success": 2, "failed": 1}
    assert stats["successRate"] == pytest.approx(66.67)
    assert stats["averageDuration"] == pytest.approx(20.0)


# ============================================
# Default webhooks
# ============================================

async def test_create_default_webhooks(client, session_factory, store, woo):
    woo.rejected_topics.add("product.updated")

    response = await client.post("/api/webhooks/defaults", json={"storeId": store.id})

    assert response.status_code == 201
    results = response.json()["results"]
    assert results["total"] == 6
    assert results["successful"] == 5
    assert results["errors"] == [{"topic": "product.updated", "error": "Invalid topic"}]

    identifiers = {
        json.loads(r.content)["topic"]: json.loads(r.content)["delivery_url"]
        for r in woo.calls("POST")
    }
    assert f"/{store.id}-order-created-" in identifiers["order.created"]

    actions = await audit_actions(session_factory)
    assert actions.count("webhook_auto_created") == 5
    assert actions.count("webhook_auto_creation_failed") == 1
    assert actions.count("webhook_auto_creation_completed") == 1

    status = (await client.get(f"/api/webhooks/stores/{store.id}/status")).json()["status"]
    assert status["total"] == 5
    assert status["active"] == 5
    assert {t["topic"] for t in status["topics"]} == {
        "order.created", "order.updated", "customer.created", "customer.updated", "product.created",
    }


async def test_default_webhooks_require_active_store(client, db, store):
    store.is_active = False
    await db.commit()

    response = await client.post("/api/webhooks/defaults", json={"storeId": store.id})

    assert response.status_code == 400
    assert response.json()["message"] == "Store must be active"


async def test_store_missing_for_status(client):
    response = await client.get("/api/webhooks/stores/missing/status")
    assert response.status_code == 404


def test_store_has_api_credentials():
    assert Store(url="https://x", api_key="k", secret_key="s", name="n", organization_id="o", user_id="u").has_api_credentials
    assert not Store(url="https://x", api_key=None, secret_key="s", name="n", organization_id="o", user_id="u").has_api_credentials
