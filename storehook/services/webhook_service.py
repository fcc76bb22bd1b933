"""
Webhook lifecycle management.

Registrations live on the remote WooCommerce store and are mirrored locally.
Every mutation goes to the remote store first; the local row is only touched
once the remote call succeeded. The hourly reconciliation job repairs any
drift left behind by a failed local write.

SECURITY: webhook secrets are never serialized back to API callers.
"""
import asyncio
import secrets
import time
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storehook.config import settings
from storehook.exceptions import BadRequestError, InternalError, NotFoundError
from storehook.logging_config import get_logger
from storehook.models.base import utcnow
from storehook.models.store import Store
from storehook.models.webhook import (
    DeliveryStatus,
    WebhookDelivery,
    WebhookRegistration,
    WebhookStatus,
    WebhookTopic,
)
from storehook.services.audit_service import AuditLogger
from storehook.services.store_resolver import build_delivery_url, resolve_store_from_url
from storehook.services.woocommerce import WooCommerceClientFactory, WooCommerceError


logger = get_logger(component="webhook_service")

# Topics registered automatically when a store is connected
DEFAULT_WEBHOOK_TOPICS = [
    WebhookTopic.ORDER_CREATED,
    WebhookTopic.ORDER_UPDATED,
    WebhookTopic.CUSTOMER_CREATED,
    WebhookTopic.CUSTOMER_UPDATED,
    WebhookTopic.PRODUCT_CREATED,
    WebhookTopic.PRODUCT_UPDATED,
]

WEBHOOK_TOPIC_CONFIG = {
    WebhookTopic.ORDER_CREATED: {"name": "Order Created", "description": "Sync new orders"},
    WebhookTopic.ORDER_UPDATED: {"name": "Order Updated", "description": "Sync order changes"},
    WebhookTopic.ORDER_DELETED: {"name": "Order Deleted", "description": "Remove deleted orders"},
    WebhookTopic.CUSTOMER_CREATED: {"name": "Customer Created", "description": "Sync new customers"},
    WebhookTopic.CUSTOMER_UPDATED: {"name": "Customer Updated", "description": "Sync customer changes"},
    WebhookTopic.CUSTOMER_DELETED: {"name": "Customer Deleted", "description": "Remove deleted customers"},
    WebhookTopic.PRODUCT_CREATED: {"name": "Product Created", "description": "Sync new products"},
    WebhookTopic.PRODUCT_UPDATED: {"name": "Product Updated", "description": "Sync product changes"},
    WebhookTopic.PRODUCT_DELETED: {"name": "Product Deleted", "description": "Remove deleted products"},
}

REMOTE_PAGE_SIZE = 100


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def webhook_to_dict(webhook: WebhookRegistration) -> dict[str, Any]:
    """API representation of a registration (without its secret)."""
    return {
        "id": webhook.id,
        "storeId": webhook.store_id,
        "organizationId": webhook.organization_id,
        "remoteId": webhook.remote_id,
        "webhookIdentifier": webhook.webhook_identifier,
        "name": webhook.name,
        "topic": _enum_value(webhook.topic),
        "status": _enum_value(webhook.status),
        "deliveryUrl": webhook.delivery_url,
        "resource": webhook.resource,
        "event": webhook.event,
        "hooks": webhook.hooks or [],
        "failureCount": webhook.failure_count,
        "lastDelivery": _iso(webhook.last_delivery),
        "lastFailure": _iso(webhook.last_failure),
        "lastFailureReason": webhook.last_failure_reason,
        "createdAt": _iso(webhook.created_at),
        "updatedAt": _iso(webhook.updated_at),
    }


def delivery_to_dict(delivery: WebhookDelivery) -> dict[str, Any]:
    return {
        "id": delivery.id,
        "webhookId": delivery.webhook_id,
        "remoteWebhookId": delivery.remote_webhook_id,
        "deliveryId": delivery.delivery_id,
        "topic": delivery.topic,
        "resource": delivery.resource,
        "event": delivery.event,
        "status": _enum_value(delivery.status),
        "responseCode": delivery.response_code,
        "responseMessage": delivery.response_message,
        "requestHeaders": delivery.request_headers or {},
        "requestBody": delivery.request_body,
        "responseHeaders": delivery.response_headers or {},
        "responseBody": delivery.response_body,
        "duration": delivery.duration,
        "storeId": delivery.store_id,
        "organizationId": delivery.organization_id,
        "retryCount": delivery.retry_count,
        "maxRetries": delivery.max_retries,
        "nextRetryAt": _iso(delivery.next_retry_at),
        "errorMessage": delivery.error_message,
        "processedAt": _iso(delivery.processed_at),
        "createdAt": _iso(delivery.created_at),
    }


def status_summary(webhooks: list[WebhookRegistration]) -> dict[str, int]:
    """Counts per status plus the total."""
    summary = {"total": len(webhooks)}
    for status in WebhookStatus:
        summary[status.value] = sum(1 for w in webhooks if w.status == status)
    return summary


def validate_store_for_webhooks(store: Store | None) -> str | None:
    """Return why a store cannot receive webhooks, or None when it can."""
    if not store:
        return "Store is required"
    if not store.url:
        return "Store URL is required"
    if not store.api_key:
        return "Store API key is required"
    if not store.secret_key:
        return "Store secret key is required"
    if not store.is_active:
        return "Store must be active"
    return None


def _remote_status(value: str | None, default: WebhookStatus = WebhookStatus.ACTIVE) -> WebhookStatus:
    try:
        return WebhookStatus(value)
    except ValueError:
        return default


def _remote_failure(error: WooCommerceError):
    """Map a remote API failure to an HTTP error."""
    if error.status_code and 400 <= error.status_code < 500:
        return BadRequestError(error.message, error="WooCommerce API error")
    return InternalError(error.message, error="WooCommerce API error")


class WebhookService:
    """Creates, mirrors and reports on WooCommerce webhook registrations."""

    def __init__(self, db: AsyncSession, client_factory: WooCommerceClientFactory):
        self.db = db
        self.client_factory = client_factory
        self.audit = AuditLogger(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_store(self, store_id: str) -> Store:
        store = await self.db.get(Store, store_id)
        if not store:
            raise NotFoundError(f"Store {store_id} not found", error="Store not found")
        return store

    async def _client_for(self, store: Store):
        try:
            return await self.client_factory.for_store(store)
        except WooCommerceError as e:
            raise BadRequestError(
                "Please configure the store with valid WooCommerce API keys and URL",
                error="Store missing WooCommerce credentials"
            ) from e

    async def get(self, webhook_id: str) -> WebhookRegistration:
        """Get a registration by local id."""
        webhook = await self.db.get(WebhookRegistration, webhook_id)
        if not webhook:
            raise NotFoundError(f"Webhook {webhook_id} not found", error="Webhook not found")
        return webhook

    async def list_webhooks(
        self,
        store_id: str | None = None,
        organization_id: str | None = None,
        status: WebhookStatus | None = None,
    ) -> tuple[list[WebhookRegistration], dict[str, int]]:
        """Registrations matching the filters, newest first, plus a status summary."""
        stmt = select(WebhookRegistration).order_by(WebhookRegistration.created_at.desc())
        if store_id:
            stmt = stmt.where(WebhookRegistration.store_id == store_id)
        if organization_id:
            stmt = stmt.where(WebhookRegistration.organization_id == organization_id)
        if status:
            stmt = stmt.where(WebhookRegistration.status == status)

        result = await self.db.execute(stmt)
        webhooks = list(result.scalars().all())
        return webhooks, status_summary(webhooks)

    # ------------------------------------------------------------------
    # Mutations (remote first, then local)
    # ------------------------------------------------------------------

    async def _create_registration(
        self,
        store: Store,
        topic: WebhookTopic,
        name: str,
        webhook_identifier: str,
    ) -> WebhookRegistration:
        """
        Create the webhook remotely and persist the local mirror.

        Raises:
            WooCommerceError: the remote store rejected the webhook
        """
        delivery_url = build_delivery_url(settings.API_BASE_URL, webhook_identifier, topic.value)
        secret = secrets.token_hex(32)

        client = await self._client_for(store)
        remote = await client.post("webhooks", {
            "name": name,
            "topic": topic.value,
            "delivery_url": delivery_url,
            "secret": secret,
        })
        remote = remote if isinstance(remote, dict) else {}
        if "id" not in remote:
            raise WooCommerceError("WooCommerce did not return a webhook id", payload=remote)

        # The remote API never echoes secrets back, so the local one is kept
        webhook = WebhookRegistration(
            store_id=store.id,
            organization_id=store.organization_id,
            remote_id=int(remote["id"]),
            webhook_identifier=webhook_identifier,
            name=remote.get("name") or name,
            topic=topic,
            status=_remote_status(remote.get("status")),
            delivery_url=remote.get("delivery_url") or delivery_url,
            secret=secret,
            resource=remote.get("resource") or topic.resource,
            event=remote.get("event") or topic.event,
            hooks=remote.get("hooks") or [],
        )
        self.db.add(webhook)
        store_id = store.id
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "webhook_local_save_failed",
                store_id=store_id,
                remote_id=int(remote["id"]),
                webhook_identifier=webhook_identifier,
                error=str(e)
            )
            await self._discard_remote(client, int(remote["id"]), store_id)
            raise
        await self.db.refresh(webhook)

        logger.info(
            "webhook_registered",
            webhook_id=webhook.id,
            remote_id=webhook.remote_id,
            store_id=store.id,
            topic=topic.value
        )
        return webhook

    async def _discard_remote(self, client, remote_id: int, store_id: str):
        """Remove a remote webhook whose local mirror could not be saved."""
        try:
            await client.delete(f"webhooks/{remote_id}", params={"force": True})
        except WooCommerceError as e:
            logger.error("webhook_remote_orphaned", store_id=store_id, remote_id=remote_id, error=e.message)
            return
        logger.info("webhook_remote_discarded", store_id=store_id, remote_id=remote_id)

    async def register(
        self,
        store_id: str,
        topic: WebhookTopic,
        name: str | None = None,
        actor: str | None = None,
    ) -> WebhookRegistration:
        """
        Register a webhook for one topic on a store.

        Raises:
            NotFoundError: store does not exist
            BadRequestError: store has no credentials or the remote store
                rejected the webhook
        """
        store = await self._get_store(store_id)
        if not store.has_api_credentials:
            raise BadRequestError(
                "Please configure the store with valid WooCommerce API keys and URL",
                error="Store missing WooCommerce credentials"
            )

        webhook_identifier = f"{store.id}-{int(time.time() * 1000)}"
        name = name or f"{WEBHOOK_TOPIC_CONFIG[topic]['name']} - {store.name}"

        try:
            webhook = await self._create_registration(store, topic, name, webhook_identifier)
        except WooCommerceError as e:
            raise BadRequestError(e.message or "WooCommerce API error", error="WooCommerce API error") from e
        except SQLAlchemyError as e:
            raise InternalError("Webhook could not be saved", error="Webhook creation failed") from e

        await self.audit.record(
            action="webhook_created",
            actor=actor,
            resource_type="webhook",
            resource_id=webhook.id,
            details={"storeId": store.id, "topic": topic.value, "remoteId": webhook.remote_id},
            organization=store.organization_id,
        )
        return webhook

    async def update(
        self,
        webhook_id: str,
        name: str | None = None,
        status: WebhookStatus | None = None,
        delivery_url: str | None = None,
        secret: str | None = None,
        actor: str | None = None,
    ) -> WebhookRegistration:
        """
        Update a registration remotely, then mirror the change locally.

        The routing identifier embedded in the delivery URL cannot change.
        """
        webhook = await self.get(webhook_id)

        changes: dict[str, Any] = {}
        if name:
            changes["name"] = name
        if status:
            changes["status"] = WebhookStatus(status).value
        if delivery_url:
            try:
                target = await resolve_store_from_url(self.db, delivery_url)
            except NotFoundError:
                target = None
            if target is None or target.webhook.id != webhook.id:
                raise BadRequestError(
                    "Delivery URL must keep the webhook identifier "
                    f"{webhook.webhook_identifier}",
                    error="Invalid delivery URL"
                )
            changes["delivery_url"] = delivery_url
        if secret:
            changes["secret"] = secret
        if not changes:
            raise BadRequestError("No updatable fields provided")

        store = await self._get_store(webhook.store_id)
        client = await self._client_for(store)
        try:
            await client.put(f"webhooks/{webhook.remote_id}", changes)
        except WooCommerceError as e:
            logger.warning("webhook_remote_update_failed", webhook_id=webhook.id, error=e.message)
            raise _remote_failure(e) from e

        if "name" in changes:
            webhook.name = changes["name"]
        if "delivery_url" in changes:
            webhook.delivery_url = changes["delivery_url"]
        if "secret" in changes:
            webhook.secret = changes["secret"]
        if "status" in changes:
            self._apply_status(webhook, WebhookStatus(changes["status"]))

        await self.db.commit()
        await self.db.refresh(webhook)

        await self.audit.record(
            action="webhook_updated",
            actor=actor,
            resource_type="webhook",
            resource_id=webhook.id,
            details={"fields": sorted(changes)},
            organization=webhook.organization_id,
        )
        return webhook

    @staticmethod
    def _apply_status(webhook: WebhookRegistration, status: WebhookStatus):
        webhook.status = status
        if status == WebhookStatus.ACTIVE:
            # Re-enabling starts a fresh failure streak
            webhook.reset_failure_count()

    async def delete(self, webhook_id: str, actor: str | None = None):
        """Delete remotely (a remote 404 counts as already deleted), then locally."""
        webhook = await self.get(webhook_id)
        store = await self._get_store(webhook.store_id)
        client = await self._client_for(store)

        try:
            await client.delete(f"webhooks/{webhook.remote_id}", params={"force": True})
        except WooCommerceError as e:
            if not e.not_found:
                logger.warning("webhook_remote_delete_failed", webhook_id=webhook.id, error=e.message)
                raise _remote_failure(e) from e
            logger.info("webhook_remote_already_deleted", webhook_id=webhook.id, remote_id=webhook.remote_id)

        organization_id = webhook.organization_id
        details = {"storeId": webhook.store_id, "topic": _enum_value(webhook.topic)}
        await self.db.delete(webhook)
        await self.db.commit()

        await self.audit.record(
            action="webhook_deleted",
            actor=actor,
            resource_type="webhook",
            resource_id=webhook_id,
            details=details,
            organization=organization_id,
        )

    async def bulk_update_status(
        self,
        webhook_ids: list[str],
        status: WebhookStatus,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """
        Set the status of many registrations.

        Work runs in batches with a pause in between to stay under remote
        rate limits. Remote calls inside a batch run concurrently; database
        work stays sequential on the one session. Failures are collected per
        item and never abort the run.
        """
        status = WebhookStatus(status)
        results: dict[str, Any] = {
            "total": len(webhook_ids),
            "successful": 0,
            "failed": 0,
            "errors": [],
        }

        def fail(webhook_id: str, error: str):
            results["failed"] += 1
            results["errors"].append({"webhookId": webhook_id, "error": error})

        batch_size = max(1, settings.WEBHOOK_BULK_BATCH_SIZE)
        for start in range(0, len(webhook_ids), batch_size):
            batch = webhook_ids[start:start + batch_size]

            prepared = []
            for webhook_id in batch:
                webhook = await self.db.get(WebhookRegistration, webhook_id)
                if not webhook:
                    fail(webhook_id, "Webhook not found")
                    continue
                store = await self.db.get(Store, webhook.store_id)
                if not store:
                    fail(webhook_id, "Store not found")
                    continue
                try:
                    client = await self.client_factory.for_store(store)
                except WooCommerceError as e:
                    fail(webhook_id, e.message)
                    continue
                prepared.append((webhook, client))

            outcomes = await asyncio.gather(
                *(
                    client.put(f"webhooks/{webhook.remote_id}", {"status": status.value})
                    for webhook, client in prepared
                ),
                return_exceptions=True,
            )

            for (webhook, _), outcome in zip(prepared, outcomes):
                if isinstance(outcome, WooCommerceError):
                    fail(webhook.id, outcome.message)
                elif isinstance(outcome, Exception):
                    logger.error("webhook_bulk_update_item_failed", webhook_id=webhook.id, error=str(outcome))
                    fail(webhook.id, str(outcome))
                else:
                    self._apply_status(webhook, status)
                    results["successful"] += 1

            await self.db.commit()

            if start + batch_size < len(webhook_ids):
                await asyncio.sleep(settings.WEBHOOK_BULK_BATCH_DELAY_SECONDS)

        logger.info(
            "webhook_bulk_update_completed",
            status=status.value,
            total=results["total"],
            successful=results["successful"],
            failed=results["failed"]
        )
        await self.audit.record(
            action="webhook_bulk_updated",
            actor=actor,
            resource_type="webhook",
            details={
                "status": status.value,
                "total": results["total"],
                "successful": results["successful"],
                "failed": results["failed"],
            },
        )
        return results

    # ------------------------------------------------------------------
    # Deliveries
    # ------------------------------------------------------------------

    async def get_deliveries(self, webhook_id: str, limit: int | None = None) -> list[WebhookDelivery]:
        """Most recent deliveries for a registration."""
        await self.get(webhook_id)
        stmt = (
            select(WebhookDelivery)
            .where(WebhookDelivery.webhook_id == webhook_id)
            .order_by(WebhookDelivery.created_at.desc())
            .limit(limit or settings.WEBHOOK_DELIVERY_LIST_LIMIT)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_delivery(self, webhook_id: str, delivery_id: str) -> WebhookDelivery:
        """Look up a delivery by local id or by the remote delivery id."""
        stmt = (
            select(WebhookDelivery)
            .where(
                WebhookDelivery.webhook_id == webhook_id,
                or_(WebhookDelivery.id == delivery_id, WebhookDelivery.delivery_id == delivery_id),
            )
            .order_by(WebhookDelivery.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        delivery = result.scalars().first()
        if not delivery:
            raise NotFoundError(f"Delivery {delivery_id} not found", error="Delivery not found")
        return delivery

    async def retry_delivery(
        self,
        webhook_id: str,
        delivery_id: str,
        actor: str | None = None,
    ) -> WebhookDelivery:
        """
        Queue a failed delivery for the retry worker.

        Only processing failures are retried; deliveries rejected for their
        signature or topic are never replayed.
        """
        delivery = await self.get_delivery(webhook_id, delivery_id)
        if delivery.status == DeliveryStatus.SUCCESS:
            raise BadRequestError("Delivery already succeeded", error="Delivery not retryable")
        if delivery.response_code in (400, 401):
            raise BadRequestError(
                "Rejected deliveries (bad signature or topic) cannot be retried",
                error="Delivery not retryable"
            )
        if not delivery.schedule_retry():
            raise BadRequestError(
                f"Retry limit of {delivery.max_retries} reached",
                error="Delivery not retryable"
            )

        await self.db.commit()
        await self.db.refresh(delivery)

        await self.audit.record(
            action="webhook_delivery_retry_scheduled",
            actor=actor,
            resource_type="webhook_delivery",
            resource_id=delivery.id,
            details={"webhookId": webhook_id, "nextRetryAt": _iso(delivery.next_retry_at)},
            organization=delivery.organization_id,
        )
        return delivery

    async def test(self, webhook_id: str, actor: str | None = None):
        """Ask the remote store to send a test delivery; the result is not awaited locally."""
        webhook = await self.get(webhook_id)
        store = await self._get_store(webhook.store_id)
        client = await self._client_for(store)
        try:
            await client.post(f"webhooks/{webhook.remote_id}/deliveries", {
                "topic": _enum_value(webhook.topic),
                "delivery_url": webhook.delivery_url,
            })
        except WooCommerceError as e:
            raise _remote_failure(e) from e

        await self.audit.record(
            action="webhook_tested",
            actor=actor,
            resource_type="webhook",
            resource_id=webhook.id,
            organization=webhook.organization_id,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def stats(
        self,
        store_id: str | None = None,
        organization_id: str | None = None,
        days: int = 30,
    ) -> dict[str, Any]:
        """Registration counts by status and topic plus recent delivery outcomes."""
        webhook_filters = []
        delivery_filters = [WebhookDelivery.created_at >= utcnow() - timedelta(days=days)]
        if store_id:
            webhook_filters.append(WebhookRegistration.store_id == store_id)
            delivery_filters.append(WebhookDelivery.store_id == store_id)
        if organization_id:
            webhook_filters.append(WebhookRegistration.organization_id == organization_id)
            delivery_filters.append(WebhookDelivery.organization_id == organization_id)

        status_rows = await self.db.execute(
            select(WebhookRegistration.status, func.count())
            .where(*webhook_filters)
            .group_by(WebhookRegistration.status)
        )
        topic_rows = await self.db.execute(
            select(WebhookRegistration.topic, func.count())
            .where(*webhook_filters)
            .group_by(WebhookRegistration.topic)
        )
        delivery_rows = await self.db.execute(
            select(WebhookDelivery.status, func.count())
            .where(*delivery_filters)
            .group_by(WebhookDelivery.status)
        )
        average = await self.db.execute(
            select(func.avg(WebhookDelivery.duration)).where(*delivery_filters)
        )

        recent = [
            {"status": _enum_value(status), "count": count}
            for status, count in delivery_rows.all()
        ]
        total = sum(row["count"] for row in recent)
        succeeded = sum(row["count"] for row in recent if row["status"] == DeliveryStatus.SUCCESS.value)

        return {
            "statusStats": [
                {"status": _enum_value(status), "count": count}
                for status, count in status_rows.all()
            ],
            "topicStats": [
                {"topic": _enum_value(topic), "count": count}
                for topic, count in topic_rows.all()
            ],
            "recentDeliveries": recent,
            "successRate": round(succeeded / total * 100, 2) if total else 0.0,
            "averageDuration": round(average.scalar() or 0.0, 2),
            "days": days,
        }

    # ------------------------------------------------------------------
    # Default webhooks for newly connected stores
    # ------------------------------------------------------------------

    async def create_default_webhooks(
        self,
        store_id: str,
        topics: list[WebhookTopic] | None = None,
        actor: str | None = None,
    ) -> dict[str, Any]:
        """
        Register the default topic set on a store, one topic at a time.

        Per-topic failures are reported in the result rather than raised.
        """
        store = await self._get_store(store_id)
        problem = validate_store_for_webhooks(store)
        if problem:
            raise BadRequestError(problem, error="Store cannot receive webhooks")

        topics = list(topics or DEFAULT_WEBHOOK_TOPICS)
        results: dict[str, Any] = {
            "total": len(topics),
            "successful": 0,
            "failed": 0,
            "webhooks": [],
            "errors": [],
        }
        log = logger.bind(store_id=store.id)
        log.info("default_webhooks_creating", topics=[t.value for t in topics])

        for index, topic in enumerate(topics):
            identifier = f"{store.id}-{topic.value.replace('.', '-')}-{int(time.time() * 1000)}"
            name = f"{WEBHOOK_TOPIC_CONFIG[topic]['name']} - {store.name}"
            try:
                webhook = await self._create_registration(store, topic, name, identifier)
            except (WooCommerceError, SQLAlchemyError) as e:
                if isinstance(e, SQLAlchemyError):
                    await self.db.rollback()
                    await self.db.refresh(store)
                message = e.message if isinstance(e, WooCommerceError) else str(e)
                log.warning("default_webhook_failed", topic=topic.value, error=message)
                results["failed"] += 1
                results["errors"].append({"topic": topic.value, "error": message})
                await self.audit.record(
                    action="webhook_auto_creation_failed",
                    actor=actor,
                    resource_type="webhook",
                    details={"storeId": store.id, "storeName": store.name, "topic": topic.value, "error": message},
                    organization=store.organization_id,
                )
            else:
                results["successful"] += 1
                results["webhooks"].append({
                    "topic": topic.value,
                    "webhookId": webhook.id,
                    "remoteId": webhook.remote_id,
                    "deliveryUrl": webhook.delivery_url,
                })
                await self.audit.record(
                    action="webhook_auto_created",
                    actor=actor,
                    resource_type="webhook",
                    resource_id=webhook.id,
                    details={
                        "storeId": store.id,
                        "storeName": store.name,
                        "topic": topic.value,
                        "remoteId": webhook.remote_id,
                        "deliveryUrl": webhook.delivery_url,
                    },
                    organization=store.organization_id,
                )

            if index < len(topics) - 1:
                await asyncio.sleep(settings.WEBHOOK_DEFAULT_CREATION_DELAY_SECONDS)

        await self.audit.record(
            action="webhook_auto_creation_completed",
            actor=actor,
            resource_type="webhook",
            details={
                "storeId": store.id,
                "storeName": store.name,
                "total": results["total"],
                "successful": results["successful"],
                "failed": results["failed"],
                "topics": [t.value for t in topics],
            },
            organization=store.organization_id,
        )
        return results

    async def get_webhook_status(self, store_id: str) -> dict[str, Any]:
        """Per-store registration overview."""
        await self._get_store(store_id)
        webhooks, summary = await self.list_webhooks(store_id=store_id)
        return {
            **summary,
            "topics": [
                {
                    "topic": _enum_value(w.topic),
                    "status": _enum_value(w.status),
                    "lastDelivery": _iso(w.last_delivery),
                    "failureCount": w.failure_count,
                }
                for w in webhooks
            ],
        }

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def reconcile_store(self, store_id: str) -> dict[str, int]:
        """
        Mirror remote webhook state onto the local registrations of a store.

        Registrations that no longer exist remotely are disabled.
        """
        store = await self._get_store(store_id)
        client = await self._client_for(store)

        remote_hooks: dict[int, dict] = {}
        page = 1
        while True:
            batch = await client.get("webhooks", params={"per_page": REMOTE_PAGE_SIZE, "page": page})
            batch = batch if isinstance(batch, list) else []
            for hook in batch:
                if isinstance(hook, dict) and "id" in hook:
                    remote_hooks[int(hook["id"])] = hook
            if len(batch) < REMOTE_PAGE_SIZE:
                break
            page += 1

        result = await self.db.execute(
            select(WebhookRegistration).where(WebhookRegistration.store_id == store.id)
        )
        counts = {"checked": 0, "updated": 0, "disabled": 0}
        for webhook in result.scalars().all():
            counts["checked"] += 1
            remote = remote_hooks.get(webhook.remote_id)
            if remote is None:
                if webhook.status != WebhookStatus.DISABLED:
                    webhook.status = WebhookStatus.DISABLED
                    webhook.last_failure_reason = "Webhook no longer exists on the remote store"
                    counts["disabled"] += 1
                continue

            changed = False
            if remote.get("name") and remote["name"] != webhook.name:
                webhook.name = remote["name"]
                changed = True
            if remote.get("delivery_url") and remote["delivery_url"] != webhook.delivery_url:
                webhook.delivery_url = remote["delivery_url"]
                changed = True
            remote_status = _remote_status(remote.get("status"), default=webhook.status)
            if remote_status != webhook.status:
                webhook.status = remote_status
                changed = True
            if changed:
                counts["updated"] += 1

        await self.db.commit()
        logger.info("webhooks_reconciled", store_id=store.id, **counts)
        return counts
