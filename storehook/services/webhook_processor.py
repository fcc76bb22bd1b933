"""
Inbound webhook processing and delivery tracking.

Per delivery: received -> verified -> normalized -> applied -> recorded.

Mutations are single-statement upserts / deletes keyed by
(external id, store_id) so concurrent or out-of-order deliveries for the same
resource never need a read-then-write.
"""
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

from sqlalchemy import delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from storehook.config import settings
from storehook.exceptions import BadRequestError, NotFoundError
from storehook.logging_config import get_logger
from storehook.models.customer import Customer
from storehook.models.order import Order
from storehook.models.product import Product
from storehook.models.webhook import DeliveryStatus, WebhookDelivery, WebhookRegistration, WebhookTopic
from storehook.models.base import utcnow
from storehook.routes.metrics import track_signature_failure, track_webhook_delivery
from storehook.sentry_config import capture_exception
from storehook.services.audit_service import AuditLogger
from storehook.services.normalizers import (
    external_id,
    normalize_customer,
    normalize_order,
    normalize_product,
)
from storehook.services.signature import verify_signature
from storehook.services.store_resolver import StoreContext, resolve_store


logger = get_logger(component="webhook_processor")

Normalizer = Callable[[AsyncSession, dict, StoreContext], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class ResourceMapping:
    model: type
    key: str
    normalize: Normalizer


RESOURCES: dict[str, ResourceMapping] = {
    "order": ResourceMapping(Order, "order_id", normalize_order),
    "customer": ResourceMapping(Customer, "customer_id", normalize_customer),
    "product": ResourceMapping(Product, "product_id", normalize_product),
}


@dataclass
class WebhookHeaders:
    """WooCommerce delivery headers (all optional)."""
    signature: str | None = None
    topic: str | None = None
    resource: str | None = None
    event: str | None = None
    webhook_id: str | None = None
    delivery_id: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> "WebhookHeaders":
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            signature=lowered.get("x-wc-webhook-signature"),
            topic=lowered.get("x-wc-webhook-topic"),
            resource=lowered.get("x-wc-webhook-resource"),
            event=lowered.get("x-wc-webhook-event"),
            webhook_id=lowered.get("x-wc-webhook-id"),
            delivery_id=lowered.get("x-wc-webhook-delivery-id"),
        )


@dataclass
class ProcessingResult:
    """HTTP outcome of an inbound delivery."""
    status_code: int
    body: dict[str, Any]
    delivery: WebhookDelivery | None = None


def _insert_for(db: AsyncSession, model):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise RuntimeError(f"Upsert is not supported on the {dialect} dialect")


async def upsert_record(
    db: AsyncSession,
    model,
    values: dict[str, Any],
    key_columns: tuple[str, ...],
) -> str:
    """
    INSERT ... ON CONFLICT (key_columns) DO UPDATE in one statement.

    Returns the local id of the inserted or updated row.
    """
    stmt = _insert_for(db, model).values(**values)
    update_set = {
        name: stmt.excluded[name]
        for name in values
        if name not in key_columns
    }
    update_set["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_=update_set,
    ).returning(model.id)
    result = await db.execute(stmt)
    return result.scalar_one()


def _finite_float(text: str) -> float | None:
    number = float(text)
    return number if math.isfinite(number) else None


def load_payload(raw_body: bytes) -> Any:
    """
    Decode a delivery body. Non-finite numbers (1e400, NaN, Infinity) become
    None so the body stays storable in a JSON column.
    """
    return json.loads(raw_body, parse_float=_finite_float, parse_constant=lambda _: None)


def _decode_body(raw_body: bytes) -> Any:
    """Best-effort JSON decode for storing the request body."""
    try:
        return load_payload(raw_body)
    except ValueError:
        return {"raw": raw_body.decode("utf-8", errors="replace")}


class WebhookProcessor:
    """Applies inbound WooCommerce deliveries to the local projections."""

    def __init__(
        self,
        db: AsyncSession,
        allow_unsigned: bool | None = None,
        max_failures: int | None = None,
        max_retries: int | None = None,
    ):
        self.db = db
        self.audit = AuditLogger(db)
        self.allow_unsigned = settings.WEBHOOK_ALLOW_UNSIGNED if allow_unsigned is None else allow_unsigned
        self.max_failures = max_failures or settings.WEBHOOK_MAX_FAILURES
        self.max_retries = max_retries or settings.WEBHOOK_MAX_RETRIES

    async def apply(
        self,
        topic: WebhookTopic,
        payload: dict[str, Any],
        store: StoreContext,
    ) -> str | None:
        """
        Apply one delivery to the resource collection (no commit).

        created/updated upsert; deleted removes the matching row and is a
        no-op when nothing matches. Returns the local id touched, if any.
        """
        if not isinstance(payload, dict):
            raise ValueError("Webhook payload must be a JSON object")

        mapping = RESOURCES[topic.resource]
        model = mapping.model

        if topic.event == "deleted":
            stmt = (
                delete(model)
                .where(
                    getattr(model, mapping.key) == external_id(payload),
                    model.store_id == store.store_id,
                )
                .returning(model.id)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            return result.scalar_one_or_none()

        values = await mapping.normalize(self.db, payload, store)
        return await upsert_record(self.db, model, values, (mapping.key, "store_id"))

    async def handle(
        self,
        webhook_identifier: str,
        topic: WebhookTopic,
        raw_body: bytes,
        headers: Mapping[str, str],
    ) -> ProcessingResult:
        """Process an inbound HTTP delivery end to end."""
        started = time.perf_counter()
        wc_headers = WebhookHeaders.from_headers(headers)
        request_headers = {k.lower(): v for k, v in headers.items()}
        log = logger.bind(
            webhook_identifier=webhook_identifier,
            topic=topic.value,
            delivery_id=wc_headers.delivery_id,
        )
        log.info("webhook_received", header_topic=wc_headers.topic)

        try:
            store = await resolve_store(self.db, webhook_identifier)
        except NotFoundError as e:
            delivery = None
            if wc_headers.webhook_id:
                delivery = await self._record_failure(
                    topic, wc_headers, request_headers, raw_body, None,
                    response_code=404, error_message=e.message, started=started,
                )
            track_webhook_delivery(topic.value, "not_found", time.perf_counter() - started)
            return ProcessingResult(404, e.to_dict(), delivery)

        registration_id = store.webhook.id
        log = log.bind(store_id=store.store_id, webhook_id=registration_id)

        failure = self._check_signature(raw_body, wc_headers.signature, store)
        if failure:
            log.warning("webhook_signature_rejected", reason=failure)
            track_signature_failure(topic.value)
            delivery = await self._record_failure(
                topic, wc_headers, request_headers, raw_body, store,
                response_code=401, error_message=failure, started=started,
                registration_id=registration_id,
            )
            track_webhook_delivery(topic.value, "unauthorized", time.perf_counter() - started)
            return ProcessingResult(401, {"error": "Invalid signature", "message": failure}, delivery)

        mismatch = self._check_topic(topic, wc_headers, store)
        if mismatch:
            log.warning("webhook_topic_mismatch", reason=mismatch)
            delivery = await self._record_failure(
                topic, wc_headers, request_headers, raw_body, store,
                response_code=400, error_message=mismatch, started=started,
                registration_id=registration_id, count_failure=False,
            )
            track_webhook_delivery(topic.value, "topic_mismatch", time.perf_counter() - started)
            return ProcessingResult(400, {"error": "Topic mismatch", "message": mismatch}, delivery)

        try:
            payload = load_payload(raw_body)
            resource_id = await self.apply(topic, payload, store)

            response_body = {
                "success": True,
                "message": f"{topic.resource} {topic.event} processed successfully",
            }
            delivery = self._new_delivery(topic, wc_headers, request_headers, payload, store, registration_id)
            delivery.mark_as_success(
                response_code=200,
                response_message="OK",
                response_headers={},
                response_body=response_body,
                duration=_elapsed_ms(started),
            )
            self.db.add(delivery)

            store.webhook.reset_failure_count()
            store.webhook.update_last_delivery()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            log.error("webhook_processing_failed", error=str(e), exc_info=True)
            capture_exception(e, store_id=store.store_id, topic=topic.value)
            delivery = await self._record_failure(
                topic, wc_headers, request_headers, raw_body, store,
                response_code=500, error_message=str(e), started=started,
                registration_id=registration_id,
            )
            track_webhook_delivery(topic.value, "failed", time.perf_counter() - started)
            return ProcessingResult(
                500,
                {"error": "Webhook processing failed", "message": str(e)},
                delivery,
            )

        await self.audit.record(
            action=f"webhook_{topic.value}",
            actor=store.user_id,
            resource_type=topic.resource,
            resource_id=resource_id,
            details={
                "webhookTopic": wc_headers.topic or topic.value,
                "webhookEvent": topic.event,
                "storeId": store.store_id,
                "deliveryId": wc_headers.delivery_id,
            },
            organization=store.organization_id,
        )

        track_webhook_delivery(topic.value, "success", time.perf_counter() - started)
        log.info("webhook_processed", resource_id=resource_id, duration_ms=_elapsed_ms(started))
        return ProcessingResult(200, response_body, delivery)

    async def replay(self, delivery: WebhookDelivery) -> str | None:
        """
        Re-apply a stored delivery body (no commit).

        Used by the retry worker for deliveries scheduled as PENDING.
        """
        if not delivery.webhook_id:
            raise NotFoundError("Delivery is not linked to a webhook registration")
        webhook = await self.db.get(WebhookRegistration, delivery.webhook_id)
        if not webhook:
            raise NotFoundError(f"Webhook {delivery.webhook_id} no longer exists")
        topic = WebhookTopic(delivery.topic)
        if topic != WebhookTopic(webhook.topic):
            raise BadRequestError(
                f"Delivery topic {topic.value} does not match webhook topic {WebhookTopic(webhook.topic).value}",
                error="Topic mismatch"
            )
        store = await resolve_store(self.db, webhook.webhook_identifier)
        return await self.apply(topic, delivery.request_body, store)

    def _check_signature(self, raw_body: bytes, signature: str | None, store: StoreContext) -> str | None:
        """Return a rejection reason, or None when the delivery may proceed."""
        if not store.webhook_secret:
            if self.allow_unsigned:
                return None
            return "Webhook has no secret configured and unsigned deliveries are not allowed"
        if not signature:
            return "Missing webhook signature"
        if not verify_signature(raw_body, signature, store.webhook_secret):
            return "Webhook signature does not match payload"
        return None

    @staticmethod
    def _check_topic(topic: WebhookTopic, wc_headers: WebhookHeaders, store: StoreContext) -> str | None:
        """A registration only accepts its own topic, in the path and in the topic header."""
        registered = WebhookTopic(store.webhook.topic)
        if topic != registered:
            return f"Webhook is registered for {registered.value}, not {topic.value}"
        if wc_headers.topic and wc_headers.topic != registered.value:
            return f"Topic header {wc_headers.topic} does not match registered topic {registered.value}"
        return None

    def _new_delivery(
        self,
        topic: WebhookTopic,
        wc_headers: WebhookHeaders,
        request_headers: dict[str, str],
        request_body: Any,
        store: StoreContext | None,
        registration_id: str | None,
    ) -> WebhookDelivery:
        return WebhookDelivery(
            webhook_id=registration_id,
            remote_webhook_id=wc_headers.webhook_id,
            delivery_id=wc_headers.delivery_id,
            topic=topic.value,
            resource=topic.resource,
            event=topic.event,
            request_headers=request_headers,
            request_body=request_body,
            store_id=store.store_id if store else None,
            organization_id=store.organization_id if store else None,
            max_retries=self.max_retries,
        )

    async def _record_failure(
        self,
        topic: WebhookTopic,
        wc_headers: WebhookHeaders,
        request_headers: dict[str, str],
        raw_body: bytes,
        store: StoreContext | None,
        response_code: int,
        error_message: str,
        started: float,
        registration_id: str | None = None,
        count_failure: bool = True,
    ) -> WebhookDelivery | None:
        """
        Best-effort FAILED delivery record plus registration failure bookkeeping.

        Errors here are logged, never raised: the caller is already on an
        error path.
        """
        try:
            delivery = self._new_delivery(
                topic, wc_headers, request_headers, _decode_body(raw_body), store, registration_id
            )
            delivery.status = DeliveryStatus.FAILED
            delivery.response_code = response_code
            delivery.response_message = error_message
            delivery.response_headers = {}
            delivery.response_body = {"error": error_message}
            delivery.error_message = error_message
            delivery.duration = _elapsed_ms(started)
            delivery.processed_at = utcnow()
            self.db.add(delivery)

            if registration_id and count_failure:
                webhook = await self.db.get(WebhookRegistration, registration_id)
                if webhook:
                    webhook.increment_failure_count(error_message, max_failures=self.max_failures)

            await self.db.commit()
            return delivery
        except Exception as e:
            await self.db.rollback()
            logger.error(
                "webhook_delivery_record_failed",
                topic=topic.value,
                delivery_id=wc_headers.delivery_id,
                error=str(e)
            )
            return None


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
