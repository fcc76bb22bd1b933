"""
ARQ background worker for StoreHook.

Runs two cron jobs:
- retry_pending_deliveries: replays deliveries scheduled for retry
- reconcile_webhooks: mirrors remote webhook state onto local registrations

Start with: arq storehook.worker.WorkerSettings
"""
import time

from arq import cron
from arq.connections import RedisSettings
from sqlalchemy import select

from storehook.config import settings
from storehook.database import AsyncSessionLocal
from storehook.exceptions import StoreHookError
from storehook.logging_config import configure_logging, get_logger
from storehook.models.base import utcnow
from storehook.models.webhook import DeliveryStatus, WebhookDelivery, WebhookRegistration
from storehook.routes.metrics import track_webhook_retry
from storehook.sentry_config import configure_sentry, capture_exception
from storehook.services.webhook_processor import WebhookProcessor
from storehook.services.webhook_service import WebhookService
from storehook.services.woocommerce import WooCommerceClientFactory, WooCommerceError


logger = get_logger(component="worker")


async def startup(ctx: dict):
    configure_logging()
    configure_sentry()
    ctx["session_factory"] = AsyncSessionLocal
    ctx["client_factory"] = WooCommerceClientFactory()
    logger.info("worker_started", redis=settings.REDIS_URL)


async def shutdown(ctx: dict):
    client_factory = ctx.get("client_factory")
    if client_factory:
        await client_factory.aclose()
    logger.info("worker_stopped")


async def retry_pending_deliveries(ctx: dict) -> dict:
    """
    Replay deliveries that are PENDING and due.

    Success marks the delivery and resets the registration failure streak;
    failure goes through mark_as_failed, which reschedules with backoff until
    the retry ceiling is reached.
    """
    session_factory = ctx.get("session_factory", AsyncSessionLocal)
    counts = {"retried": 0, "succeeded": 0, "failed": 0}

    async with session_factory() as db:
        stmt = (
            select(WebhookDelivery.id)
            .where(
                WebhookDelivery.status == DeliveryStatus.PENDING,
                WebhookDelivery.next_retry_at.is_not(None),
                WebhookDelivery.next_retry_at <= utcnow(),
                WebhookDelivery.retry_count < WebhookDelivery.max_retries,
            )
            .order_by(WebhookDelivery.next_retry_at)
            .limit(settings.WEBHOOK_RETRY_BATCH_SIZE)
        )
        delivery_ids = list((await db.execute(stmt)).scalars().all())

        processor = WebhookProcessor(db)
        for delivery_id in delivery_ids:
            delivery = await db.get(WebhookDelivery, delivery_id)
            if delivery is None or delivery.status != DeliveryStatus.PENDING or not delivery.can_retry:
                continue

            counts["retried"] += 1
            topic = delivery.topic
            retry_count = delivery.retry_count
            log = logger.bind(delivery_id=delivery_id, webhook_id=delivery.webhook_id, topic=topic)
            started = time.perf_counter()
            try:
                await processor.replay(delivery)
                delivery.mark_as_success(
                    response_code=200,
                    response_message="Replayed",
                    response_body={"success": True, "message": "Delivery replayed successfully"},
                    duration=round((time.perf_counter() - started) * 1000, 2),
                )
                webhook = await db.get(WebhookRegistration, delivery.webhook_id)
                if webhook:
                    webhook.reset_failure_count()
                    webhook.update_last_delivery()
                await db.commit()
            except Exception as e:
                await db.rollback()
                log.warning("delivery_retry_failed", error=str(e), retry_count=retry_count)
                capture_exception(e, delivery_id=delivery_id)

                delivery = await db.get(WebhookDelivery, delivery_id)
                if delivery is None:
                    continue
                delivery.mark_as_failed(
                    response_code=404 if isinstance(e, StoreHookError) and e.status_code == 404 else 500,
                    response_message="Replay failed",
                    error_message=str(e),
                    duration=round((time.perf_counter() - started) * 1000, 2),
                )
                await db.commit()
                counts["failed"] += 1
                track_webhook_retry(topic, "failed")
                continue

            counts["succeeded"] += 1
            track_webhook_retry(topic, "success")
            log.info("delivery_retry_succeeded")

    if counts["retried"]:
        logger.info("delivery_retries_processed", **counts)
    return counts


async def reconcile_webhooks(ctx: dict) -> dict:
    """Mirror remote webhook state for every store that has registrations."""
    session_factory = ctx.get("session_factory", AsyncSessionLocal)
    client_factory = ctx.get("client_factory") or WooCommerceClientFactory()
    totals = {"stores": 0, "updated": 0, "disabled": 0, "errors": 0}

    async with session_factory() as db:
        result = await db.execute(select(WebhookRegistration.store_id).distinct())
        store_ids = list(result.scalars().all())

        service = WebhookService(db, client_factory)
        for store_id in store_ids:
            try:
                counts = await service.reconcile_store(store_id)
            except (StoreHookError, WooCommerceError) as e:
                await db.rollback()
                totals["errors"] += 1
                logger.warning("webhook_reconcile_failed", store_id=store_id, error=str(e))
                continue
            totals["stores"] += 1
            totals["updated"] += counts["updated"]
            totals["disabled"] += counts["disabled"]

    logger.info("webhook_reconcile_completed", **totals)
    return totals


class WorkerSettings:
    """Settings for ARQ worker - use with 'arq storehook.worker.WorkerSettings'"""
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)
    on_startup = startup
    on_shutdown = shutdown
    job_timeout = 300
    max_tries = 1
    functions = [retry_pending_deliveries, reconcile_webhooks]
    cron_jobs = [
        cron(retry_pending_deliveries, second=set(range(0, 60, 5)), run_at_startup=True),
        cron(reconcile_webhooks, minute=0, second=0),
    ]
