"""
Webhook models.

WebhookRegistration mirrors a webhook configured on a remote WooCommerce
store. WebhookDelivery records every inbound delivery attempt along with the
retry bookkeeping consumed by the background worker.
"""
import enum
from datetime import datetime, timedelta
from sqlalchemy import String, Text, Integer, Float, DateTime, ForeignKey, JSON, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column_type, utcnow


DEFAULT_MAX_FAILURES = 5
DEFAULT_MAX_RETRIES = 3


class WebhookTopic(str, enum.Enum):
    """Supported WooCommerce webhook topics."""
    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_DELETED = "order.deleted"
    CUSTOMER_CREATED = "customer.created"
    CUSTOMER_UPDATED = "customer.updated"
    CUSTOMER_DELETED = "customer.deleted"
    PRODUCT_CREATED = "product.created"
    PRODUCT_UPDATED = "product.updated"
    PRODUCT_DELETED = "product.deleted"

    @property
    def resource(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def event(self) -> str:
        return self.value.split(".", 1)[1]


class WebhookStatus(str, enum.Enum):
    """Webhook registration status (same vocabulary as WooCommerce)."""
    ACTIVE = "active"
    PAUSED = "paused"
    DISABLED = "disabled"


class DeliveryStatus(str, enum.Enum):
    """Delivery attempt status."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"


def retry_delay(retry_count: int) -> timedelta:
    """Exponential backoff: 2^retry_count seconds (2s, 4s, 8s, ...)."""
    return timedelta(seconds=2 ** retry_count)


class WebhookRegistration(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Webhook registered on a remote store.

    webhook_identifier is embedded in the remote delivery URL and must never
    change after creation.
    """
    __tablename__ = "webhooks"
    __table_args__ = (
        Index("ix_webhooks_store_topic", "store_id", "topic"),
        # remote webhook ids are only unique within one store
        UniqueConstraint("store_id", "remote_id", name="uq_webhooks_store_remote"),
    )

    store_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("stores.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    remote_id: Mapped[int] = mapped_column(Integer, nullable=False)
    webhook_identifier: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    topic: Mapped[WebhookTopic] = mapped_column(enum_column_type(WebhookTopic), nullable=False)
    status: Mapped[WebhookStatus] = mapped_column(
        enum_column_type(WebhookStatus),
        nullable=False,
        default=WebhookStatus.ACTIVE,
        index=True
    )
    delivery_url: Mapped[str] = mapped_column(Text, nullable=False)
    secret: Mapped[str] = mapped_column(String(255), nullable=False)
    resource: Mapped[str | None] = mapped_column(String(32), nullable=True)
    event: Mapped[str | None] = mapped_column(String(32), nullable=True)
    hooks: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_delivery: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_failure: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __init__(self, **kwargs):
        kwargs.setdefault("status", WebhookStatus.ACTIVE)
        kwargs.setdefault("failure_count", 0)
        kwargs.setdefault("hooks", [])
        super().__init__(**kwargs)

    def increment_failure_count(self, reason: str | None = None, max_failures: int = DEFAULT_MAX_FAILURES):
        """Record a failed delivery; disable after max_failures consecutive failures."""
        self.failure_count = (self.failure_count or 0) + 1
        self.last_failure = utcnow()
        if reason:
            self.last_failure_reason = reason
        if self.failure_count >= max_failures:
            self.status = WebhookStatus.DISABLED

    def reset_failure_count(self):
        self.failure_count = 0
        self.last_failure = None
        self.last_failure_reason = None

    def update_last_delivery(self):
        self.last_delivery = utcnow()

    def __repr__(self):
        return f"<WebhookRegistration(id={self.id}, topic={self.topic}, status={self.status})>"


class WebhookDelivery(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Inbound webhook delivery tracking."""
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        Index("ix_webhook_deliveries_webhook_created", "webhook_id", "created_at"),
        Index("ix_webhook_deliveries_store_created", "store_id", "created_at"),
        Index("ix_webhook_deliveries_org_created", "organization_id", "created_at"),
    )

    webhook_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    remote_webhook_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    delivery_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    topic: Mapped[str] = mapped_column(String(64), nullable=False)
    resource: Mapped[str] = mapped_column(String(32), nullable=False)
    event: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[DeliveryStatus] = mapped_column(
        enum_column_type(DeliveryStatus),
        nullable=False,
        default=DeliveryStatus.PENDING,
        index=True
    )
    response_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    request_body: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    response_headers: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    response_body: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    store_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=DEFAULT_MAX_RETRIES)
    next_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __init__(self, **kwargs):
        kwargs.setdefault("status", DeliveryStatus.PENDING)
        kwargs.setdefault("retry_count", 0)
        kwargs.setdefault("max_retries", DEFAULT_MAX_RETRIES)
        kwargs.setdefault("duration", 0)
        super().__init__(**kwargs)

    def mark_as_success(
        self,
        response_code: int = 200,
        response_message: str = "OK",
        response_headers: dict | None = None,
        response_body: dict | None = None,
        duration: float = 0,
    ):
        self.status = DeliveryStatus.SUCCESS
        self.response_code = response_code
        self.response_message = response_message
        self.response_headers = response_headers or {}
        self.response_body = response_body
        self.duration = duration
        self.error_message = None
        self.next_retry_at = None
        self.processed_at = utcnow()

    def mark_as_failed(
        self,
        response_code: int | None,
        response_message: str | None,
        error_message: str | None,
        duration: float = 0,
    ):
        """
        Record a failed attempt.

        Increments retry_count and, while below max_retries, moves the
        delivery back to PENDING with an exponential backoff.
        """
        self.status = DeliveryStatus.FAILED
        self.response_code = response_code
        self.response_message = response_message
        self.error_message = error_message
        self.duration = duration
        self.processed_at = utcnow()
        self.next_retry_at = None

        self.retry_count = (self.retry_count or 0) + 1
        self.schedule_retry()

    def schedule_retry(self) -> bool:
        """Move to PENDING with backoff. Returns False once the retry ceiling is reached."""
        if not self.can_retry:
            return False
        self.next_retry_at = utcnow() + retry_delay(self.retry_count or 0)
        self.status = DeliveryStatus.PENDING
        return True

    @property
    def can_retry(self) -> bool:
        return (self.retry_count or 0) < self.max_retries

    def __repr__(self):
        return f"<WebhookDelivery(id={self.id}, topic={self.topic}, status={self.status})>"
