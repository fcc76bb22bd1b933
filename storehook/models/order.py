"""
Order projection synced from WooCommerce.

Keyed by (order_id, store_id). Line items carry the local product id
(inventory_id) and the order carries the local customer id when they resolve.
"""
from datetime import datetime
from sqlalchemy import String, Text, Float, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Order(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """WooCommerce order snapshot."""
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("order_id", "store_id", name="uq_orders_order_store"),
    )

    order_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    customer_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    external_customer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    number: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    status: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="N/A")
    currency_symbol: Mapped[str | None] = mapped_column(String(16), nullable=True)
    version: Mapped[str | None] = mapped_column(String(32), nullable=True)
    prices_include_tax: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    discount_total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    discount_tax: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    shipping_total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    shipping_tax: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    cart_tax: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    total_tax: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    customer_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_method: Mapped[str] = mapped_column(String(128), nullable=False, default="N/A")
    payment_method_title: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    transaction_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    customer_user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_via: Mapped[str | None] = mapped_column(String(64), nullable=True)
    cart_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_editable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    needs_processing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    date_created: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_created_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_modified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_modified_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_completed: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_completed_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_paid: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_paid_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    billing: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    shipping: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    line_items: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    shipping_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    fee_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    coupon_lines: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    refunds: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    meta_data: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    links: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self):
        return f"<Order(id={self.id}, order_id={self.order_id}, store_id={self.store_id})>"
