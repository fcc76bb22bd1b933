"""
Customer projection synced from WooCommerce.

Keyed by (customer_id, store_id); webhook processing upserts into it.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Customer(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """WooCommerce customer snapshot."""
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("customer_id", "store_id", name="uq_customers_customer_store"),
    )

    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    email: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    role: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    username: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    is_paying_customer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    billing: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    shipping: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    meta_data: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    links: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    date_created: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_created_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_modified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_modified_gmt: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Customer(id={self.id}, customer_id={self.customer_id}, store_id={self.store_id})>"
