"""
Store model.

A WooCommerce store connected by an organization. Holds the REST API
credentials used to manage webhooks on the remote store.
"""
from datetime import datetime
from sqlalchemy import String, Text, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Store(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Connected e-commerce store."""
    __tablename__ = "stores"

    organization_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    platform_type: Mapped[str] = mapped_column(String(32), nullable=False, default="woocommerce")
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    api_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    secret_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_sync_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    organization = relationship("Organization", back_populates="stores")

    @property
    def has_api_credentials(self) -> bool:
        return bool(self.url and self.api_key and self.secret_key)

    def __repr__(self):
        return f"<Store(id={self.id}, name={self.name}, org_id={self.organization_id})>"
