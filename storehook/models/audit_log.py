"""
Audit log model.

Append-only record of notable actions (webhook deliveries, registrations).
"""
from sqlalchemy import String, JSON
from sqlalchemy.orm import Mapped, mapped_column
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class AuditLog(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Audit event."""
    __tablename__ = "audit_logs"

    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    resource: Mapped[str | None] = mapped_column(String(64), nullable=True)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    organization_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    severity: Mapped[str] = mapped_column(String(16), nullable=False, default="info")

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action={self.action})>"
