"""
Organization model.

Represents a tenant organization in the multi-tenant system.
"""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Organization(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """
    Organization model representing a tenant in the system.

    Each organization owns its stores and everything synced from them.
    """
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    # Relationships
    stores = relationship(
        "Store",
        back_populates="organization",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Organization(id={self.id}, name={self.name}, domain={self.domain})>"
