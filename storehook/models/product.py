"""
Product (inventory) projection synced from WooCommerce.

Keyed by (product_id, store_id); order line items link to it.
"""
from datetime import datetime
from sqlalchemy import String, Text, Integer, Float, Boolean, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from storehook.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Product(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """WooCommerce product snapshot."""
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_products_product_store"),
    )

    product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    name: Mapped[str] = mapped_column(String(500), nullable=False, default="N/A")
    sku: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    slug: Mapped[str] = mapped_column(String(500), nullable=False, default="N/A")
    permalink: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    type: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    status: Mapped[str] = mapped_column(String(64), nullable=False, default="N/A")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    short_description: Mapped[str] = mapped_column(Text, nullable=False, default="N/A")
    catalog_visibility: Mapped[str] = mapped_column(String(32), nullable=False, default="visible")

    price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    regular_price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    sale_price: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    date_on_sale_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_on_sale_to: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    on_sale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    purchasable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    manage_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_status: Mapped[str] = mapped_column(String(32), nullable=False, default="N/A")
    backorders: Mapped[str] = mapped_column(String(32), nullable=False, default="no")
    backorders_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sold_individually: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    weight: Mapped[str | None] = mapped_column(String(32), nullable=True)
    dimensions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    shipping_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shipping_taxable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    shipping_class: Mapped[str] = mapped_column(String(255), nullable=False, default="N/A")
    shipping_class_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    upsell_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    cross_sell_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    related_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    grouped_products: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    average_rating: Mapped[str] = mapped_column(String(16), nullable=False, default="0.00")
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reviews_allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    external_url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    button_text: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    purchase_note: Mapped[str] = mapped_column(Text, nullable=False, default="")
    menu_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    date_created: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    date_modified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Product(id={self.id}, product_id={self.product_id}, store_id={self.store_id})>"
