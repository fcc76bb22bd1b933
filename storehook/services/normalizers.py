"""
Payload normalizers for WooCommerce orders, customers and products.

Each normalizer turns a raw webhook payload into a dict of column values ready
for an upsert keyed by (external id, store_id).

Field policy:
    numbers default to 0 when absent or unparseable
    strings default to 'N/A' when absent
    dates are parsed from WooCommerce ISO strings (naive values are UTC)
    absent collections default to [] / {}
"""
import math
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storehook.models.customer import Customer
from storehook.models.product import Product
from storehook.services.store_resolver import StoreContext


NOT_AVAILABLE = "N/A"


def to_float(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    # inf and nan count as unparseable
    return number if math.isfinite(number) else 0.0


def to_int(value: Any) -> int:
    return int(to_float(value))


def to_str(value: Any, default: str = NOT_AVAILABLE) -> str:
    if value is None or value == "":
        return default
    return str(value)


def to_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def to_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    return bool(value)


def to_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def to_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def parse_date(value: Any) -> datetime | None:
    """Parse a WooCommerce date string; naive values are treated as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def external_id(payload: dict[str, Any]) -> str:
    """
    Extract the remote resource id.

    Delete deliveries only carry {"id": ...}, so this is all a delete needs.
    """
    raw_id = payload.get("id") if isinstance(payload, dict) else None
    if raw_id is None or raw_id == "":
        raise ValueError("Webhook payload is missing the resource id")
    return str(raw_id)


def _owner_fields(store: StoreContext) -> dict[str, Any]:
    return {
        "store_id": store.store_id,
        "organization_id": store.organization_id,
        "user_id": store.user_id,
    }


async def resolve_customer_id(
    db: AsyncSession,
    store_id: str,
    remote_customer_id: Any
) -> str | None:
    """Local customer id for a remote customer reference (guest id 0 never matches)."""
    if not remote_customer_id or str(remote_customer_id) == "0":
        return None
    stmt = select(Customer.id).where(
        Customer.customer_id == str(remote_customer_id),
        Customer.store_id == store_id
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_inventory_ids(
    db: AsyncSession,
    store_id: str,
    remote_product_ids: set[str]
) -> dict[str, str]:
    """Map remote product ids to local product ids in a single query."""
    if not remote_product_ids:
        return {}
    stmt = select(Product.product_id, Product.id).where(
        Product.store_id == store_id,
        Product.product_id.in_(remote_product_ids)
    )
    result = await db.execute(stmt)
    return {product_id: local_id for product_id, local_id in result.all()}


async def normalize_order(
    db: AsyncSession,
    payload: dict[str, Any],
    store: StoreContext
) -> dict[str, Any]:
    line_items = to_list(payload.get("line_items"))
    product_refs = {
        str(item["product_id"])
        for item in line_items
        if isinstance(item, dict) and item.get("product_id")
    }
    inventory_ids = await resolve_inventory_ids(db, store.store_id, product_refs)
    resolved_items = []
    for item in line_items:
        if not isinstance(item, dict):
            continue
        product_ref = item.get("product_id")
        resolved_items.append({
            **item,
            "inventory_id": inventory_ids.get(str(product_ref)) if product_ref else None,
        })

    remote_customer_id = payload.get("customer_id")

    return {
        **_owner_fields(store),
        "order_id": external_id(payload),
        "customer_id": await resolve_customer_id(db, store.store_id, remote_customer_id),
        "external_customer_id": to_optional_str(remote_customer_id),
        "number": to_str(payload.get("number")),
        "status": to_str(payload.get("status")),
        "currency": to_str(payload.get("currency")),
        "currency_symbol": to_optional_str(payload.get("currency_symbol")),
        "version": to_optional_str(payload.get("version")),
        "prices_include_tax": to_bool(payload.get("prices_include_tax")),
        "discount_total": to_float(payload.get("discount_total")),
        "discount_tax": to_float(payload.get("discount_tax")),
        "shipping_total": to_float(payload.get("shipping_total")),
        "shipping_tax": to_float(payload.get("shipping_tax")),
        "cart_tax": to_float(payload.get("cart_tax")),
        "total": to_float(payload.get("total")),
        "total_tax": to_float(payload.get("total_tax")),
        "customer_note": to_optional_str(payload.get("customer_note")),
        "payment_method": to_str(payload.get("payment_method")),
        "payment_method_title": to_str(payload.get("payment_method_title")),
        "transaction_id": to_optional_str(payload.get("transaction_id")),
        "customer_ip_address": to_optional_str(payload.get("customer_ip_address")),
        "customer_user_agent": to_optional_str(payload.get("customer_user_agent")),
        "created_via": to_optional_str(payload.get("created_via")),
        "cart_hash": to_optional_str(payload.get("cart_hash")),
        "payment_url": to_optional_str(payload.get("payment_url")),
        "is_editable": to_bool(payload.get("is_editable")),
        "needs_payment": to_bool(payload.get("needs_payment")),
        "needs_processing": to_bool(payload.get("needs_processing")),
        "date_created": parse_date(payload.get("date_created")),
        "date_created_gmt": parse_date(payload.get("date_created_gmt")),
        "date_modified": parse_date(payload.get("date_modified")),
        "date_modified_gmt": parse_date(payload.get("date_modified_gmt")),
        "date_completed": parse_date(payload.get("date_completed")),
        "date_completed_gmt": parse_date(payload.get("date_completed_gmt")),
        "date_paid": parse_date(payload.get("date_paid")),
        "date_paid_gmt": parse_date(payload.get("date_paid_gmt")),
        "billing": to_dict(payload.get("billing")),
        "shipping": to_dict(payload.get("shipping")),
        "line_items": resolved_items,
        "shipping_lines": to_list(payload.get("shipping_lines")),
        "fee_lines": to_list(payload.get("fee_lines")),
        "coupon_lines": to_list(payload.get("coupon_lines")),
        "refunds": to_list(payload.get("refunds")),
        "meta_data": to_list(payload.get("meta_data")),
        "links": to_dict(payload.get("_links")),
    }


async def normalize_customer(
    db: AsyncSession,
    payload: dict[str, Any],
    store: StoreContext
) -> dict[str, Any]:
    return {
        **_owner_fields(store),
        "customer_id": external_id(payload),
        "email": to_str(payload.get("email")),
        "first_name": to_str(payload.get("first_name")),
        "last_name": to_str(payload.get("last_name")),
        "role": to_str(payload.get("role")),
        "username": to_str(payload.get("username")),
        "is_paying_customer": to_bool(payload.get("is_paying_customer")),
        "avatar_url": to_optional_str(payload.get("avatar_url")),
        "billing": to_dict(payload.get("billing")),
        "shipping": to_dict(payload.get("shipping")),
        "meta_data": to_list(payload.get("meta_data")),
        "links": to_dict(payload.get("_links")),
        "date_created": parse_date(payload.get("date_created")),
        "date_created_gmt": parse_date(payload.get("date_created_gmt")),
        "date_modified": parse_date(payload.get("date_modified")),
        "date_modified_gmt": parse_date(payload.get("date_modified_gmt")),
    }


async def normalize_product(
    db: AsyncSession,
    payload: dict[str, Any],
    store: StoreContext
) -> dict[str, Any]:
    dimensions = payload.get("dimensions")
    if not isinstance(dimensions, dict):
        dimensions = {"length": None, "width": None, "height": None}

    return {
        **_owner_fields(store),
        "product_id": external_id(payload),
        "name": to_str(payload.get("name")),
        "sku": to_str(payload.get("sku")),
        "slug": to_str(payload.get("slug")),
        "permalink": to_str(payload.get("permalink")),
        "type": to_str(payload.get("type")),
        "status": to_str(payload.get("status")),
        "description": to_str(payload.get("description")),
        "short_description": to_str(payload.get("short_description")),
        "catalog_visibility": to_str(payload.get("catalog_visibility"), "visible"),
        "price": to_float(payload.get("price")),
        "regular_price": to_float(payload.get("regular_price")),
        "sale_price": to_float(payload.get("sale_price")),
        "date_on_sale_from": parse_date(payload.get("date_on_sale_from")),
        "date_on_sale_to": parse_date(payload.get("date_on_sale_to")),
        "on_sale": to_bool(payload.get("on_sale")),
        "purchasable": to_bool(payload.get("purchasable"), True),
        "featured": to_bool(payload.get("featured")),
        "total_sales": to_int(payload.get("total_sales")),
        "manage_stock": to_bool(payload.get("manage_stock")),
        "stock_quantity": to_int(payload.get("stock_quantity")),
        "stock_status": to_str(payload.get("stock_status")),
        "backorders": to_str(payload.get("backorders"), "no"),
        "backorders_allowed": to_bool(payload.get("backorders_allowed")),
        "sold_individually": to_bool(payload.get("sold_individually")),
        "weight": to_optional_str(payload.get("weight")),
        "dimensions": dimensions,
        "shipping_required": to_bool(payload.get("shipping_required")),
        "shipping_taxable": to_bool(payload.get("shipping_taxable")),
        "shipping_class": to_str(payload.get("shipping_class")),
        "shipping_class_id": to_int(payload.get("shipping_class_id")),
        "categories": to_list(payload.get("categories")),
        "tags": to_list(payload.get("tags")),
        "images": to_list(payload.get("images")),
        "upsell_ids": to_list(payload.get("upsell_ids")),
        "cross_sell_ids": to_list(payload.get("cross_sell_ids")),
        "related_ids": to_list(payload.get("related_ids")),
        "grouped_products": to_list(payload.get("grouped_products")),
        "average_rating": to_str(payload.get("average_rating"), "0.00"),
        "rating_count": to_int(payload.get("rating_count")),
        "reviews_allowed": to_bool(payload.get("reviews_allowed"), True),
        "external_url": to_str(payload.get("external_url"), ""),
        "button_text": to_str(payload.get("button_text"), ""),
        "purchase_note": to_str(payload.get("purchase_note"), ""),
        "menu_order": to_int(payload.get("menu_order")),
        "date_created": parse_date(payload.get("date_created")),
        "date_modified": parse_date(payload.get("date_modified")),
    }
