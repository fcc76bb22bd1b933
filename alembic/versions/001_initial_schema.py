"""initial schema - tenants, stores, webhooks and synced resources

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def _tenant_columns(key: str):
    return [
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column(key, sa.String(64), nullable=False),
        sa.Column('store_id', sa.String(36), nullable=False, index=True),
        sa.Column('organization_id', sa.String(36), nullable=False, index=True),
        sa.Column('user_id', sa.String(36), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'organizations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('domain', sa.String(255), nullable=False, unique=True),
        *_timestamps(),
    )

    op.create_table(
        'stores',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('organization_id', sa.String(36), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('platform_type', sa.String(32), nullable=False, server_default='woocommerce'),
        sa.Column('url', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('api_key', sa.String(255), nullable=True),
        sa.Column('secret_key', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_sync_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # topic/status stored as VARCHAR values, not native enums
    op.create_table(
        'webhooks',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('store_id', sa.String(36), sa.ForeignKey('stores.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('organization_id', sa.String(36), nullable=False, index=True),
        sa.Column('remote_id', sa.Integer(), nullable=False),
        sa.Column('webhook_identifier', sa.String(128), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('topic', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='active', index=True),
        sa.Column('delivery_url', sa.Text(), nullable=False),
        sa.Column('secret', sa.String(255), nullable=False),
        sa.Column('resource', sa.String(32), nullable=True),
        sa.Column('event', sa.String(32), nullable=True),
        sa.Column('hooks', sa.JSON(), nullable=False),
        sa.Column('failure_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_delivery', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_failure', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_failure_reason', sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('store_id', 'remote_id', name='uq_webhooks_store_remote'),
    )
    op.create_index('ix_webhooks_store_topic', 'webhooks', ['store_id', 'topic'])

    op.create_table(
        'webhook_deliveries',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('webhook_id', sa.String(36), nullable=True),
        sa.Column('remote_webhook_id', sa.String(64), nullable=True),
        sa.Column('delivery_id', sa.String(64), nullable=True, index=True),
        sa.Column('topic', sa.String(64), nullable=False),
        sa.Column('resource', sa.String(32), nullable=False),
        sa.Column('event', sa.String(32), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='pending', index=True),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('response_message', sa.Text(), nullable=True),
        sa.Column('request_headers', sa.JSON(), nullable=True),
        sa.Column('request_body', sa.JSON(), nullable=True),
        sa.Column('response_headers', sa.JSON(), nullable=True),
        sa.Column('response_body', sa.JSON(), nullable=True),
        sa.Column('duration', sa.Float(), nullable=False, server_default='0'),
        sa.Column('store_id', sa.String(36), nullable=True),
        sa.Column('organization_id', sa.String(36), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_retries', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True, index=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_webhook_deliveries_webhook_created', 'webhook_deliveries', ['webhook_id', 'created_at'])
    op.create_index('ix_webhook_deliveries_store_created', 'webhook_deliveries', ['store_id', 'created_at'])
    op.create_index('ix_webhook_deliveries_org_created', 'webhook_deliveries', ['organization_id', 'created_at'])

    op.create_table(
        'customers',
        *_tenant_columns('customer_id'),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(255), nullable=False),
        sa.Column('last_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(64), nullable=False),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('is_paying_customer', sa.Boolean(), nullable=False),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('billing', sa.JSON(), nullable=False),
        sa.Column('shipping', sa.JSON(), nullable=False),
        sa.Column('meta_data', sa.JSON(), nullable=False),
        sa.Column('links', sa.JSON(), nullable=False),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_created_gmt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_modified', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_modified_gmt', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('customer_id', 'store_id', name='uq_customers_customer_store'),
    )

    op.create_table(
        'products',
        *_tenant_columns('product_id'),
        sa.Column('name', sa.String(500), nullable=False),
        sa.Column('sku', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(500), nullable=False),
        sa.Column('permalink', sa.Text(), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('status', sa.String(64), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('short_description', sa.Text(), nullable=False),
        sa.Column('catalog_visibility', sa.String(32), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('regular_price', sa.Float(), nullable=False),
        sa.Column('sale_price', sa.Float(), nullable=False),
        sa.Column('date_on_sale_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_on_sale_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('on_sale', sa.Boolean(), nullable=False),
        sa.Column('purchasable', sa.Boolean(), nullable=False),
        sa.Column('featured', sa.Boolean(), nullable=False),
        sa.Column('total_sales', sa.Integer(), nullable=False),
        sa.Column('manage_stock', sa.Boolean(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('stock_status', sa.String(32), nullable=False),
        sa.Column('backorders', sa.String(32), nullable=False),
        sa.Column('backorders_allowed', sa.Boolean(), nullable=False),
        sa.Column('sold_individually', sa.Boolean(), nullable=False),
        sa.Column('weight', sa.String(32), nullable=True),
        sa.Column('dimensions', sa.JSON(), nullable=False),
        sa.Column('shipping_required', sa.Boolean(), nullable=False),
        sa.Column('shipping_taxable', sa.Boolean(), nullable=False),
        sa.Column('shipping_class', sa.String(255), nullable=False),
        sa.Column('shipping_class_id', sa.Integer(), nullable=False),
        sa.Column('categories', sa.JSON(), nullable=False),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('images', sa.JSON(), nullable=False),
        sa.Column('upsell_ids', sa.JSON(), nullable=False),
        sa.Column('cross_sell_ids', sa.JSON(), nullable=False),
        sa.Column('related_ids', sa.JSON(), nullable=False),
        sa.Column('grouped_products', sa.JSON(), nullable=False),
        sa.Column('average_rating', sa.String(16), nullable=False),
        sa.Column('rating_count', sa.Integer(), nullable=False),
        sa.Column('reviews_allowed', sa.Boolean(), nullable=False),
        sa.Column('external_url', sa.Text(), nullable=False),
        sa.Column('button_text', sa.String(255), nullable=False),
        sa.Column('purchase_note', sa.Text(), nullable=False),
        sa.Column('menu_order', sa.Integer(), nullable=False),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_modified', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('product_id', 'store_id', name='uq_products_product_store'),
    )

    op.create_table(
        'orders',
        *_tenant_columns('order_id'),
        sa.Column('customer_id', sa.String(36), nullable=True, index=True),
        sa.Column('external_customer_id', sa.String(64), nullable=True),
        sa.Column('number', sa.String(64), nullable=False),
        sa.Column('status', sa.String(64), nullable=False),
        sa.Column('currency', sa.String(16), nullable=False),
        sa.Column('currency_symbol', sa.String(16), nullable=True),
        sa.Column('version', sa.String(32), nullable=True),
        sa.Column('prices_include_tax', sa.Boolean(), nullable=False),
        sa.Column('discount_total', sa.Float(), nullable=False),
        sa.Column('discount_tax', sa.Float(), nullable=False),
        sa.Column('shipping_total', sa.Float(), nullable=False),
        sa.Column('shipping_tax', sa.Float(), nullable=False),
        sa.Column('cart_tax', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('total_tax', sa.Float(), nullable=False),
        sa.Column('customer_note', sa.Text(), nullable=True),
        sa.Column('payment_method', sa.String(128), nullable=False),
        sa.Column('payment_method_title', sa.String(255), nullable=False),
        sa.Column('transaction_id', sa.String(255), nullable=True),
        sa.Column('customer_ip_address', sa.String(64), nullable=True),
        sa.Column('customer_user_agent', sa.Text(), nullable=True),
        sa.Column('created_via', sa.String(64), nullable=True),
        sa.Column('cart_hash', sa.String(64), nullable=True),
        sa.Column('payment_url', sa.Text(), nullable=True),
        sa.Column('is_editable', sa.Boolean(), nullable=False),
        sa.Column('needs_payment', sa.Boolean(), nullable=False),
        sa.Column('needs_processing', sa.Boolean(), nullable=False),
        sa.Column('date_created', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_created_gmt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_modified', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_modified_gmt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_completed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_completed_gmt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_paid', sa.DateTime(timezone=True), nullable=True),
        sa.Column('date_paid_gmt', sa.DateTime(timezone=True), nullable=True),
        sa.Column('billing', sa.JSON(), nullable=False),
        sa.Column('shipping', sa.JSON(), nullable=False),
        sa.Column('line_items', sa.JSON(), nullable=False),
        sa.Column('shipping_lines', sa.JSON(), nullable=False),
        sa.Column('fee_lines', sa.JSON(), nullable=False),
        sa.Column('coupon_lines', sa.JSON(), nullable=False),
        sa.Column('refunds', sa.JSON(), nullable=False),
        sa.Column('meta_data', sa.JSON(), nullable=False),
        sa.Column('links', sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('order_id', 'store_id', name='uq_orders_order_store'),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('action', sa.String(128), nullable=False, index=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('resource', sa.String(64), nullable=True),
        sa.Column('resource_id', sa.String(64), nullable=True),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('organization_id', sa.String(36), nullable=True, index=True),
        sa.Column('severity', sa.String(16), nullable=False, server_default='info'),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('orders')
    op.drop_table('products')
    op.drop_table('customers')
    op.drop_table('webhook_deliveries')
    op.drop_table('webhooks')
    op.drop_table('stores')
    op.drop_table('organizations')
