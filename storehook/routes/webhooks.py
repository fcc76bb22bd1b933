"""
Webhook API routes.

Inbound WooCommerce deliveries plus the operator-facing management API for
webhook registrations.
"""
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storehook.database import get_db
from storehook.dependencies.auth import get_current_user, TokenPayload
from storehook.models.webhook import WebhookStatus, WebhookTopic
from storehook.services.webhook_processor import WebhookProcessor
from storehook.services.webhook_service import (
    WebhookService,
    delivery_to_dict,
    webhook_to_dict,
)
from storehook.services.woocommerce import WooCommerceClientFactory, get_client_factory


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


# Pydantic models for request bodies (camelCase on the wire)
class CreateWebhookRequest(BaseModel):
    """Request model for registering a webhook."""
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId", min_length=1)
    topic: WebhookTopic
    name: str | None = None


class UpdateWebhookRequest(BaseModel):
    """Request model for updating a webhook."""
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    status: WebhookStatus | None = None
    delivery_url: str | None = Field(default=None, alias="deliveryUrl")
    secret: str | None = None


class BulkUpdateRequest(BaseModel):
    """Request model for bulk status updates."""
    model_config = ConfigDict(populate_by_name=True)

    webhook_ids: list[str] = Field(alias="webhookIds", min_length=1)
    status: WebhookStatus


class DefaultWebhooksRequest(BaseModel):
    """Request model for creating the default webhook set on a store."""
    model_config = ConfigDict(populate_by_name=True)

    store_id: str = Field(alias="storeId", min_length=1)
    topics: list[WebhookTopic] | None = None


def get_webhook_service(
    db: AsyncSession = Depends(get_db),
    client_factory: WooCommerceClientFactory = Depends(get_client_factory),
) -> WebhookService:
    return WebhookService(db, client_factory)


# ============================================
# Inbound deliveries (HMAC authenticated)
# ============================================

@router.post("/woocommerce/{webhook_identifier}/{topic}")
async def receive_woocommerce_webhook(
    webhook_identifier: str,
    topic: WebhookTopic,
    request: Request,
    db: AsyncSession = Depends(get_db)
):
    """
    Receive a WooCommerce webhook delivery.

    The signature is verified over the raw request bytes, so the body is read
    before any JSON parsing.
    """
    raw_body = await request.body()
    result = await WebhookProcessor(db).handle(webhook_identifier, topic, raw_body, request.headers)
    return JSONResponse(status_code=result.status_code, content=result.body)


# ============================================
# Management API (JWT authenticated)
# ============================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: CreateWebhookRequest,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Register a webhook on the remote store and mirror it locally."""
    webhook = await service.register(body.store_id, body.topic, name=body.name, actor=token.sub)
    return {
        "success": True,
        "message": "Webhook created successfully",
        "webhook": {
            **webhook_to_dict(webhook),
            "copyableUrl": webhook.delivery_url,
            "instructions": f"Copy this URL to your WooCommerce webhook settings: {webhook.delivery_url}",
        },
    }


@router.post("/defaults", status_code=status.HTTP_201_CREATED)
async def create_default_webhooks(
    body: DefaultWebhooksRequest,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Create the default webhook set for a newly connected store."""
    results = await service.create_default_webhooks(body.store_id, topics=body.topics, actor=token.sub)
    return {
        "success": results["failed"] == 0,
        "message": "Default webhook creation completed",
        "results": results,
    }


@router.get("/stores/{store_id}/status")
async def get_store_webhook_status(
    store_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Webhook overview for one store."""
    return {"success": True, "status": await service.get_webhook_status(store_id)}


@router.get("")
async def list_webhooks(
    store_id: str | None = Query(default=None, alias="storeId"),
    organization_id: str | None = Query(default=None, alias="organizationId"),
    webhook_status: WebhookStatus | None = Query(default=None, alias="status"),
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """List registrations with a summary by status."""
    webhooks, summary = await service.list_webhooks(
        store_id=store_id,
        organization_id=organization_id,
        status=webhook_status,
    )
    return {
        "success": True,
        "webhooks": [webhook_to_dict(w) for w in webhooks],
        "summary": summary,
    }


@router.get("/stats")
async def get_webhook_stats(
    store_id: str | None = Query(default=None, alias="storeId"),
    organization_id: str | None = Query(default=None, alias="organizationId"),
    days: int = Query(default=30, ge=1, le=365),
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Registration and delivery statistics."""
    stats = await service.stats(store_id=store_id, organization_id=organization_id, days=days)
    return {"success": True, "stats": stats}


@router.put("/bulk/update")
async def bulk_update_webhooks(
    body: BulkUpdateRequest,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Set the status of many webhooks; failures are reported per webhook."""
    results = await service.bulk_update_status(body.webhook_ids, body.status, actor=token.sub)
    return {
        "success": True,
        "message": "Bulk webhook update completed",
        "results": results,
    }


@router.get("/{webhook_id}")
async def get_webhook(
    webhook_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    webhook = await service.get(webhook_id)
    return {"success": True, "webhook": webhook_to_dict(webhook)}


@router.put("/{webhook_id}")
async def update_webhook(
    webhook_id: str,
    body: UpdateWebhookRequest,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Update a webhook remotely and locally."""
    webhook = await service.update(
        webhook_id,
        name=body.name,
        status=body.status,
        delivery_url=body.delivery_url,
        secret=body.secret,
        actor=token.sub,
    )
    return {
        "success": True,
        "message": "Webhook updated successfully",
        "webhook": webhook_to_dict(webhook),
    }


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Delete a webhook remotely and locally."""
    await service.delete(webhook_id, actor=token.sub)
    return {"success": True, "message": "Webhook deleted successfully"}


@router.get("/{webhook_id}/deliveries")
async def get_webhook_deliveries(
    webhook_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    deliveries = await service.get_deliveries(webhook_id)
    return {"success": True, "deliveries": [delivery_to_dict(d) for d in deliveries]}


@router.get("/{webhook_id}/deliveries/{delivery_id}")
async def get_webhook_delivery(
    webhook_id: str,
    delivery_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    delivery = await service.get_delivery(webhook_id, delivery_id)
    return {"success": True, "delivery": delivery_to_dict(delivery)}


@router.post("/{webhook_id}/deliveries/{delivery_id}/retry")
async def retry_webhook_delivery(
    webhook_id: str,
    delivery_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Queue a failed delivery for the retry worker."""
    delivery = await service.retry_delivery(webhook_id, delivery_id, actor=token.sub)
    return {
        "success": True,
        "message": "Delivery scheduled for retry",
        "delivery": delivery_to_dict(delivery),
    }


@router.post("/{webhook_id}/test")
async def test_webhook(
    webhook_id: str,
    token: TokenPayload = Depends(get_current_user),
    service: WebhookService = Depends(get_webhook_service)
):
    """Ask WooCommerce to send a test delivery."""
    await service.test(webhook_id, actor=token.sub)
    return {"success": True, "message": "Webhook test initiated successfully"}
