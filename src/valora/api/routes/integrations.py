"""
Integration Routes
==================
Webhook registry management, plugin management and integration status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from valora.core.container import Container
from valora.core.exceptions import PluginNotFoundError, WebhookNotFoundError
from valora.events.schemas import EVENT_TYPES
from valora.api.middleware import get_api_key_dependency
from valora.api.models import MessageResponse, WebhookBody, WebhookUpdateBody

router = APIRouter(
    prefix="/integrations",
    tags=["Integrations"],
    dependencies=[Depends(get_api_key_dependency)],
)


def get_container(request: Request) -> Container:
    return request.app.state.container


# --- Webhooks ---

@router.post("/webhooks", status_code=201)
async def register_webhook(req: WebhookBody, container: Container = Depends(get_container)):
    subscription = container.webhook_manager.register_webhook(
        url=req.url,
        events=[e.value for e in req.events],
        headers=req.headers,
        retry_policy=req.retry_policy.to_wire() if req.retry_policy else None,
        enabled=req.enabled,
        secret=req.secret,
    )
    return {
        "id": subscription.id,
        "message": "Webhook registered successfully",
        "config": subscription.to_dict(),
    }


@router.get("/webhooks")
async def list_webhooks(container: Container = Depends(get_container)):
    return [w.to_dict() for w in container.webhook_manager.list_webhooks()]


@router.get("/webhooks/{webhook_id}")
async def get_webhook(webhook_id: str, container: Container = Depends(get_container)):
    subscription = container.webhook_manager.get_webhook(webhook_id)
    if subscription is None:
        raise WebhookNotFoundError(webhook_id)
    return subscription.to_dict()


@router.put("/webhooks/{webhook_id}")
async def update_webhook(
    webhook_id: str,
    req: WebhookUpdateBody,
    container: Container = Depends(get_container),
):
    updated = container.webhook_manager.update_webhook(
        webhook_id,
        url=req.url,
        events=[e.value for e in req.events] if req.events else None,
        headers=req.headers,
        retry_policy=req.retry_policy.to_wire() if req.retry_policy else None,
        enabled=req.enabled,
        secret=req.secret,
    )
    if updated is None:
        raise WebhookNotFoundError(webhook_id)
    return {"message": "Webhook updated successfully", "config": updated.to_dict()}


@router.delete("/webhooks/{webhook_id}", response_model=MessageResponse)
async def delete_webhook(webhook_id: str, container: Container = Depends(get_container)):
    if not container.webhook_manager.delete_webhook(webhook_id):
        raise WebhookNotFoundError(webhook_id)
    return {"message": "Webhook unregistered successfully"}


@router.post("/webhooks/{webhook_id}/enable", response_model=MessageResponse)
async def enable_webhook(webhook_id: str, container: Container = Depends(get_container)):
    if not container.webhook_manager.enable_webhook(webhook_id):
        raise WebhookNotFoundError(webhook_id)
    return {"message": "Webhook enabled successfully"}


@router.post("/webhooks/{webhook_id}/disable", response_model=MessageResponse)
async def disable_webhook(webhook_id: str, container: Container = Depends(get_container)):
    if not container.webhook_manager.disable_webhook(webhook_id):
        raise WebhookNotFoundError(webhook_id)
    return {"message": "Webhook disabled successfully"}


@router.get("/webhooks/{webhook_id}/deliveries")
async def webhook_deliveries(
    webhook_id: str,
    limit: int = Query(100, ge=1, le=1000),
    status: Optional[str] = None,
    container: Container = Depends(get_container),
):
    manager = container.webhook_manager
    if manager.get_webhook(webhook_id) is None:
        raise WebhookNotFoundError(webhook_id)
    history = await manager.get_delivery_history(webhook_id, limit=limit, status=status)
    return {
        "status": await manager.get_webhook_status(webhook_id),
        "deliveries": [d.to_dict() for d in history],
    }


# --- Plugins ---

@router.get("/plugins")
async def list_plugins(container: Container = Depends(get_container)):
    manager = container.plugin_manager
    return [manager.describe(p) for p in manager.list_plugins()]


@router.get("/plugins/{name}")
async def get_plugin(name: str, container: Container = Depends(get_container)):
    plugin = container.plugin_manager.get_plugin(name)
    if plugin is None:
        raise PluginNotFoundError(name)
    return container.plugin_manager.describe(plugin)


@router.post("/plugins/{name}/enable", response_model=MessageResponse)
async def enable_plugin(name: str, container: Container = Depends(get_container)):
    container.plugin_manager.enable_plugin(name)
    return {"message": "Plugin enabled successfully"}


@router.post("/plugins/{name}/disable", response_model=MessageResponse)
async def disable_plugin(name: str, container: Container = Depends(get_container)):
    container.plugin_manager.disable_plugin(name)
    return {"message": "Plugin disabled successfully"}


# --- Status ---

@router.get("/status")
async def integration_status(container: Container = Depends(get_container)):
    return {
        "webhooks": container.webhook_manager.get_status_counts(),
        "plugins": container.plugin_manager.get_status_counts(),
        "events": list(EVENT_TYPES),
        "metrics": {
            "webhooks": container.webhook_manager.get_metrics(),
            "eventBus": container.event_bus.get_metrics(),
        },
    }
