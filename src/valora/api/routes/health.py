"""
Health Routes
=============
Liveness and basic counts. No authentication.
"""

from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request

from valora import __version__
from valora.core.container import Container
from valora.api.models import HealthResponse

router = APIRouter(tags=["Health"])


def get_container(request: Request) -> Container:
    return request.app.state.container


@router.get("/health", response_model=HealthResponse)
async def health(container: Container = Depends(get_container)):
    memories = await container.store.list_memories()
    return {
        "status": "healthy",
        "version": __version__,
        "memories": len(memories),
        "webhooks": len(container.webhook_manager.list_webhooks()),
        "plugins": len(container.plugin_manager.list_plugins()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
