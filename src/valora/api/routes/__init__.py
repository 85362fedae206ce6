"""
API Route Modules
=================
Routes are organized by functional area:
- chat: conversation import and context
- export: memory bundle export
- memories: memory CRUD and search
- integrations: webhooks, plugins, status
- health: liveness
"""

from .chat import router as chat_router
from .export import router as export_router
from .memories import router as memories_router
from .integrations import router as integrations_router
from .health import router as health_router

__all__ = [
    "chat_router",
    "export_router",
    "memories_router",
    "integrations_router",
    "health_router",
]
