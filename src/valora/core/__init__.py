"""
Valora Core
===========
Configuration, exception hierarchy, memory model and dependency wiring.
"""

from .config import ValoraConfig, get_config, load_config, reset_config
from .exceptions import (
    ValoraError,
    ValidationError,
    NotFoundError,
    MemoryNotFoundError,
    WebhookNotFoundError,
    PluginNotFoundError,
    ParseError,
    StorageError,
)
from .memory_model import Memory, ChatMessage, ChatImportRequest

__all__ = [
    "ValoraConfig",
    "get_config",
    "load_config",
    "reset_config",
    "ValoraError",
    "ValidationError",
    "NotFoundError",
    "MemoryNotFoundError",
    "WebhookNotFoundError",
    "PluginNotFoundError",
    "ParseError",
    "StorageError",
    "Memory",
    "ChatMessage",
    "ChatImportRequest",
]
