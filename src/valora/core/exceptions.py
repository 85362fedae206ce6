"""
Valora Domain-Specific Exceptions
=================================

This module defines a hierarchy of exceptions for consistent error handling
across Valora.

Exception Hierarchy:
    ValoraError (base)
    ├── RecoverableError (transient, retry possible)
    │   └── StorageError
    └── IrrecoverableError (permanent, requires intervention)
        ├── ConfigurationError
        ├── ValidationError
        ├── ParseError
        ├── PluginError
        └── NotFoundError
            ├── MemoryNotFoundError
            ├── WebhookNotFoundError
            └── PluginNotFoundError

Usage Guidelines:
    - Stores return None / False for "not found"; the API layer raises
      NotFoundError when a missing resource must become a 404
    - Free-text parsers never raise; the JSON import path raises ParseError
    - Webhook delivery failures are logged, never raised to callers
"""

from typing import Optional, Any
import os


class ValoraError(Exception):
    """
    Base exception for all Valora errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code for API responses
        context: Additional context about the error
        recoverable: Whether the error is potentially recoverable
    """

    error_code: str = "VALORA_ERROR"
    recoverable: bool = True

    def __init__(
        self,
        message: str,
        context: Optional[dict] = None,
        error_code: Optional[str] = None,
        recoverable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if error_code is not None:
            self.error_code = error_code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    def to_dict(self, include_traceback: bool = False) -> dict:
        """
        Convert exception to dictionary for JSON response.

        Args:
            include_traceback: Whether to include stack trace (only in DEBUG mode)
        """
        result = {
            "error": self.message,
            "code": self.error_code,
            "recoverable": self.recoverable,
        }

        if include_traceback:
            import traceback
            result["traceback"] = traceback.format_exc()

        if self.context:
            result["context"] = self.context

        return result


class RecoverableError(ValoraError):
    """Transient errors that may succeed on retry."""
    recoverable = True


class IrrecoverableError(ValoraError):
    """Permanent errors that require intervention."""
    recoverable = False


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(RecoverableError):
    """Raised when the memory store fails to persist or read a record."""
    error_code = "STORAGE_ERROR"

    def __init__(self, operation: str, reason: str, context: Optional[dict] = None):
        ctx = {"operation": operation}
        if context:
            ctx.update(context)
        super().__init__(f"Storage {operation} failed: {reason}", ctx)
        self.operation = operation


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(IrrecoverableError):
    """Raised when configuration is invalid or missing."""
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, config_key: str, reason: str, context: Optional[dict] = None):
        ctx = {"config_key": config_key}
        if context:
            ctx.update(context)
        super().__init__(f"Configuration error for '{config_key}': {reason}", ctx)
        self.config_key = config_key


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(IrrecoverableError):
    """Raised when input validation fails."""
    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str, value: Any = None, context: Optional[dict] = None):
        ctx = {"field": field}
        if value is not None:
            value_str = str(value)
            if len(value_str) > 100:
                value_str = value_str[:100] + "..."
            ctx["value"] = value_str
        if context:
            ctx.update(context)
        super().__init__(f"Validation error for '{field}': {reason}", ctx)
        self.field = field
        self.reason = reason


# =============================================================================
# Import Errors
# =============================================================================

class ParseError(IrrecoverableError):
    """
    Raised when structured import content cannot be decoded.

    Only the JSON import path raises this. Free-text and markdown
    importers degrade to a single opaque memory instead.
    """
    error_code = "PARSE_ERROR"

    def __init__(self, source: str, reason: str, context: Optional[dict] = None):
        ctx = {"source": source}
        if context:
            ctx.update(context)
        super().__init__(f"Failed to parse {source} content: {reason}", ctx)
        self.source = source
        self.reason = reason


# =============================================================================
# Integration Errors
# =============================================================================

class PluginError(IrrecoverableError):
    """Raised when a plugin fails to initialize."""
    error_code = "PLUGIN_ERROR"

    def __init__(self, plugin_name: str, reason: str, context: Optional[dict] = None):
        ctx = {"plugin": plugin_name}
        if context:
            ctx.update(context)
        super().__init__(f"Plugin '{plugin_name}' failed: {reason}", ctx)
        self.plugin_name = plugin_name


# =============================================================================
# Not Found Errors
# =============================================================================

class NotFoundError(IrrecoverableError):
    """Raised when a requested resource is not found."""
    error_code = "NOT_FOUND_ERROR"

    def __init__(self, resource_type: str, resource_id: str, context: Optional[dict] = None):
        ctx = {"resource_type": resource_type, "resource_id": resource_id}
        if context:
            ctx.update(context)
        super().__init__(f"{resource_type} '{resource_id}' not found", ctx)
        self.resource_type = resource_type
        self.resource_id = resource_id


class MemoryNotFoundError(NotFoundError):
    """Raised when a memory is not found."""
    error_code = "MEMORY_NOT_FOUND_ERROR"

    def __init__(self, memory_id: str, context: Optional[dict] = None):
        super().__init__("Memory", memory_id, context)
        self.memory_id = memory_id


class WebhookNotFoundError(NotFoundError):
    """Raised when a webhook id is unknown to the registry."""
    error_code = "WEBHOOK_NOT_FOUND_ERROR"

    def __init__(self, webhook_id: str, context: Optional[dict] = None):
        super().__init__("Webhook", webhook_id, context)
        self.webhook_id = webhook_id


class PluginNotFoundError(NotFoundError):
    """Raised when a plugin name is unknown to the registry."""
    error_code = "PLUGIN_NOT_FOUND_ERROR"

    def __init__(self, plugin_name: str, context: Optional[dict] = None):
        super().__init__("Plugin", plugin_name, context)
        self.plugin_name = plugin_name


# =============================================================================
# Utility Functions
# =============================================================================

def wrap_storage_exception(operation: str, exc: Exception) -> StorageError:
    """Wrap a backend exception (OSError, decode failure...) into a StorageError."""
    return StorageError(
        operation,
        str(exc),
        {"original_exception": type(exc).__name__},
    )


def is_debug_mode() -> bool:
    """Check if debug mode is enabled via environment variable."""
    return os.environ.get("VALORA_DEBUG", "").lower() in ("true", "1", "yes")


__all__ = [
    "ValoraError",
    "RecoverableError",
    "IrrecoverableError",
    "StorageError",
    "ConfigurationError",
    "ValidationError",
    "ParseError",
    "PluginError",
    "NotFoundError",
    "MemoryNotFoundError",
    "WebhookNotFoundError",
    "PluginNotFoundError",
    "wrap_storage_exception",
    "is_debug_mode",
]
