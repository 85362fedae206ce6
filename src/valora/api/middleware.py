"""
Security Middleware & Utilities
===============================
API key authentication and security headers for the API.
"""

import secrets
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security.api_key import APIKeyHeader
from starlette.middleware.base import BaseHTTPMiddleware
from loguru import logger

from valora.core.config import get_config


# --- API Key Security Dependency ---
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
_authorization_header = APIKeyHeader(name="Authorization", auto_error=False)


def _expected_key(request: Request) -> Optional[str]:
    container = getattr(request.app.state, "container", None)
    config = container.config if container is not None else get_config()
    return config.security.api_key


async def get_api_key_dependency(
    request: Request,
    api_key: Optional[str] = Security(_api_key_header),
    authorization: Optional[str] = Security(_authorization_header),
) -> str:
    """
    FastAPI dependency for API key validation.

    Accepts the key in ``X-API-Key`` or as ``Authorization: Bearer <key>``
    and compares it in constant time with the configured key.
    """
    expected_key = _expected_key(request)

    if not expected_key:
        logger.error("API Key not configured during request processing.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server Misconfiguration: API Key not set"
        )

    provided = api_key
    if not provided and authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()

    if not provided or not secrets.compare_digest(provided, expected_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing API Key"
        )
    return provided


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to every response.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response
