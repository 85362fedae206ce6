"""
Valora REST API
===============
FastAPI application for chat import, export, memory CRUD and integrations.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.exceptions import HTTPException as StarletteHTTPException

from valora import __version__
from valora.core.config import ValoraConfig, get_config
from valora.core.container import Container, build_container
from valora.core.logging_config import configure_logging
from valora.core.exceptions import (
    ValoraError,
    NotFoundError,
    ValidationError,
    is_debug_mode,
)
from valora.api.middleware import SecurityHeadersMiddleware
from valora.api.routes import (
    chat_router,
    export_router,
    health_router,
    integrations_router,
    memories_router,
)


# --- Lifecycle Management ---

@asynccontextmanager
async def lifespan(app: FastAPI):
    config: ValoraConfig = app.state.config

    if not config.security.api_key:
        logger.critical(
            "No API Key configured! Set VALORA_API_KEY env var or security.api_key in config. "
            "Authenticated routes will answer 500 until one is set."
        )

    container: Optional[Container] = getattr(app.state, "container", None)
    if container is None:
        logger.info("Building dependency container...")
        container = build_container(config)
        app.state.container = container

    await container.startup()

    yield

    logger.info("Flushing pending event deliveries...")
    await container.shutdown()


# --- Exception Handlers ---

async def valora_exception_handler(request: Request, exc: ValoraError):
    """
    Centralized exception handler for all Valora errors.
    Returns JSON with error details and stacktrace only in DEBUG mode.
    """
    if exc.recoverable:
        logger.warning(f"Recoverable error: {exc}")
    else:
        logger.error(f"Irrecoverable error: {exc}")

    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ValidationError):
        status_code = 400
    else:
        status_code = 500

    response_data = exc.to_dict(include_traceback=is_debug_mode())
    if isinstance(exc, ValidationError):
        response_data["details"] = [{"field": exc.field, "message": exc.reason}]

    return JSONResponse(status_code=status_code, content=response_data)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(loc), "message": error.get("msg", "")})
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": details},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


def create_app(
    config: Optional[ValoraConfig] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Configuration; the process-wide config is used when omitted.
        container: Pre-built container (tests). Built in the lifespan otherwise.
    """
    config = config or (container.config if container else get_config())

    app = FastAPI(
        title="Valora API",
        description="Valora - Memory container for AI conversations - REST API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    if container is not None:
        app.state.container = container

    app.add_exception_handler(ValoraError, valora_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Security Headers
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.security.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(export_router)
    app.include_router(memories_router)
    app.include_router(integrations_router)

    return app


def run(host: Optional[str] = None, port: Optional[int] = None) -> None:
    import uvicorn

    config = get_config()
    configure_logging(
        level=config.observability.log_level,
        json_format=config.observability.structured_logging,
    )
    uvicorn.run(
        create_app(config),
        host=host or config.server.host,
        port=port or config.server.port,
    )


if __name__ == "__main__":
    run()
