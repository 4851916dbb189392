"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, request-id middleware, and routes.

Storage Lifecycle:
- httpx.AsyncClient is created at startup, stored in app.state
- The object store client and NameResolver are built once from settings
  and shared by every request (no module-level store globals)
- A store passed to create_app() is used as-is and never closed here
- The HTTP client is closed gracefully at shutdown

Middleware Ordering:
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
"""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from imagestore.api.routes import create_api_router
from imagestore.config import get_settings
from imagestore.errors import ApiError, ApiErrorCode
from imagestore.logging import (
    bind_store_context,
    clear_store_context,
    configure_logging,
    get_logger,
)
from imagestore.middleware.request_id import RequestIDMiddleware
from imagestore.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from imagestore.storage import NameResolver, ObjectStoreClient, get_storage_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared store client on startup, release it on shutdown."""
    settings = get_settings()
    http_client = None

    if getattr(app.state, "image_store", None) is None:
        http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.storage_timeout_s, connect=10.0),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
        )
        app.state.image_store = get_storage_client(http_client, settings)
        app.state.name_resolver = NameResolver(
            app.state.image_store,
            max_attempts=settings.unique_name_max_attempts,
        )
        store = app.state.image_store
        bind_store_context(type(store).__name__, getattr(store, "bucket", None))
        logger.info("image_store_initialized", max_attempts=settings.unique_name_max_attempts)

    yield

    if http_client is not None:
        await http_client.aclose()
        app.state.image_store = None
        app.state.name_resolver = None
        logger.info("httpx_client_closed")
        clear_store_context()


def create_app(
    store: ObjectStoreClient | None = None,
    max_attempts: int | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        store: Optional pre-built store client (for testing). When omitted,
            one is built from settings at startup.
        max_attempts: Resolver ceiling used with an injected store.
            Ignored when store is None (UNIQUE_NAME_MAX_ATTEMPTS applies).

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()
    configure_logging(json_format=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="Image Store API",
        description="Image uploads to Google Cloud Storage with collision-free names",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if store is not None:
        app.state.image_store = store
        app.state.name_resolver = NameResolver(store, max_attempts=max_attempts)
        bind_store_context(type(store).__name__, getattr(store, "bucket", None))

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (missing file field, etc.)."""
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    app.include_router(create_api_router())

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
