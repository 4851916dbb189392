"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
"""

from fastapi import APIRouter

from imagestore.api.routes.health import router as health_router
from imagestore.api.routes.images import router as images_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(images_router, tags=["images"])
    return api_router


__all__ = ["create_api_router"]
