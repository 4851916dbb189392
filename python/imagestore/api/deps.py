"""FastAPI dependencies for route handlers.

The store client and name resolver are created once per application
(lifespan or create_app injection) and read from app.state here.
"""

from fastapi import Request

from imagestore.storage import NameResolver, ObjectStoreClient

__all__ = ["get_image_store", "get_name_resolver"]


def get_image_store(request: Request) -> ObjectStoreClient:
    """Get the shared object store client from app state."""
    return request.app.state.image_store


def get_name_resolver(request: Request) -> NameResolver:
    """Get the shared name resolver from app state."""
    return request.app.state.name_resolver
