"""Storage module for Google Cloud Storage operations.

Provides:
- ObjectStoreClient interface with GCS and in-memory implementations
- NameResolver for collision-free object keys
- Storage error types shared by both
"""

from imagestore.storage.client import (
    FakeStorageClient,
    GcsStorageClient,
    ObjectConflictError,
    ObjectHandle,
    ObjectNotFoundError,
    ObjectStoreClient,
    StorageError,
    StoreUnavailableError,
    get_storage_client,
)
from imagestore.storage.naming import (
    NameResolver,
    UniqueNameExhaustedError,
    compose_candidate,
    new_disambiguator,
)

__all__ = [
    "ObjectStoreClient",
    "GcsStorageClient",
    "FakeStorageClient",
    "ObjectHandle",
    "StorageError",
    "StoreUnavailableError",
    "ObjectNotFoundError",
    "ObjectConflictError",
    "get_storage_client",
    "NameResolver",
    "UniqueNameExhaustedError",
    "compose_candidate",
    "new_disambiguator",
]
