"""Google Cloud Storage client abstraction.

Provides a clean interface for the object operations the image store needs:
- Existence checks (used by unique name resolution)
- Uploads from a local file
- Public read grants
- Object deletion

All methods receive the full object key directly - no prefix manipulation.
Every network operation is async and may fail; failures surface as
StorageError subclasses and are never translated into a boolean answer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import httpx

from imagestore.config import Settings, get_settings
from imagestore.logging import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "https://storage.googleapis.com"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class ObjectHandle:
    """An uploaded object as reported by the store.

    Passed to set_public() so the grant targets the same key that was written.
    """

    key: str
    bucket: str
    content_type: str
    size_bytes: int
    generation: str | None = None


class StorageError(Exception):
    """Storage operation error."""

    def __init__(self, message: str, code: str = "E_STORAGE_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code


class StoreUnavailableError(StorageError):
    """The store could not answer (timeout, network, auth, server error)."""

    def __init__(self, message: str, code: str = "E_STORAGE_UNAVAILABLE"):
        super().__init__(message, code)


class ObjectNotFoundError(StorageError):
    """The addressed object does not exist."""

    def __init__(self, message: str, code: str = "E_STORAGE_MISSING"):
        super().__init__(message, code)


class ObjectConflictError(StorageError):
    """An if-absent write found the key already occupied."""

    def __init__(self, message: str, code: str = "E_STORAGE_CONFLICT"):
        super().__init__(message, code)


class ObjectStoreClient(ABC):
    """Abstract base class for object store implementations."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object currently occupies a key.

        This is a best-effort read, not a reservation: another writer may
        create the key between this check and a later put().

        Args:
            key: Full object key.

        Returns:
            True iff an object with exactly this key exists.

        Raises:
            StoreUnavailableError: If the store cannot answer.
        """
        ...

    @abstractmethod
    async def put(
        self,
        local_path: str | Path,
        key: str,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        if_absent: bool = False,
    ) -> ObjectHandle:
        """Upload a local file to key.

        Without if_absent, an existing object at key is overwritten
        (last writer wins).

        Args:
            local_path: Path of the file to upload.
            key: Full object key.
            content_type: MIME type stored with the object.
            if_absent: Fail with ObjectConflictError instead of overwriting.

        Returns:
            ObjectHandle describing the stored object.

        Raises:
            StorageError: On I/O or store failure.
        """
        ...

    @abstractmethod
    async def set_public(self, handle: ObjectHandle) -> None:
        """Grant public read access to an uploaded object.

        Raises:
            StorageError: If the grant fails.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StorageError: On store failure.
        """
        ...

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Return the public URL an object is served from once made public."""
        ...


def _read_local_file(local_path: str | Path) -> bytes:
    try:
        return Path(local_path).read_bytes()
    except OSError as e:
        raise StorageError(
            f"Failed to read upload source {local_path}: {e}",
            code="E_UPLOAD_FAILED",
        ) from e


class GcsStorageClient(ObjectStoreClient):
    """Production Google Cloud Storage client.

    Uses a shared httpx.AsyncClient against the GCS JSON API.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        bucket: str,
        access_token: str | None = None,
        api_url: str = DEFAULT_API_URL,
        public_base_url: str | None = None,
        timeout_s: float = 30.0,
    ):
        """Initialize the storage client.

        Args:
            http_client: Shared async HTTP client (owned by the caller).
            bucket: Bucket name.
            access_token: Bearer token for the JSON API.
            api_url: JSON API base URL.
            public_base_url: Override for public object URLs.
            timeout_s: Timeout applied to every request.
        """
        self._client = http_client
        self._bucket = bucket
        self._api_url = api_url.rstrip("/")
        self._public_base_url = (
            public_base_url or f"https://{bucket}.storage.googleapis.com"
        ).rstrip("/")
        self._timeout = httpx.Timeout(timeout_s, connect=10.0)
        self._headers = {}
        if access_token:
            self._headers["Authorization"] = f"Bearer {access_token}"

    @property
    def bucket(self) -> str:
        return self._bucket

    def _object_url(self, key: str) -> str:
        return f"{self._api_url}/storage/v1/b/{self._bucket}/o/{quote(key, safe='')}"

    async def exists(self, key: str) -> bool:
        """Check object existence via a metadata GET."""
        try:
            response = await self._client.get(
                self._object_url(key),
                headers=self._headers,
                params={"fields": "name"},
                timeout=self._timeout,
            )
        except httpx.TransportError as e:
            raise StoreUnavailableError(f"Existence check failed for {key}: {e}") from e

        if response.status_code == 200:
            return True
        if response.status_code == 404:
            return False

        # Anything else is neither "taken" nor "free"
        raise StoreUnavailableError(
            f"Existence check failed for {key}: {response.status_code} {response.text}"
        )

    async def put(
        self,
        local_path: str | Path,
        key: str,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        if_absent: bool = False,
    ) -> ObjectHandle:
        """Upload via the media upload endpoint."""
        content = _read_local_file(local_path)
        params = {"uploadType": "media", "name": key}
        if if_absent:
            # Generation 0 matches only when no live object exists
            params["ifGenerationMatch"] = "0"

        try:
            response = await self._client.post(
                f"{self._api_url}/upload/storage/v1/b/{self._bucket}/o",
                headers={**self._headers, "Content-Type": content_type},
                params=params,
                content=content,
                timeout=self._timeout,
            )
        except httpx.TransportError as e:
            raise StoreUnavailableError(f"Upload failed for {key}: {e}") from e

        if response.status_code == 412:
            raise ObjectConflictError(f"Object already exists: {key}")

        if response.status_code not in (200, 201):
            raise StorageError(
                f"Upload failed for {key}: {response.status_code} {response.text}",
                code="E_UPLOAD_FAILED",
            )

        try:
            data = response.json()
            generation = data.get("generation")
            return ObjectHandle(
                key=data.get("name", key),
                bucket=data.get("bucket", self._bucket),
                content_type=data.get("contentType", content_type),
                size_bytes=int(data.get("size", len(content))),
                generation=str(generation) if generation is not None else None,
            )
        except (ValueError, AttributeError) as e:
            raise StorageError(
                f"Upload of {key} returned unreadable object metadata: {e}",
                code="E_UPLOAD_FAILED",
            ) from e

    async def set_public(self, handle: ObjectHandle) -> None:
        """Insert an allUsers READER ACL entry on the object."""
        try:
            response = await self._client.post(
                f"{self._object_url(handle.key)}/acl",
                headers=self._headers,
                json={"entity": "allUsers", "role": "READER"},
                timeout=self._timeout,
            )
        except httpx.TransportError as e:
            raise StoreUnavailableError(f"Public grant failed for {handle.key}: {e}") from e

        if response.status_code == 404:
            raise ObjectNotFoundError(f"Object not found: {handle.key}")

        if response.status_code != 200:
            raise StorageError(
                f"Public grant failed for {handle.key}: {response.status_code} {response.text}",
                code="E_ACL_FAILED",
            )

    async def delete(self, key: str) -> None:
        """Delete object from the bucket."""
        try:
            response = await self._client.delete(
                self._object_url(key),
                headers=self._headers,
                timeout=self._timeout,
            )
        except httpx.TransportError as e:
            raise StoreUnavailableError(f"Delete failed for {key}: {e}") from e

        if response.status_code == 404:
            raise ObjectNotFoundError(f"Object not found: {key}")

        if response.status_code not in (200, 204):
            raise StorageError(
                f"Delete failed for {key}: {response.status_code} {response.text}",
                code="E_DELETE_FAILED",
            )

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"


class FakeStorageClient(ObjectStoreClient):
    """Fake storage client for testing without a real bucket.

    Stores objects in memory and provides deterministic behavior for unit tests.
    Every key passed to exists() is recorded in exists_calls.
    """

    def __init__(self, bucket: str = "fake-bucket"):
        self.bucket = bucket
        self._objects: dict[str, tuple[bytes, str]] = {}  # key -> (content, content_type)
        self._public: set[str] = set()
        self.exists_calls: list[str] = []

    async def exists(self, key: str) -> bool:
        """Check if fake object exists."""
        self.exists_calls.append(key)
        return key in self._objects

    async def put(
        self,
        local_path: str | Path,
        key: str,
        *,
        content_type: str = DEFAULT_CONTENT_TYPE,
        if_absent: bool = False,
    ) -> ObjectHandle:
        """Store the file content under key."""
        if if_absent and key in self._objects:
            raise ObjectConflictError(f"Object already exists: {key}")
        content = _read_local_file(local_path)
        self._objects[key] = (content, content_type)
        self._public.discard(key)
        return ObjectHandle(
            key=key,
            bucket=self.bucket,
            content_type=content_type,
            size_bytes=len(content),
        )

    async def set_public(self, handle: ObjectHandle) -> None:
        """Mark fake object public."""
        if handle.key not in self._objects:
            raise ObjectNotFoundError(f"Object not found: {handle.key}")
        self._public.add(handle.key)

    async def delete(self, key: str) -> None:
        """Delete fake object."""
        if key not in self._objects:
            raise ObjectNotFoundError(f"Object not found: {key}")
        del self._objects[key]
        self._public.discard(key)

    def public_url(self, key: str) -> str:
        return f"https://fake-storage.test/{self.bucket}/{key}"

    # Test helper methods

    def put_object(
        self, key: str, content: bytes = b"", content_type: str = DEFAULT_CONTENT_TYPE
    ) -> None:
        """Store an object directly (test helper)."""
        self._objects[key] = (content, content_type)

    def get_object(self, key: str) -> bytes | None:
        """Get object content directly (test helper)."""
        if key not in self._objects:
            return None
        return self._objects[key][0]

    def is_public(self, key: str) -> bool:
        """Whether set_public() has been applied to key (test helper)."""
        return key in self._public

    def clear(self) -> None:
        """Clear all stored objects and recorded calls (test helper)."""
        self._objects.clear()
        self._public.clear()
        self.exists_calls.clear()


def get_storage_client(
    http_client: httpx.AsyncClient, settings: Settings | None = None
) -> ObjectStoreClient:
    """Get the configured storage client.

    Returns:
        GcsStorageClient if GCS_BUCKET is set, FakeStorageClient otherwise.
    """
    settings = settings or get_settings()

    if settings.gcs_bucket:
        return GcsStorageClient(
            http_client,
            bucket=settings.gcs_bucket,
            access_token=settings.gcs_access_token,
            api_url=settings.gcs_api_url,
            public_base_url=settings.gcs_public_base_url,
            timeout_s=settings.storage_timeout_s,
        )

    # In-memory client for local dev / tests without a bucket
    logger.warning("storage_bucket_not_configured", fallback="FakeStorageClient")
    return FakeStorageClient()
