"""Image save and delete service layer.

Handles key construction, unique name resolution, upload, and public grants.
All image-domain storage logic lives here.

Key invariants:
- Keys are "{base_dir}{YYYY}/{MM}/{sanitized stem}{disambiguator}{ext}"
- The key returned by the resolver is passed to put() unchanged
- Store failures are logged and surfaced as ApiError, never swallowed
"""

import os
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from imagestore.errors import ApiError, ApiErrorCode, InvalidRequestError
from imagestore.logging import get_logger
from imagestore.storage.client import (
    DEFAULT_CONTENT_TYPE,
    ObjectConflictError,
    ObjectNotFoundError,
    ObjectStoreClient,
    StorageError,
    StoreUnavailableError,
)
from imagestore.storage.naming import NameResolver, UniqueNameExhaustedError

logger = get_logger(__name__)

DEFAULT_BASE_DIR = "images/"

# Anything outside ASCII word characters, "@" and "." becomes "-"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w@.]", re.ASCII)


@dataclass(frozen=True)
class SavedImage:
    """Result of a successful save."""

    key: str
    url: str


def get_target_dir(base_dir: str = DEFAULT_BASE_DIR, now: datetime | None = None) -> str:
    """Build the dated directory new images are stored under.

    Args:
        base_dir: Key prefix (leading/trailing slashes are normalized).
        now: Timestamp to date by (defaults to current UTC time).

    Returns:
        "{base_dir}/{YYYY}/{MM}/" with no leading slash.

    Example:
        >>> get_target_dir("images/", datetime(2024, 5, 3))
        'images/2024/05/'
    """
    now = now or datetime.now(UTC)
    base = base_dir.strip("/")
    dated = f"{now:%Y}/{now:%m}/"
    return f"{base}/{dated}" if base else dated


def get_sanitized_file_name(file_name: str) -> str:
    """Replace characters that are unsafe in object keys with "-".

    Only ASCII letters, digits, "_", "@" and "." survive; non-ASCII names
    therefore map to runs of "-".
    """
    return _UNSAFE_FILENAME_CHARS.sub("-", file_name)


def split_file_name(file_name: str) -> tuple[str, str | None]:
    """Split an uploaded file name into (stem, extension).

    Directory components are discarded. The extension keeps its leading dot
    and is None when the name has none (including dotfiles like ".env").
    """
    base = os.path.basename(file_name.replace("\\", "/"))
    stem, ext = os.path.splitext(base)
    return stem, ext or None


def _to_api_error(e: StorageError) -> ApiError:
    if isinstance(e, UniqueNameExhaustedError):
        return ApiError(ApiErrorCode.E_NAME_EXHAUSTED, "Could not find a free image name")
    if isinstance(e, StoreUnavailableError):
        return ApiError(ApiErrorCode.E_STORAGE_UNAVAILABLE, "Storage is unavailable")
    if isinstance(e, ObjectNotFoundError):
        return ApiError(ApiErrorCode.E_IMAGE_NOT_FOUND, "Image not found")
    if isinstance(e, ObjectConflictError):
        return ApiError(ApiErrorCode.E_STORAGE_CONFLICT, "Image name was taken concurrently")
    if e.code == ApiErrorCode.E_UPLOAD_FAILED.value:
        return ApiError(ApiErrorCode.E_UPLOAD_FAILED, "Image upload failed")
    return ApiError(ApiErrorCode.E_STORAGE_ERROR, "Storage operation failed")


async def save_image(
    store: ObjectStoreClient,
    resolver: NameResolver,
    local_path: str | Path,
    original_name: str,
    *,
    base_dir: str = DEFAULT_BASE_DIR,
    content_type: str = DEFAULT_CONTENT_TYPE,
    now: datetime | None = None,
) -> SavedImage:
    """Save an image to the store under a unique key and make it public.

    Ordering: resolve -> put -> set_public. A failed grant leaves the
    uploaded object in place (it is not rolled back).

    Args:
        store: Object store to write to.
        resolver: Resolver bound to the same store.
        local_path: Path of the uploaded file on disk.
        original_name: Client-supplied file name (sanitized here).
        base_dir: Key prefix for images.
        content_type: MIME type stored with the object.
        now: Timestamp used for the dated directory.

    Returns:
        SavedImage with the final key and its public URL.

    Raises:
        InvalidRequestError: If original_name has no file name component.
        ApiError: If any store operation fails.
    """
    stem, ext = split_file_name(original_name)
    if stem in ("", ".", "..") and not ext:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST,
            f"File name '{original_name}' has no name to store it under",
        )

    target_dir = get_target_dir(base_dir, now)
    name = get_sanitized_file_name(stem)

    key = None
    try:
        key = await resolver.resolve(target_dir, name, ext)
        handle = await store.put(local_path, key, content_type=content_type)
        await store.set_public(handle)
    except StorageError as e:
        logger.error(
            "image_save_failed",
            original_name=original_name,
            key=key,
            error_code=e.code,
            error=e.message,
        )
        raise _to_api_error(e) from e

    url = store.public_url(key)
    logger.info("image_saved", key=key, size_bytes=handle.size_bytes)
    return SavedImage(key=key, url=url)


def _validate_image_key(key: str, base_dir: str) -> str:
    """Check a client-supplied key and return it with its file name sanitized.

    Raises:
        InvalidRequestError: If the key is outside base_dir or malformed.
    """
    base = base_dir.strip("/")
    key = key.lstrip("/")
    parts = key.split("/")

    if not key or not parts[-1] or any(part in ("", ".", "..") for part in parts):
        raise InvalidRequestError(ApiErrorCode.E_INVALID_KEY, f"Invalid image key '{key}'")

    if base and not key.startswith(f"{base}/"):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_KEY,
            f"Image key '{key}' is outside '{base}/'",
        )

    parts[-1] = get_sanitized_file_name(parts[-1])
    return "/".join(parts)


async def delete_image(
    store: ObjectStoreClient,
    key: str,
    *,
    base_dir: str = DEFAULT_BASE_DIR,
) -> str:
    """Delete a previously saved image.

    Args:
        store: Object store to delete from.
        key: Key as returned by save_image().
        base_dir: Key prefix images must live under.

    Returns:
        The key that was deleted.

    Raises:
        InvalidRequestError: If the key is not a valid image key.
        ApiError: If the image does not exist or the store fails.
    """
    key = _validate_image_key(key, base_dir)

    try:
        await store.delete(key)
    except StorageError as e:
        logger.error("image_delete_failed", key=key, error_code=e.code, error=e.message)
        raise _to_api_error(e) from e

    logger.info("image_deleted", key=key)
    return key
