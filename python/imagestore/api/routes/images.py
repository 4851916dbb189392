"""Image routes.

Routes are transport-only:
- Spool the multipart body to a temporary file
- Call exactly one service function
- Return success(...) or raise ApiError
"""

import os
import tempfile
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile

from imagestore.api.deps import get_image_store, get_name_resolver
from imagestore.config import get_settings
from imagestore.errors import ApiErrorCode, InvalidRequestError
from imagestore.responses import success_response
from imagestore.services import images as images_service
from imagestore.storage import NameResolver, ObjectStoreClient

router = APIRouter()

SPOOL_CHUNK_SIZE = 1024 * 1024  # 1 MiB


async def _spool_to_disk(upload: UploadFile, max_bytes: int) -> str:
    """Copy the upload to a temporary file, enforcing the size limit.

    Returns:
        Path of the temporary file. The caller removes it.

    Raises:
        InvalidRequestError: If the upload exceeds max_bytes.
    """
    fd, path = tempfile.mkstemp(prefix="imagestore-")
    size = 0
    try:
        with os.fdopen(fd, "wb") as out:
            while chunk := await upload.read(SPOOL_CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise InvalidRequestError(
                        ApiErrorCode.E_FILE_TOO_LARGE,
                        f"Image exceeds maximum size of {max_bytes} bytes.",
                    )
                out.write(chunk)
    except BaseException:
        os.unlink(path)
        raise
    return path


@router.post("/images", status_code=201)
async def upload_image(
    file: Annotated[UploadFile, File()],
    store: Annotated[ObjectStoreClient, Depends(get_image_store)],
    resolver: Annotated[NameResolver, Depends(get_name_resolver)],
) -> dict:
    """Upload an image and make it publicly readable.

    Returns:
        - key: Object key the image was stored under
        - url: Public URL of the image
    """
    settings = get_settings()

    content_type = file.content_type or ""
    if not content_type.startswith("image/"):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_CONTENT_TYPE,
            f"Invalid content type '{content_type}'. Expected an image/* type.",
        )

    path = await _spool_to_disk(file, settings.max_image_bytes)
    try:
        saved = await images_service.save_image(
            store,
            resolver,
            path,
            file.filename or "",
            base_dir=settings.normalized_images_base_dir,
            content_type=content_type,
        )
    finally:
        os.unlink(path)

    return success_response({"key": saved.key, "url": saved.url})


@router.delete("/images/{name:path}")
async def delete_image(
    name: str,
    store: Annotated[ObjectStoreClient, Depends(get_image_store)],
) -> dict:
    """Delete an image by its path relative to the images directory.

    DELETE /images/2024/05/photo.png removes key "images/2024/05/photo.png".
    """
    settings = get_settings()
    base_dir = settings.normalized_images_base_dir
    deleted = await images_service.delete_image(store, f"{base_dir}{name}", base_dir=base_dir)
    return success_response({"deleted": deleted})
