"""Local storage file serving, plus helpers shared by the media routers."""

import mimetypes

from fastapi import APIRouter, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, Response

from animator.config import get_settings
from animator.exceptions import UnsupportedMediaTypeError, ValidationError
from animator.services.storage_service import LocalStorageService, get_storage_service

router = APIRouter()


async def read_upload(file: UploadFile, allowed_types: list[str]) -> bytes:
    """Read an uploaded file after checking its type and size.

    Raises:
        UnsupportedMediaTypeError: If the content type is not allowed
        ValidationError: If the file is empty or too large
    """
    settings = get_settings()
    if file.content_type not in allowed_types:
        raise UnsupportedMediaTypeError(file.content_type)

    data = await file.read()
    if not data:
        raise ValidationError("Uploaded file is empty")
    if len(data) > settings.max_upload_size_mb * 1024 * 1024:
        raise ValidationError(f"File exceeds the {settings.max_upload_size_mb} MB upload limit")
    return data


async def stored_file_response(storage_key: str, content_type: str, filename: str) -> Response:
    """Serve a stored file, streaming from disk when storage is local."""
    storage = get_storage_service()
    if isinstance(storage, LocalStorageService):
        file_path = storage.get_file_path(storage_key)
        if not file_path.exists():
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="File not found",
            )
        return FileResponse(path=str(file_path), media_type=content_type, filename=filename)

    data = await storage.download_bytes(storage_key)
    return Response(content=data, media_type=content_type)


@router.get("/files/{storage_key:path}")
async def get_file(storage_key: str):
    """Serve files from local storage."""
    if not get_settings().use_local_storage:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Local storage not enabled",
        )

    storage = get_storage_service()
    file_path = storage.get_file_path(storage_key)
    if not file_path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )

    media_type, _ = mimetypes.guess_type(file_path.name)
    return FileResponse(
        path=str(file_path),
        media_type=media_type or "application/octet-stream",
        filename=file_path.name,
    )
