import io
import logging
import uuid
from uuid import UUID

from fastapi import APIRouter, File, Query, UploadFile, status
from fastapi.responses import Response
from PIL import Image as PILImage
from PIL import UnidentifiedImageError
from sqlalchemy import select

from animator.api.access import get_user_image
from animator.api.deps import CurrentUser, DbSession
from animator.api.storage import read_upload, stored_file_response
from animator.config import get_settings
from animator.exceptions import ValidationError
from animator.models.image import Image
from animator.schemas.animation import ScheduledImage
from animator.schemas.image import ImageMoveToFolder, ImageResponse
from animator.services.folder_tree import FolderTree
from animator.services.image_pool import DatabaseImageSource
from animator.services.storage_service import get_storage_service, image_storage_key

logger = logging.getLogger(__name__)

router = APIRouter()


def image_file_url(identifier: str) -> str:
    return f"{get_settings().public_base_url.rstrip('/')}/api/images/{identifier}/file"


def image_to_response(image: Image) -> ImageResponse:
    response = ImageResponse.model_validate(image)
    response.url = image_file_url(image.identifier)
    return response


def _image_dimensions(data: bytes) -> tuple[int, int]:
    try:
        with PILImage.open(io.BytesIO(data)) as img:
            return img.size
    except UnidentifiedImageError as e:
        raise ValidationError("Uploaded file is not a readable image") from e


@router.get("", response_model=list[ImageResponse])
async def list_images(
    current_user: CurrentUser,
    db: DbSession,
    folder_id: UUID | None = None,
) -> list[ImageResponse]:
    query = select(Image).where(Image.user_id == current_user.id)
    if folder_id is not None:
        query = query.where(Image.folder_id == folder_id)
    result = await db.execute(query.order_by(Image.created_at.desc()))
    return [image_to_response(image) for image in result.scalars().all()]


@router.post("", response_model=ImageResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    current_user: CurrentUser,
    db: DbSession,
    file: UploadFile = File(...),
    folder_id: UUID | None = None,
) -> ImageResponse:
    """Upload an image to the user's library."""
    settings = get_settings()
    data = await read_upload(file, settings.allowed_image_types)
    width, height = _image_dimensions(data)

    if folder_id is not None:
        await FolderTree(db, current_user.id, settings.max_folder_depth).get(folder_id)

    identifier = uuid.uuid4().hex
    filename = file.filename or f"{identifier}.png"
    storage_key = image_storage_key(str(current_user.id), identifier, filename)
    await get_storage_service().upload_bytes(storage_key, data, file.content_type)

    image = Image(
        user_id=current_user.id,
        folder_id=folder_id,
        identifier=identifier,
        filename=filename,
        content_type=file.content_type,
        storage_key=storage_key,
        size=len(data),
        width=width,
        height=height,
    )
    db.add(image)
    await db.flush()
    await db.refresh(image)

    logger.info(f"Uploaded image {identifier} ({width}x{height}) for user {current_user.id}")
    return image_to_response(image)


@router.get("/random", response_model=list[ScheduledImage])
async def get_random_images(
    current_user: CurrentUser,
    db: DbSession,
    count: int = Query(..., ge=1, le=1000),
    duplicate_every: int | None = Query(None, ge=2),
) -> list[ScheduledImage]:
    """Random pool of the user's images in the order segments consume them."""
    source = DatabaseImageSource(db, current_user.id, get_settings().public_base_url)
    images = await source.get_random_images(count, duplicate_every)
    return [ScheduledImage(id=image.id, url=image.url) for image in images]


@router.get("/{identifier}", response_model=ImageResponse)
async def get_image(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> ImageResponse:
    image = await get_user_image(identifier, current_user.id, db)
    return image_to_response(image)


@router.get("/{identifier}/file")
async def get_image_file(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> Response:
    image = await get_user_image(identifier, current_user.id, db)
    return await stored_file_response(image.storage_key, image.content_type, image.filename)


@router.patch("/{identifier}/folder", response_model=ImageResponse)
async def move_image_to_folder(
    identifier: str,
    move_data: ImageMoveToFolder,
    current_user: CurrentUser,
    db: DbSession,
) -> ImageResponse:
    image = await get_user_image(identifier, current_user.id, db)
    if move_data.folder_id is not None:
        await FolderTree(db, current_user.id, get_settings().max_folder_depth).get(move_data.folder_id)

    image.folder_id = move_data.folder_id
    await db.flush()
    await db.refresh(image)
    return image_to_response(image)


@router.delete("/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_image(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    image = await get_user_image(identifier, current_user.id, db)
    storage_key = image.storage_key
    await db.delete(image)
    await db.flush()

    # The row is gone either way; a leftover file only wastes space
    try:
        get_storage_service().delete_file(storage_key)
    except Exception as e:
        logger.warning(f"Failed to delete image file {storage_key}: {e}")
