"""API endpoints for image folders."""

import logging
from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy import select

from animator.api.deps import CurrentUser, DbSession
from animator.api.images import image_to_response
from animator.config import get_settings
from animator.exceptions import ConflictError
from animator.models.folder import Folder
from animator.models.image import Image
from animator.schemas.folder import FolderCreate, FolderMove, FolderResponse, FolderUpdate
from animator.schemas.image import ImageResponse
from animator.services.folder_tree import FolderTree

logger = logging.getLogger(__name__)

router = APIRouter()


def _tree(db: DbSession, user_id: UUID) -> FolderTree:
    return FolderTree(db, user_id, get_settings().max_folder_depth)


async def _ensure_unique_name(
    db: DbSession,
    user_id: UUID,
    parent_id: UUID | None,
    name: str,
    exclude_id: UUID | None = None,
) -> None:
    parent_clause = Folder.parent_id.is_(None) if parent_id is None else Folder.parent_id == parent_id
    query = select(Folder.id).where(Folder.user_id == user_id, parent_clause, Folder.name == name)
    if exclude_id is not None:
        query = query.where(Folder.id != exclude_id)
    result = await db.execute(query.limit(1))
    if result.scalar_one_or_none() is not None:
        raise ConflictError("Folder with this name already exists here")


@router.get("", response_model=list[FolderResponse])
async def list_folders(
    current_user: CurrentUser,
    db: DbSession,
) -> list[FolderResponse]:
    """List all folders for the current user, shallowest first."""
    result = await db.execute(
        select(Folder)
        .where(Folder.user_id == current_user.id)
        .order_by(Folder.depth, Folder.name)
    )
    return [FolderResponse.model_validate(f) for f in result.scalars().all()]


@router.post("", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    folder_data: FolderCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> FolderResponse:
    await _ensure_unique_name(db, current_user.id, folder_data.parent_id, folder_data.name)
    folder = await _tree(db, current_user.id).create(folder_data.name, folder_data.parent_id)
    await db.refresh(folder)
    return FolderResponse.model_validate(folder)


@router.patch("/{folder_id}", response_model=FolderResponse)
async def rename_folder(
    folder_id: UUID,
    folder_data: FolderUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> FolderResponse:
    folder = await _tree(db, current_user.id).get(folder_id)
    await _ensure_unique_name(db, current_user.id, folder.parent_id, folder_data.name, folder.id)

    folder.name = folder_data.name
    await db.flush()
    await db.refresh(folder)
    return FolderResponse.model_validate(folder)


@router.post("/{folder_id}/move", response_model=FolderResponse)
async def move_folder(
    folder_id: UUID,
    move_data: FolderMove,
    current_user: CurrentUser,
    db: DbSession,
) -> FolderResponse:
    """Move a folder under a new parent, or to the root when ``parent_id`` is null."""
    tree = _tree(db, current_user.id)
    folder = await tree.get(folder_id)
    await _ensure_unique_name(db, current_user.id, move_data.parent_id, folder.name, folder.id)

    await tree.move(folder, move_data.parent_id)
    await db.refresh(folder)
    return FolderResponse.model_validate(folder)


@router.delete("/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    folder_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    """Delete a folder and its subfolders. Images inside are kept, unfiled."""
    tree = _tree(db, current_user.id)
    folder = await tree.get(folder_id)
    await tree.delete(folder)


@router.get("/{folder_id}/images", response_model=list[ImageResponse])
async def list_folder_images(
    folder_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[ImageResponse]:
    await _tree(db, current_user.id).get(folder_id)
    result = await db.execute(
        select(Image)
        .where(Image.folder_id == folder_id, Image.user_id == current_user.id)
        .order_by(Image.created_at.desc())
    )
    return [image_to_response(image) for image in result.scalars().all()]
