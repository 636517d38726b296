import logging
from uuid import UUID

from fastapi import APIRouter, status
from fastapi.responses import Response
from sqlalchemy import select

from animator.api.access import get_user_video
from animator.api.deps import CurrentUser, DbSession
from animator.api.storage import stored_file_response
from animator.config import get_settings
from animator.models.segment import Segment
from animator.models.video import Video
from animator.schemas.video import VideoResponse
from animator.services.storage_service import get_storage_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(video: Video) -> VideoResponse:
    response = VideoResponse.model_validate(video)
    response.url = f"{get_settings().public_base_url.rstrip('/')}/api/videos/{video.identifier}/file"
    return response


@router.get("", response_model=list[VideoResponse])
async def list_videos(
    current_user: CurrentUser,
    db: DbSession,
    project_id: UUID | None = None,
    kind: str | None = None,
) -> list[VideoResponse]:
    query = select(Video).where(Video.user_id == current_user.id)
    if project_id is not None:
        query = query.where(Video.project_id == project_id)
    if kind is not None:
        query = query.where(Video.kind == kind)
    result = await db.execute(query.order_by(Video.created_at.desc()))
    return [_to_response(video) for video in result.scalars().all()]


@router.get("/{identifier}", response_model=VideoResponse)
async def get_video(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> VideoResponse:
    video = await get_user_video(identifier, current_user.id, db)
    return _to_response(video)


@router.get("/{identifier}/file")
async def get_video_file(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> Response:
    video = await get_user_video(identifier, current_user.id, db)
    return await stored_file_response(video.storage_key, video.content_type, video.filename)


@router.delete("/{identifier}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_video(
    identifier: str,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    """Delete a video. Segments pointing at it keep their row with the link cleared."""
    video = await get_user_video(identifier, current_user.id, db)

    result = await db.execute(
        select(Segment).where(
            (Segment.draft_video_id == video.id) | (Segment.upscale_video_id == video.id)
        )
    )
    for segment in result.scalars().all():
        if segment.draft_video_id == video.id:
            segment.draft_video_id = None
        if segment.upscale_video_id == video.id:
            segment.upscale_video_id = None

    storage_key = video.storage_key
    await db.delete(video)
    await db.flush()

    try:
        get_storage_service().delete_file(storage_key)
    except Exception as e:
        logger.warning(f"Failed to delete video file {storage_key}: {e}")
