import logging
from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy import select

from animator.api.access import get_accessible_project, get_project_segment
from animator.api.deps import CurrentUser, DbSession
from animator.models.segment import Segment, SegmentImage
from animator.schemas.segment import SegmentCreate, SegmentResponse, SegmentUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{project_id}/segments", response_model=list[SegmentResponse])
async def list_segments(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[SegmentResponse]:
    await get_accessible_project(project_id, current_user.id, db)
    result = await db.execute(
        select(Segment).where(Segment.project_id == project_id).order_by(Segment.start_frame)
    )
    return [SegmentResponse.model_validate(s) for s in result.scalars().all()]


@router.post(
    "/{project_id}/segments",
    response_model=SegmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_segment(
    project_id: UUID,
    segment_data: SegmentCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> SegmentResponse:
    await get_accessible_project(project_id, current_user.id, db)

    segment = Segment(
        project_id=project_id,
        start_frame=segment_data.start_frame,
        duration=segment_data.duration,
        nominal_duration=segment_data.nominal_duration or segment_data.duration,
        draft_video_id=segment_data.draft_video_id,
        upscale_video_id=segment_data.upscale_video_id,
        images=[
            SegmentImage(image_id=image_id, position=position)
            for position, image_id in enumerate(segment_data.image_ids)
        ],
    )
    db.add(segment)
    await db.flush()
    await db.refresh(segment)
    return SegmentResponse.model_validate(segment)


@router.get("/{project_id}/segments/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    project_id: UUID,
    segment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> SegmentResponse:
    await get_accessible_project(project_id, current_user.id, db)
    segment = await get_project_segment(project_id, segment_id, db)
    return SegmentResponse.model_validate(segment)


@router.patch("/{project_id}/segments/{segment_id}", response_model=SegmentResponse)
async def update_segment(
    project_id: UUID,
    segment_id: UUID,
    segment_data: SegmentUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> SegmentResponse:
    await get_accessible_project(project_id, current_user.id, db)
    segment = await get_project_segment(project_id, segment_id, db)

    updates = segment_data.model_dump(exclude_unset=True)
    image_ids = updates.pop("image_ids", None)
    for field, value in updates.items():
        setattr(segment, field, value)
    if image_ids is not None:
        # Replace the whole ordered list
        segment.images = [
            SegmentImage(image_id=image_id, position=position)
            for position, image_id in enumerate(image_ids)
        ]

    await db.flush()
    await db.refresh(segment)
    return SegmentResponse.model_validate(segment)


@router.delete("/{project_id}/segments/{segment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_segment(
    project_id: UUID,
    segment_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    await get_accessible_project(project_id, current_user.id, db)
    segment = await get_project_segment(project_id, segment_id, db)
    await db.delete(segment)
    logger.info(f"Deleted segment {segment_id}")
