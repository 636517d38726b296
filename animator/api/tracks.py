import logging
from uuid import UUID

from fastapi import APIRouter, status
from sqlalchemy import select

from animator.api.access import get_accessible_project, get_project_track, get_user_image
from animator.api.deps import CurrentUser, DbSession
from animator.config import get_settings
from animator.models.project import Project
from animator.models.track import Track
from animator.schemas.track import (
    TrackCreate,
    TrackImageSlotUpdate,
    TrackPositionUpdate,
    TrackResponse,
    TrackUpdate,
)
from animator.services.beat_math import calculate_total_beats
from animator.services.timeline import track_frame_bounds, validate_track_bounds

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(track: Track, project: Project) -> TrackResponse:
    response = TrackResponse.model_validate(track)
    bounds = track_frame_bounds(
        track.start_beat, track.duration_beats, project.bpm, project.frame_rate
    )
    response.start_frame = bounds.start_frame
    response.end_frame = bounds.end_frame
    return response


@router.get("/{project_id}/tracks", response_model=list[TrackResponse])
async def list_tracks(
    project_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> list[TrackResponse]:
    project = await get_accessible_project(project_id, current_user.id, db)
    result = await db.execute(
        select(Track).where(Track.project_id == project_id).order_by(Track.start_beat)
    )
    return [_to_response(t, project) for t in result.scalars().all()]


@router.post(
    "/{project_id}/tracks",
    response_model=TrackResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_track(
    project_id: UUID,
    track_data: TrackCreate,
    current_user: CurrentUser,
    db: DbSession,
) -> TrackResponse:
    project = await get_accessible_project(project_id, current_user.id, db)
    total_beats = calculate_total_beats(project)
    duration = track_data.duration_beats or min(
        get_settings().default_track_duration_beats, total_beats
    )
    validate_track_bounds(track_data.start_beat, duration, total_beats)

    track = Track(
        project_id=project_id,
        name=track_data.name,
        start_beat=track_data.start_beat,
        duration_beats=duration,
    )
    db.add(track)
    await db.flush()
    await db.refresh(track)
    return _to_response(track, project)


@router.get("/{project_id}/tracks/{track_id}", response_model=TrackResponse)
async def get_track(
    project_id: UUID,
    track_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> TrackResponse:
    project = await get_accessible_project(project_id, current_user.id, db)
    track = await get_project_track(project_id, track_id, db)
    return _to_response(track, project)


@router.patch("/{project_id}/tracks/{track_id}", response_model=TrackResponse)
async def update_track(
    project_id: UUID,
    track_id: UUID,
    track_data: TrackUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> TrackResponse:
    project = await get_accessible_project(project_id, current_user.id, db)
    track = await get_project_track(project_id, track_id, db)

    updates = track_data.model_dump(exclude_unset=True)
    if "duration_beats" in updates:
        validate_track_bounds(
            track.start_beat, updates["duration_beats"], calculate_total_beats(project), str(track.id)
        )
    for field, value in updates.items():
        setattr(track, field, value)

    await db.flush()
    await db.refresh(track)
    return _to_response(track, project)


@router.patch("/{project_id}/tracks/{track_id}/position", response_model=TrackResponse)
async def commit_track_position(
    project_id: UUID,
    track_id: UUID,
    position: TrackPositionUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> TrackResponse:
    """Persist the start beat a timeline drag ended on."""
    project = await get_accessible_project(project_id, current_user.id, db)
    track = await get_project_track(project_id, track_id, db)

    validate_track_bounds(
        position.start_beat, track.duration_beats, calculate_total_beats(project), str(track.id)
    )
    track.start_beat = position.start_beat

    await db.flush()
    await db.refresh(track)
    logger.info(f"Track {track_id} moved to beat {position.start_beat}")
    return _to_response(track, project)


@router.put("/{project_id}/tracks/{track_id}/images", response_model=TrackResponse)
async def set_track_image(
    project_id: UUID,
    track_id: UUID,
    slot_data: TrackImageSlotUpdate,
    current_user: CurrentUser,
    db: DbSession,
) -> TrackResponse:
    project = await get_accessible_project(project_id, current_user.id, db)
    track = await get_project_track(project_id, track_id, db)
    if slot_data.image_id is not None:
        await get_user_image(slot_data.image_id, current_user.id, db)

    track.set_image_slot(slot_data.slot, slot_data.image_id)

    await db.flush()
    await db.refresh(track)
    return _to_response(track, project)


@router.delete("/{project_id}/tracks/{track_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_track(
    project_id: UUID,
    track_id: UUID,
    current_user: CurrentUser,
    db: DbSession,
) -> None:
    await get_accessible_project(project_id, current_user.id, db)
    track = await get_project_track(project_id, track_id, db)
    await db.delete(track)
