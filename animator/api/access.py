"""Ownership checks for user-scoped records."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from animator.exceptions import (
    ImageNotFoundError,
    ProjectNotFoundError,
    SegmentNotFoundError,
    TrackNotFoundError,
    VideoNotFoundError,
)
from animator.models.image import Image
from animator.models.project import Project
from animator.models.segment import Segment
from animator.models.track import Track
from animator.models.video import Video


async def get_accessible_project(project_id: UUID, user_id: UUID, db: AsyncSession) -> Project:
    """Get a project owned by the user.

    Raises:
        ProjectNotFoundError: If the project does not exist or belongs to someone else
    """
    result = await db.execute(
        select(Project).where(Project.id == project_id, Project.user_id == user_id)
    )
    project = result.scalar_one_or_none()
    if project is None:
        raise ProjectNotFoundError(str(project_id))
    return project


async def get_project_track(project_id: UUID, track_id: UUID, db: AsyncSession) -> Track:
    result = await db.execute(
        select(Track).where(Track.id == track_id, Track.project_id == project_id)
    )
    track = result.scalar_one_or_none()
    if track is None:
        raise TrackNotFoundError(str(track_id))
    return track


async def get_project_segment(project_id: UUID, segment_id: UUID, db: AsyncSession) -> Segment:
    result = await db.execute(
        select(Segment).where(Segment.id == segment_id, Segment.project_id == project_id)
    )
    segment = result.scalar_one_or_none()
    if segment is None:
        raise SegmentNotFoundError(str(segment_id))
    return segment


async def get_user_image(identifier: str, user_id: UUID, db: AsyncSession) -> Image:
    result = await db.execute(
        select(Image).where(Image.identifier == identifier, Image.user_id == user_id)
    )
    image = result.scalar_one_or_none()
    if image is None:
        raise ImageNotFoundError(identifier)
    return image


async def get_user_video(identifier: str, user_id: UUID, db: AsyncSession) -> Video:
    result = await db.execute(
        select(Video).where(Video.identifier == identifier, Video.user_id == user_id)
    )
    video = result.scalar_one_or_none()
    if video is None:
        raise VideoNotFoundError(identifier)
    return video
