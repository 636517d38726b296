from uuid import UUID

from pydantic import BaseModel, Field

from animator.schemas.project import OrientationType


class ScheduleRequest(BaseModel):
    """Overrides for the project's animation settings. Unset fields use the project's."""

    bpm: float | None = Field(None, gt=0, le=400)
    orientation: OrientationType | None = None
    total_duration_seconds: float | None = Field(None, gt=0, le=3600)
    beat_interval: int | None = None
    shortfall_policy: str = Field(default="truncate", pattern="^(truncate|repeat|fail)$")


class ScheduledImage(BaseModel):
    id: str
    url: str


class ScheduledSegment(BaseModel):
    index: int
    start_frame: int
    duration_in_frames: int
    nominal_duration_in_frames: int
    images: list[ScheduledImage]


class ScheduleResponse(BaseModel):
    project_id: UUID
    bpm: float
    orientation: str
    total_duration_seconds: float
    beat_interval: int
    frame_rate: float
    total_beats: int
    images_requested: int
    segments: list[ScheduledSegment]


class RenderStartResponse(BaseModel):
    project_id: UUID
    channel: str
    segment_count: int
    status: str


class UpscaleStartResponse(BaseModel):
    segment_id: UUID
    channel: str
    status: str


class WorkflowStatusResponse(BaseModel):
    channel: str
    status: str
    progress: int
    message: str
