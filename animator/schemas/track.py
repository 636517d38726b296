from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class TrackCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    start_beat: float = Field(default=0.0, ge=0)
    duration_beats: float | None = Field(None, gt=0)


class TrackUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    duration_beats: float | None = Field(None, gt=0)


class TrackPositionUpdate(BaseModel):
    """Committed result of a drag on the timeline."""

    start_beat: float = Field(..., ge=0)


class TrackImageSlotUpdate(BaseModel):
    slot: int = Field(..., ge=1, le=10)
    image_id: str | None = None


class TrackResponse(BaseModel):
    id: UUID
    project_id: UUID
    name: str
    start_beat: float
    duration_beats: float
    image_slots: list[str | None]
    start_frame: int = 0
    end_frame: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
