from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class SegmentCreate(BaseModel):
    start_frame: int = Field(..., ge=0)
    duration: int = Field(..., gt=0)
    nominal_duration: int | None = Field(None, gt=0)
    image_ids: list[str] = Field(default_factory=list)
    draft_video_id: UUID | None = None
    upscale_video_id: UUID | None = None


class SegmentUpdate(BaseModel):
    start_frame: int | None = Field(None, ge=0)
    duration: int | None = Field(None, gt=0)
    nominal_duration: int | None = Field(None, gt=0)
    image_ids: list[str] | None = None
    draft_video_id: UUID | None = None
    upscale_video_id: UUID | None = None


class SegmentResponse(BaseModel):
    id: UUID
    project_id: UUID
    start_frame: int
    duration: int
    nominal_duration: int
    image_ids: list[str]
    draft_video_id: UUID | None
    upscale_video_id: UUID | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
