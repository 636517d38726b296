from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

OrientationType = Literal["portrait", "landscape"]


def _validate_beat_interval(value: int | None) -> int | None:
    if value is not None and value not in (4, 8):
        raise ValueError(f"beat_interval must be 4 or 8 (got {value})")
    return value


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    bpm: float = Field(default=120.0, gt=0, le=400)
    orientation: OrientationType = "portrait"
    total_duration_seconds: float = Field(default=60.0, gt=0, le=3600)
    beat_interval: int = 4
    frame_rate: int = Field(default=24, ge=1, le=120)

    @field_validator("beat_interval")
    @classmethod
    def validate_beat_interval(cls, v: int) -> int:
        return _validate_beat_interval(v)


class ProjectUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    bpm: float | None = Field(None, gt=0, le=400)
    orientation: OrientationType | None = None
    total_duration_seconds: float | None = Field(None, gt=0, le=3600)
    beat_interval: int | None = None
    frame_rate: int | None = Field(None, ge=1, le=120)

    @field_validator("beat_interval")
    @classmethod
    def validate_beat_interval(cls, v: int | None) -> int | None:
        return _validate_beat_interval(v)


class ProjectResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    description: str | None
    bpm: float
    orientation: str
    total_duration_seconds: float
    beat_interval: int
    frame_rate: int
    total_beats: int = 0
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectListResponse(BaseModel):
    id: UUID
    name: str
    description: str | None
    bpm: float
    orientation: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
