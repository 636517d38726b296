from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class FolderCreate(BaseModel):
    """Request model for creating a folder."""

    name: str = Field(..., min_length=1, max_length=255)
    parent_id: UUID | None = None


class FolderUpdate(BaseModel):
    """Request model for renaming a folder."""

    name: str = Field(..., min_length=1, max_length=255)


class FolderMove(BaseModel):
    parent_id: UUID | None = None


class FolderResponse(BaseModel):
    """Response model for folder data."""

    id: UUID
    parent_id: UUID | None
    name: str
    depth: int
    created_at: datetime

    class Config:
        from_attributes = True
