from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class ImageResponse(BaseModel):
    id: UUID
    identifier: str
    filename: str
    content_type: str
    size: int
    width: int | None
    height: int | None
    folder_id: UUID | None
    url: str = ""
    created_at: datetime

    class Config:
        from_attributes = True


class ImageMoveToFolder(BaseModel):
    folder_id: UUID | None = None
