from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class VideoResponse(BaseModel):
    id: UUID
    identifier: str
    filename: str
    content_type: str
    size: int
    kind: str
    project_id: UUID | None
    url: str = ""
    created_at: datetime

    class Config:
        from_attributes = True
