import uuid
from enum import Enum

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from animator.models.base import Base, TimestampMixin, UUIDMixin


class VideoKind(str, Enum):
    DRAFT = "draft"
    UPSCALE = "upscale"
    UPLOAD = "upload"


class Video(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "videos"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )

    identifier: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)

    # draft | upscale | upload
    kind: Mapped[str] = mapped_column(String(20), default=VideoKind.UPLOAD.value, nullable=False)

    def __repr__(self) -> str:
        return f"<Video {self.identifier} ({self.kind})>"
