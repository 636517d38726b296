import uuid

from sqlalchemy import Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from animator.models.base import Base, TimestampMixin, UUIDMixin


class Project(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "projects"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Animation settings
    bpm: Mapped[float] = mapped_column(Float, default=120.0, nullable=False)
    orientation: Mapped[str] = mapped_column(String(20), default="portrait", nullable=False)
    total_duration_seconds: Mapped[float] = mapped_column(Float, default=60.0, nullable=False)
    beat_interval: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    frame_rate: Mapped[int] = mapped_column(Integer, default=24, nullable=False)

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="projects")  # noqa: F821
    tracks: Mapped[list["Track"]] = relationship(  # noqa: F821
        "Track", back_populates="project", cascade="all, delete-orphan", order_by="Track.start_beat"
    )
    segments: Mapped[list["Segment"]] = relationship(  # noqa: F821
        "Segment",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Segment.start_frame",
    )

    def __repr__(self) -> str:
        return f"<Project {self.name} ({self.bpm} bpm)>"
