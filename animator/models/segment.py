import uuid

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from animator.models.base import Base, TimestampMixin, UUIDMixin


class Segment(Base, UUIDMixin, TimestampMixin):
    """A rendered animation segment.

    ``duration`` is the render duration (with transition padding);
    ``nominal_duration`` is the unpadded span shown on the timeline.
    """

    __tablename__ = "segments"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    start_frame: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)
    nominal_duration: Mapped[int] = mapped_column(Integer, nullable=False)

    draft_video_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("videos.id", ondelete="SET NULL"), nullable=True
    )
    upscale_video_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("videos.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="segments")  # noqa: F821
    images: Mapped[list["SegmentImage"]] = relationship(
        "SegmentImage",
        back_populates="segment",
        cascade="all, delete-orphan",
        order_by="SegmentImage.position",
        lazy="selectin",
    )
    draft_video: Mapped["Video | None"] = relationship(  # noqa: F821
        "Video", foreign_keys=[draft_video_id]
    )
    upscale_video: Mapped["Video | None"] = relationship(  # noqa: F821
        "Video", foreign_keys=[upscale_video_id]
    )

    @property
    def image_ids(self) -> list[str]:
        return [image.image_id for image in self.images]

    def __repr__(self) -> str:
        return f"<Segment {self.start_frame}+{self.duration}>"


class SegmentImage(Base, UUIDMixin):
    __tablename__ = "segment_images"

    segment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("segments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_id: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    segment: Mapped["Segment"] = relationship("Segment", back_populates="images")
