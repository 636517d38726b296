import uuid

from sqlalchemy import Float, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from animator.models.base import Base, TimestampMixin, UUIDMixin

IMAGE_SLOT_COUNT = 10


class Track(Base, UUIDMixin, TimestampMixin):
    """A block on the project timeline, positioned in beats."""

    __tablename__ = "tracks"

    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    start_beat: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    duration_beats: Mapped[float] = mapped_column(Float, default=16.0, nullable=False)

    # Image slots hold image identifiers
    image1_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image2_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image3_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image4_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image5_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image6_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image7_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image8_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image9_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    image10_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="tracks")  # noqa: F821

    @property
    def image_slots(self) -> list[str | None]:
        return [getattr(self, f"image{i}_id") for i in range(1, IMAGE_SLOT_COUNT + 1)]

    def set_image_slot(self, slot: int, identifier: str | None) -> None:
        """Assign an image to a 1-based slot."""
        if not 1 <= slot <= IMAGE_SLOT_COUNT:
            raise ValueError(f"Image slot must be between 1 and {IMAGE_SLOT_COUNT}, got {slot}")
        setattr(self, f"image{slot}_id", identifier)

    def __repr__(self) -> str:
        return f"<Track {self.name} @{self.start_beat}+{self.duration_beats}>"
