"""Beat-synchronized segment scheduler.

Turns an AnimationConfig into a OneShotAnimation: beat-aligned frame markers
across the configured duration, one segment per marker, each with a slice of
a single image pool requested up front.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum

from animator.exceptions import InvalidAnimationConfigError
from animator.services.beat_math import beats_to_frames, calculate_total_beats
from animator.services.image_pool import ImagePoolAllocator, ImageRef, partition

logger = logging.getLogger(__name__)

# Every 2nd image in the pool repeats the one before it.
DUPLICATE_EVERY_NTH = 2

# Length of the final segment, which has no following marker to measure against.
LAST_SEGMENT_BEATS = 4

# Extra beat appended to every segment so adjacent clips can cross-fade.
TRANSITION_PADDING_BEATS = 1

VALID_BEAT_INTERVALS = (4, 8)


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


@dataclass(frozen=True)
class AnimationConfig:
    """Parameters a schedule is built from. Validated on construction."""

    bpm: float
    orientation: Orientation
    total_duration_seconds: float
    beat_interval: int
    frame_rate: float = 24

    def __post_init__(self) -> None:
        if not self.bpm or self.bpm <= 0:
            raise InvalidAnimationConfigError(field="bpm", value=self.bpm)
        if not self.total_duration_seconds or self.total_duration_seconds <= 0:
            raise InvalidAnimationConfigError(
                field="total_duration_seconds", value=self.total_duration_seconds
            )
        if self.beat_interval not in VALID_BEAT_INTERVALS:
            raise InvalidAnimationConfigError(field="beat_interval", value=self.beat_interval)
        if not self.frame_rate or self.frame_rate <= 0:
            raise InvalidAnimationConfigError(field="frame_rate", value=self.frame_rate)
        try:
            orientation = Orientation(self.orientation)
        except ValueError:
            raise InvalidAnimationConfigError(
                field="orientation", value=self.orientation
            ) from None
        object.__setattr__(self, "orientation", orientation)

    @property
    def images_per_segment(self) -> int:
        return self.beat_interval


@dataclass(frozen=True)
class AnimationSegment:
    """One beat-aligned render job.

    ``duration_in_frames`` is the render duration and includes one beat of
    transition padding. ``nominal_duration_in_frames`` is the unpadded span up
    to the next marker, which is what the timeline displays.
    """

    index: int
    start_frame: int
    duration_in_frames: int
    nominal_duration_in_frames: int
    images: tuple[ImageRef, ...] = ()

    @property
    def end_frame(self) -> int:
        return self.start_frame + self.duration_in_frames


@dataclass(frozen=True)
class OneShotAnimation:
    config: AnimationConfig
    segments: tuple[AnimationSegment, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        return not self.segments


def generate_beat_markers(config: AnimationConfig, total_beats: int) -> list[int]:
    """Beats ``0, interval, 2*interval, ...`` strictly below ``total_beats``."""
    return list(range(0, total_beats, config.beat_interval))


def generate_frame_markers(config: AnimationConfig, total_beats: int) -> list[int]:
    return [
        beats_to_frames(beat, config.bpm, config.frame_rate)
        for beat in generate_beat_markers(config, total_beats)
    ]


def create_animation_segments(
    frame_markers: list[int],
    image_pool: list[ImageRef],
    images_per_segment: int,
    bpm: float,
    frame_rate: float,
) -> list[AnimationSegment]:
    """Build segments from frame markers and a flat image pool.

    Pure: the same markers and pool always give the same segments.

    Args:
        frame_markers: Ordered segment start frames
        image_pool: Flat pool, sliced positionally per segment
        images_per_segment: Slice width
        bpm: Tempo used for the last-segment length and the padding
        frame_rate: Reference frame rate

    Returns:
        Segments in marker order
    """
    last_duration = beats_to_frames(LAST_SEGMENT_BEATS, bpm, frame_rate)
    padding = beats_to_frames(TRANSITION_PADDING_BEATS, bpm, frame_rate)

    segments = []
    for i, start_frame in enumerate(frame_markers):
        if i < len(frame_markers) - 1:
            nominal = frame_markers[i + 1] - start_frame
        else:
            nominal = last_duration
        segments.append(
            AnimationSegment(
                index=i,
                start_frame=start_frame,
                duration_in_frames=nominal + padding,
                nominal_duration_in_frames=nominal,
                images=tuple(partition(image_pool, i, images_per_segment)),
            )
        )
    return segments


async def create_one_shot_animation(
    config: AnimationConfig, allocator: ImagePoolAllocator
) -> OneShotAnimation:
    """Schedule a complete animation for ``config``.

    The image source is called once, with ``len(markers) * beat_interval``
    images. A duration shorter than one beat interval schedules nothing and
    never touches the image source.
    """
    total_beats = calculate_total_beats(config)
    if total_beats < config.beat_interval:
        logger.info(
            f"Duration {config.total_duration_seconds}s at {config.bpm} bpm gives "
            f"{total_beats} beats, fewer than one interval of {config.beat_interval}"
        )
        return OneShotAnimation(config=config)

    frame_markers = generate_frame_markers(config, total_beats)
    image_pool = await allocator.allocate(
        len(frame_markers), config.images_per_segment, DUPLICATE_EVERY_NTH
    )
    segments = create_animation_segments(
        frame_markers,
        image_pool,
        config.images_per_segment,
        config.bpm,
        config.frame_rate,
    )

    logger.info(
        f"Scheduled {len(segments)} segments over {total_beats} beats "
        f"({config.bpm} bpm, interval {config.beat_interval})"
    )
    return OneShotAnimation(config=config, segments=tuple(segments))
