"""Timeline geometry for interactive track editing.

Tracks are positioned in beats; the viewport maps beats to pixels through a
zoomable ``beat_width`` and a horizontal scroll offset. Dragging a track
changes its start beat live, but only ``pointer_up`` yields a position to
persist. Bounds against the project length are enforced at commit time with
``validate_track_bounds``.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum

from animator.exceptions import TrackOutOfBoundsError
from animator.services.beat_math import beats_to_frames, frames_per_beat, round_half_up

logger = logging.getLogger(__name__)

# Pixels of pointer movement before a press on a track becomes a drag
DRAG_THRESHOLD = 3

DEFAULT_BEAT_WIDTH = 30.0
MIN_BEAT_WIDTH = 5.0
MAX_BEAT_WIDTH = 100.0

ZOOM_OUT_FACTOR = 0.9
ZOOM_IN_FACTOR = 1.1


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


@dataclass
class TrackGeometry:
    id: str
    name: str
    start_beat: float
    duration_beats: float

    @property
    def end_beat(self) -> float:
        return self.start_beat + self.duration_beats


@dataclass(frozen=True)
class FrameBounds:
    """Frame span of a track; ``end_frame`` is inclusive."""

    start_frame: int
    end_frame: int


def track_frame_bounds(
    start_beat: float, duration_beats: float, bpm: float, frame_rate: float
) -> FrameBounds:
    per_beat = frames_per_beat(bpm, frame_rate)
    return FrameBounds(
        start_frame=beats_to_frames(start_beat, bpm, frame_rate),
        end_frame=round_half_up((start_beat + duration_beats) * per_beat - 1),
    )


def validate_track_bounds(
    start_beat: float,
    duration_beats: float,
    total_beats: int,
    track_id: str | None = None,
) -> None:
    """Reject a track position that leaves the project.

    Raises:
        TrackOutOfBoundsError: If the track starts before 0, has no length,
            or ends after ``total_beats``
    """
    if start_beat < 0 or duration_beats <= 0 or start_beat + duration_beats > total_beats:
        raise TrackOutOfBoundsError(
            start_beat=start_beat,
            duration_beats=duration_beats,
            total_beats=total_beats,
            track_id=track_id,
        )


class TimelineViewport:
    """Beat/pixel mapping with wheel zoom anchored at the pointer."""

    def __init__(
        self,
        beat_width: float = DEFAULT_BEAT_WIDTH,
        scroll_left: float = 0.0,
        min_beat_width: float = MIN_BEAT_WIDTH,
        max_beat_width: float = MAX_BEAT_WIDTH,
    ) -> None:
        self.min_beat_width = min_beat_width
        self.max_beat_width = max_beat_width
        self.beat_width = clamp(beat_width, min_beat_width, max_beat_width)
        self.scroll_left = max(0.0, scroll_left)

    def beat_to_pixel(self, beat: float) -> float:
        """Content-space x offset of ``beat``."""
        return beat * self.beat_width

    def pixel_to_beat(self, pixel: float) -> float:
        return pixel / self.beat_width

    def beat_at(self, pointer_x: float) -> float:
        """Beat under a pointer at ``pointer_x`` pixels from the viewport's left edge."""
        return (self.scroll_left + pointer_x) / self.beat_width

    @property
    def current_beat(self) -> int:
        """First whole beat visible at the left edge."""
        return math.floor(self.scroll_left / self.beat_width)

    def zoom(self, delta_y: float, pointer_x: float) -> float:
        """Apply one wheel step and keep the beat under the pointer in place.

        Positive ``delta_y`` zooms out. Returns the new beat width.
        """
        anchor_beat = self.beat_at(pointer_x)
        factor = ZOOM_OUT_FACTOR if delta_y > 0 else ZOOM_IN_FACTOR
        self.beat_width = clamp(
            self.beat_width * factor, self.min_beat_width, self.max_beat_width
        )
        # Can't scroll past the start, so the anchor drifts near beat 0
        self.scroll_left = max(0.0, anchor_beat * self.beat_width - pointer_x)
        return self.beat_width

    def content_width(self, total_beats: int) -> float:
        return total_beats * self.beat_width


class GestureKind(str, Enum):
    NONE = "none"
    TRACK_DRAG = "track_drag"
    TIMELINE_PAN = "timeline_pan"


@dataclass(frozen=True)
class TrackPositionCommit:
    """Final position of a dragged track, ready to persist."""

    track_id: str
    start_beat: float
    duration_beats: float
    bounds: FrameBounds
    moved: bool


class TimelineInteraction:
    """Pointer gesture handling for track drags and timeline panning.

    At most one gesture is active. A press on a track starts a track drag
    and suppresses panning until release.
    """

    def __init__(
        self,
        viewport: TimelineViewport,
        tracks: list[TrackGeometry],
        *,
        total_beats: int,
        bpm: float,
        frame_rate: float = 24,
        drag_threshold: float = DRAG_THRESHOLD,
    ) -> None:
        self.viewport = viewport
        self.tracks = {track.id: track for track in tracks}
        self.total_beats = total_beats
        self.bpm = bpm
        self.frame_rate = frame_rate
        self.drag_threshold = drag_threshold

        self.gesture = GestureKind.NONE
        self.selected_track_id: str | None = None
        self._dragging_track_id: str | None = None
        self._drag_start_x = 0.0
        self._drag_start_beat = 0.0
        self._threshold_exceeded = False
        self._pan_start_x = 0.0
        self._pan_start_scroll = 0.0
        self._live_bounds: dict[str, FrameBounds] = {}

    @property
    def threshold_exceeded(self) -> bool:
        return self._threshold_exceeded

    def live_bounds(self, track_id: str) -> FrameBounds:
        """Frame span for display, following the drag while one is active."""
        bounds = self._live_bounds.get(track_id)
        if bounds is not None:
            return bounds
        track = self.tracks[track_id]
        return track_frame_bounds(track.start_beat, track.duration_beats, self.bpm, self.frame_rate)

    def pointer_down_on_track(self, track_id: str, pointer_x: float) -> None:
        if track_id not in self.tracks:
            raise KeyError(track_id)
        self.gesture = GestureKind.TRACK_DRAG
        self.selected_track_id = track_id
        self._dragging_track_id = track_id
        self._drag_start_x = pointer_x
        self._drag_start_beat = self.tracks[track_id].start_beat
        self._threshold_exceeded = False

    def pointer_down_on_timeline(self, pointer_x: float) -> bool:
        """Start panning. Returns False when a track drag already owns the gesture."""
        if self.gesture is GestureKind.TRACK_DRAG:
            return False
        self.gesture = GestureKind.TIMELINE_PAN
        self._pan_start_x = pointer_x
        self._pan_start_scroll = self.viewport.scroll_left
        return True

    def pointer_move(self, pointer_x: float) -> None:
        if self.gesture is GestureKind.TRACK_DRAG:
            self._move_track(pointer_x)
        elif self.gesture is GestureKind.TIMELINE_PAN:
            delta = self._pan_start_x - pointer_x
            self.viewport.scroll_left = max(0.0, self._pan_start_scroll + delta)

    def pointer_up(self) -> TrackPositionCommit | None:
        """End the gesture. A track drag yields the position to persist."""
        commit = None
        if self.gesture is GestureKind.TRACK_DRAG and self._dragging_track_id is not None:
            track = self.tracks[self._dragging_track_id]
            commit = TrackPositionCommit(
                track_id=track.id,
                start_beat=track.start_beat,
                duration_beats=track.duration_beats,
                bounds=self.live_bounds(track.id),
                moved=track.start_beat != self._drag_start_beat,
            )
            logger.debug(f"Track {track.id} released at beat {track.start_beat}")

        self.gesture = GestureKind.NONE
        self._dragging_track_id = None
        self._threshold_exceeded = False
        self._live_bounds.clear()
        return commit

    def _move_track(self, pointer_x: float) -> None:
        delta_x = pointer_x - self._drag_start_x
        if not self._threshold_exceeded:
            if abs(delta_x) <= self.drag_threshold:
                return
            self._threshold_exceeded = True

        track = self.tracks[self._dragging_track_id]
        beat_delta = round_half_up(delta_x / self.viewport.beat_width)
        upper = max(0.0, self.total_beats - track.duration_beats)
        track.start_beat = clamp(self._drag_start_beat + beat_delta, 0.0, upper)
        self._live_bounds[track.id] = track_frame_bounds(
            track.start_beat, track.duration_beats, self.bpm, self.frame_rate
        )
