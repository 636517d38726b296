"""Beat/frame timing conversions.

Pure, stateless helpers shared by the segment scheduler, the pipeline driver
and the timeline. Inputs are trusted: bpm and frame rate are validated once
when an AnimationConfig is built, never here.

Usage:
    from animator.services.beat_math import beats_to_frames, frames_per_beat

    beats_to_frames(4, bpm=120, frame_rate=24)  # 48
    frames_per_beat(bpm=120, frame_rate=24)      # 12.0
"""

import math
from typing import Protocol


class _HasTempo(Protocol):
    bpm: float
    total_duration_seconds: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 going up (not banker's rounding)."""
    return math.floor(value + 0.5)


def seconds_per_beat(bpm: float) -> float:
    return 60.0 / bpm


def frames_per_beat(bpm: float, frame_rate: float) -> float:
    """Number of (fractional) frames in one beat."""
    return frame_rate * seconds_per_beat(bpm)


def beats_to_frames(beat: float, bpm: float, frame_rate: float) -> int:
    """Convert a beat position or length to a whole frame count."""
    return round_half_up(seconds_per_beat(bpm) * beat * frame_rate)


def frames_to_beats(frames: float, bpm: float, frame_rate: float) -> float:
    """Convert a frame position to a (fractional) beat position."""
    return frames / frames_per_beat(bpm, frame_rate)


def beats_to_seconds(beat: float, bpm: float) -> float:
    return beat * seconds_per_beat(bpm)


def seconds_to_frames(seconds: float, frame_rate: float) -> int:
    return round_half_up(seconds * frame_rate)


def frames_to_seconds(frames: float, frame_rate: float) -> float:
    return frames / frame_rate


def calculate_total_beats(config: _HasTempo) -> int:
    """Whole beats that fit in the configured duration (partial beat dropped)."""
    beats_per_second = config.bpm / 60.0
    return math.floor(beats_per_second * config.total_duration_seconds)


def format_beat_time(beat: float, bpm: float) -> str:
    """Format the wall-clock position of a beat as ``m:ss``."""
    total_seconds = beats_to_seconds(beat, bpm)
    minutes = math.floor(total_seconds / 60)
    seconds = math.floor(total_seconds - minutes * 60)
    return f"{minutes}:{seconds:02d}"
