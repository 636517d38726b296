"""Tests for the beat-synchronized segment scheduler."""

from unittest.mock import AsyncMock

import pytest

from animator.exceptions import InvalidAnimationConfigError
from animator.services.image_pool import ImagePoolAllocator, ImageRef, StaticImageSource
from animator.services.scheduler import (
    AnimationConfig,
    Orientation,
    create_animation_segments,
    create_one_shot_animation,
    generate_beat_markers,
    generate_frame_markers,
)


def make_config(**overrides) -> AnimationConfig:
    values = {
        "bpm": 120,
        "orientation": "portrait",
        "total_duration_seconds": 10,
        "beat_interval": 4,
    }
    values.update(overrides)
    return AnimationConfig(**values)


class TestAnimationConfig:
    """Construction-time validation."""

    def test_orientation_is_coerced(self):
        config = make_config(orientation="landscape")
        assert config.orientation is Orientation.LANDSCAPE

    def test_images_per_segment_follows_interval(self):
        assert make_config(beat_interval=8).images_per_segment == 8

    @pytest.mark.parametrize(
        "field,value",
        [
            ("bpm", 0),
            ("bpm", -10),
            ("total_duration_seconds", 0),
            ("beat_interval", 3),
            ("beat_interval", 16),
            ("orientation", "square"),
            ("frame_rate", 0),
        ],
    )
    def test_invalid_values_raise(self, field, value):
        with pytest.raises(InvalidAnimationConfigError) as exc_info:
            make_config(**{field: value})
        assert exc_info.value.location.field == field


class TestMarkers:
    def test_beat_markers(self):
        assert generate_beat_markers(make_config(), 20) == [0, 4, 8, 12, 16]

    def test_beat_markers_exclude_total(self):
        assert generate_beat_markers(make_config(beat_interval=8), 16) == [0, 8]

    def test_frame_markers(self):
        assert generate_frame_markers(make_config(), 20) == [0, 48, 96, 144, 192]


class TestCreateAnimationSegments:
    def test_durations_and_padding(self, image_refs):
        segments = create_animation_segments([0, 48, 96], image_refs, 4, 120, 24)

        assert [s.start_frame for s in segments] == [0, 48, 96]
        assert [s.nominal_duration_in_frames for s in segments] == [48, 48, 48]
        # One beat of transition padding at 120 bpm / 24 fps
        assert [s.duration_in_frames for s in segments] == [60, 60, 60]

    def test_last_segment_uses_four_beats(self, image_refs):
        segments = create_animation_segments([0, 96], image_refs, 8, 120, 24)
        assert segments[0].nominal_duration_in_frames == 96
        assert segments[-1].nominal_duration_in_frames == 48

    def test_adjacent_segments_overlap(self, image_refs):
        segments = create_animation_segments([0, 48, 96, 144], image_refs, 2, 120, 24)
        for current, following in zip(segments, segments[1:]):
            assert current.end_frame > following.start_frame
            assert current.start_frame + current.nominal_duration_in_frames == following.start_frame

    def test_images_sliced_positionally(self, image_refs):
        segments = create_animation_segments([0, 48, 96], image_refs, 4, 120, 24)
        assert [i.id for i in segments[0].images] == ["img0", "img1", "img2", "img3"]
        assert [i.id for i in segments[1].images] == ["img4", "img5", "img6", "img7"]
        # Pool ran out after 10 images
        assert [i.id for i in segments[2].images] == ["img8", "img9"]

    def test_is_pure(self, image_refs):
        first = create_animation_segments([0, 48], image_refs, 4, 120, 24)
        second = create_animation_segments([0, 48], image_refs, 4, 120, 24)
        assert first == second


class TestCreateOneShotAnimation:
    @pytest.mark.asyncio
    async def test_ten_seconds_at_120_bpm(self, image_refs):
        """20 beats at interval 4 give five segments and one request for 20 images."""
        source = StaticImageSource(image_refs, seed=7)
        source.get_random_images = AsyncMock(wraps=source.get_random_images)

        animation = await create_one_shot_animation(make_config(), ImagePoolAllocator(source))

        source.get_random_images.assert_awaited_once_with(20, 2)
        assert len(animation.segments) == 5
        assert [s.start_frame for s in animation.segments] == [0, 48, 96, 144, 192]
        assert all(len(s.images) == 4 for s in animation.segments)

    @pytest.mark.asyncio
    async def test_pool_repeats_every_second_image(self, image_refs):
        source = StaticImageSource(image_refs, seed=1)
        animation = await create_one_shot_animation(make_config(), ImagePoolAllocator(source))

        first = animation.segments[0].images
        assert first[0] == first[1]
        assert first[2] == first[3]
        assert first[1] != first[2]

    @pytest.mark.asyncio
    async def test_shorter_than_one_interval_is_empty(self):
        source = AsyncMock()
        config = make_config(total_duration_seconds=1)

        animation = await create_one_shot_animation(config, ImagePoolAllocator(source))

        assert animation.is_empty
        source.get_random_images.assert_not_called()

    @pytest.mark.asyncio
    async def test_short_pool_leaves_trailing_segments_empty(self):
        images = [ImageRef(id=f"img{i}", url="") for i in range(3)]
        source = AsyncMock()
        source.get_random_images.return_value = images

        animation = await create_one_shot_animation(make_config(), ImagePoolAllocator(source))

        assert len(animation.segments) == 5
        assert len(animation.segments[0].images) == 3
        assert animation.segments[1].images == ()
