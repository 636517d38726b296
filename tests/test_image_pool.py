"""Tests for image pool allocation."""

import logging
from unittest.mock import AsyncMock

import httpx
import pytest

from animator.exceptions import ImagePoolShortfallError
from animator.services.image_pool import (
    HttpImageSource,
    ImagePoolAllocator,
    ImageRef,
    ShortfallPolicy,
    StaticImageSource,
    apply_duplication,
    partition,
    unique_images_needed,
)


def refs(count: int) -> list[ImageRef]:
    return [ImageRef(id=f"img{i}", url=f"http://test/{i}") for i in range(count)]


def source_returning(images: list[ImageRef]) -> AsyncMock:
    source = AsyncMock()
    source.get_random_images.return_value = images
    return source


class TestDuplication:
    def test_unique_images_needed(self):
        assert unique_images_needed(20, 2) == 10
        assert unique_images_needed(5, 2) == 3
        assert unique_images_needed(9, 3) == 6
        assert unique_images_needed(7, None) == 7

    def test_every_second_slot_repeats(self):
        pool = apply_duplication(refs(3), 5, 2)
        assert [i.id for i in pool] == ["img0", "img0", "img1", "img1", "img2"]

    def test_every_third_slot_repeats(self):
        pool = apply_duplication(refs(4), 6, 3)
        assert [i.id for i in pool] == ["img0", "img1", "img1", "img2", "img3", "img3"]

    def test_stops_when_unique_images_run_out(self):
        pool = apply_duplication(refs(2), 8, 2)
        assert [i.id for i in pool] == ["img0", "img0", "img1", "img1"]

    def test_no_hint_takes_images_in_order(self):
        assert apply_duplication(refs(5), 3, None) == refs(3)


class TestPartition:
    def test_half_open_slices(self):
        pool = refs(10)
        assert partition(pool, 0, 4) == pool[0:4]
        assert partition(pool, 1, 4) == pool[4:8]
        assert partition(pool, 2, 4) == pool[8:10]
        assert partition(pool, 3, 4) == []


class TestImagePoolAllocator:
    @pytest.mark.asyncio
    async def test_requests_whole_pool_once(self):
        source = source_returning(refs(20))
        pool = await ImagePoolAllocator(source).allocate(5, 4, 2)

        source.get_random_images.assert_awaited_once_with(20, 2)
        assert len(pool) == 20

    @pytest.mark.asyncio
    async def test_excess_is_trimmed(self):
        pool = await ImagePoolAllocator(source_returning(refs(25))).allocate(5, 4)
        assert len(pool) == 20

    @pytest.mark.asyncio
    async def test_nothing_requested(self):
        source = source_returning(refs(4))
        assert await ImagePoolAllocator(source).allocate(0, 4) == []
        source.get_random_images.assert_not_called()

    @pytest.mark.asyncio
    async def test_shortfall_truncates_by_default(self, caplog):
        with caplog.at_level(logging.WARNING):
            pool = await ImagePoolAllocator(source_returning(refs(15))).allocate(5, 4)

        assert len(pool) == 15
        assert "15 of 20" in caplog.text

    @pytest.mark.asyncio
    async def test_shortfall_fail_policy(self):
        allocator = ImagePoolAllocator(source_returning(refs(3)), ShortfallPolicy.FAIL)
        with pytest.raises(ImagePoolShortfallError, match="Requested 8 images"):
            await allocator.allocate(2, 4)

    @pytest.mark.asyncio
    async def test_shortfall_repeat_policy(self):
        allocator = ImagePoolAllocator(source_returning(refs(3)), ShortfallPolicy.REPEAT)
        pool = await allocator.allocate(2, 4)
        assert [i.id for i in pool] == ["img0", "img1", "img2", "img0", "img1", "img2", "img0", "img1"]

    @pytest.mark.asyncio
    async def test_repeat_with_empty_source(self):
        allocator = ImagePoolAllocator(source_returning([]), ShortfallPolicy.REPEAT)
        assert await allocator.allocate(2, 4) == []


class TestStaticImageSource:
    @pytest.mark.asyncio
    async def test_same_seed_same_order(self):
        first = await StaticImageSource(refs(10), seed=3).get_random_images(6)
        second = await StaticImageSource(refs(10), seed=3).get_random_images(6)
        assert first == second

    @pytest.mark.asyncio
    async def test_applies_duplication_hint(self):
        pool = await StaticImageSource(refs(10), seed=3).get_random_images(8, 2)
        assert len(pool) == 8
        assert len({i.id for i in pool}) == 4


class TestHttpImageSource:
    """Remote source calling the API's random image endpoint."""

    @pytest.mark.asyncio
    async def test_sends_count_hint_and_key(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["key"] = request.headers.get("X-API-Key")
            return httpx.Response(
                200,
                json=[
                    {"id": "a", "url": "http://cdn/a.png"},
                    {"id": "b", "url": ""},
                ],
            )

        source = HttpImageSource(
            "http://api.test/", "ak_test", transport=httpx.MockTransport(handler)
        )
        pool = await source.get_random_images(8, 2)

        assert seen == {
            "path": "/api/images/random",
            "params": {"count": "8", "duplicate_every": "2"},
            "key": "ak_test",
        }
        assert pool == [
            ImageRef(id="a", url="http://cdn/a.png"),
            ImageRef(id="b", url="http://api.test/api/images/b/file"),
        ]

    @pytest.mark.asyncio
    async def test_omits_hint_when_not_given(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[])

        source = HttpImageSource("http://api.test", "ak_test", transport=httpx.MockTransport(handler))
        assert await source.get_random_images(3) == []
        assert seen["params"] == {"count": "3"}

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        source = HttpImageSource(
            "http://api.test",
            "ak_test",
            transport=httpx.MockTransport(lambda request: httpx.Response(401)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await source.get_random_images(3)
