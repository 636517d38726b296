"""Image pool allocation for animation segments.

The allocator asks an image source for one flat, ordered pool of images for
the whole animation and hands each segment a positional slice of it. The
source is called exactly once per schedule; nothing is synthesized locally.
"""

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from uuid import UUID

import httpx
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from animator.exceptions import ImagePoolShortfallError
from animator.models.image import Image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageRef:
    """Reference to a stored image, as carried through the schedule."""

    id: str
    url: str
    filename: str | None = None


class ImageSource(Protocol):
    async def get_random_images(
        self, count: int, duplicate_every_nth: int | None = None
    ) -> list[ImageRef]: ...


class ShortfallPolicy(str, Enum):
    """What to do when the source returns fewer images than requested."""

    TRUNCATE = "truncate"  # later segments get short (possibly empty) slices
    REPEAT = "repeat"  # cycle the returned pool until the request is filled
    FAIL = "fail"  # raise ImagePoolShortfallError


def unique_images_needed(count: int, duplicate_every_nth: int | None) -> int:
    """How many distinct images a pool of ``count`` needs under the duplication hint."""
    if not duplicate_every_nth or duplicate_every_nth < 2:
        return count
    return count - count // duplicate_every_nth


def apply_duplication(
    unique: Sequence[ImageRef], count: int, duplicate_every_nth: int | None
) -> list[ImageRef]:
    """Spread ``unique`` images over ``count`` slots, repeating every Nth slot.

    Slot ``i`` with ``i % n == n - 1`` re-uses the image in slot ``i - 1``, so
    with ``n = 2`` the pool reads ``a a b b c c ...``. Stops early if
    ``unique`` runs out.
    """
    if not duplicate_every_nth or duplicate_every_nth < 2:
        return list(unique[:count])

    pool: list[ImageRef] = []
    source = iter(unique)
    for i in range(count):
        if pool and i % duplicate_every_nth == duplicate_every_nth - 1:
            pool.append(pool[-1])
            continue
        try:
            pool.append(next(source))
        except StopIteration:
            break
    return pool


def partition(pool: Sequence[ImageRef], index: int, images_per_segment: int) -> list[ImageRef]:
    """Images for segment ``index``: the half-open slice ``[i*k, (i+1)*k)``."""
    start = index * images_per_segment
    return list(pool[start:start + images_per_segment])


class ImagePoolAllocator:
    """Requests one image pool per schedule and applies the shortfall policy."""

    def __init__(
        self,
        source: ImageSource,
        shortfall_policy: ShortfallPolicy = ShortfallPolicy.TRUNCATE,
    ) -> None:
        self._source = source
        self._shortfall_policy = shortfall_policy

    async def allocate(
        self,
        total_segments: int,
        images_per_segment: int,
        duplicate_every_nth: int | None = None,
    ) -> list[ImageRef]:
        """Fetch a flat pool of ``total_segments * images_per_segment`` images.

        Args:
            total_segments: Number of segments the pool must cover
            images_per_segment: Images each segment receives
            duplicate_every_nth: Hint passed to the source to repeat every Nth image

        Returns:
            The ordered pool. May be shorter than requested under TRUNCATE.

        Raises:
            ImagePoolShortfallError: If the pool is short and the policy is FAIL
        """
        requested = total_segments * images_per_segment
        if requested <= 0:
            return []

        pool = list(await self._source.get_random_images(requested, duplicate_every_nth))

        if len(pool) > requested:
            pool = pool[:requested]

        if len(pool) < requested:
            logger.warning(
                f"Image source returned {len(pool)} of {requested} requested images "
                f"(policy={self._shortfall_policy.value})"
            )
            if self._shortfall_policy is ShortfallPolicy.FAIL:
                raise ImagePoolShortfallError(requested=requested, received=len(pool))
            if self._shortfall_policy is ShortfallPolicy.REPEAT and pool:
                pool = [pool[i % len(pool)] for i in range(requested)]

        return pool


# =============================================================================
# Image sources
# =============================================================================


class DatabaseImageSource:
    """Draws random images from one user's library."""

    def __init__(self, db: AsyncSession, user_id: UUID, base_url: str = "") -> None:
        self._db = db
        self._user_id = user_id
        self._base_url = base_url.rstrip("/")

    async def get_random_images(
        self, count: int, duplicate_every_nth: int | None = None
    ) -> list[ImageRef]:
        needed = unique_images_needed(count, duplicate_every_nth)
        result = await self._db.execute(
            select(Image)
            .where(Image.user_id == self._user_id)
            .order_by(func.random())
            .limit(needed)
        )
        unique = [
            ImageRef(
                id=image.identifier,
                url=f"{self._base_url}/api/images/{image.identifier}/file",
                filename=image.filename,
            )
            for image in result.scalars().all()
        ]
        return apply_duplication(unique, count, duplicate_every_nth)


class HttpImageSource:
    """Calls ``GET /api/images/random`` on a running animator API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport

    async def get_random_images(
        self, count: int, duplicate_every_nth: int | None = None
    ) -> list[ImageRef]:
        params: dict[str, int] = {"count": count}
        if duplicate_every_nth:
            params["duplicate_every"] = duplicate_every_nth

        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers={"X-API-Key": self._api_key},
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            resp = await client.get("/api/images/random", params=params)
            resp.raise_for_status()
            data = resp.json()

        return [
            ImageRef(
                id=item["id"],
                url=item.get("url") or f"{self._base_url}/api/images/{item['id']}/file",
            )
            for item in data
        ]


class StaticImageSource:
    """Serves a fixed list of images in shuffled order (offline previews)."""

    def __init__(self, images: Sequence[ImageRef], seed: int | None = None) -> None:
        self._images = list(images)
        self._random = random.Random(seed)

    async def get_random_images(
        self, count: int, duplicate_every_nth: int | None = None
    ) -> list[ImageRef]:
        shuffled = self._images[:]
        self._random.shuffle(shuffled)
        needed = unique_images_needed(count, duplicate_every_nth)
        return apply_duplication(shuffled[:needed], count, duplicate_every_nth)
