"""Folder hierarchy operations.

Cycle checks walk parent pointers upward from the destination, bounded by
``max_folder_depth``, instead of searching the moved folder's subtree.
Each folder also stores its ``depth`` so depth limits are checked without a
walk.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from animator.exceptions import FolderCycleError, FolderNotFoundError, FolderTooDeepError
from animator.models.folder import Folder
from animator.models.image import Image

logger = logging.getLogger(__name__)

ParentLookup = Callable[[uuid.UUID], Awaitable[uuid.UUID | None]]


async def walk_ancestors(
    start_id: uuid.UUID, lookup_parent: ParentLookup, max_depth: int
) -> list[uuid.UUID]:
    """Ids from ``start_id`` up to its root, inclusive of both.

    Raises:
        FolderTooDeepError: If the chain is longer than ``max_depth`` + 1,
            which also catches a corrupted parent loop
    """
    chain = [start_id]
    current = start_id
    while True:
        parent = await lookup_parent(current)
        if parent is None:
            return chain
        if len(chain) > max_depth:
            raise FolderTooDeepError(max_depth)
        chain.append(parent)
        current = parent


async def check_move(
    folder_id: uuid.UUID,
    new_parent_id: uuid.UUID | None,
    lookup_parent: ParentLookup,
    max_depth: int,
) -> None:
    """Reject moving ``folder_id`` under ``new_parent_id`` if that makes a cycle.

    Raises:
        FolderCycleError: If the new parent is the folder or one of its descendants
    """
    if new_parent_id is None:
        return
    if new_parent_id == folder_id:
        raise FolderCycleError("Cannot move a folder into itself")
    if folder_id in await walk_ancestors(new_parent_id, lookup_parent, max_depth):
        raise FolderCycleError()


class FolderTree:
    """Folder hierarchy for one user, backed by the database."""

    def __init__(self, db: AsyncSession, user_id: uuid.UUID, max_depth: int) -> None:
        self.db = db
        self.user_id = user_id
        self.max_depth = max_depth

    async def get(self, folder_id: uuid.UUID) -> Folder:
        result = await self.db.execute(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == self.user_id)
        )
        folder = result.scalar_one_or_none()
        if folder is None:
            raise FolderNotFoundError(str(folder_id))
        return folder

    async def _lookup_parent(self, folder_id: uuid.UUID) -> uuid.UUID | None:
        result = await self.db.execute(
            select(Folder.parent_id).where(Folder.id == folder_id, Folder.user_id == self.user_id)
        )
        return result.scalar_one_or_none()

    async def descendant_ids(self, folder_id: uuid.UUID) -> list[uuid.UUID]:
        """All folders below ``folder_id``, one query per level."""
        found: list[uuid.UUID] = []
        frontier = [folder_id]
        for _ in range(self.max_depth + 1):
            result = await self.db.execute(
                select(Folder.id).where(
                    Folder.parent_id.in_(frontier), Folder.user_id == self.user_id
                )
            )
            frontier = list(result.scalars().all())
            if not frontier:
                return found
            found.extend(frontier)
        raise FolderTooDeepError(self.max_depth)

    async def create(self, name: str, parent_id: uuid.UUID | None = None) -> Folder:
        depth = 0
        if parent_id is not None:
            parent = await self.get(parent_id)
            depth = parent.depth + 1
            if depth > self.max_depth:
                raise FolderTooDeepError(self.max_depth)

        folder = Folder(user_id=self.user_id, parent_id=parent_id, name=name, depth=depth)
        self.db.add(folder)
        await self.db.flush()
        return folder

    async def move(self, folder: Folder, new_parent_id: uuid.UUID | None) -> Folder:
        """Re-parent ``folder`` and shift the depth of its whole subtree.

        Raises:
            FolderCycleError: If the destination is inside the folder's subtree
            FolderTooDeepError: If the subtree would exceed the depth limit
        """
        new_depth = 0
        if new_parent_id is not None:
            parent = await self.get(new_parent_id)
            await check_move(folder.id, new_parent_id, self._lookup_parent, self.max_depth)
            new_depth = parent.depth + 1

        descendants = await self.descendant_ids(folder.id)
        shift = new_depth - folder.depth
        if descendants and shift:
            result = await self.db.execute(
                select(Folder.depth).where(Folder.id.in_(descendants)).order_by(Folder.depth.desc()).limit(1)
            )
            deepest = result.scalar_one()
            if deepest + shift > self.max_depth:
                raise FolderTooDeepError(self.max_depth)
            await self.db.execute(
                update(Folder)
                .where(Folder.id.in_(descendants))
                .values(depth=Folder.depth + shift)
                .execution_options(synchronize_session=False)
            )
        elif new_depth > self.max_depth:
            raise FolderTooDeepError(self.max_depth)

        folder.parent_id = new_parent_id
        folder.depth = new_depth
        await self.db.flush()
        logger.info(f"Moved folder {folder.id} under {new_parent_id} (depth {new_depth})")
        return folder

    async def delete(self, folder: Folder) -> int:
        """Delete ``folder`` and its subtree. Images inside move to no folder.

        Returns:
            Number of folders deleted
        """
        all_ids = [folder.id, *await self.descendant_ids(folder.id)]

        await self.db.execute(
            update(Image)
            .where(Image.folder_id.in_(all_ids), Image.user_id == self.user_id)
            .values(folder_id=None)
            .execution_options(synchronize_session=False)
        )
        # Children first so no row points at a deleted parent
        for folder_id in reversed(all_ids):
            result = await self.db.execute(select(Folder).where(Folder.id == folder_id))
            row = result.scalar_one_or_none()
            if row is not None:
                await self.db.delete(row)
        await self.db.flush()

        logger.info(f"Deleted folder {folder.id} and {len(all_ids) - 1} descendants")
        return len(all_ids)
