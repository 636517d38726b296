"""Tests for folder hierarchy cycle and depth checks."""

import uuid

import pytest

from animator.exceptions import FolderCycleError, FolderTooDeepError
from animator.services.folder_tree import check_move, walk_ancestors

ROOT, CHILD, GRANDCHILD, OTHER = (uuid.uuid4() for _ in range(4))


def lookup_from(parents: dict):
    async def lookup(folder_id):
        return parents.get(folder_id)

    return lookup


@pytest.fixture
def lookup():
    return lookup_from({ROOT: None, CHILD: ROOT, GRANDCHILD: CHILD, OTHER: None})


class TestWalkAncestors:
    @pytest.mark.asyncio
    async def test_chain_to_root(self, lookup):
        assert await walk_ancestors(GRANDCHILD, lookup, 32) == [GRANDCHILD, CHILD, ROOT]

    @pytest.mark.asyncio
    async def test_depth_limit(self, lookup):
        assert await walk_ancestors(GRANDCHILD, lookup, 2) == [GRANDCHILD, CHILD, ROOT]
        with pytest.raises(FolderTooDeepError):
            await walk_ancestors(GRANDCHILD, lookup, 1)

    @pytest.mark.asyncio
    async def test_corrupted_loop_terminates(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        with pytest.raises(FolderTooDeepError):
            await walk_ancestors(a, lookup_from({a: b, b: a}), 5)


class TestCheckMove:
    @pytest.mark.asyncio
    async def test_into_itself(self, lookup):
        with pytest.raises(FolderCycleError):
            await check_move(CHILD, CHILD, lookup, 32)

    @pytest.mark.asyncio
    async def test_into_descendant(self, lookup):
        with pytest.raises(FolderCycleError):
            await check_move(ROOT, GRANDCHILD, lookup, 32)

    @pytest.mark.asyncio
    async def test_to_sibling_tree(self, lookup):
        await check_move(CHILD, OTHER, lookup, 32)

    @pytest.mark.asyncio
    async def test_to_root(self, lookup):
        await check_move(GRANDCHILD, None, lookup, 32)

    @pytest.mark.asyncio
    async def test_under_own_ancestor(self, lookup):
        await check_move(GRANDCHILD, ROOT, lookup, 32)
