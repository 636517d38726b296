"""Tests for local file storage."""

import pytest

from animator.exceptions import StorageError
from animator.services.storage_service import (
    LocalStorageService,
    image_storage_key,
    video_storage_key,
)


@pytest.fixture
def storage(tmp_path) -> LocalStorageService:
    return LocalStorageService(base_path=str(tmp_path), public_base_url="http://api.test/")


class TestStorageKeys:
    def test_image_key(self):
        assert image_storage_key("u1", "abc", "Cat.PNG") == "users/u1/images/abc.png"

    def test_image_key_without_extension(self):
        assert image_storage_key("u1", "abc", "cat") == "users/u1/images/abc.bin"

    def test_video_key(self):
        assert video_storage_key("u1", "draft", "v1", "out.mp4") == "users/u1/videos/draft/v1.mp4"


class TestLocalStorageService:
    @pytest.mark.asyncio
    async def test_round_trip(self, storage):
        url = await storage.upload_bytes("users/u1/images/a.png", b"png")

        assert url == "http://api.test/api/storage/files/users/u1/images/a.png"
        assert storage.file_exists("users/u1/images/a.png")
        assert await storage.download_bytes("users/u1/images/a.png") == b"png"

    @pytest.mark.asyncio
    async def test_missing_file(self, storage):
        with pytest.raises(StorageError):
            await storage.download_bytes("users/u1/images/none.png")

    def test_delete(self, storage, tmp_path):
        (tmp_path / "a.txt").write_bytes(b"x")
        assert storage.delete_file("a.txt") is True
        assert storage.delete_file("a.txt") is False

    def test_rejects_path_traversal(self, storage):
        with pytest.raises(StorageError):
            storage.get_file_path("../outside.txt")
