import logging
from functools import lru_cache
from pathlib import Path

from animator.config import get_settings
from animator.exceptions import StorageError

logger = logging.getLogger(__name__)


def image_storage_key(user_id: str, identifier: str, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
    return f"users/{user_id}/images/{identifier}.{ext}"


def video_storage_key(user_id: str, kind: str, identifier: str, filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else "mp4"
    return f"users/{user_id}/videos/{kind}/{identifier}.{ext}"


class LocalStorageService:
    """Local file storage for development without GCS."""

    def __init__(self, base_path: str | None = None, public_base_url: str | None = None) -> None:
        settings = get_settings()
        self.base_path = Path(base_path or settings.local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def _get_full_path(self, storage_key: str) -> Path:
        full_path = (self.base_path / storage_key).resolve()
        if self.base_path.resolve() not in full_path.parents:
            raise StorageError(f"Invalid storage key: {storage_key}")
        full_path.parent.mkdir(parents=True, exist_ok=True)
        return full_path

    def get_public_url(self, storage_key: str) -> str:
        return f"{self.public_base_url}/api/storage/files/{storage_key}"

    async def upload_bytes(self, storage_key: str, data: bytes, content_type: str | None = None) -> str:
        """Write bytes under ``storage_key`` and return the file's URL."""
        self._get_full_path(storage_key).write_bytes(data)
        return self.get_public_url(storage_key)

    async def download_bytes(self, storage_key: str) -> bytes:
        full_path = self._get_full_path(storage_key)
        if not full_path.exists():
            raise StorageError(f"File not found in storage: {storage_key}")
        return full_path.read_bytes()

    def delete_file(self, storage_key: str) -> bool:
        """Delete file."""
        full_path = self._get_full_path(storage_key)
        if full_path.exists():
            full_path.unlink()
            return True
        return False

    def file_exists(self, storage_key: str) -> bool:
        return self._get_full_path(storage_key).exists()

    def get_file_path(self, storage_key: str) -> Path:
        """Get the actual file path for serving."""
        return self._get_full_path(storage_key)


class GCSStorageService:
    """Google Cloud Storage service for production."""

    def __init__(self) -> None:
        from google.cloud import storage

        self._settings = get_settings()
        self._storage = storage
        self._client: storage.Client | None = None
        self._bucket: storage.Bucket | None = None

    @property
    def client(self):
        if self._client is None:
            if self._settings.gcs_project_id:
                self._client = self._storage.Client(project=self._settings.gcs_project_id)
            else:
                self._client = self._storage.Client()
        return self._client

    @property
    def bucket(self):
        if self._bucket is None:
            self._bucket = self.client.bucket(self._settings.gcs_bucket_name)
        return self._bucket

    def get_public_url(self, storage_key: str) -> str:
        """Get the public URL for a stored file."""
        return f"https://storage.googleapis.com/{self._settings.gcs_bucket_name}/{storage_key}"

    async def upload_bytes(self, storage_key: str, data: bytes, content_type: str | None = None) -> str:
        blob = self.bucket.blob(storage_key)
        if content_type:
            blob.upload_from_string(data, content_type=content_type)
        else:
            blob.upload_from_string(data)
        return self.get_public_url(storage_key)

    async def download_bytes(self, storage_key: str) -> bytes:
        blob = self.bucket.blob(storage_key)
        if not blob.exists():
            raise StorageError(f"File not found in storage: {storage_key}")
        return blob.download_as_bytes()

    def delete_file(self, storage_key: str) -> bool:
        """Delete a file from GCS."""
        blob = self.bucket.blob(storage_key)
        if blob.exists():
            blob.delete()
            return True
        return False

    def file_exists(self, storage_key: str) -> bool:
        return self.bucket.blob(storage_key).exists()


StorageService = LocalStorageService | GCSStorageService


@lru_cache
def get_storage_service() -> StorageService:
    # Use LocalStorageService or GCSStorageService based on config
    if get_settings().use_local_storage:
        logger.info("Using local file storage")
        return LocalStorageService()
    logger.info("Using Google Cloud Storage")
    return GCSStorageService()
