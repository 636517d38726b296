"""
Pytest fixtures for animator backend tests.

The render service, object storage and database sessions are replaced with
in-memory fakes, so the suite needs neither a GPU host nor PostgreSQL.
"""

import uuid
from typing import Any

import pytest

from animator.services.event_bus import WorkflowEventBus
from animator.services.image_pool import ImageRef
from animator.services.render_client import SubmitResult
from animator.services.workflow_engine import MediaUpload, WorkflowEngine

DRAFT_OUTPUTS = {
    "410": {"gifs": [{"filename": "draft_00001.mp4", "subfolder": "animator/draft", "type": "output"}]},
}
UPSCALE_OUTPUTS = {
    "20": {"gifs": [{"filename": "upscale_00001.mp4", "subfolder": "animator/upscale", "type": "output"}]},
}


class FakeRenderClient:
    """Stands in for RenderServiceClient.

    Results resolve through ``wait_for_job`` + ``fetch_result`` unless
    ``inline_result`` is set. ``on_submit`` / ``on_wait`` hooks let tests
    cancel or fail a run at a precise point.
    """

    def __init__(
        self,
        *,
        outputs: dict[str, Any] | None = None,
        inline_result: dict[str, Any] | None = None,
        progress: tuple[tuple[int, int], ...] = (),
    ) -> None:
        self.outputs = DRAFT_OUTPUTS if outputs is None else outputs
        self.inline_result = inline_result
        self.progress = progress
        self.submit_errors: dict[int, Exception] = {}
        self.wait_error: Exception | None = None
        self.on_submit = None
        self.on_wait = None

        self.connected = False
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.submitted: list[dict[str, Any]] = []
        self.uploads: list[str] = []
        self.subscriptions: list[str] = []
        self.fetched: list[str] = []
        self.interrupted = False

    async def connect(self) -> None:
        self.connected = True
        self.connect_calls += 1

    async def disconnect(self) -> None:
        self.connected = False
        self.disconnect_calls += 1

    async def submit(self, graph, progress_callback=None) -> SubmitResult:
        call_index = len(self.submitted)
        self.submitted.append(graph)
        if self.on_submit is not None:
            await self.on_submit(call_index)
        error = self.submit_errors.get(call_index)
        if error is not None:
            raise error
        if progress_callback is not None:
            for value, maximum in self.progress:
                progress_callback(value, maximum)
        return SubmitResult(job_handle=f"job-{call_index}", result=self.inline_result)

    def subscribe(self, job_handle, on_progress):
        self.subscriptions.append(job_handle)

        def unsubscribe() -> None:
            self.subscriptions.remove(job_handle)

        return unsubscribe

    async def wait_for_job(self, job_handle) -> None:
        if self.on_wait is not None:
            await self.on_wait()
        if self.wait_error is not None:
            raise self.wait_error

    async def fetch_result(self, job_handle) -> dict[str, Any]:
        return self.outputs

    async def interrupt(self) -> None:
        self.interrupted = True

    async def upload_media(self, data, filename, content_type=None) -> str:
        self.uploads.append(filename)
        return f"staged/{filename}"

    async def fetch_artifact(self, filename, subfolder="", folder_type="output") -> bytes:
        self.fetched.append(filename)
        return b"video-bytes"


class FakeStorage:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.upload_error: Exception | None = None

    async def upload_bytes(self, storage_key, data, content_type=None) -> str:
        if self.upload_error is not None:
            error, self.upload_error = self.upload_error, None
            raise error
        self.files[storage_key] = data
        return f"http://test/{storage_key}"

    async def download_bytes(self, storage_key) -> bytes:
        return self.files[storage_key]

    def delete_file(self, storage_key) -> bool:
        self.deleted.append(storage_key)
        return self.files.pop(storage_key, None) is not None


class FakeSession:
    """Just enough of AsyncSession for the pipeline's persistence calls."""

    def __init__(self) -> None:
        self.rows: dict[tuple[type, uuid.UUID], Any] = {}
        self.added: list[Any] = []
        self.deleted: list[Any] = []
        self.commits = 0
        self.commit_error: Exception | None = None

    async def __aenter__(self) -> "FakeSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def add(self, obj: Any) -> None:
        self.added.append(obj)

    async def flush(self) -> None:
        for obj in self.added:
            if getattr(obj, "id", None) is None:
                obj.id = uuid.uuid4()
            self.rows[(type(obj), obj.id)] = obj

    async def commit(self) -> None:
        if self.commit_error is not None:
            error, self.commit_error = self.commit_error, None
            raise error
        await self.flush()
        self.commits += 1

    async def get(self, model: type, ident: uuid.UUID) -> Any:
        return self.rows.get((model, ident))

    async def delete(self, obj: Any) -> None:
        self.deleted.append(obj)
        self.rows.pop((type(obj), obj.id), None)

    def store(self, obj: Any) -> Any:
        if getattr(obj, "id", None) is None:
            obj.id = uuid.uuid4()
        self.rows[(type(obj), obj.id)] = obj
        return obj


@pytest.fixture
def render_client() -> FakeRenderClient:
    return FakeRenderClient()


@pytest.fixture
def bus() -> WorkflowEventBus:
    return WorkflowEventBus()


@pytest.fixture
def engine(render_client, bus) -> WorkflowEngine:
    return WorkflowEngine(lambda: render_client, channel="test:drafts", bus=bus, settle_seconds=0)


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def image_refs() -> list[ImageRef]:
    return [ImageRef(id=f"img{i}", url=f"http://test/api/images/img{i}/file") for i in range(10)]


async def load_test_image(image_id: str) -> MediaUpload:
    return MediaUpload(data=b"png-bytes", filename=f"{image_id}.png", content_type="image/png")
