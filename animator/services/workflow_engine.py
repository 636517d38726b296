"""Single-flight workflow engine driving one render job at a time.

States: idle -> loading -> processing -> success | error | cancelled.
``reset_status()`` returns the engine to idle from any state and must be
called before the next job once a terminal state is reached.

The engine is the only place render exceptions become status. Errors are
recorded and re-raised; cancellation is recorded and ``run_workflow``
returns None instead of raising.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from animator.config import get_settings
from animator.exceptions import RenderJobError, WorkflowBusyError
from animator.services.beat_math import round_half_up
from animator.services.event_bus import WorkflowEvent, WorkflowEventBus, event_bus
from animator.services.render_client import RenderServiceClient

logger = logging.getLogger(__name__)


class WorkflowStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = frozenset({WorkflowStatus.LOADING, WorkflowStatus.PROCESSING})


@dataclass
class MediaUpload:
    """A file to stage on the render service before a job runs.

    ``targets`` lists ``(node_id, input_name)`` pairs in the job graph that
    receive the name the service assigns to the upload.
    """

    data: bytes
    filename: str
    content_type: str | None = None
    targets: tuple[tuple[str, str], ...] = ()


@dataclass
class RenderJob:
    graph: dict[str, Any]
    uploads: list[MediaUpload] = field(default_factory=list)
    on_progress: Callable[[int], None] | None = None


ClientFactory = Callable[[], RenderServiceClient]
BeforeSubmitHook = Callable[[RenderServiceClient, RenderJob], Awaitable[None]]
CompleteHook = Callable[[dict[str, Any]], Awaitable[None] | None]
MessageDecorator = Callable[[str], str]


def default_client_factory() -> RenderServiceClient:
    settings = get_settings()
    return RenderServiceClient(
        settings.render_service_host,
        secure=settings.render_service_secure,
        timeout=settings.render_request_timeout,
    )


def progress_percentage(value: int, maximum: int) -> int:
    """Convert a raw ``(value, max)`` progress pair to 0-100."""
    if maximum <= 0:
        return 0
    return max(0, min(100, round_half_up(value / maximum * 100)))


class WorkflowEngine:
    """Runs render jobs against the render service and tracks their status."""

    def __init__(
        self,
        client_factory: ClientFactory = default_client_factory,
        *,
        channel: str = "default",
        bus: WorkflowEventBus | None = None,
        settle_seconds: float | None = None,
    ) -> None:
        self.channel = channel
        self._client_factory = client_factory
        self._bus = bus if bus is not None else event_bus
        self._settle_seconds = (
            settle_seconds if settle_seconds is not None
            else get_settings().render_submit_settle_seconds
        )

        self._status = WorkflowStatus.IDLE
        self._progress = 0
        self._message = ""
        self._cancelled = False
        self._client: RenderServiceClient | None = None
        self._decorate: MessageDecorator = _identity

    @property
    def status(self) -> WorkflowStatus:
        return self._status

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def message(self) -> str:
        return self._message

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_busy(self) -> bool:
        return self._status in ACTIVE_STATUSES

    def snapshot(self) -> WorkflowEvent:
        return WorkflowEvent(
            channel=self.channel,
            status=self._status.value,
            progress=self._progress,
            message=self._message,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    async def run_workflow(
        self,
        job: RenderJob,
        on_before_submit: BeforeSubmitHook | None = None,
        on_complete: CompleteHook | None = None,
        message_decorator: MessageDecorator | None = None,
    ) -> dict[str, Any] | None:
        """Run one job to completion.

        Args:
            job: Graph to submit plus media to stage first
            on_before_submit: Hook receiving the connected client and the job,
                used to stage uploads and rewrite graph inputs
            on_complete: Called with the result after a successful run
            message_decorator: Rewrites every status message for this run

        Returns:
            The job's outputs keyed by node id, or None if cancelled

        Raises:
            WorkflowBusyError: If a job is already loading or processing
            Exception: Whatever failed, after the status was set to error
        """
        if self.is_busy:
            raise WorkflowBusyError()

        self._decorate = message_decorator or _identity
        self._set_status(WorkflowStatus.LOADING, "Preparing workflow...", progress=0)

        if self._cancelled:
            logger.info(f"[{self.channel}] Job cancelled before connecting")
            return None

        def on_progress(value: int, maximum: int) -> None:
            if self._cancelled:
                return
            percentage = progress_percentage(value, maximum)
            self._set_status(
                WorkflowStatus.PROCESSING, f"Processing: {percentage}%", progress=percentage
            )
            if job.on_progress is not None:
                job.on_progress(percentage)

        client = self._client_factory()
        self._client = client
        try:
            await client.connect()

            await self._stage_uploads(client, job)
            if on_before_submit is not None:
                await on_before_submit(client, job)

            if self._cancelled:
                logger.info(f"[{self.channel}] Job cancelled before submission")
                return None

            submitted = await client.submit(job.graph, progress_callback=on_progress)
            if self._settle_seconds > 0:
                await asyncio.sleep(self._settle_seconds)

            result = submitted.result
            if result is None and submitted.job_handle:
                unsubscribe = client.subscribe(submitted.job_handle, on_progress)
                self._set_status(WorkflowStatus.PROCESSING, f"Processing: {self._progress}%")
                try:
                    await client.wait_for_job(submitted.job_handle)
                    result = await client.fetch_result(submitted.job_handle)
                finally:
                    unsubscribe()

            if self._cancelled:
                logger.info(f"[{self.channel}] Discarding result of cancelled job")
                return None
            if not result:
                raise RenderJobError(
                    "Render service returned no result", job_handle=submitted.job_handle
                )

            self._set_status(
                WorkflowStatus.SUCCESS, "Process completed successfully!", progress=100
            )
            if on_complete is not None:
                outcome = on_complete(result)
                if inspect.isawaitable(outcome):
                    await outcome
            return result

        except Exception as e:
            if self._cancelled:
                logger.info(f"[{self.channel}] Job ended after cancellation: {e}")
                return None
            logger.error(f"[{self.channel}] Error running render workflow: {e}")
            self._set_status(WorkflowStatus.ERROR, f"Error: {e}")
            raise

        finally:
            self._client = None
            try:
                await client.disconnect()
            except Exception as e:
                logger.warning(f"[{self.channel}] Error disconnecting from render service: {e}")

    async def cancel_workflow(self) -> None:
        """Stop observing the current job and ask the service to interrupt it.

        Work already on the render service may keep running there. The
        engine stays ``cancelled`` until ``reset_status()``.
        """
        self._cancelled = True
        self._set_status(WorkflowStatus.CANCELLED, "Workflow cancelled", force=True)
        logger.info(f"[{self.channel}] Workflow cancelled")

        client = self._client
        if client is None:
            return
        try:
            await client.interrupt()
        except Exception as e:
            logger.warning(f"[{self.channel}] Failed to interrupt render job: {e}")
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"[{self.channel}] Failed to disconnect after cancel: {e}")

    def reset_status(self) -> None:
        """Return to idle with progress 0 and an empty message."""
        self._cancelled = False
        self._decorate = _identity
        self._status = WorkflowStatus.IDLE
        self._progress = 0
        self._message = ""
        self._publish()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _stage_uploads(self, client: RenderServiceClient, job: RenderJob) -> None:
        for upload in job.uploads:
            assigned = await client.upload_media(upload.data, upload.filename, upload.content_type)
            for node_id, input_name in upload.targets:
                job.graph[node_id]["inputs"][input_name] = assigned

    def _set_status(
        self,
        status: WorkflowStatus,
        message: str,
        *,
        progress: int | None = None,
        force: bool = False,
    ) -> None:
        if self._status is WorkflowStatus.CANCELLED and not force:
            return
        self._status = status
        self._message = self._decorate(message)
        if progress is not None:
            self._progress = progress
        self._publish()

    def _publish(self) -> None:
        self._bus.publish(self.snapshot())


def _identity(message: str) -> str:
    return message


class EngineRegistry:
    """One workflow engine per ``(project_id, pipeline)`` pair."""

    def __init__(
        self,
        client_factory: ClientFactory = default_client_factory,
        bus: WorkflowEventBus | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._bus = bus
        self._engines: dict[str, WorkflowEngine] = {}

    @staticmethod
    def channel_for(project_id: Any, pipeline: str) -> str:
        return f"{project_id}:{pipeline}"

    def get(self, project_id: Any, pipeline: str) -> WorkflowEngine:
        channel = self.channel_for(project_id, pipeline)
        engine = self._engines.get(channel)
        if engine is None:
            engine = WorkflowEngine(self._client_factory, channel=channel, bus=self._bus)
            self._engines[channel] = engine
        return engine

    def find(self, project_id: Any, pipeline: str) -> WorkflowEngine | None:
        return self._engines.get(self.channel_for(project_id, pipeline))

    def channels(self) -> list[str]:
        return list(self._engines)


# Global registry instance
engine_registry = EngineRegistry()
