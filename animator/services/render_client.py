"""Client for a ComfyUI-style generative render service.

HTTP calls go through httpx; progress and completion events arrive on the
service's websocket (``/ws?clientId=...``). One client instance is owned by
one workflow engine run and is never shared.

Usage:
    client = RenderServiceClient("localhost:8188")
    await client.connect()
    try:
        submitted = await client.submit(graph, progress_callback=on_progress)
        if submitted.result is None and submitted.job_handle:
            await client.wait_for_job(submitted.job_handle)
            outputs = await client.fetch_result(submitted.job_handle)
    finally:
        await client.disconnect()
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx
import websockets
from websockets.exceptions import WebSocketException

from animator.exceptions import ArtifactNotFoundError, RenderJobError, RenderServiceError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
WebSocketConnect = Callable[[str], Awaitable[Any]]


@dataclass
class SubmitResult:
    """Outcome of a submission.

    ``result`` is set when the service already holds outputs for the job
    (e.g. a fully cached graph); otherwise only ``job_handle`` is set and the
    caller waits for completion.
    """

    job_handle: str | None = None
    result: dict[str, Any] | None = None


def _default_ws_connect(uri: str) -> Awaitable[Any]:
    return websockets.connect(uri, ping_interval=None, max_size=None)


class RenderServiceClient:
    """Session with one render service host."""

    def __init__(
        self,
        host: str,
        *,
        secure: bool = False,
        timeout: float = 120.0,
        client_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        ws_connect: WebSocketConnect | None = None,
    ) -> None:
        self.host = host
        self.client_id = client_id or uuid.uuid4().hex
        self._base_url = f"{'https' if secure else 'http'}://{host}"
        self._ws_url = f"{'wss' if secure else 'ws'}://{host}/ws?clientId={self.client_id}"
        self._timeout = timeout
        self._transport = transport
        self._ws_connect = ws_connect or _default_ws_connect

        self._http: httpx.AsyncClient | None = None
        self._ws: Any = None
        self._reader: asyncio.Task | None = None

        self._subscriptions: dict[str, list[ProgressCallback]] = {}
        self._waiters: dict[str, asyncio.Future] = {}
        # Jobs that finished before anyone waited on them: handle -> error message or None
        self._finished: dict[str, str | None] = {}
        # Why the event stream ended; set once the reader stops
        self._closed_reason: str | None = None

    @property
    def connected(self) -> bool:
        return self._http is not None

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    async def connect(self) -> None:
        """Open the HTTP session and the event websocket. No-op if already open."""
        if self._http is not None:
            return

        self._closed_reason = None
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            self._ws = await self._ws_connect(self._ws_url)
        except (OSError, WebSocketException) as e:
            await self._http.aclose()
            self._http = None
            raise RenderServiceError(f"Failed to connect to render service at {self.host}: {e}") from e

        self._reader = asyncio.create_task(self._read_events())
        logger.info(f"Connected to render service {self.host} (client {self.client_id})")

    async def disconnect(self) -> None:
        """Close the session. Safe to call more than once."""
        http, self._http = self._http, None
        if http is None:
            return

        reader, self._reader = self._reader, None
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if self._ws is not None:
            try:
                await self._ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning(f"Error closing render service websocket: {e}")
            self._ws = None

        await http.aclose()

        self._connection_lost("Render service connection closed")
        self._subscriptions.clear()
        logger.info(f"Disconnected from render service {self.host}")

    # =========================================================================
    # Jobs
    # =========================================================================

    async def submit(
        self, graph: dict[str, Any], progress_callback: ProgressCallback | None = None
    ) -> SubmitResult:
        """Queue a job graph.

        Args:
            graph: Node graph in the service's API format
            progress_callback: Receives ``(value, max)`` progress pairs for this job

        Returns:
            SubmitResult with the job handle, and the outputs if already available

        Raises:
            RenderJobError: If the service rejects the graph
            RenderServiceError: On transport failure
        """
        resp = await self._request(
            "POST", "/prompt", json={"prompt": graph, "client_id": self.client_id}
        )
        data = resp.json()
        if "error" in data:
            raise RenderJobError(self._format_rejection(data))

        job_handle = data.get("prompt_id")
        if not job_handle:
            raise RenderJobError("Render service did not return a job handle")

        if progress_callback is not None:
            self.subscribe(job_handle, progress_callback)

        outputs = await self._get_history_outputs(job_handle)
        logger.info(
            f"Submitted job {job_handle} ({len(graph)} nodes, "
            f"{'cached result' if outputs else 'queued'})"
        )
        return SubmitResult(job_handle=job_handle, result=outputs)

    def subscribe(self, job_handle: str, on_progress: ProgressCallback) -> Callable[[], None]:
        """Register ``on_progress`` for a job's progress events.

        Registering the same callback twice for a job has no extra effect.

        Returns:
            A function that removes the subscription
        """
        callbacks = self._subscriptions.setdefault(job_handle, [])
        if on_progress not in callbacks:
            callbacks.append(on_progress)

        def unsubscribe() -> None:
            registered = self._subscriptions.get(job_handle)
            if registered and on_progress in registered:
                registered.remove(on_progress)
                if not registered:
                    del self._subscriptions[job_handle]

        return unsubscribe

    async def wait_for_job(self, job_handle: str) -> None:
        """Block until the service reports the job finished.

        No timeout; a stalled job keeps the caller waiting until it disconnects.

        Raises:
            RenderJobError: If the job failed or was interrupted
            RenderServiceError: If the connection closed first
        """
        if job_handle in self._finished:
            error = self._finished.pop(job_handle)
            if error:
                raise RenderJobError(error, job_handle=job_handle)
            return

        if self._reader is None:
            raise RenderServiceError("Not connected to render service")
        if self._closed_reason is not None or self._reader.done():
            raise RenderServiceError(self._closed_reason or "Render service event stream stopped")

        future = self._waiters.get(job_handle)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._waiters[job_handle] = future
        try:
            await future
        finally:
            self._waiters.pop(job_handle, None)

    async def fetch_result(self, job_handle: str) -> dict[str, Any]:
        """Outputs of a finished job, keyed by output node id."""
        outputs = await self._get_history_outputs(job_handle)
        if outputs is None:
            raise RenderJobError(f"No outputs recorded for job {job_handle}", job_handle=job_handle)
        return outputs

    async def interrupt(self) -> None:
        """Ask the service to stop whatever it is executing."""
        await self._request("POST", "/interrupt")
        logger.info(f"Sent interrupt to render service {self.host}")

    # =========================================================================
    # Media
    # =========================================================================

    async def upload_media(
        self, data: bytes, filename: str, content_type: str | None = None
    ) -> str:
        """Stage a file in the service's input folder.

        Returns:
            The name the service assigned, as graphs must reference it
        """
        files = {"image": (filename, data, content_type or "application/octet-stream")}
        resp = await self._request(
            "POST", "/upload/image", files=files, data={"type": "input", "overwrite": "true"}
        )
        body = resp.json()
        name = body["name"]
        subfolder = body.get("subfolder")
        assigned = f"{subfolder}/{name}" if subfolder else name
        logger.debug(f"Uploaded {filename} to render service as {assigned}")
        return assigned

    async def fetch_artifact(
        self, filename: str, subfolder: str = "", folder_type: str = "output"
    ) -> bytes:
        """Download a produced file.

        Raises:
            ArtifactNotFoundError: If the service has no such file
        """
        try:
            resp = await self._request(
                "GET",
                "/view",
                params={"filename": filename, "subfolder": subfolder, "type": folder_type},
            )
        except RenderServiceError as e:
            if isinstance(e.__cause__, httpx.HTTPStatusError) and e.__cause__.response.status_code == 404:
                raise ArtifactNotFoundError(f"Render artifact not found: {filename}") from e
            raise
        return resp.content

    # =========================================================================
    # Internals
    # =========================================================================

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._http is None:
            raise RenderServiceError("Not connected to render service")
        try:
            resp = await self._http.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RenderServiceError(
                f"Render service returned {e.response.status_code} for {method} {url}"
            ) from e
        except httpx.HTTPError as e:
            raise RenderServiceError(f"Render service request failed: {method} {url}: {e}") from e
        return resp

    async def _get_history_outputs(self, job_handle: str) -> dict[str, Any] | None:
        resp = await self._request("GET", f"/history/{job_handle}")
        entry = resp.json().get(job_handle)
        if not entry:
            return None

        status = entry.get("status") or {}
        if status.get("status_str") == "error":
            raise RenderJobError(
                self._history_error_message(status) or f"Job {job_handle} failed",
                job_handle=job_handle,
            )
        return entry.get("outputs") or None

    @staticmethod
    def _history_error_message(status: dict[str, Any]) -> str | None:
        for kind, payload in status.get("messages", []):
            if kind == "execution_error":
                return payload.get("exception_message")
        return None

    @staticmethod
    def _format_rejection(data: dict[str, Any]) -> str:
        error = data.get("error")
        message = error.get("message") if isinstance(error, dict) else str(error)
        node_errors = data.get("node_errors") or {}
        if node_errors:
            message = f"{message} (nodes: {', '.join(sorted(node_errors))})"
        return f"Render service rejected job: {message}"

    async def _read_events(self) -> None:
        try:
            async for raw in self._ws:
                if isinstance(raw, bytes):
                    # Binary frames are live previews
                    continue
                try:
                    message = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning("Ignoring malformed render service event")
                    continue
                self._dispatch(message)
        except asyncio.CancelledError:
            raise
        except (OSError, WebSocketException) as e:
            logger.warning(f"Render service event stream failed: {e}")
            self._connection_lost(f"Render service connection lost: {e}")
            return
        except Exception as e:
            logger.exception(f"Render service event reader crashed: {e}")
            self._connection_lost(f"Render service event reader crashed: {e}")
            return
        self._connection_lost("Render service connection closed")

    def _dispatch(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        data = message.get("data") or {}
        job_handle = data.get("prompt_id")

        if kind == "progress" and job_handle:
            self._report_progress(job_handle, data)
        elif kind == "executing" and job_handle and data.get("node") is None:
            self._finish(job_handle, None)
        elif kind == "execution_success" and job_handle:
            self._finish(job_handle, None)
        elif kind == "execution_error" and job_handle:
            self._finish(
                job_handle,
                data.get("exception_message") or f"Job {job_handle} failed on the render service",
            )
        elif kind == "execution_interrupted" and job_handle:
            self._finish(job_handle, f"Job {job_handle} was interrupted")

    def _report_progress(self, job_handle: str, data: dict[str, Any]) -> None:
        """Fan a progress event out to the job's subscribers.

        A malformed event or a failing callback is logged and skipped so the
        reader keeps delivering completion events.
        """
        try:
            value, maximum = int(data.get("value", 0)), int(data.get("max", 0))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed progress event for job {job_handle}: {data}")
            return

        for callback in list(self._subscriptions.get(job_handle, [])):
            try:
                callback(value, maximum)
            except Exception:
                logger.exception(f"Progress callback for job {job_handle} failed")

    def _finish(self, job_handle: str, error: str | None) -> None:
        self._subscriptions.pop(job_handle, None)
        future = self._waiters.get(job_handle)
        if future is None:
            # Nobody waiting yet; the first outcome wins
            self._finished.setdefault(job_handle, error)
            return
        if future.done():
            return
        if error:
            future.set_exception(RenderJobError(error, job_handle=job_handle))
        else:
            future.set_result(None)

    def _connection_lost(self, reason: str) -> None:
        """Record why events stopped and fail everyone still waiting."""
        if self._closed_reason is None:
            self._closed_reason = reason
        for future in self._waiters.values():
            if not future.done():
                future.set_exception(RenderServiceError(reason))
