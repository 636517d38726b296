"""Tests for the single-flight workflow engine."""

import asyncio
from unittest.mock import MagicMock

import pytest

from animator.exceptions import RenderJobError, RenderServiceError, WorkflowBusyError
from animator.services.event_bus import WorkflowEventBus
from animator.services.workflow_engine import (
    EngineRegistry,
    MediaUpload,
    RenderJob,
    WorkflowEngine,
    WorkflowStatus,
    progress_percentage,
)

from conftest import DRAFT_OUTPUTS, FakeRenderClient


def make_engine(client: FakeRenderClient, bus=None) -> WorkflowEngine:
    return WorkflowEngine(lambda: client, channel="p:drafts", bus=bus or WorkflowEventBus(), settle_seconds=0)


class TestProgressPercentage:
    @pytest.mark.parametrize(
        "value,maximum,expected",
        [(0, 10, 0), (1, 3, 33), (2, 3, 67), (1, 2, 50), (10, 10, 100), (15, 10, 100), (5, 0, 0)],
    )
    def test_progress_percentage(self, value, maximum, expected):
        assert progress_percentage(value, maximum) == expected


class TestRunWorkflow:
    @pytest.mark.asyncio
    async def test_success_after_waiting(self, engine, render_client):
        completed = []

        result = await engine.run_workflow(RenderJob(graph={"1": {}}), on_complete=completed.append)

        assert result == DRAFT_OUTPUTS
        assert completed == [DRAFT_OUTPUTS]
        assert engine.status is WorkflowStatus.SUCCESS
        assert engine.progress == 100
        assert engine.message == "Process completed successfully!"
        assert render_client.subscriptions == []
        assert render_client.disconnect_calls == 1

    @pytest.mark.asyncio
    async def test_inline_result_skips_waiting(self):
        client = FakeRenderClient(inline_result={"9": {"images": []}})
        waited = []

        async def on_wait():
            waited.append(True)

        client.on_wait = on_wait
        result = await make_engine(client).run_workflow(RenderJob(graph={}))

        assert result == {"9": {"images": []}}
        assert waited == []

    @pytest.mark.asyncio
    async def test_async_on_complete_is_awaited(self, engine):
        seen = []

        async def on_complete(result):
            seen.append(result)

        await engine.run_workflow(RenderJob(graph={}), on_complete=on_complete)
        assert seen == [DRAFT_OUTPUTS]

    @pytest.mark.asyncio
    async def test_progress_updates(self):
        client = FakeRenderClient(progress=((5, 10),))
        percentages = []
        job = RenderJob(graph={}, on_progress=percentages.append)

        await make_engine(client).run_workflow(job)

        assert percentages == [50]

    @pytest.mark.asyncio
    async def test_status_sequence_is_published(self, render_client):
        bus = MagicMock(spec=WorkflowEventBus)
        engine = make_engine(render_client, bus)

        await engine.run_workflow(RenderJob(graph={}))

        statuses = [c.args[0].status for c in bus.publish.call_args_list]
        assert statuses == ["loading", "processing", "success"]

    @pytest.mark.asyncio
    async def test_message_decorator(self, engine):
        await engine.run_workflow(
            RenderJob(graph={}), message_decorator=lambda m: f"[Segment 2/5] {m}"
        )
        assert engine.message == "[Segment 2/5] Process completed successfully!"

    @pytest.mark.asyncio
    async def test_uploads_are_staged_into_graph(self, engine, render_client):
        job = RenderJob(
            graph={"56": {"inputs": {"image": "placeholder.png"}}},
            uploads=[MediaUpload(data=b"x", filename="cat.png", targets=(("56", "image"),))],
        )
        await engine.run_workflow(job)

        assert render_client.uploads == ["cat.png"]
        assert render_client.submitted[0]["56"]["inputs"]["image"] == "staged/cat.png"

    @pytest.mark.asyncio
    async def test_before_submit_hook_receives_client(self, engine, render_client):
        async def before_submit(client, job):
            assert client is render_client
            job.graph = {"rewritten": {}}

        await engine.run_workflow(RenderJob(graph={}), on_before_submit=before_submit)
        assert render_client.submitted == [{"rewritten": {}}]


class TestErrors:
    @pytest.mark.asyncio
    async def test_submit_error_sets_error_status_and_reraises(self, engine, render_client):
        render_client.submit_errors[0] = RenderJobError("Prompt outputs failed validation")

        with pytest.raises(RenderJobError):
            await engine.run_workflow(RenderJob(graph={}))

        assert engine.status is WorkflowStatus.ERROR
        assert engine.message == "Error: Prompt outputs failed validation"
        assert render_client.disconnect_calls == 1

    @pytest.mark.asyncio
    async def test_job_failure_while_waiting(self, engine, render_client):
        render_client.wait_error = RenderJobError("CUDA out of memory")

        with pytest.raises(RenderJobError):
            await engine.run_workflow(RenderJob(graph={}))

        assert engine.status is WorkflowStatus.ERROR
        assert render_client.subscriptions == []

    @pytest.mark.asyncio
    async def test_empty_result_is_an_error(self):
        client = FakeRenderClient(outputs={})
        engine = make_engine(client)

        with pytest.raises(RenderJobError, match="no result"):
            await engine.run_workflow(RenderJob(graph={}))
        assert engine.status is WorkflowStatus.ERROR

    @pytest.mark.asyncio
    async def test_busy_engine_rejects_second_run(self, render_client):
        engine = make_engine(render_client)
        release = asyncio.Event()

        async def on_wait():
            await release.wait()

        render_client.on_wait = on_wait
        first = asyncio.create_task(engine.run_workflow(RenderJob(graph={})))
        while engine.status is not WorkflowStatus.PROCESSING:
            await asyncio.sleep(0)

        with pytest.raises(WorkflowBusyError):
            await engine.run_workflow(RenderJob(graph={}))

        release.set()
        assert await first == DRAFT_OUTPUTS


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_while_waiting_discards_result(self, render_client):
        engine = make_engine(render_client)

        async def on_wait():
            await engine.cancel_workflow()

        render_client.on_wait = on_wait
        result = await engine.run_workflow(RenderJob(graph={}))

        assert result is None
        assert engine.status is WorkflowStatus.CANCELLED
        assert engine.message == "Workflow cancelled"
        assert render_client.interrupted is True

    @pytest.mark.asyncio
    async def test_cancel_before_run_never_connects(self, engine, render_client):
        await engine.cancel_workflow()

        assert await engine.run_workflow(RenderJob(graph={})) is None
        assert render_client.connect_calls == 0
        assert engine.status is WorkflowStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_during_upload_never_submits(self, render_client):
        engine = make_engine(render_client)
        staged = []

        async def before_submit(client, job):
            upload = asyncio.create_task(client.upload_media(b"wav", "song.wav"))
            await engine.cancel_workflow()
            staged.append(await upload)

        result = await engine.run_workflow(RenderJob(graph={}), on_before_submit=before_submit)

        assert result is None
        assert staged == ["staged/song.wav"]
        assert render_client.uploads == ["song.wav"]
        assert render_client.submitted == []
        assert engine.status is WorkflowStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_error_after_cancel_is_swallowed(self, render_client):
        engine = make_engine(render_client)

        async def on_wait():
            await engine.cancel_workflow()
            raise RenderServiceError("Render service connection closed")

        render_client.on_wait = on_wait
        assert await engine.run_workflow(RenderJob(graph={})) is None
        assert engine.status is WorkflowStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_late_progress_does_not_overwrite_cancelled(self, engine):
        await engine.cancel_workflow()
        engine._set_status(WorkflowStatus.PROCESSING, "Processing: 80%", progress=80)

        assert engine.status is WorkflowStatus.CANCELLED
        assert engine.progress == 0

    @pytest.mark.asyncio
    async def test_reset_status(self, engine):
        await engine.cancel_workflow()
        engine.reset_status()

        assert engine.status is WorkflowStatus.IDLE
        assert engine.progress == 0
        assert engine.message == ""
        assert engine.is_cancelled is False


class TestEngineRegistry:
    def test_one_engine_per_pipeline(self):
        registry = EngineRegistry(client_factory=FakeRenderClient, bus=WorkflowEventBus())

        drafts = registry.get("p1", "drafts")
        assert registry.get("p1", "drafts") is drafts
        assert registry.get("p1", "upscale") is not drafts
        assert drafts.channel == "p1:drafts"

    def test_find_does_not_create(self):
        registry = EngineRegistry(client_factory=FakeRenderClient, bus=WorkflowEventBus())
        assert registry.find("p1", "drafts") is None
        assert registry.channels() == []
