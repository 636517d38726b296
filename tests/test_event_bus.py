"""Tests for the workflow status event bus."""

import asyncio
import json

import pytest

from animator.services.event_bus import WorkflowEvent, WorkflowEventBus


async def wait_for_subscriber(bus: WorkflowEventBus, channel: str) -> None:
    while bus.get_subscriber_count(channel) == 0:
        await asyncio.sleep(0)


class TestWorkflowEvent:
    def test_to_sse(self):
        event = WorkflowEvent(channel="p:drafts", status="processing", progress=40, message="Processing: 40%")
        sse = event.to_sse()

        assert sse.startswith("event: workflow_status\ndata: ")
        assert sse.endswith("\n\n")
        payload = json.loads(sse.split("data: ", 1)[1])
        assert payload["status"] == "processing"
        assert payload["progress"] == 40


class TestWorkflowEventBus:
    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self):
        bus = WorkflowEventBus()
        assert bus.publish(WorkflowEvent("p:drafts", "idle", 0, "")) == 0

    @pytest.mark.asyncio
    async def test_subscriber_receives_events_in_order(self):
        bus = WorkflowEventBus()
        received = []

        async def consume():
            async for event in bus.subscribe("p:drafts"):
                received.append(event.status)
                if len(received) == 3:
                    return

        task = asyncio.create_task(consume())
        await wait_for_subscriber(bus, "p:drafts")

        for status in ("loading", "processing", "success"):
            bus.publish(WorkflowEvent("p:drafts", status, 0, ""))
        await asyncio.wait_for(task, timeout=1)

        assert received == ["loading", "processing", "success"]

    @pytest.mark.asyncio
    async def test_channels_are_isolated(self):
        bus = WorkflowEventBus()
        stream = bus.subscribe("a:drafts")
        pending = asyncio.ensure_future(stream.__anext__())
        await wait_for_subscriber(bus, "a:drafts")

        assert bus.publish(WorkflowEvent("b:drafts", "loading", 0, "")) == 0
        assert bus.publish(WorkflowEvent("a:drafts", "loading", 0, "")) == 1

        event = await asyncio.wait_for(pending, timeout=1)
        assert event.channel == "a:drafts"
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_unsubscribe_on_close(self):
        bus = WorkflowEventBus()
        stream = bus.subscribe("p:upscale")
        pending = asyncio.ensure_future(stream.__anext__())
        await wait_for_subscriber(bus, "p:upscale")

        bus.publish(WorkflowEvent("p:upscale", "loading", 0, ""))
        await pending
        await stream.aclose()

        assert bus.get_subscriber_count("p:upscale") == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest_event(self):
        bus = WorkflowEventBus(max_queue_size=1)
        stream = bus.subscribe("p:drafts")
        pending = asyncio.ensure_future(stream.__anext__())
        await wait_for_subscriber(bus, "p:drafts")

        assert bus.publish(WorkflowEvent("p:drafts", "loading", 0, "")) == 1
        assert bus.publish(WorkflowEvent("p:drafts", "processing", 10, "")) == 1

        event = await pending
        assert event.status == "processing"
        await stream.aclose()
