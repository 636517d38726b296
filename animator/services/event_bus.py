"""Workflow status event bus.

Each workflow engine publishes its status changes on its own channel, so
unrelated pipelines never share a status object. Subscribers (the SSE status
stream, tests) receive events in publish order.
"""

import asyncio
import json
import logging
from collections import defaultdict
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


@dataclass
class WorkflowEvent:
    """Snapshot of one engine's status at the time it changed."""

    channel: str
    status: str
    progress: int
    message: str
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict:
        return {
            "channel": self.channel,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def to_sse(self) -> str:
        """Format event for SSE transmission."""
        return f"event: workflow_status\ndata: {json.dumps(self.to_dict())}\n\n"


class WorkflowEventBus:
    """Pub/sub of workflow events keyed by channel name.

    A subscriber that falls behind by ``max_queue_size`` events loses the
    oldest ones, so the latest status always gets through.
    """

    def __init__(self, max_queue_size: int = 256) -> None:
        self._subscribers: dict[str, set[asyncio.Queue[WorkflowEvent]]] = defaultdict(set)
        self._max_queue_size = max_queue_size

    def _attach(self, channel: str) -> asyncio.Queue[WorkflowEvent]:
        queue: asyncio.Queue[WorkflowEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers[channel].add(queue)
        logger.info(f"Subscribed to {channel} ({len(self._subscribers[channel])} listening)")
        return queue

    def _detach(self, channel: str, queue: asyncio.Queue[WorkflowEvent]) -> None:
        listeners = self._subscribers.get(channel)
        if listeners is None:
            return
        listeners.discard(queue)
        if not listeners:
            del self._subscribers[channel]
        logger.info(f"Unsubscribed from {channel}")

    async def subscribe(self, channel: str) -> AsyncGenerator[WorkflowEvent, None]:
        """Yield events published on ``channel`` (e.g. ``"<project_id>:drafts"``)
        until the consumer closes the generator."""
        queue = self._attach(channel)
        try:
            while True:
                yield await queue.get()
        finally:
            self._detach(channel, queue)

    def publish(self, event: WorkflowEvent) -> int:
        """Deliver ``event`` to every subscriber of its channel without blocking.

        Returns:
            Number of subscribers notified
        """
        listeners = self._subscribers.get(event.channel)
        if not listeners:
            return 0

        for queue in listeners:
            if queue.full():
                dropped = queue.get_nowait()
                logger.warning(f"Slow subscriber on {event.channel}, dropped {dropped.status} event")
            queue.put_nowait(event)

        logger.debug(f"Published {event.status} ({event.progress}%) on {event.channel} to {len(listeners)}")
        return len(listeners)

    def get_subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))


event_bus = WorkflowEventBus()
