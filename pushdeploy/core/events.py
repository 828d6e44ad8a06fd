"""Event system for Server-Sent Events (SSE)."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class Event:
    """An SSE event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_payload(self) -> dict[str, Any]:
        """Event/data pair in the shape sse-starlette expects."""
        return {
            "event": self.event_type,
            "data": json.dumps(
                {**self.data, "timestamp": self.timestamp.isoformat()}, default=str
            ),
        }


class EventBus:
    """Fan-out of live trace events, keyed by project name."""

    def __init__(self):
        self._subscribers: dict[str, list[asyncio.Queue[Event]]] = {}

    def subscribe(self, project: str) -> asyncio.Queue[Event]:
        """Subscribe to events for a project."""
        queue: asyncio.Queue[Event] = asyncio.Queue()
        self._subscribers.setdefault(project, []).append(queue)
        return queue

    def unsubscribe(self, project: str, queue: asyncio.Queue[Event]) -> None:
        """Drop one subscriber queue."""
        queues = self._subscribers.get(project, [])
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(project, None)

    async def publish(self, project: str, event: Event) -> None:
        """Publish an event for a project."""
        for queue in self._subscribers.get(project, []):
            await queue.put(event)

    async def publish_step(
        self,
        project: str,
        trace_id: str,
        name: str,
        status: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Publish a trace step event."""
        await self.publish(
            project,
            Event(
                event_type="step",
                data={
                    "trace_id": trace_id,
                    "name": name,
                    "status": status,
                    "detail": detail,
                },
            ),
        )

    async def publish_trace_completed(
        self, project: str, trace_id: str, success: bool, phase: str | None
    ) -> None:
        """Publish a trace completed event."""
        await self.publish(
            project,
            Event(
                event_type="trace_completed",
                data={"trace_id": trace_id, "success": success, "phase": phase},
            ),
        )
