from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

ProgressCallback = Callable[[str, str], Awaitable[None] | None]


class EventBus:
    """In-process fan-out of progress events, one channel per profile."""

    def __init__(self) -> None:
        self._queues: dict[int, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def publish(self, profile_id: int, event: dict[str, Any]) -> None:
        async with self._lock:
            for queue in list(self._queues.get(profile_id, [])):
                await queue.put(event)

    async def subscribe(self, profile_id: int) -> AsyncIterator[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        async with self._lock:
            self._queues[profile_id].append(queue)

        try:
            while True:
                event = await queue.get()
                yield event
        finally:
            async with self._lock:
                if queue in self._queues.get(profile_id, []):
                    self._queues[profile_id].remove(queue)

    def subscriber_count(self, profile_id: int) -> int:
        return len(self._queues.get(profile_id, []))


def progress_event(
    *, profile_id: int, document_id: int | None, phase: str, message: str
) -> dict[str, Any]:
    return {
        "type": "status",
        "profile_id": profile_id,
        "document_id": document_id,
        "phase": phase,
        "message": message,
        "created_at": datetime.now(UTC).isoformat(),
    }


_EVENT_BUS: EventBus | None = None


def get_event_bus() -> EventBus:
    global _EVENT_BUS
    if _EVENT_BUS is None:
        _EVENT_BUS = EventBus()
    return _EVENT_BUS
