"""
Server-Sent Events (SSE) for real-time migration updates
"""
import asyncio
import json
from typing import AsyncGenerator
from datetime import datetime, timezone


class EventBroadcaster:
    """Simple event broadcaster for SSE"""

    def __init__(self):
        self._subscribers: list[asyncio.Queue] = []

    async def subscribe(self) -> AsyncGenerator[str, None]:
        """Subscribe to events"""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        try:
            while True:
                data = await queue.get()
                yield data
        finally:
            self._subscribers.remove(queue)

    def publish(self, event_type: str, data: dict = None):
        """Queue an event for all subscribers without waiting."""
        event = {
            "type": event_type,
            "data": data or {},
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
        message = f"data: {json.dumps(event, default=str)}\n\n"

        # Unbounded queues never block, so slow listeners cannot stall a job
        for queue in self._subscribers:
            queue.put_nowait(message)


# Global event broadcaster instance
migration_events = EventBroadcaster()


# Event types
class EventType:
    MIGRATION_STARTED = "migration_started"
    MIGRATION_PROGRESS = "migration_progress"
    MIGRATION_PAUSED = "migration_paused"
    MIGRATION_RESUMED = "migration_resumed"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"
    MIGRATION_CANCELLED = "migration_cancelled"
