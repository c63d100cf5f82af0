"""
Server-Sent Events streaming for migration progress
"""
from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from ...services.events import migration_events

router = APIRouter()


@router.get("/events")
async def migration_events_stream():
    """Server-Sent Events stream for migration job updates"""
    async def event_generator():
        # Send initial connection message
        yield "data: {\"type\": \"connected\"}\n\n"
        # Stream events
        async for event in migration_events.subscribe():
            yield event

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no"
        }
    )
