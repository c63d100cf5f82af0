"""
Runs a layout migration on behalf of a persisted job.

Bridges the runner's callbacks to the job record (polled for pause/cancel,
throttled progress writes, terminal state) and to the SSE broadcaster.
"""
import asyncio
import logging
import time
from dataclasses import asdict
from typing import Optional

from ..config import get_settings
from ..migration import (
    MigrationCancelled,
    MigrationJobResult,
    MigrationRunOptions,
    MigrationStats,
    RunState,
    run_migration_job,
)
from ..models import JobStatus
from . import job_service
from .events import EventBroadcaster, EventType, migration_events

logger = logging.getLogger(__name__)

# Background runs, kept referenced until they finish
_running_tasks: set[asyncio.Task] = set()


async def run_migration_for_job(
    job_id: str,
    options: MigrationRunOptions,
    *,
    broadcaster: Optional[EventBroadcaster] = None,
    session_factory=None,
    content_root: Optional[str] = None,
    store=None
) -> Optional[MigrationJobResult]:
    """Run the migration and record its outcome on the job.

    Returns the job result on completion, None when cancelled or failed.
    """
    settings = get_settings()
    broadcaster = broadcaster or migration_events
    progress_interval = settings.migration_progress_interval
    last_write = 0.0
    pending_writes: set[asyncio.Task] = set()

    async def job_status() -> Optional[JobStatus]:
        job = await job_service.get_job(job_id, session_factory)
        return job.status if job else None

    async def check_cancelled() -> bool:
        return await job_status() == JobStatus.cancelling

    async def check_paused() -> bool:
        return await job_status() == JobStatus.paused

    async def write_progress(percent: int, message: str):
        try:
            await job_service.update_progress(job_id, percent, message, session_factory)
        except Exception as e:
            logger.error(f"[MigrationJob] Failed to update job progress: {e}")

    def on_progress(stats: MigrationStats, messages: list[str]):
        nonlocal last_write
        percent = stats.percent
        broadcaster.publish(EventType.MIGRATION_PROGRESS, {
            "job_id": job_id,
            "progress": percent,
            "stats": asdict(stats),
            "messages": messages,
        })

        now = time.monotonic()
        if now - last_write >= progress_interval:
            last_write = now
            task = asyncio.create_task(write_progress(percent, "\n".join(messages)))
            pending_writes.add(task)
            task.add_done_callback(pending_writes.discard)

    def on_state_change(state: RunState):
        event = EventType.MIGRATION_PAUSED if state == RunState.PAUSED else EventType.MIGRATION_RESUMED
        broadcaster.publish(event, {"job_id": job_id, "state": state.value})

    broadcaster.publish(EventType.MIGRATION_STARTED, {"job_id": job_id})

    try:
        result = await run_migration_job(
            on_progress,
            check_cancelled,
            check_paused,
            on_state_change,
            options,
            content_root=content_root,
            session_factory=session_factory,
            store=store
        )
    except MigrationCancelled:
        await _drain(pending_writes)
        await job_service.mark_cancelled(job_id, session_factory)
        broadcaster.publish(EventType.MIGRATION_CANCELLED, {"job_id": job_id})
        logger.info(f"[MigrationJob] Job {job_id} cancelled")
        return None
    except Exception as e:
        logger.exception(f"[MigrationJob] Job {job_id} failed: {e}")
        await _drain(pending_writes)
        await job_service.fail_job(job_id, str(e), session_factory)
        broadcaster.publish(EventType.MIGRATION_FAILED, {"job_id": job_id, "error": str(e)})
        return None

    await _drain(pending_writes)
    await job_service.complete_job(job_id, result.to_dict(), session_factory)
    broadcaster.publish(EventType.MIGRATION_COMPLETED, {"job_id": job_id, "result": result.to_dict()})
    logger.info(f"[MigrationJob] Job {job_id} completed")
    return result


async def _drain(tasks: set[asyncio.Task]):
    """Let in-flight progress writes land before the terminal write."""
    if tasks:
        await asyncio.gather(*list(tasks), return_exceptions=True)


def start_migration_job(job_id: str, options: MigrationRunOptions, **kwargs) -> asyncio.Task:
    """Launch run_migration_for_job in the background."""
    task = asyncio.create_task(run_migration_for_job(job_id, options, **kwargs))
    _running_tasks.add(task)
    task.add_done_callback(_running_tasks.discard)
    return task


async def stop_running_jobs():
    """Cancel background runs on shutdown."""
    for task in list(_running_tasks):
        task.cancel()
    if _running_tasks:
        await asyncio.gather(*list(_running_tasks), return_exceptions=True)
