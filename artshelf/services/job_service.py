"""
Persisted job state for long-running migrations.

The runner never changes a job's status itself; it polls the record to see
pause/cancel requests and reports progress and the terminal outcome here.
"""
import asyncio
import json
import logging
import uuid
from typing import Optional

from sqlalchemy import select, update

from ..database import AsyncSessionLocal
from ..models import SystemJob, JobType, JobStatus, ACTIVE_JOB_STATUSES, TERMINAL_JOB_STATUSES

logger = logging.getLogger(__name__)

# Serializes the check-then-insert in create_migration_job within this process
_create_lock = asyncio.Lock()


class JobConflictError(Exception):
    """Another migration job is still active."""


class JobNotFoundError(Exception):
    """No job with the given id."""


def job_to_dict(job: SystemJob) -> dict:
    return {
        "id": job.id,
        "type": job.job_type.value,
        "status": job.status.value,
        "progress": job.progress,
        "message": job.message,
        "error": job.error,
        "result": json.loads(job.result) if job.result else None,
        "created_at": job.created_at.isoformat() if job.created_at else None,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
    }


async def create_migration_job(session_factory=None) -> SystemJob:
    """Create a running migration job, refusing if one is already active."""
    session_factory = session_factory or AsyncSessionLocal
    async with _create_lock:
        async with session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(SystemJob.id)
                    .where(
                        SystemJob.job_type == JobType.migration,
                        SystemJob.status.in_(ACTIVE_JOB_STATUSES)
                    )
                    .limit(1)
                )
                active_id = result.scalar_one_or_none()
                if active_id:
                    raise JobConflictError(f"Migration already in progress (job {active_id})")

                job = SystemJob(
                    id=uuid.uuid4().hex,
                    job_type=JobType.migration,
                    status=JobStatus.running,
                    progress=0,
                    message="Initializing migration"
                )
                db.add(job)

    logger.info(f"[JobService] Created migration job {job.id}")
    return job


async def get_job(job_id: str, session_factory=None) -> Optional[SystemJob]:
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        return await db.get(SystemJob, job_id)


async def get_active_migration_job(session_factory=None) -> Optional[SystemJob]:
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        result = await db.execute(
            select(SystemJob)
            .where(
                SystemJob.job_type == JobType.migration,
                SystemJob.status.in_(ACTIVE_JOB_STATUSES)
            )
            .order_by(SystemJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def get_latest_migration_job(session_factory=None) -> Optional[SystemJob]:
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        result = await db.execute(
            select(SystemJob)
            .where(SystemJob.job_type == JobType.migration)
            .order_by(SystemJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


async def update_progress(job_id: str, progress: int, message: str, session_factory=None):
    """Record progress. Finished jobs are left untouched."""
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        job = await db.get(SystemJob, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            return
        job.progress = max(0, min(100, int(progress)))
        job.message = message
        await db.commit()


async def _transition(
    job_id: str,
    from_statuses,
    to_status: JobStatus,
    session_factory=None,
    **values
) -> bool:
    """Move a job to to_status if it is currently in one of from_statuses."""
    session_factory = session_factory or AsyncSessionLocal
    query = update(SystemJob).where(SystemJob.id == job_id)
    if from_statuses is not None:
        query = query.where(SystemJob.status.in_(from_statuses))
    async with session_factory() as db:
        result = await db.execute(query.values(status=to_status, **values))
        await db.commit()
    return result.rowcount > 0


async def complete_job(job_id: str, result: dict, session_factory=None):
    await _transition(
        job_id, None, JobStatus.completed, session_factory,
        progress=100, message="Completed", result=json.dumps(result, default=str)
    )


async def fail_job(job_id: str, error: str, session_factory=None):
    await _transition(job_id, None, JobStatus.failed, session_factory, error=error, message="Failed")


async def mark_cancelled(job_id: str, session_factory=None):
    await _transition(job_id, None, JobStatus.cancelled, session_factory, message="Cancelled")


async def pause_job(job_id: str, session_factory=None) -> bool:
    return await _transition(
        job_id, (JobStatus.running,), JobStatus.paused, session_factory, message="Paused"
    )


async def resume_job(job_id: str, session_factory=None) -> bool:
    return await _transition(
        job_id, (JobStatus.paused,), JobStatus.running, session_factory, message="Resumed"
    )


async def cancel_job(job_id: str, session_factory=None) -> bool:
    """Request cancellation; the runner acknowledges it with mark_cancelled."""
    return await _transition(
        job_id,
        (JobStatus.pending, JobStatus.running, JobStatus.paused),
        JobStatus.cancelling,
        session_factory,
        message="Cancelling..."
    )


async def recover_interrupted_jobs(session_factory=None) -> int:
    """Fail jobs a previous process left active; their runner is gone."""
    session_factory = session_factory or AsyncSessionLocal
    async with session_factory() as db:
        result = await db.execute(
            update(SystemJob)
            .where(SystemJob.status.in_(ACTIVE_JOB_STATUSES))
            .values(status=JobStatus.failed, error="Interrupted by restart", message="Failed")
        )
        await db.commit()
    if result.rowcount > 0:
        logger.info(f"[JobService] Marked {result.rowcount} interrupted jobs as failed")
    return result.rowcount


async def get_failed_items(job_id: Optional[str] = None, session_factory=None) -> tuple[Optional[str], list]:
    """Failed artworks recorded in a job's result (the latest job by default)."""
    if job_id:
        job = await get_job(job_id, session_factory)
    else:
        job = await get_latest_migration_job(session_factory)
    if job is None or not job.result:
        return (job.id if job else None), []
    result = json.loads(job.result)
    return job.id, result.get("failed_items", [])
