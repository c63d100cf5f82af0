"""
Migration job endpoints - start, pause/resume/cancel, status and failures
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ...config import get_settings
from ...database import get_session_factory
from ...services import job_service
from ...services.job_service import JobConflictError, job_to_dict
from ...services.migration_job import start_migration_job
from .models import StartMigrationRequest, MigrationControlRequest

router = APIRouter()


@router.post("/start")
async def start_migration(
    request: StartMigrationRequest,
    session_factory=Depends(get_session_factory)
):
    """Create a migration job and run it in the background"""
    try:
        job = await job_service.create_migration_job(session_factory)
    except JobConflictError as e:
        raise HTTPException(409, str(e))

    options = request.to_run_options(get_settings())
    start_migration_job(job.id, options, session_factory=session_factory)
    return {"job_id": job.id, "status": job.status.value}


@router.post("/control")
async def control_migration(
    request: MigrationControlRequest,
    session_factory=Depends(get_session_factory)
):
    """Pause, resume or cancel a migration job"""
    if request.job_id:
        job = await job_service.get_job(request.job_id, session_factory)
    else:
        job = await job_service.get_active_migration_job(session_factory)
    if job is None:
        raise HTTPException(404, "No migration job to control")

    if request.action == "pause":
        await job_service.pause_job(job.id, session_factory)
    elif request.action == "resume":
        await job_service.resume_job(job.id, session_factory)
    else:
        await job_service.cancel_job(job.id, session_factory)

    latest = await job_service.get_job(job.id, session_factory)
    return {"job_id": job.id, "status": latest.status.value if latest else None}


@router.get("/jobs/{job_id}")
async def get_migration_job(job_id: str, session_factory=Depends(get_session_factory)):
    """Get a migration job's status and result"""
    job = await job_service.get_job(job_id, session_factory)
    if job is None:
        raise HTTPException(404, f"Job not found: {job_id}")
    return job_to_dict(job)


@router.get("/failed")
async def failed_migration_items(
    job_id: Optional[str] = None,
    session_factory=Depends(get_session_factory)
):
    """List artworks that failed in a job (latest migration job by default)"""
    found_id, items = await job_service.get_failed_items(job_id, session_factory)
    return {"job_id": found_id, "items": items}
