"""
Migration router - catalog layout migration jobs

This package combines several sub-routers:
- precheck: Dry-run counts for a set of filters
- jobs: Start, control and inspect migration jobs
- events: Server-Sent Events streaming of job progress
"""
from fastapi import APIRouter

from .precheck import router as precheck_router
from .jobs import router as jobs_router
from .events import router as events_router

# Create the main migration router that combines all sub-routers
router = APIRouter()

router.include_router(precheck_router)
router.include_router(jobs_router)
router.include_router(events_router)
