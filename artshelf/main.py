"""
ArtShelf API - catalog storage layout migration service
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .config import get_settings
from .database import init_db, close_db

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    # Startup
    logger.info("Starting ArtShelf API...")

    await init_db()

    # Jobs left active by a previous process have no runner any more
    from .services.job_service import recover_interrupted_jobs
    await recover_interrupted_jobs()

    if not settings.scan_path:
        logger.warning("[Startup] ARTSHELF_SCAN_PATH is not set; migrations will fail until it is configured")

    yield

    # Shutdown
    logger.info("[Shutdown] Stopping migration jobs...")
    from .services.migration_job import stop_running_jobs
    await stop_running_jobs()

    logger.info("[Shutdown] Closing database connections...")
    await close_db()
    logger.info("ArtShelf shutdown complete.")


app = FastAPI(
    title="ArtShelf",
    description="Artwork catalog storage layout migration",
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers - all under /api prefix
from .routers import migration

app.include_router(migration.router, prefix="/api/migration", tags=["Migration"])


@app.get("/api")
async def api_root():
    return {
        "name": "ArtShelf",
        "version": "0.1.0",
        "status": "running"
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "artshelf.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
