"""
Migration precheck - how many artworks a run with these filters would touch
"""
from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...database import get_db
from ...migration import precheck_migration
from .models import PrecheckRequest

router = APIRouter()


@router.post("/precheck")
async def migration_precheck(request: PrecheckRequest, db: AsyncSession = Depends(get_db)):
    """Count total, eligible and ineligible artworks for the given filters"""
    result = await precheck_migration(db, request.to_filters(), request.target_ids)
    return asdict(result)
