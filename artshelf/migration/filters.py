"""
Artwork selection for layout migration.

The same predicate drives the precheck counts and the actual run, so the
number of eligible artworks reported up front is exactly the number the
runner will attempt.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Artist, Artwork
from .types import MigrationFilters, MigrationPrecheckResult


def utc_day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def has_artist():
    return Artwork.artist_id.is_not(None)


def has_external_id():
    return Artwork.external_id.is_not(None)


def has_images():
    return Artwork.images.any()


def eligibility_clause():
    """Artworks that can be migrated at all: owner, external id and at least one file."""
    return and_(has_artist(), has_external_id(), has_images())


def build_filter_clauses(filters: Optional[MigrationFilters]) -> list:
    """Translate user filters into WHERE clauses (eligibility not included)."""
    clauses = []
    if filters is None:
        return clauses

    if filters.external_id:
        # Exact upstream id beats any free-text search
        clauses.append(Artwork.external_id == filters.external_id)
    elif filters.search:
        if filters.exact_match:
            clauses.append(Artwork.title == filters.search)
        else:
            pattern = f"%{filters.search}%"
            clauses.append(or_(
                Artwork.title.ilike(pattern),
                Artwork.description.ilike(pattern),
                Artwork.artist.has(Artist.name.ilike(pattern))
            ))

    if filters.artist_name:
        if filters.exact_match:
            clauses.append(Artwork.artist.has(Artist.name == filters.artist_name))
        else:
            clauses.append(Artwork.artist.has(Artist.name.ilike(f"%{filters.artist_name}%")))

    if filters.start_date:
        clauses.append(Artwork.source_date >= utc_day_start(filters.start_date))
    if filters.end_date:
        # Whole end day included
        clauses.append(Artwork.source_date < utc_day_start(filters.end_date + timedelta(days=1)))

    return clauses


def build_migration_where(filters: Optional[MigrationFilters] = None) -> list:
    """Full candidate predicate: user filters AND eligibility."""
    return build_filter_clauses(filters) + [eligibility_clause()]


async def count_artworks(db: AsyncSession, where: list) -> int:
    query = select(func.count(Artwork.id)).where(*where)
    result = await db.execute(query)
    return result.scalar() or 0


async def fetch_candidates(
    db: AsyncSession,
    where: list,
    after_id: int = 0,
    limit: int = 200
) -> list[tuple[int, Optional[str]]]:
    """Next page of (id, external_id) past the cursor, ordered by id."""
    query = (
        select(Artwork.id, Artwork.external_id)
        .where(*where, Artwork.id > after_id)
        .order_by(Artwork.id)
        .limit(limit)
    )
    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def fetch_candidates_by_ids(
    db: AsyncSession,
    where: list,
    ids: list[int]
) -> list[tuple[int, Optional[str]]]:
    """The subset of ids that satisfies the predicate, ordered by id."""
    if not ids:
        return []
    query = (
        select(Artwork.id, Artwork.external_id)
        .where(*where, Artwork.id.in_(ids))
        .order_by(Artwork.id)
    )
    result = await db.execute(query)
    return [(row[0], row[1]) for row in result.all()]


async def precheck_migration(
    db: AsyncSession,
    filters: Optional[MigrationFilters] = None,
    target_ids: Optional[list[int]] = None
) -> MigrationPrecheckResult:
    """Count what a migration with these filters would touch. Read-only."""
    base = build_filter_clauses(filters)
    if target_ids:
        base.append(Artwork.id.in_(target_ids))

    return MigrationPrecheckResult(
        total=await count_artworks(db, base),
        eligible=await count_artworks(db, base + [eligibility_clause()]),
        missing_artist=await count_artworks(db, base + [Artwork.artist_id.is_(None)]),
        missing_external_id=await count_artworks(db, base + [Artwork.external_id.is_(None)]),
        missing_images=await count_artworks(db, base + [~has_images()]),
    )
