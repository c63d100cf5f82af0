"""
ArtShelf layout migration module.

Relocates each artwork's files to the canonical <artist user id>/<external id>/
directory under the content root and keeps image paths in the database in
step with the filesystem. Runs are resumable: artworks already in place are
skipped, and artworks whose files were moved without their metadata are
repaired in place.
"""

# Types and constants
from .types import (
    TransferMode,
    MigrationStatus,
    RunState,
    MigrationError,
    MigrationCancelled,
    ContentRootNotConfigured,
    CopyVerificationError,
    MigrationFilters,
    SafetyOptions,
    MigrationStats,
    MigrationResult,
    MigrationFailedItem,
    MigrationJobResult,
    MigrationRunOptions,
    MigrationPrecheckResult,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_JUNK_ENTRIES,
)

# Selection
from .filters import (
    build_filter_clauses,
    build_migration_where,
    count_artworks,
    fetch_candidates,
    fetch_candidates_by_ids,
    precheck_migration,
)

# Filesystem boundary
from .content_store import ContentStore

# Per-artwork migration
from .item import migrate_artwork

# Job runner
from .runner import run_migration_job

__all__ = [
    # Types
    "TransferMode",
    "MigrationStatus",
    "RunState",
    "MigrationError",
    "MigrationCancelled",
    "ContentRootNotConfigured",
    "CopyVerificationError",
    "MigrationFilters",
    "SafetyOptions",
    "MigrationStats",
    "MigrationResult",
    "MigrationFailedItem",
    "MigrationJobResult",
    "MigrationRunOptions",
    "MigrationPrecheckResult",
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_CONCURRENCY",
    "DEFAULT_JUNK_ENTRIES",
    # Selection
    "build_filter_clauses",
    "build_migration_where",
    "count_artworks",
    "fetch_candidates",
    "fetch_candidates_by_ids",
    "precheck_migration",
    # Filesystem
    "ContentStore",
    # Migration
    "migrate_artwork",
    "run_migration_job",
]
