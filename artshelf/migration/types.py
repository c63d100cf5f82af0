"""
Layout migration types and constants.

Value types shared by the filter builder, the per-artwork migrator and the
job runner.
"""
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Optional


class TransferMode(str, Enum):
    MOVE = "move"
    COPY = "copy"


class MigrationStatus(str, Enum):
    SUCCESS = "SUCCESS"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class RunState(str, Enum):
    """States reported through the runner's state-change callback."""
    PAUSED = "PAUSED"
    RUNNING = "RUNNING"


# Defaults for MigrationRunOptions
DEFAULT_BATCH_SIZE = 200
DEFAULT_CONCURRENCY = 3

# OS metadata entries that may be deleted before removing an emptied source directory
DEFAULT_JUNK_ENTRIES = frozenset({"@eaDir", ".DS_Store"})


class MigrationError(Exception):
    """Base error for layout migration."""


class MigrationCancelled(MigrationError):
    """Raised out of the runner when a cancel request is observed."""

    def __init__(self, message: str = "Migration cancelled"):
        super().__init__(message)


class ContentRootNotConfigured(MigrationError):
    """Raised when no content root (scan path) is configured."""

    def __init__(self, message: str = "Content root (ARTSHELF_SCAN_PATH) is not configured"):
        super().__init__(message)


class CopyVerificationError(MigrationError):
    """Copied file size does not match its source."""


@dataclass(frozen=True)
class MigrationFilters:
    """Selection over artworks, shared by precheck and the actual run."""
    search: Optional[str] = None
    artist_name: Optional[str] = None
    start_date: Optional[date] = None  # Inclusive, UTC day
    end_date: Optional[date] = None  # Inclusive, UTC day
    external_id: Optional[str] = None
    exact_match: bool = False


@dataclass(frozen=True)
class SafetyOptions:
    transfer_mode: TransferMode = TransferMode.MOVE
    verify_after_copy: bool = True  # Compare source/destination sizes after copying
    cleanup_source: bool = True  # Remove source files/directory after relocation


@dataclass
class MigrationStats:
    total: int = 0
    processed: int = 0
    success: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 0
        return min(100, int(self.processed / self.total * 100))

    def snapshot(self) -> "MigrationStats":
        return MigrationStats(**asdict(self))


@dataclass
class MigrationResult:
    """Outcome of migrating a single artwork."""
    artwork_id: int
    status: MigrationStatus
    logs: list[str] = field(default_factory=list)


@dataclass
class MigrationFailedItem:
    artwork_id: int
    external_id: Optional[str]
    logs: list[str]


@dataclass
class MigrationJobResult:
    stats: MigrationStats
    failed_items: list[MigrationFailedItem] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self.stats)
        data["failed_items"] = [asdict(item) for item in self.failed_items]
        return data


@dataclass
class MigrationRunOptions:
    target_ids: Optional[list[int]] = None  # Explicit ids; overrides the open scan
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    start_after_id: int = 0  # Resume cursor for the open scan
    filters: MigrationFilters = field(default_factory=MigrationFilters)
    safety: SafetyOptions = field(default_factory=SafetyOptions)
    pause_poll_interval: Optional[float] = None  # None = settings default
    junk_entries: Optional[frozenset] = None  # None = settings default


@dataclass
class MigrationPrecheckResult:
    total: int
    eligible: int
    missing_artist: int
    missing_external_id: int
    missing_images: int
