"""
Layout migration runner.

Walks the candidate artworks batch by batch and migrates them with a small
pool of workers, honouring pause and cancel requests between items.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..config import get_settings
from ..database import AsyncSessionLocal
from ..models import Artwork
from .content_store import ContentStore
from .filters import build_migration_where, count_artworks, fetch_candidates, fetch_candidates_by_ids
from .item import migrate_artwork
from .types import (
    ContentRootNotConfigured,
    MigrationCancelled,
    MigrationFailedItem,
    MigrationJobResult,
    MigrationResult,
    MigrationRunOptions,
    MigrationStats,
    MigrationStatus,
    RunState,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[MigrationStats, list[str]], None]
AsyncPredicate = Callable[[], Awaitable[bool]]
StateCallback = Callable[[RunState], None]


class _MigrationRun:
    """State of one run: the single place where worker results are folded in."""

    def __init__(
        self,
        on_progress: ProgressCallback,
        check_cancelled: AsyncPredicate,
        check_paused: AsyncPredicate,
        on_state_change: StateCallback,
        poll_interval: float
    ):
        self.on_progress = on_progress
        self.check_cancelled = check_cancelled
        self.check_paused = check_paused
        self.on_state_change = on_state_change
        self.poll_interval = poll_interval

        self.stats = MigrationStats()
        self.failed_items: list[MigrationFailedItem] = []
        self.cancelled = False
        self.paused = False

    async def ensure_not_cancelled(self):
        if self.cancelled:
            raise MigrationCancelled()
        if await self.check_cancelled():
            self.cancelled = True
            logger.info("[Migration] Job cancelled")
            raise MigrationCancelled()

    async def ensure_running(self):
        """Block while paused. A cancel request still gets through."""
        while await self.check_paused():
            if not self.paused:
                self.paused = True
                logger.info("[Migration] Job paused")
                self._notify_state(RunState.PAUSED)
            await self.ensure_not_cancelled()
            await asyncio.sleep(self.poll_interval)
        if self.paused:
            self.paused = False
            logger.info("[Migration] Job resumed")
            self._notify_state(RunState.RUNNING)

    async def checkpoint(self):
        await self.ensure_not_cancelled()
        await self.ensure_running()

    def _notify_state(self, state: RunState):
        try:
            self.on_state_change(state)
        except Exception as e:
            logger.warning(f"[Migration] State change callback failed: {e}")

    def record(self, artwork_id: int, external_id: Optional[str], result: MigrationResult):
        stats = self.stats
        stats.processed += 1
        if result.status == MigrationStatus.SUCCESS:
            stats.success += 1
        elif result.status == MigrationStatus.SKIPPED:
            stats.skipped += 1
        else:
            stats.failed += 1
            self.failed_items.append(MigrationFailedItem(
                artwork_id=artwork_id,
                external_id=external_id,
                logs=list(result.logs)
            ))

        if result.status == MigrationStatus.FAILED:
            logger.warning(f"[Migration] [ID:{artwork_id}] {'; '.join(result.logs)}")
        elif result.status == MigrationStatus.SUCCESS:
            logger.info(f"[Migration] [ID:{artwork_id}] {'; '.join(result.logs)}")

        try:
            self.on_progress(stats.snapshot(), [f"[{external_id}] {m}" for m in result.logs])
        except Exception as e:
            logger.warning(f"[Migration] Progress callback failed: {e}")


async def run_migration_job(
    on_progress: ProgressCallback,
    check_cancelled: AsyncPredicate,
    check_paused: AsyncPredicate,
    on_state_change: StateCallback,
    options: Optional[MigrationRunOptions] = None,
    *,
    content_root: Optional[str] = None,
    session_factory=None,
    store: Optional[ContentStore] = None
) -> MigrationJobResult:
    """Run a layout migration over the filtered artworks.

    Args:
        on_progress: Called after every artwork with a stats snapshot and its log lines
        check_cancelled: Returns True once the job should stop
        check_paused: Returns True while the job should wait
        on_state_change: Called with PAUSED / RUNNING when pausing starts / ends
        options: Candidate selection, batching, concurrency and safety options
        content_root: Overrides the configured scan path
        session_factory: Async session factory (defaults to the app database)
        store: Filesystem operations (defaults to the real filesystem)

    Returns:
        Final stats and every failed artwork

    Raises:
        ContentRootNotConfigured: No content root given or configured
        MigrationCancelled: A cancel request was observed
    """
    settings = get_settings()
    options = options or MigrationRunOptions()
    session_factory = session_factory or AsyncSessionLocal
    store = store or ContentStore()

    scan_path = content_root or settings.scan_path
    if not scan_path:
        raise ContentRootNotConfigured()

    batch_size = max(1, options.batch_size or 1)
    concurrency = max(1, options.concurrency or 1)
    poll_interval = (
        options.pause_poll_interval
        if options.pause_poll_interval is not None
        else settings.migration_pause_poll_interval
    )
    junk_entries = options.junk_entries if options.junk_entries is not None else settings.migration_junk_entries

    run = _MigrationRun(on_progress, check_cancelled, check_paused, on_state_change, poll_interval)
    where = build_migration_where(options.filters)
    target_ids = options.target_ids or None

    # Fixed denominator for progress, never recomputed during the run
    async with session_factory() as db:
        if target_ids:
            run.stats.total = await count_artworks(db, where + [Artwork.id.in_(target_ids)])
        else:
            run.stats.total = await count_artworks(db, where)

    if target_ids:
        logger.info(
            f"[Migration] Starting migration of {run.stats.total} artworks "
            f"(ids: {','.join(str(i) for i in target_ids)})"
        )
    else:
        logger.info(f"[Migration] Starting migration of {run.stats.total} artworks")

    async def run_batch(batch: list[tuple[int, Optional[str]]]):
        if not batch:
            return
        next_index = 0

        async def worker():
            nonlocal next_index
            while not run.cancelled:
                await run.checkpoint()
                if next_index >= len(batch):
                    return
                artwork_id, external_id = batch[next_index]
                next_index += 1
                result = await migrate_artwork(
                    artwork_id,
                    scan_path,
                    options.safety,
                    session_factory=session_factory,
                    store=store,
                    junk_entries=junk_entries
                )
                run.record(artwork_id, external_id, result)

        workers = [worker() for _ in range(min(concurrency, len(batch)))]
        # Let every in-flight artwork finish before surfacing a cancel or error
        outcomes = await asyncio.gather(*workers, return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, MigrationCancelled):
                raise outcome
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

    if target_ids:
        sorted_ids = sorted(set(target_ids))
        for start in range(0, len(sorted_ids), batch_size):
            await run.checkpoint()
            id_batch = sorted_ids[start:start + batch_size]
            async with session_factory() as db:
                batch = await fetch_candidates_by_ids(db, where, id_batch)
            await run_batch(batch)
    else:
        last_id = options.start_after_id or 0
        while True:
            await run.checkpoint()
            async with session_factory() as db:
                batch = await fetch_candidates(db, where, after_id=last_id, limit=batch_size)
            if not batch:
                break
            await run_batch(batch)
            last_id = batch[-1][0]

    logger.info(
        f"[Migration] Finished: {run.stats.success} migrated, {run.stats.skipped} skipped, "
        f"{run.stats.failed} failed of {run.stats.total}"
    )
    return MigrationJobResult(stats=run.stats.snapshot(), failed_items=run.failed_items)
