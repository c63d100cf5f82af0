"""
Tests for the layout migration runner: batching, worker pool, pause/resume
and cancellation.
"""
from unittest.mock import patch

import pytest

from artshelf.config import Settings
from artshelf.migration import (
    ContentRootNotConfigured,
    MigrationCancelled,
    MigrationFilters,
    MigrationRunOptions,
    RunState,
    precheck_migration,
    run_migration_job,
)
from artshelf.migration.item import load_artwork


async def never():
    return False


class Recorder:
    """Collects what the runner reports through its callbacks."""

    def __init__(self):
        self.snapshots = []
        self.messages = []
        self.states = []

    def on_progress(self, stats, messages):
        self.snapshots.append(stats)
        self.messages.extend(messages)

    def on_state_change(self, state):
        self.states.append(state)

    @property
    def processed(self):
        return self.snapshots[-1].processed if self.snapshots else 0


async def run(recorder, options, content_root, session_factory, check_cancelled=never, check_paused=never):
    return await run_migration_job(
        recorder.on_progress,
        check_cancelled,
        check_paused,
        recorder.on_state_change,
        options,
        content_root=str(content_root),
        session_factory=session_factory
    )


async def make_many(make_artwork, count, **kwargs):
    return [
        await make_artwork(external_id=f"a{i}", files=[f"a{i}_p0.jpg"], **kwargs)
        for i in range(count)
    ]


class TestScan:
    @pytest.mark.asyncio
    async def test_migrates_every_eligible_artwork(self, make_artwork, image_paths, session_factory, content_root):
        ids = await make_many(make_artwork, 5)
        await make_artwork(external_id="orphan", files=["orphan.jpg"], user_id=None)
        recorder = Recorder()

        result = await run(
            recorder, MigrationRunOptions(batch_size=2, concurrency=3), content_root, session_factory
        )

        assert result.stats.total == 5
        assert result.stats.processed == 5
        assert result.stats.success == 5
        assert result.failed_items == []
        for i, artwork_id in enumerate(ids):
            assert await image_paths(artwork_id) == [f"/u1/a{i}/a{i}_p0.jpg"]

    @pytest.mark.asyncio
    async def test_total_matches_precheck(self, make_artwork, session_factory, content_root):
        await make_artwork(external_id="a1", files=["a1.jpg"], title="cat")
        await make_artwork(external_id="a2", files=["a2.jpg"], title="cat", user_id=None)
        await make_artwork(external_id="a3", files=["a3.jpg"], title="dog")
        filters = MigrationFilters(search="cat")

        async with session_factory() as db:
            precheck = await precheck_migration(db, filters)
        result = await run(Recorder(), MigrationRunOptions(filters=filters), content_root, session_factory)

        assert result.stats.total == precheck.eligible == 1
        assert result.stats.processed == 1

    @pytest.mark.asyncio
    async def test_start_after_id(self, make_artwork, session_factory, content_root):
        ids = await make_many(make_artwork, 4)

        result = await run(
            Recorder(), MigrationRunOptions(start_after_id=ids[1]), content_root, session_factory
        )

        assert result.stats.processed == 2
        assert (content_root / "old" / "a0_p0.jpg").exists()
        assert (content_root / "u1" / "a3" / "a3_p0.jpg").exists()

    @pytest.mark.asyncio
    async def test_rerun_skips_everything(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 3)
        await run(Recorder(), MigrationRunOptions(), content_root, session_factory)

        result = await run(Recorder(), MigrationRunOptions(), content_root, session_factory)

        assert result.stats.skipped == 3
        assert result.stats.success == 0

    @pytest.mark.asyncio
    async def test_empty_catalog(self, session_factory, content_root):
        recorder = Recorder()

        result = await run(recorder, MigrationRunOptions(), content_root, session_factory)

        assert result.stats.total == 0
        assert result.stats.percent == 0
        assert recorder.snapshots == []


class TestExplicitIds:
    @pytest.mark.asyncio
    async def test_ineligible_ids_are_dropped(self, make_artwork, session_factory, content_root):
        good = await make_artwork(external_id="a1", files=["a1_p0.jpg"])
        orphan = await make_artwork(external_id="a2", files=["a2_p0.jpg"], user_id=None)

        result = await run(
            Recorder(), MigrationRunOptions(target_ids=[good, orphan]), content_root, session_factory
        )

        assert result.stats.total == 1
        assert result.stats.processed == 1
        assert result.stats.success == 1

    @pytest.mark.asyncio
    async def test_duplicate_ids_processed_once(self, make_artwork, session_factory, content_root):
        ids = await make_many(make_artwork, 3)

        result = await run(
            Recorder(),
            MigrationRunOptions(target_ids=[ids[2], ids[0], ids[2]], batch_size=1),
            content_root,
            session_factory
        )

        assert result.stats.total == 2
        assert result.stats.processed == 2
        assert (content_root / "old" / "a1_p0.jpg").exists()


class TestProgress:
    @pytest.mark.asyncio
    async def test_stats_stay_consistent(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 4)
        broken = await make_artwork(external_id="b1", files=["b1_p0.jpg"], source_dir="gone", write_files=False)
        recorder = Recorder()

        result = await run(recorder, MigrationRunOptions(concurrency=3), content_root, session_factory)

        assert len(recorder.snapshots) == 5
        for stats in recorder.snapshots:
            assert stats.processed == stats.success + stats.skipped + stats.failed
            assert stats.processed <= stats.total == 5
        assert [s.processed for s in recorder.snapshots] == [1, 2, 3, 4, 5]
        assert result.stats.failed == 1
        assert result.failed_items[0].artwork_id == broken
        assert result.failed_items[0].external_id == "b1"
        assert any("Source directory not found" in line for line in result.failed_items[0].logs)

    @pytest.mark.asyncio
    async def test_messages_are_prefixed_with_external_id(self, make_artwork, session_factory, content_root):
        await make_artwork(external_id="a1", files=["a1_p0.jpg"])
        recorder = Recorder()

        await run(recorder, MigrationRunOptions(), content_root, session_factory)

        assert "[a1] Migrated to u1/a1" in recorder.messages
        assert all(m.startswith("[a1] ") for m in recorder.messages)

    @pytest.mark.asyncio
    async def test_failing_progress_callback_does_not_stop_the_run(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 3)

        def explode(stats, messages):
            raise RuntimeError("listener gone")

        result = await run_migration_job(
            explode, never, never, lambda state: None, MigrationRunOptions(),
            content_root=str(content_root), session_factory=session_factory
        )

        assert result.stats.success == 3

    @pytest.mark.asyncio
    async def test_load_error_fails_only_that_artwork(self, make_artwork, session_factory, content_root):
        ids = await make_many(make_artwork, 3)

        async def flaky_load(factory, artwork_id):
            if artwork_id == ids[1]:
                raise RuntimeError("database is locked")
            return await load_artwork(factory, artwork_id)

        with patch("artshelf.migration.item.load_artwork", side_effect=flaky_load):
            result = await run(Recorder(), MigrationRunOptions(concurrency=2), content_root, session_factory)

        assert result.stats.processed == 3
        assert result.stats.success == 2
        assert result.stats.failed == 1
        assert result.failed_items[0].artwork_id == ids[1]
        assert "database is locked" in result.failed_items[0].logs[-1]


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_stops_between_items(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 5)
        recorder = Recorder()

        async def cancel_after_two():
            return recorder.processed >= 2

        with pytest.raises(MigrationCancelled):
            await run(
                recorder, MigrationRunOptions(concurrency=1), content_root, session_factory,
                check_cancelled=cancel_after_two
            )

        assert recorder.processed == 2
        assert (content_root / "u1" / "a1" / "a1_p0.jpg").exists()
        assert (content_root / "old" / "a2_p0.jpg").exists()

    @pytest.mark.asyncio
    async def test_in_flight_items_finish_before_cancel(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 6)
        recorder = Recorder()

        async def cancel_after_one():
            return recorder.processed >= 1

        with pytest.raises(MigrationCancelled):
            await run(
                recorder, MigrationRunOptions(concurrency=3), content_root, session_factory,
                check_cancelled=cancel_after_one
            )

        final = recorder.snapshots[-1]
        assert 1 <= final.processed <= 3
        assert final.processed == final.success

    @pytest.mark.asyncio
    async def test_cancel_while_paused(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 2)
        recorder = Recorder()

        async def paused():
            return True

        async def cancel_once_paused():
            return RunState.PAUSED in recorder.states

        options = MigrationRunOptions(pause_poll_interval=0.01)
        with pytest.raises(MigrationCancelled):
            await run(
                recorder, options, content_root, session_factory,
                check_cancelled=cancel_once_paused, check_paused=paused
            )

        assert recorder.states == [RunState.PAUSED]
        assert recorder.processed == 0


class TestPause:
    @pytest.mark.asyncio
    async def test_pause_then_resume(self, make_artwork, session_factory, content_root):
        await make_many(make_artwork, 3)
        recorder = Recorder()
        polls = 0
        processed_at_pause = []

        async def pause_after_first():
            nonlocal polls
            if recorder.processed == 1 and polls < 3:
                polls += 1
                return True
            return False

        def on_state_change(state):
            recorder.states.append(state)
            processed_at_pause.append(recorder.processed)

        result = await run_migration_job(
            recorder.on_progress, never, pause_after_first, on_state_change,
            MigrationRunOptions(concurrency=1, pause_poll_interval=0.01),
            content_root=str(content_root), session_factory=session_factory
        )

        assert recorder.states == [RunState.PAUSED, RunState.RUNNING]
        assert processed_at_pause == [1, 1]
        assert result.stats.success == 3


class TestConfiguration:
    @pytest.mark.asyncio
    async def test_missing_content_root(self, session_factory):
        with patch("artshelf.migration.runner.get_settings", return_value=Settings(scan_path=None)):
            with pytest.raises(ContentRootNotConfigured):
                await run_migration_job(
                    lambda stats, messages: None, never, never, lambda state: None,
                    session_factory=session_factory
                )

    @pytest.mark.asyncio
    async def test_scan_path_from_settings(self, make_artwork, session_factory, content_root):
        await make_artwork()
        settings = Settings(scan_path=str(content_root))

        with patch("artshelf.migration.runner.get_settings", return_value=settings):
            result = await run_migration_job(
                lambda stats, messages: None, never, never, lambda state: None,
                session_factory=session_factory
            )

        assert result.stats.success == 1
