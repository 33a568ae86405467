"""Tests for APScheduler job configuration and the scheduled sync job body."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logbook.scheduler.jobs import _scheduled_sync, build_scheduler
from logbook.sync.engine import SyncReport, SyncState
from logbook.sync.settings_store import SyncSettings, SyncSettingsStore


class TestBuildScheduler:
    def test_returns_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_scheduled_sync_job_registered(self):
        scheduler = build_scheduler(MagicMock())
        job_ids = [job.id for job in scheduler.get_jobs()]
        assert "scheduled_sync" in job_ids

    def test_scheduled_sync_is_cron(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == "scheduled_sync")
        assert job.trigger.__class__.__name__ == "CronTrigger"

    def test_sync_hour_from_settings(self):
        """Scheduler respects the SYNC_HOUR setting."""
        with patch("logbook.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.sync_hour = 4
            scheduler = build_scheduler(MagicMock())

        job = next(j for j in scheduler.get_jobs() if j.id == "scheduled_sync")
        fields = {f.name: f for f in job.trigger.fields}
        assert str(fields["hour"]) == "4"

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


# ─── _scheduled_sync job body ─────────────────────────────────────────────────

class TestScheduledSyncJob:
    """Tests for the _scheduled_sync() coroutine.

    SyncEngine is lazily imported inside the function body, so it is patched
    at its source module path rather than on the scheduler.jobs namespace.
    """

    @pytest.mark.asyncio
    async def test_runs_full_cycle(self, engine):
        SyncSettingsStore().save(SyncSettings(url="https://logbook.example.com"))
        mock_engine = MagicMock()
        mock_engine.sync = AsyncMock(return_value=[SyncReport(category="flight records")])

        with patch("logbook.sync.engine.SyncEngine", return_value=mock_engine) as cls:
            await _scheduled_sync(engine=engine)

        mock_engine.sync.assert_awaited_once()
        assert cls.call_args.args[0].url == "https://logbook.example.com"

    @pytest.mark.asyncio
    async def test_skips_without_server(self, engine):
        with patch("logbook.sync.engine.SyncEngine") as cls:
            await _scheduled_sync(engine=engine)
        cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_skips_while_sync_running(self, engine):
        SyncSettingsStore().save(SyncSettings(url="https://logbook.example.com"))
        with patch("logbook.sync.engine.sync_in_progress", return_value=True), \
             patch("logbook.sync.engine.SyncEngine") as cls:
            await _scheduled_sync(engine=engine)
        cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_report_does_not_raise(self, engine):
        SyncSettingsStore().save(SyncSettings(url="https://logbook.example.com"))
        failed = SyncReport(category="flight records", state=SyncState.FAILED,
                            error="Error downloading flight records: boom")
        mock_engine = MagicMock()
        mock_engine.sync = AsyncMock(return_value=[failed])

        with patch("logbook.sync.engine.SyncEngine", return_value=mock_engine):
            await _scheduled_sync(engine=engine)
