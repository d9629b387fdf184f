"""
Import Scheduler Tests
======================

Job execution, skip-while-running, statistics and start/stop control. The
orchestrator is mocked.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from newsforge.config.settings import ScheduleJobSettings, SchedulerSettings
from newsforge.models.article import ImportOutcome
from newsforge.processing.orchestrator import RunReport
from newsforge.scheduler.import_scheduler import ImportScheduler


def report(imported=0, skipped=0, errors=0, cancelled=False):
    run = RunReport(run_id="r1", started_at=datetime.now(timezone.utc), cancelled=cancelled)
    run.outcomes["World"] = ImportOutcome(imported=imported, skipped=skipped, errors=errors)
    return run


async def wait_forever(seconds):
    await asyncio.Event().wait()


@pytest.fixture
def orchestrator():
    mock = Mock()
    mock.is_running = False
    mock.run_import = AsyncMock(return_value=report(imported=3, skipped=1))
    mock.status = Mock(return_value={"running": False, "current_run_id": None, "last_result": None})
    return mock


@pytest.fixture
def scheduler(orchestrator, settings):
    return ImportScheduler(orchestrator, settings, sleep=AsyncMock())


class TestRunJob:

    def test_default_jobs(self, scheduler):
        assert set(scheduler.jobs) == {"main", "backup"}
        assert scheduler.jobs["main"].config.interval_minutes == 120
        assert scheduler.jobs["main"].config.max_articles_per_category == 8
        assert scheduler.jobs["backup"].config.interval_minutes == 360
        assert scheduler.jobs["backup"].config.max_articles_per_category == 5
        assert scheduler.jobs["backup"].config.initial_delay_minutes == 30

    @pytest.mark.asyncio
    async def test_run_job_updates_stats(self, scheduler, orchestrator):
        assert await scheduler.run_job("main")

        orchestrator.run_import.assert_awaited_once_with(None, 8)
        stats = scheduler.jobs["main"].stats
        assert stats.runs == 1
        assert stats.total_imported == 3
        assert stats.total_skipped == 1
        assert stats.last_outcome == {"imported": 3, "skipped": 1, "errors": 0}
        assert stats.last_duration is not None

    @pytest.mark.asyncio
    async def test_skipped_while_import_running(self, scheduler, orchestrator):
        orchestrator.is_running = True

        assert await scheduler.run_job("backup") is False

        orchestrator.run_import.assert_not_called()
        assert scheduler.jobs["backup"].stats.skipped == 1
        assert scheduler.jobs["backup"].stats.runs == 0

    @pytest.mark.asyncio
    async def test_failure_recorded(self, scheduler, orchestrator):
        orchestrator.run_import = AsyncMock(side_effect=RuntimeError("feed host down"))

        assert await scheduler.run_job("main")

        stats = scheduler.jobs["main"].stats
        assert stats.failures == 1
        assert stats.last_error == "feed host down"

    @pytest.mark.asyncio
    async def test_cancelled_run_noted(self, scheduler, orchestrator):
        orchestrator.run_import = AsyncMock(return_value=report(cancelled=True))

        await scheduler.run_job("main")

        assert scheduler.jobs["main"].stats.last_error == "run cancelled"

    @pytest.mark.asyncio
    async def test_configured_categories_passed(self, orchestrator, settings_factory):
        settings = settings_factory(scheduler=SchedulerSettings(categories=["World", "Science"]))
        scheduler = ImportScheduler(orchestrator, settings, sleep=AsyncMock())

        await scheduler.run_job("backup")

        orchestrator.run_import.assert_awaited_once_with(["World", "Science"], 5)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_start_and_stop_job(self, orchestrator, settings):
        gate = asyncio.Event()

        async def sleep(seconds):
            await gate.wait()

        scheduler = ImportScheduler(orchestrator, settings, sleep=sleep)

        assert scheduler.start_job("main")
        assert scheduler.start_job("main") is False
        assert scheduler.jobs["main"].active

        assert await scheduler.stop_job("main")
        assert not scheduler.jobs["main"].active
        assert await scheduler.stop_job("main") is False

    @pytest.mark.asyncio
    async def test_loop_runs_after_initial_delay(self, orchestrator, settings):
        delays = []
        ran = asyncio.Event()

        async def sleep(seconds):
            delays.append(seconds)
            if len(delays) > 1:
                ran.set()
                await asyncio.Event().wait()

        scheduler = ImportScheduler(orchestrator, settings, sleep=sleep)
        scheduler.start_job("backup")
        await asyncio.wait_for(ran.wait(), timeout=1)
        await scheduler.stop_all()

        assert delays == [30 * 60, 360 * 60]
        orchestrator.run_import.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_all_skips_disabled(self, orchestrator, settings_factory):
        jobs = {
            "main": ScheduleJobSettings(interval_minutes=120, max_articles_per_category=8),
            "backup": ScheduleJobSettings(interval_minutes=360, max_articles_per_category=5, enabled=False),
        }
        settings = settings_factory(scheduler=SchedulerSettings(jobs=jobs))
        scheduler = ImportScheduler(orchestrator, settings, sleep=wait_forever)

        started = scheduler.start_all()
        await scheduler.stop_all()

        assert started == ["main"]

    def test_status(self, scheduler):
        status = scheduler.status()

        assert status["import"]["running"] is False
        assert status["jobs"]["main"]["active"] is False
        assert status["jobs"]["main"]["runs"] == 0
        assert status["jobs"]["backup"]["enabled"] is True
