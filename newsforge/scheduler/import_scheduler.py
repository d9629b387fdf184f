"""
Import Scheduler
================

Interval jobs that trigger ``ImportOrchestrator.run_import``:

- main: all categories every 2 hours, 8 entries per category
- backup: every 6 hours, 5 entries per category, offset by 30 minutes

A job whose turn comes while any import is running is skipped. Per-job
statistics are exposed through ``status()``.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..config.settings import NewsForgeSettings, ScheduleJobSettings, get_settings
from ..processing.orchestrator import ImportOrchestrator
from ..utils.logging import get_logger_for_component


@dataclass
class JobStats:
    """Execution history of one scheduled job."""
    name: str
    runs: int = 0
    skipped: int = 0
    failures: int = 0
    last_started: Optional[datetime] = None
    last_duration: Optional[float] = None
    last_outcome: Optional[Dict[str, int]] = None
    total_imported: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "runs": self.runs,
            "skipped": self.skipped,
            "failures": self.failures,
            "last_started": self.last_started.isoformat() if self.last_started else None,
            "last_duration": self.last_duration,
            "last_outcome": self.last_outcome,
            "totals": {
                "imported": self.total_imported,
                "skipped": self.total_skipped,
                "errors": self.total_errors,
            },
            "last_error": self.last_error,
        }


@dataclass
class ScheduledJob:
    name: str
    config: ScheduleJobSettings
    stats: JobStats = None
    task: Optional[asyncio.Task] = field(default=None, repr=False)

    def __post_init__(self):
        if self.stats is None:
            self.stats = JobStats(self.name)

    @property
    def active(self) -> bool:
        return self.task is not None and not self.task.done()


class ImportScheduler:
    """Thin start/stop/status layer over an orchestrator."""

    def __init__(
        self,
        orchestrator: ImportOrchestrator,
        settings: Optional[NewsForgeSettings] = None,
        sleep=asyncio.sleep,
    ):
        self.orchestrator = orchestrator
        self.settings = settings or get_settings()
        self.logger = get_logger_for_component("scheduler")
        self._sleep = sleep
        self.jobs: Dict[str, ScheduledJob] = {
            name: ScheduledJob(name, config) for name, config in self.settings.scheduler.jobs.items()
        }

    @property
    def categories(self) -> Optional[List[str]]:
        return self.settings.scheduler.categories or None

    async def run_job(self, name: str) -> bool:
        """
        Run a job once now.

        Returns:
            False if it was skipped because an import is already running
        """
        job = self.jobs[name]
        if self.orchestrator.is_running:
            job.stats.skipped += 1
            self.logger.info(f"Skipping job {name}: an import is already running")
            return False

        stats = job.stats
        stats.runs += 1
        stats.last_started = datetime.now(timezone.utc)
        try:
            report = await self.orchestrator.run_import(self.categories, job.config.max_articles_per_category)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            stats.failures += 1
            stats.last_error = str(e)
            self.logger.error(f"Scheduled job {name} failed: {e}", exc_info=True)
            return True
        finally:
            stats.last_duration = (datetime.now(timezone.utc) - stats.last_started).total_seconds()

        totals = report.totals
        stats.last_outcome = totals.to_dict()
        stats.total_imported += totals.imported
        stats.total_skipped += totals.skipped
        stats.total_errors += totals.errors
        if report.cancelled or report.aborted:
            stats.last_error = "run cancelled" if report.cancelled else "run aborted"
        return True

    async def _loop(self, job: ScheduledJob) -> None:
        await self._sleep(job.config.initial_delay_minutes * 60)
        while True:
            await self.run_job(job.name)
            await self._sleep(job.config.interval_minutes * 60)

    def start_job(self, name: str) -> bool:
        job = self.jobs[name]
        if job.active:
            return False
        job.task = asyncio.ensure_future(self._loop(job))
        self.logger.info(
            f"Started job {name}: every {job.config.interval_minutes} min, "
            f"{job.config.max_articles_per_category} per category"
        )
        return True

    def start_all(self) -> List[str]:
        return [name for name, job in self.jobs.items() if job.config.enabled and self.start_job(name)]

    async def stop_job(self, name: str) -> bool:
        job = self.jobs[name]
        if not job.active:
            return False
        job.task.cancel()
        try:
            await job.task
        except asyncio.CancelledError:
            pass
        job.task = None
        self.logger.info(f"Stopped job {name}")
        return True

    async def stop_all(self) -> None:
        for name in list(self.jobs):
            await self.stop_job(name)

    def status(self) -> Dict[str, Any]:
        return {
            "import": self.orchestrator.status(),
            "jobs": {
                name: {"active": job.active, "enabled": job.config.enabled, **job.stats.to_dict()}
                for name, job in self.jobs.items()
            },
        }
