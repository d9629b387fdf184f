"""
Import Orchestrator
===================

Runs an import over categories of feed entries:

- skips entries without a usable title or link (and PDF links)
- suppresses duplicates by asking the content store about the source URL
- transforms each remaining entry and persists it with linear-backoff retries
- paces entries and categories, optionally processing several categories at
  once behind a shared token bucket and per-URL claims

Counters live in per-category accumulators that are merged into the run
report when the category finishes, so no statistics outlive a run.
"""

import asyncio
import uuid
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .pacing import InFlightRegistry, TokenBucketLimiter
from .transformer import ArticleTransformer, TransformResult
from ..config.settings import NewsForgeSettings, get_settings
from ..extraction.browser_pool import BrowserPool
from ..ingestion.feed_reader import FeedSource, GoogleNewsFeedReader
from ..ingestion.http_client import HttpFetcher
from ..models.article import FeedEntry, ImportOutcome, ResolvedSource
from ..recovery.error_handler import ErrorContext, ErrorHandler
from ..recovery.retry_logic import RetryConfig, RetryManager, RetryStrategy
from ..storage.content_store import ContentStore
from ..storage.publisher import ArticlePublisher
from ..utils.exceptions import (
    ContentStoreError,
    ContentStoreUnavailableError,
    ErrorCode,
    NewsForgeError,
)
from ..utils.logging import get_logger_for_component
from ..utils.validators import URLValidator


@dataclass
class CategoryRun:
    """Accumulator for one category within a run."""
    category: str
    run_id: str
    outcome: ImportOutcome = field(default_factory=ImportOutcome)
    strategy_counts: Counter = field(default_factory=Counter)
    fallback_count: int = 0
    stub_count: int = 0
    structured_count: int = 0
    error_handler: ErrorHandler = None

    def __post_init__(self):
        if self.error_handler is None:
            self.error_handler = ErrorHandler(self.run_id)

    def record(self, result: TransformResult) -> None:
        self.strategy_counts[result.method] += 1
        if result.used_fallback:
            self.fallback_count += 1
            if not result.fallback.succeeded:
                self.stub_count += 1
        if result.structured:
            self.structured_count += 1


@dataclass
class RunReport:
    """Result of one ``run_import`` call."""
    run_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: Dict[str, ImportOutcome] = field(default_factory=dict)
    strategy_counts: Counter = field(default_factory=Counter)
    fallback_count: int = 0
    stub_count: int = 0
    structured_count: int = 0
    error_handler: ErrorHandler = None
    cancelled: bool = False
    aborted: bool = False
    slugs: Set[str] = field(default_factory=set, repr=False)

    def __post_init__(self):
        if self.error_handler is None:
            self.error_handler = ErrorHandler(self.run_id)

    def unique_slug(self, slug: str) -> str:
        """Reserve ``slug`` for this run, bumping a counter on collision."""
        candidate, bump = slug, 1
        while candidate in self.slugs:
            bump += 1
            candidate = f"{slug}-{bump}"
        self.slugs.add(candidate)
        return candidate

    def merge(self, category_run: CategoryRun) -> None:
        self.outcomes.setdefault(category_run.category, ImportOutcome()).merge(category_run.outcome)
        self.strategy_counts.update(category_run.strategy_counts)
        self.fallback_count += category_run.fallback_count
        self.stub_count += category_run.stub_count
        self.structured_count += category_run.structured_count
        self.error_handler.merge(category_run.error_handler)

    @property
    def totals(self) -> ImportOutcome:
        total = ImportOutcome()
        for outcome in self.outcomes.values():
            total.merge(outcome)
        return total

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": self.duration,
            "outcomes": {name: o.to_dict() for name, o in self.outcomes.items()},
            "totals": self.totals.to_dict(),
            "strategy_counts": dict(self.strategy_counts),
            "fallback_count": self.fallback_count,
            "stub_count": self.stub_count,
            "structured_count": self.structured_count,
            "errors": self.error_handler.get_error_summary(),
            "cancelled": self.cancelled,
            "aborted": self.aborted,
        }


class ImportOrchestrator:
    """Entry point for import runs plus status and cancellation controls."""

    def __init__(
        self,
        feed_source: FeedSource,
        publisher: ArticlePublisher,
        transformer: ArticleTransformer,
        settings: Optional[NewsForgeSettings] = None,
        sleep=asyncio.sleep,
    ):
        """
        Args:
            feed_source: Supplier of category entries
            publisher: Persistence sequence in front of the content store
            transformer: Per-entry article transformer
            settings: Application settings (default: global settings)
            sleep: Awaitable sleep used for pacing and backoff
        """
        self.feed_source = feed_source
        self.publisher = publisher
        self.transformer = transformer
        self.settings = settings or get_settings()
        self.config = self.settings.import_
        self.logger = get_logger_for_component("orchestrator")
        self._sleep = sleep

        self.registry = InFlightRegistry()
        self.last_result: Optional[RunReport] = None
        self._current: Optional[RunReport] = None
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self._current is not None

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running,
            "current_run_id": self._current.run_id if self._current else None,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }

    def cancel(self) -> bool:
        """Cancel the active run; in-flight network calls are cancelled with it."""
        if self._task is None or self._task.done():
            return False
        self._cancel_requested = True
        self._task.cancel()
        return True

    async def run_import(
        self,
        categories: Optional[List[str]] = None,
        max_per_category: Optional[int] = None,
    ) -> RunReport:
        """
        Import up to ``max_per_category`` entries from each category.

        Args:
            categories: Category names (default: scheduler categories, else all)
            max_per_category: Entry cap per category (default from settings)

        Returns:
            RunReport with per-category outcomes

        Raises:
            NewsForgeError: If a run is already active
        """
        if self.is_running:
            raise NewsForgeError(
                "An import run is already active",
                error_code=ErrorCode.RUN_ALREADY_ACTIVE,
                recoverable=False,
            )

        categories = categories or self.settings.scheduler.categories or self.feed_source.categories()
        limit = max_per_category or self.config.max_articles_per_category
        report = RunReport(run_id=uuid.uuid4().hex[:12], started_at=datetime.now(timezone.utc))
        self._current = report
        self._cancel_requested = False

        self.logger.info(
            f"Import run {report.run_id} started: {len(categories)} categories, max {limit} each",
            extra={"run_id": report.run_id},
        )

        self._task = asyncio.ensure_future(self._run_categories(report, categories, limit))
        try:
            if self.config.run_deadline:
                await asyncio.wait_for(self._task, timeout=self.config.run_deadline)
            else:
                await self._task
        except asyncio.TimeoutError:
            report.cancelled = True
            self.logger.warning(
                f"Import run {report.run_id} hit its {self.config.run_deadline}s deadline",
                extra={"run_id": report.run_id},
            )
        except asyncio.CancelledError:
            if not self._cancel_requested:
                raise
            report.cancelled = True
            self.logger.warning(f"Import run {report.run_id} cancelled", extra={"run_id": report.run_id})
        finally:
            report.finished_at = datetime.now(timezone.utc)
            self.last_result = report
            self._current = None
            self._task = None

        totals = report.totals
        self.logger.info(
            f"Import run {report.run_id} finished in {report.duration:.1f}s: "
            f"{totals.imported} imported, {totals.skipped} skipped, {totals.errors} errors",
            extra={"run_id": report.run_id},
        )
        return report

    async def _run_categories(self, report: RunReport, categories: List[str], limit: int) -> None:
        parallel = min(self.config.parallel_categories, len(categories)) or 1

        if parallel == 1:
            for index, category in enumerate(categories):
                if report.aborted:
                    break
                await self._run_category(report, category, limit)
                if index < len(categories) - 1:
                    await self._sleep(self.config.category_delay)
            return

        semaphore = asyncio.Semaphore(parallel)

        async def worker(category: str) -> None:
            async with semaphore:
                if report.aborted:
                    return
                await self._run_category(report, category, limit)
                await self._sleep(self.config.category_delay)

        await asyncio.gather(*(worker(category) for category in categories))

    async def _run_category(self, report: RunReport, category: str, limit: int) -> None:
        run = CategoryRun(category=category, run_id=report.run_id)
        try:
            await self.process_category(run, report, limit)
        finally:
            # Partial counts survive cancellation
            report.merge(run)
            outcome = run.outcome
            self.logger.info(
                f"{category}: {outcome.imported} imported, {outcome.skipped} skipped, {outcome.errors} errors",
                extra={"category": category, "run_id": report.run_id},
            )

    async def process_category(self, run: CategoryRun, report: RunReport, limit: int) -> None:
        try:
            entries = await self.feed_source.fetch_entries(run.category, limit)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            run.outcome.errors += 1
            run.error_handler.handle_error(
                e, ErrorContext(component="feed_reader", operation="fetch_entries", category=run.category)
            )
            return

        entries = entries[:limit]
        for index, entry in enumerate(entries):
            if report.aborted:
                break
            await self.process_entry(run, report, entry)
            if index < len(entries) - 1:
                await self._sleep(self.config.item_delay)

    async def process_entry(self, run: CategoryRun, report: RunReport, entry: FeedEntry) -> str:
        """
        Import one entry.

        Returns:
            "imported", "skipped" or "error"
        """
        outcome = run.outcome
        if not entry.is_usable():
            self.logger.info(f"Skipping entry without title or link: {entry}", extra={"category": run.category})
            outcome.skipped += 1
            return "skipped"

        if self.config.skip_pdf_links and URLValidator.is_pdf_link(entry.link):
            outcome.skipped += 1
            return "skipped"

        resolved = await self.transformer.resolve(entry)
        source_url = resolved.resolved_url
        if self.config.normalize_source_urls:
            source_url = URLValidator.normalize_source_url(source_url)
            resolved = ResolvedSource(resolved.original_url, source_url, resolved.method)

        if self.config.skip_pdf_links and URLValidator.is_pdf_link(source_url):
            outcome.skipped += 1
            return "skipped"

        context = ErrorContext(
            component="orchestrator",
            operation="import_entry",
            entry_title=entry.title,
            entry_url=source_url,
            category=run.category,
            run_id=run.run_id,
        )

        async with self.registry.claim(source_url) as owned:
            if not owned:
                self.logger.info(f"Already being imported by another worker: {source_url}")
                outcome.skipped += 1
                return "skipped"

            try:
                if await self.publisher.exists(source_url):
                    self.logger.debug(f"Duplicate skipped: {source_url}", extra={"category": run.category})
                    outcome.skipped += 1
                    return "skipped"
            except ContentStoreError as e:
                return self._store_failure(run, report, e, context, "exists")

            try:
                result = await self.transformer.transform(
                    entry, run.category, resolved=resolved, error_handler=run.error_handler
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                context.operation = "transform"
                run.error_handler.handle_error(e, context)
                outcome.errors += 1
                return "error"

            article = result.article
            article.slug = report.unique_slug(article.slug)

            retry = RetryManager(
                RetryConfig(
                    max_attempts=self.config.persist_attempts,
                    strategy=RetryStrategy.LINEAR_BACKOFF,
                    base_delay=self.config.persist_base_delay,
                ),
                error_handler=run.error_handler,
                sleep=self._sleep,
            )
            context.operation = "persist"
            # Uploaded once; only the store writes are retried
            hero_asset_id = await self.publisher.prepare_hero(article)
            try:
                await retry.retry_async(
                    self.publisher.publish, article, hero_asset_id, upload_hero=False, context=context
                )
            except ContentStoreError as e:
                if e.error_code == ErrorCode.STORE_DUPLICATE:
                    outcome.skipped += 1
                    return "skipped"
                return self._store_failure(run, report, e, context, "persist")
            except Exception as e:
                run.error_handler.handle_error(e, context)
                outcome.errors += 1
                return "error"

        run.record(result)
        outcome.imported += 1
        return "imported"

    def _store_failure(
        self,
        run: CategoryRun,
        report: RunReport,
        error: ContentStoreError,
        context: ErrorContext,
        operation: str,
    ) -> str:
        context.operation = operation
        run.error_handler.handle_error(error, context)
        run.outcome.errors += 1
        if isinstance(error, ContentStoreUnavailableError) and self.config.abort_on_store_unavailable:
            report.aborted = True
            self.logger.critical(
                f"Content store unreachable, aborting run {report.run_id}",
                extra={"run_id": report.run_id},
            )
        return "error"


def build_limiter(settings: NewsForgeSettings) -> TokenBucketLimiter:
    rate = settings.import_.requests_per_second
    return TokenBucketLimiter(rate=rate, capacity=max(1.0, rate))


@asynccontextmanager
async def open_orchestrator(
    store: ContentStore,
    settings: Optional[NewsForgeSettings] = None,
    feed_source: Optional[FeedSource] = None,
):
    """Build an orchestrator with shared HTTP and browser resources, released on exit."""
    settings = settings or get_settings()
    http = HttpFetcher(settings, limiter=build_limiter(settings))
    browser_pool = BrowserPool(settings) if "rendered" in settings.extraction.enabled_strategies else None
    try:
        yield ImportOrchestrator(
            feed_source or GoogleNewsFeedReader(http, settings),
            ArticlePublisher(store, http, settings),
            ArticleTransformer(http, settings, browser_pool=browser_pool),
            settings,
        )
    finally:
        if browser_pool is not None:
            await browser_pool.close()
        await http.close()
