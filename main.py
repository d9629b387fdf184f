#!/usr/bin/env python3
"""
NewsForge - News Content Acquisition Pipeline
=============================================

Command line interface for running and inspecting the import pipeline.

Usage:
    python main.py --help                          # Show all commands
    python main.py check-config                    # Validate configuration
    python main.py categories                      # List category feeds
    python main.py resolve URL                     # Resolve an aggregator link
    python main.py extract URL                     # Run the extraction cascade on a page
    python main.py score-image URL                 # Score one image
    python main.py import -c World --max 3         # Run an import into the in-memory store
    python main.py schedule                        # Run the scheduler in the foreground
"""

import sys
import asyncio
import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from newsforge.config.settings import get_settings
from newsforge.utils.logging import configure_application_logging
from newsforge.utils.exceptions import NewsForgeError

console = Console()
logger = logging.getLogger(__name__)


def _setup(ctx):
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if ctx.obj.get('debug') else settings.get_effective_log_level(),
        log_file=settings.logging.file_path,
        enable_console=settings.logging.console_logging,
        structured_logging=settings.logging.structured_logging,
        max_file_size=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )
    return settings


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """NewsForge - news feed import and normalization pipeline."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking NewsForge Configuration[/bold blue]")

    try:
        settings = get_settings()
        warnings = settings.validate_configuration()

        table = Table(title="Configuration Status")
        table.add_column("Section", style="cyan")
        table.add_column("Details")

        table.add_row("Categories", f"{len(settings.feeds.categories)} feeds")
        table.add_row(
            "Extraction",
            f"{', '.join(settings.extraction.enabled_strategies) or 'none'} "
            f"(min {settings.extraction.min_content_length} chars, browser first: {settings.extraction.browser_first})",
        )
        providers = [p.value for p in settings.ai.configured_providers()]
        table.add_row(
            "Structuring",
            f"{'enabled' if settings.ai.structuring_enabled else 'disabled'}, providers: {', '.join(providers) or 'none'}",
        )
        table.add_row(
            "Import",
            f"max {settings.import_.max_articles_per_category}/category, "
            f"{settings.import_.parallel_categories} parallel, {settings.import_.requests_per_second} req/s",
        )
        jobs = ", ".join(
            f"{name} every {job.interval_minutes}m" for name, job in settings.scheduler.jobs.items()
        )
        table.add_row("Scheduler", jobs)
        table.add_row("Logging", f"Level: {settings.logging.level.value}, File: {settings.logging.file_path}")
        console.print(table)

        for warning in warnings:
            console.print(f"[yellow]⚠️  {warning}[/yellow]")
        console.print("[bold green]✅ Configuration is valid[/bold green]")

    except NewsForgeError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
def categories():
    """List configured category feeds."""
    settings = get_settings()
    table = Table(title="Category Feeds")
    table.add_column("Category", style="cyan")
    table.add_column("Breaking", style="yellow")
    table.add_column("Feed URL")

    for name, url in settings.feeds.categories.items():
        breaking = "yes" if name in settings.feeds.breaking_categories else ""
        table.add_row(name, breaking, url)
    console.print(table)


@cli.command()
@click.argument('url')
@click.pass_context
def resolve(ctx, url):
    """Resolve a feed link to its source page."""
    settings = _setup(ctx)

    async def run_resolve():
        from newsforge.ingestion.http_client import HttpFetcher
        from newsforge.ingestion.url_resolver import UrlResolver

        async with HttpFetcher(settings) as http:
            return await UrlResolver(http, settings).resolve(url)

    resolved = asyncio.run(run_resolve())
    console.print(f"Method:   [cyan]{resolved.method}[/cyan]")
    console.print(f"Original: {resolved.original_url}")
    console.print(f"Resolved: [green]{resolved.resolved_url}[/green]")


@cli.command()
@click.argument('url')
@click.option('--show-text', is_flag=True, help='Print the extracted text')
@click.pass_context
def extract(ctx, url, show_text):
    """Run the extraction cascade (and fallback) against a page."""
    settings = _setup(ctx)

    async def run_extract():
        from newsforge.extraction.browser_pool import BrowserPool
        from newsforge.extraction.fallback import FallbackRecoveryService
        from newsforge.extraction.strategies import ExtractionEngine
        from newsforge.ingestion.content_sanitizer import ContentSanitizer
        from newsforge.ingestion.http_client import HttpFetcher

        sanitizer = ContentSanitizer()
        async with HttpFetcher(settings) as http, BrowserPool(settings) as pool:
            page = await http.fetch_html(url)
            outcome = await ExtractionEngine(sanitizer, pool, settings).extract(
                page.text if page.success else None, url
            )
            recovered = None
            if not outcome.succeeded:
                recovered = await FallbackRecoveryService(http, sanitizer, settings).recover(
                    url, html=page.text or ""
                )
            return outcome, recovered

    outcome, recovered = asyncio.run(run_extract())

    table = Table(title=f"Extraction: {url}")
    table.add_column("Strategy", style="cyan")
    table.add_column("Result")
    table.add_column("Chars", justify="right")
    table.add_column("Time", justify="right")
    for attempt in outcome.attempts:
        result = "[green]success[/green]" if attempt.succeeded else f"[red]{attempt.error}[/red]"
        table.add_row(attempt.strategy_name, result, str(len(attempt.plain_text)), f"{attempt.duration:.2f}s")
    console.print(table)

    if outcome.succeeded:
        winner = outcome.winner
        console.print(f"[bold green]✅ {winner.strategy_name}: {winner.title or 'untitled'}[/bold green]")
        if show_text:
            console.print(winner.plain_text)
    else:
        console.print(
            f"[yellow]Fallback {recovered.method_used} "
            f"({'succeeded' if recovered.succeeded else 'stub'}): {recovered.title}[/yellow]"
        )
        if show_text:
            console.print(recovered.content)


@cli.command('score-image')
@click.argument('url')
@click.pass_context
def score_image(ctx, url):
    """Probe and score a single image URL."""
    settings = _setup(ctx)

    async def run_score():
        from newsforge.images.analyzer import ImageQualityAnalyzer
        from newsforge.ingestion.http_client import HttpFetcher

        async with HttpFetcher(settings) as http:
            return await ImageQualityAnalyzer(http, settings).score(url)

    candidate = asyncio.run(run_score())
    table = Table(title="Image Score")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    for key, value in candidate.to_dict().items():
        table.add_row(key, str(value))
    if candidate.rejection_reason:
        table.add_row("rejection", candidate.rejection_reason)
    console.print(table)


@cli.command('import')
@click.option('--category', '-c', 'category_names', multiple=True, help='Category to import (repeatable)')
@click.option('--max', 'max_per_category', type=int, default=None, help='Entries per category')
@click.option('--dry-run', is_flag=True, help='List feed entries without importing')
@click.option('--report', 'report_path', type=click.Path(dir_okay=False), help='Write the run report as JSON')
@click.pass_context
def import_command(ctx, category_names, max_per_category, dry_run, report_path):
    """Run one import into the in-memory content store."""
    settings = _setup(ctx)
    names = list(category_names) or None

    async def run_dry():
        from newsforge.ingestion.feed_reader import GoogleNewsFeedReader
        from newsforge.ingestion.http_client import HttpFetcher

        async with HttpFetcher(settings) as http:
            reader = GoogleNewsFeedReader(http, settings)
            limit = max_per_category or settings.import_.max_articles_per_category
            for name in names or reader.categories():
                try:
                    entries = await reader.fetch_entries(name, limit)
                except NewsForgeError as e:
                    console.print(f"[red]{name}: {e}[/red]")
                    continue
                console.print(f"\n[bold blue]{name}[/bold blue] ({len(entries)} entries)")
                for entry in entries:
                    console.print(f"  • {entry.title} [dim]{entry.source_label}[/dim]")

    async def run_import():
        from newsforge.processing.orchestrator import open_orchestrator
        from newsforge.storage.content_store import InMemoryContentStore

        store = InMemoryContentStore()
        async with open_orchestrator(store, settings) as orchestrator:
            report = await orchestrator.run_import(names, max_per_category)
        return store, report

    if dry_run:
        asyncio.run(run_dry())
        return

    console.print("[bold blue]📥 Starting import[/bold blue]")
    store, report = asyncio.run(run_import())

    table = Table(title=f"Import run {report.run_id}")
    table.add_column("Category", style="cyan")
    table.add_column("Imported", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Errors", justify="right", style="red")
    for name, outcome in report.outcomes.items():
        table.add_row(name, str(outcome.imported), str(outcome.skipped), str(outcome.errors))
    totals = report.totals
    table.add_row("[bold]Total[/bold]", str(totals.imported), str(totals.skipped), str(totals.errors))
    console.print(table)

    for article in store.list_articles():
        console.print(f"  • [bold]{article.title}[/bold] [dim]({article.extraction_method}, {article.slug})[/dim]")

    if report.strategy_counts:
        usage = ", ".join(f"{name}: {count}" for name, count in report.strategy_counts.most_common())
        console.print(f"Strategies: {usage}")
    if report.cancelled:
        console.print("[yellow]⚠️  Run stopped at its deadline[/yellow]")
    if report.aborted:
        console.print("[red]❌ Run aborted: content store unreachable[/red]")

    if report_path:
        Path(report_path).write_text(json.dumps(report.to_dict(), indent=2, default=str))
        console.print(f"Report written to {report_path}")


@cli.command()
@click.option('--job', 'job_names', multiple=True, help='Only start these jobs')
@click.pass_context
def schedule(ctx, job_names):
    """Run scheduled import jobs in the foreground until interrupted."""
    settings = _setup(ctx)

    async def run_scheduler():
        from newsforge.processing.orchestrator import open_orchestrator
        from newsforge.scheduler.import_scheduler import ImportScheduler
        from newsforge.storage.content_store import InMemoryContentStore

        async with open_orchestrator(InMemoryContentStore(), settings) as orchestrator:
            scheduler = ImportScheduler(orchestrator, settings)
            started = [name for name in job_names if scheduler.start_job(name)] if job_names else scheduler.start_all()
            console.print(f"[bold green]⏰ Scheduler running jobs: {', '.join(started) or 'none'}[/bold green]")
            try:
                await asyncio.Event().wait()
            finally:
                await scheduler.stop_all()

    asyncio.run(run_scheduler())


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 NewsForge interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]❌ Unexpected error: {e}[/bold red]")
        sys.exit(1)
