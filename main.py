#!/usr/bin/env python3
"""
Maifead - Multi-Platform Feed Aggregator
========================================

Main application entry point with CLI interface for management and testing.

Usage:
    python main.py --help                                  # Show all commands
    python main.py check-config                            # Validate configuration
    python main.py init-db                                 # Initialize database
    python main.py add-source OWNER youtube @handle        # Follow a source
    python main.py list-sources --owner OWNER              # Show sources and status
    python main.py refresh SOURCE_ID                       # Refresh one source
    python main.py refresh-all [--owner OWNER]             # Refresh a batch
    python main.py sweep                                   # Apply retention
    python main.py update-icons                            # Fill missing icons
"""

import sys
import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from maifead.config.settings import get_settings
from maifead.database.schema import DatabaseSchema
from maifead.database.connection import get_db_manager
from maifead.database.models import Platform, RedditSourceType, ShortsFilter
from maifead.utils.logging import configure_application_logging
from maifead.utils.exceptions import MaifeadError

console = Console()
logger = logging.getLogger(__name__)


def _setup(debug: bool = False):
    """Configure logging and make sure the schema exists."""
    settings = get_settings()
    configure_application_logging(
        log_level="DEBUG" if debug else settings.logging.level.value,
        log_file=settings.logging.file_path,
        enable_console=debug,
        structured_logging=settings.logging.structured_logging
    )
    DatabaseSchema(settings.database.path).create_tables()
    return settings, get_db_manager(settings.database.path)


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, debug):
    """Maifead - multi-platform feed aggregator."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]Checking Maifead Configuration[/bold blue]")

    try:
        settings = get_settings()
    except MaifeadError as e:
        console.print(f"[bold red]Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration Status")
    table.add_column("Component", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details")

    checks = [
        ("Database", _check_database_config),
        ("Logging", _check_logging_config),
        ("Fetching", _check_fetch_config),
        ("Retention", _check_retention_config),
    ]

    all_passed = True
    for name, check_func in checks:
        status, details = check_func(settings)
        table.add_row(name, "Valid" if status else "Invalid", details)
        all_passed = all_passed and status

    console.print(table)

    if all_passed:
        console.print("[bold green]All configuration checks passed![/bold green]")
    else:
        console.print("[bold red]Configuration validation failed[/bold red]")
        sys.exit(1)


@cli.command()
def init_db():
    """Initialize database with schema."""
    console.print("[bold blue]Initializing Maifead Database[/bold blue]")

    try:
        settings = get_settings()
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)

        schema = DatabaseSchema(settings.database.path)
        schema.create_tables()

        if not schema.verify_schema():
            console.print("[bold red]Database schema verification failed[/bold red]")
            sys.exit(1)

        console.print("[bold green]Database initialized successfully![/bold green]")

        info = get_db_manager(settings.database.path).get_database_info()
        info_table = Table(title="Database Information")
        info_table.add_column("Property", style="cyan")
        info_table.add_column("Value", style="green")
        info_table.add_row("Database Path", settings.database.path)
        info_table.add_row("Size", f"{info['database_size_mb']:.2f} MB")
        info_table.add_row("Sources", str(info['table_counts']['sources']))
        info_table.add_row("Items", str(info['table_counts']['items']))
        console.print(info_table)

    except MaifeadError as e:
        console.print(f"[bold red]Database initialization error: {e}[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument('owner')
@click.argument('platform', type=click.Choice([p.value for p in Platform]))
@click.argument('raw_input')
@click.option('--name', help='Display name (default: taken from the feed)')
@click.option('--category', help='Category label')
@click.option('--user', 'as_user', is_flag=True, help='Treat a bare Reddit name as a user')
@click.option('--whitelist', multiple=True, help='Keep only items matching one of these keywords')
@click.option('--blacklist', multiple=True, help='Hide items matching any of these keywords')
@click.option('--retention-days', type=int, help='Days to keep items (0 keeps forever)')
@click.option('--min-score', type=int, help='Reddit: skip posts scoring below this')
@click.option('--shorts', type=click.Choice([s.value for s in ShortsFilter]), help='YouTube Shorts handling')
@click.option('--suppress', is_flag=True, help='Hide from the main feed')
@click.option('--no-verify', is_flag=True, help='Store without fetching the feed first')
@click.pass_context
def add_source(ctx, owner, platform, raw_input, name, category, as_user, whitelist, blacklist,
               retention_days, min_score, shorts, suppress, no_verify):
    """Resolve RAW_INPUT (URL, handle, or name) and follow it for OWNER."""
    from maifead.services.source_service import SourceService

    async def run_add():
        settings, db_manager = _setup(ctx.obj.get('debug'))
        service = SourceService(db_manager)

        source = await service.add_source(
            owner,
            platform,
            raw_input,
            display_name=name,
            reddit_source_type=RedditSourceType.USER if as_user else None,
            verify=not no_verify,
            category=category,
            whitelist_keywords=list(whitelist) or None,
            blacklist_keywords=list(blacklist) or None,
            retention_days=retention_days,
            reddit_min_score=min_score,
            youtube_shorts_filter=shorts,
            suppress_from_main_feed=suppress or None,
        )
        await service.orchestrator.drain()
        return source, service.orchestrator.items.count_items(source.id)

    try:
        source, item_count = asyncio.run(run_add())
    except MaifeadError as e:
        console.print(f"[bold red]{e.user_message}[/bold red]")
        logger.debug(str(e))
        sys.exit(1)

    table = Table(title="Source Added")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("ID", str(source.id))
    table.add_row("Name", source.display_name)
    table.add_row("Platform", source.platform.value)
    table.add_row("Feed URL", source.feed_url)
    table.add_row("Icon", source.icon_url or "None")
    table.add_row("Items", str(item_count))
    console.print(table)


@cli.command()
@click.option('--owner', help='Filter by owner')
def list_sources(owner):
    """Show sources with their refresh status."""
    from maifead.storage.source_repository import SourceRepository
    from maifead.storage.item_repository import ItemRepository

    settings, db_manager = _setup()
    sources = SourceRepository(db_manager).list_sources(owner)
    items = ItemRepository(db_manager)

    if not sources:
        console.print("[yellow]No sources found in database[/yellow]")
        return

    table = Table(title="Sources")
    table.add_column("ID", style="cyan")
    table.add_column("Status")
    table.add_column("Platform", style="magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Owner", style="yellow")
    table.add_column("Items")
    table.add_column("Last Fetched")
    table.add_column("Last Error", style="red")

    for source in sources:
        if not source.is_enabled:
            status = "disabled"
        elif source.last_error:
            status = "[red]error[/red]"
        else:
            status = "[green]ok[/green]"
        name = source.display_name
        error = source.last_error or ""
        table.add_row(
            str(source.id),
            status,
            source.platform.value,
            name[:30] + "..." if len(name) > 30 else name,
            source.owner_id,
            str(items.count_items(source.id)),
            source.last_fetched_at.strftime("%Y-%m-%d %H:%M") if source.last_fetched_at else "Never",
            error[:40] + "..." if len(error) > 40 else error,
        )

    console.print(table)


@cli.command()
@click.argument('source_id', type=int)
@click.pass_context
def refresh(ctx, source_id):
    """Refresh a single source now."""
    from maifead.services.source_service import SourceService

    async def run_refresh():
        settings, db_manager = _setup(ctx.obj.get('debug'))
        return await SourceService(db_manager).refresh_source(source_id)

    try:
        new_items = asyncio.run(run_refresh())
    except MaifeadError as e:
        console.print(f"[bold red]Refresh failed: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]Source {source_id} refreshed: {new_items} new items[/bold green]")


@cli.command()
@click.option('--owner', help='Only refresh sources of this owner')
@click.option('--due-only', is_flag=True, help='Only refresh sources whose interval has elapsed')
@click.option('--timeout', type=float, help='Batch timeout in seconds')
@click.pass_context
def refresh_all(ctx, owner, due_only, timeout):
    """Refresh a batch of sources concurrently."""
    from maifead.processing.orchestrator import RefreshOrchestrator

    async def run_batch():
        settings, db_manager = _setup(ctx.obj.get('debug'))
        orchestrator = RefreshOrchestrator(db_manager)
        if due_only:
            return await orchestrator.refresh_due_sources()
        if owner:
            return await orchestrator.refresh_user(owner, timeout)
        return await orchestrator.refresh_all(
            orchestrator.sources.list_sources(enabled_only=True), timeout
        )

    summary = asyncio.run(run_batch())

    table = Table(title="Refresh Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Sources refreshed", str(summary.sources_refreshed))
    table.add_row("New items", str(summary.total_new_items))
    table.add_row("Failures", str(summary.sources_failed))
    table.add_row("Timed out", "yes" if summary.timed_out else "no")
    console.print(table)

    for source_id, error in summary.per_source_errors.items():
        console.print(f"  [red]source {source_id}[/red]: {error}")


@cli.command()
@click.option('--owner', help='Only sweep sources of this owner')
@click.option('--vacuum', is_flag=True, help='Compact the database afterwards')
def sweep(owner, vacuum):
    """Delete items older than each source's retention window."""
    from maifead.processing.retention import RetentionSweeper
    from maifead.storage.item_repository import ItemRepository
    from maifead.storage.source_repository import SourceRepository

    settings, db_manager = _setup()
    sweeper = RetentionSweeper(ItemRepository(db_manager), SourceRepository(db_manager))
    summary = sweeper.sweep_all(owner)

    console.print(
        f"[bold green]Removed {summary.items_deleted} items from "
        f"{summary.sources_swept} sources[/bold green]"
    )
    for source_id, error in summary.per_source_errors.items():
        console.print(f"  [red]source {source_id}[/red]: {error}")

    if vacuum:
        db_manager.vacuum_database()


@cli.command()
@click.option('--owner', help='Only update sources of this owner')
@click.pass_context
def update_icons(ctx, owner):
    """Resolve icons for sources that have none."""
    from maifead.services.source_service import SourceService

    async def run_update():
        settings, db_manager = _setup(ctx.obj.get('debug'))
        return await SourceService(db_manager).update_icons(owner)

    updated = asyncio.run(run_update())
    console.print(f"[bold green]Updated icons for {updated} sources[/bold green]")


# Helper functions for configuration checks
def _check_database_config(settings) -> tuple[bool, str]:
    """Check database configuration."""
    try:
        Path(settings.database.path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Path: {settings.database.path}, Pool: {settings.database.pool_size}"
    except OSError as e:
        return False, str(e)


def _check_logging_config(settings) -> tuple[bool, str]:
    """Check logging configuration."""
    try:
        if settings.logging.file_path:
            Path(settings.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
        return True, f"Level: {settings.logging.level.value}, Console: {settings.logging.console_logging}"
    except OSError as e:
        return False, str(e)


def _check_fetch_config(settings) -> tuple[bool, str]:
    """Check fetch configuration."""
    fetch = settings.fetch
    if fetch.timeout_seconds > fetch.batch_timeout_seconds:
        return False, "Request timeout exceeds batch timeout"
    return True, (
        f"Timeout: {fetch.timeout_seconds}s, Batch: {fetch.batch_timeout_seconds}s, "
        f"Concurrency: {fetch.max_concurrent}"
    )


def _check_retention_config(settings) -> tuple[bool, str]:
    """Check retention configuration."""
    days = settings.retention.default_days
    return True, f"Default: {'forever' if days == 0 else f'{days} days'}, Sweep hour: {settings.retention.sweep_hour}"


if __name__ == "__main__":
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Maifead interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error: {e}[/bold red]")
        sys.exit(1)
