"""Command-line interface for catalogsync."""

import asyncio
import sys
from pathlib import Path

import click

from catalogsync import __version__
from catalogsync.config import load_config
from catalogsync.core.scan_manager import ScanManager
from catalogsync.core.store import MediaItemFilter, SQLiteStore
from catalogsync.core.versions import VersionNameExtractor
from catalogsync.exceptions import AdapterError, ScanInProgressError
from catalogsync.models.media import MediaVersion, ScanProgress, ScanResult
from catalogsync.providers.factory import create_adapter
from catalogsync.utils.logger import get_logger, setup_logging


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (defaults to built-in defaults)",
)
@click.pass_context
def cli(ctx, config):
    """catalogsync - media catalog sync and quality normalization."""
    try:
        cfg = load_config(config)
        ctx.ensure_object(dict)
        ctx.obj["config"] = cfg
        setup_logging(cfg.logging, console=False)
    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


def _get_source(ctx, source_id):
    source = ctx.obj["config"].get_source(source_id)
    if source is None:
        click.secho(f"✗ Unknown source: {source_id}", fg="red", err=True)
        sys.exit(1)
    return source


def _print_result(label: str, result: ScanResult) -> None:
    color = "green" if result.success else ("yellow" if result.cancelled else "red")
    click.secho(f"{label}: {result}", fg=color)
    for error in result.errors:
        click.secho(f"  ✗ {error}", fg="red")


def _open_store(config) -> SQLiteStore:
    db_path = Path(config.store.db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return SQLiteStore(db_path)


@cli.command()
@click.argument("source_id")
@click.pass_context
def libraries(ctx, source_id):
    """List the libraries of a configured source."""
    config = ctx.obj["config"]
    source = _get_source(ctx, source_id)

    async def _list():
        adapter = create_adapter(source, config)
        try:
            return await adapter.get_libraries()
        finally:
            await adapter.close()

    try:
        found = asyncio.run(_list())
    except AdapterError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    if not found:
        click.secho("⊘ No libraries found", fg="yellow")
        return
    for lib in found:
        click.echo(f"{lib.id:<24} {lib.media_type:<8} {lib.name}")


@cli.command()
@click.argument("source_id")
@click.option("--library", "-l", "library_ids", multiple=True, help="Library id (repeatable)")
@click.option(
    "--incremental/--full",
    default=False,
    help="Only fetch items changed since the last scan (default: full)",
)
@click.pass_context
def scan(ctx, source_id, library_ids, incremental):
    """Scan a source into the catalog store."""
    config = ctx.obj["config"]
    _get_source(ctx, source_id)
    logger = get_logger(__name__)

    def show_progress(progress: ScanProgress) -> None:
        if progress.current_item_label:
            click.echo(f"\r[{progress.percentage:3d}%] {progress.phase}: {progress.current_item_label[:60]:<60}", nl=False)

    async def _scan():
        store = _open_store(config)
        try:
            manager = ScanManager(config, store)
            return await manager.run_scan(
                source_id,
                library_ids=list(library_ids) or None,
                incremental=incremental,
                on_progress=show_progress,
            )
        finally:
            store.close()

    click.echo(f"Scanning {source_id} ({'incremental' if incremental else 'full'})")
    try:
        result = asyncio.run(_scan())
    except ScanInProgressError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        sys.exit(1)

    click.echo("")
    logger.info("CLI scan finished", source_id=source_id, success=result.success)
    _print_result(source_id, result)
    if not result.success:
        sys.exit(1)


@cli.command("scan-all")
@click.option("--incremental/--full", default=False, help="Incremental or full scans")
@click.pass_context
def scan_all(ctx, incremental):
    """Scan every enabled source."""
    config = ctx.obj["config"]

    async def _scan_all():
        store = _open_store(config)
        try:
            return await ScanManager(config, store).scan_all(incremental=incremental)
        finally:
            store.close()

    results = asyncio.run(_scan_all())
    if not results:
        click.secho("⊘ No enabled sources", fg="yellow")
        return

    for source_id, result in results.items():
        _print_result(source_id, result)

    click.echo("=" * 60)
    total = ScanResult(success=True)
    for result in results.values():
        total.merge(result)
    _print_result("Total", total)
    if not total.success:
        sys.exit(1)


@cli.command()
@click.option("--source", "source_id", default=None, help="Only items of this source")
@click.option("--library", "library_id", default=None, help="Only items of this library")
@click.pass_context
def items(ctx, source_id, library_id):
    """List stored items with their best-version quality."""
    store = _open_store(ctx.obj["config"])
    try:
        found = store.get_media_items(MediaItemFilter(source_id=source_id, library_id=library_id))
    finally:
        store.close()

    for item in found:
        versions = f" (+{len(item.versions) - 1} versions)" if len(item.versions) > 1 else ""
        click.echo(f"{item.id:>6} {item}{versions}")
    click.echo(f"Total: {len(found)}")


@cli.command()
@click.argument("files", nargs=-1, required=True)
def versions(files):
    """Show the edition names derived from variant file names of one title."""
    variants = [MediaVersion(file_path=f) for f in files]
    VersionNameExtractor().extract(variants)
    for variant in variants:
        click.echo(f"{Path(variant.file_path).name} -> {variant.edition or '-'}")


@cli.command()
@click.pass_context
def daemon(ctx):
    """Start the daemon with the HTTP API."""
    config = ctx.obj["config"]

    click.echo("Starting catalogsync daemon...")
    click.echo(f"Listening on {config.api.host}:{config.api.port}")
    click.echo("")
    click.echo("Endpoints:")
    click.echo(f"  - Sources:      http://{config.api.host}:{config.api.port}/api/v1/sources")
    click.echo(f"  - Health check: http://{config.api.host}:{config.api.port}/health")
    click.echo(f"  - API docs:     http://{config.api.host}:{config.api.port}/docs")
    click.echo("")
    click.echo("Press Ctrl+C to stop")
    click.echo("")

    from catalogsync.daemon import start_daemon

    try:
        start_daemon(config)
    except KeyboardInterrupt:
        click.echo("\n\nDaemon stopped")
        sys.exit(0)


@cli.command()
def version():
    """Show version information."""
    click.echo(f"catalogsync v{__version__}")


def main():
    """Entry point for the CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
