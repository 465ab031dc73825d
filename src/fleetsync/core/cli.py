"""Command line interface for the sync engine."""

import sys
import json
import logging
import signal
from typing import Optional

import click

from .config import setup_logging, load_environment, load_settings, get_optional_env
from ..database.connection import DatabaseManager
from ..engine.factory import create_orchestrator
from ..engine.scheduler import SweepScheduler
from ..engine.sync import SyncOrchestrator
from ..exceptions import ConfigurationError, FleetSyncException
from ..models.sync import SyncStatus, TableSyncResult


def build_orchestrator() -> SyncOrchestrator:
    """Create the orchestrator from the environment."""
    settings = load_settings()
    return create_orchestrator(settings, database=DatabaseManager(settings.database_url))


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set the logging level')
@click.option('--env-file', type=click.Path(exists=True), help='Path to .env file')
def cli(log_level: str, env_file: Optional[str]) -> None:
    """Operations database to Airtable sync tool."""
    setup_logging(log_level)
    load_environment(env_file)


def _echo_result(result: TableSyncResult, output: str) -> None:
    if output == 'json':
        click.echo(result.model_dump_json(indent=2))
        return
    icon = {"success": "✅", "skipped": "⏭️", "error": "❌"}[result.status.value]
    click.echo(f"{icon} {result.table_name} [{result.leg.value}] {result.status.value}")
    if result.leg.value == "push":
        click.echo(f"  extracted: {result.extracted}  created: {result.created}  "
                   f"updated: {result.updated}  skipped: {result.skipped_records}")
    else:
        click.echo(f"  pulled: {result.pulled}  applied: {result.applied}  "
                   f"rejected: {result.rejected}  malformed: {result.malformed}  "
                   f"failed: {result.failed}")
    if result.error_message:
        click.echo(f"  message: {result.error_message}")


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


@cli.command()
@click.argument('table_name')
@click.option('--force', is_flag=True, help='Push a full snapshot instead of changes since the last sync')
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
def sync_table(table_name: str, force: bool, output: str) -> None:
    """Push local changes of one table to Airtable."""
    try:
        orchestrator = build_orchestrator()
        result = orchestrator.sync_table(table_name, force=force, triggered_by="cli")
        _echo_result(result, output)
        if result.status == SyncStatus.ERROR:
            sys.exit(1)
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")


@cli.command()
@click.argument('table_name')
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
def pull_table(table_name: str, output: str) -> None:
    """Pull Airtable changes of one table into the database."""
    try:
        orchestrator = build_orchestrator()
        result = orchestrator.pull_table(table_name, triggered_by="cli")
        _echo_result(result, output)
        if result.status == SyncStatus.ERROR:
            sys.exit(1)
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")


@cli.command()
@click.argument('kind', type=click.Choice(['critical', 'bidirectional']))
@click.option('--output', type=click.Choice(['table', 'json']), default='table', help='Output format')
def sweep(kind: str, output: str) -> None:
    """Run one sweep over the critical or the bidirectional tables."""
    try:
        orchestrator = build_orchestrator()
        if kind == 'critical':
            result = orchestrator.run_critical_sweep(triggered_by="cli")
        else:
            result = orchestrator.run_bidirectional_sweep(triggered_by="cli")
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")
        return

    if output == 'json':
        click.echo(result.model_dump_json(indent=2))
    else:
        for table_result in result.results:
            _echo_result(table_result, output)
        summary = result.get_summary()
        click.echo(f"\nSweep {kind}: {summary['success_count']} success, "
                   f"{summary['failed_count']} failed, {summary['skipped_count']} skipped")
    if any(r.status == SyncStatus.ERROR for r in result.results):
        sys.exit(1)


@cli.command()
def status() -> None:
    """Show the last sync of every table."""
    try:
        orchestrator = build_orchestrator()
        logs = orchestrator.health_status()
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")
        return

    if not logs:
        click.echo("No table has been synced yet.")
        return

    click.echo(f"{'TABLE':<24} {'STATUS':<10} {'LAST SYNC':<28} {'RECORDS':<8} ERROR")
    click.echo("-" * 100)
    for name, log in sorted(logs.items()):
        click.echo(f"{name:<24} {log.last_status.value:<10} {log.last_sync_at.isoformat():<28} "
                   f"{log.records_synced:<8} {log.last_error or ''}")


@cli.command()
@click.argument('table_name')
@click.option('--sample-size', type=int, default=5, help='Number of rows to transform')
def preview(table_name: str, sample_size: int) -> None:
    """Show the Airtable payloads a push would send, without sending them."""
    try:
        orchestrator = build_orchestrator()
        click.echo(json.dumps(orchestrator.preview(table_name, sample_size=sample_size), indent=2,
                              ensure_ascii=False, default=str))
    except ConfigurationError as e:
        _fail(str(e))
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")


@cli.command()
@click.option('--table', 'table_name', default='orders', help='Table whose collection is queried')
def test_connection(table_name: str) -> None:
    """Test connection to the Airtable API."""
    try:
        orchestrator = build_orchestrator()
        spec = orchestrator.registry.get_spec(table_name)
        if spec is None:
            _fail(f"Table {table_name} is not registered")
            return
        result = orchestrator.client.test_connection(spec.remote_collection_id)
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")
        return

    if result["status"] == "success":
        click.echo("✅ Successfully connected to Airtable API!")
        click.echo(f"Collection: {spec.remote_collection_id}")
    else:
        _fail(f"Airtable API Error: {result['message']}")


@cli.command()
@click.option('--critical-interval', type=int, help='Seconds between critical sweeps')
@click.option('--bidirectional-interval', type=int, help='Seconds between bidirectional sweeps')
def run_scheduler(critical_interval: Optional[int], bidirectional_interval: Optional[int]) -> None:
    """Run both sweeps periodically until interrupted."""
    try:
        settings = load_settings()
        orchestrator = create_orchestrator(settings, database=DatabaseManager(settings.database_url))
    except (ValueError, FleetSyncException) as e:
        _fail(f"Configuration Error: {e}")
        return

    scheduler = SweepScheduler()
    scheduler.add_sweep("critical", lambda: orchestrator.run_critical_sweep(),
                        critical_interval or settings.critical_interval_seconds)
    scheduler.add_sweep("bidirectional", lambda: orchestrator.run_bidirectional_sweep(),
                        bidirectional_interval or settings.bidirectional_interval_seconds)

    signal.signal(signal.SIGTERM, lambda signum, frame: scheduler.stop(timeout=0))
    scheduler.start()
    click.echo("🔄 Scheduler running, press Ctrl+C to stop")
    try:
        scheduler.wait()
    except KeyboardInterrupt:
        click.echo("Stopping scheduler...")
    finally:
        scheduler.stop()


@cli.command()
def init_db() -> None:
    """Create the database schema."""
    # Schema creation does not need remote credentials
    settings_url = get_optional_env("DATABASE_URL", "sqlite:///fleetsync.db")
    database = DatabaseManager(settings_url)
    try:
        database.create_all()
    except Exception as e:
        logging.exception("Unexpected error occurred")
        _fail(f"Unexpected error: {e}")
        return
    click.echo(f"✅ Database schema created at {settings_url}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
