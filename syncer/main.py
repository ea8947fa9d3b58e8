"""
Syncer — CLI Entry Point

Usage:
    python -m syncer              # same as `run`
    python -m syncer run
    python -m syncer once
    python -m syncer check-config [--json]
    python -m syncer inspect [--json]

This module is the only place that decides whether an error ends the
process: startup errors and fatal update errors exit 1, drift is
retried on the next tick.
"""

from __future__ import annotations

# Load .env FIRST, before anything reads the environment
from pathlib import Path
from dotenv import load_dotenv

_env_file = Path.cwd() / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

import json
import logging
import signal
from typing import Mapping, Optional, Tuple

import click

from . import __version__
from .config.loader import load_settings
from .config.models import SyncConfiguration
from .engine.reconcile import classify
from .engine.scheduler import Scheduler, record_result
from .errors import SyncerError
from .git.inspector import RepositoryInspector
from .git.runner import GitCommandError, GitRunner
from .logging_config import setup_logging
from .observability.health import HealthServer
from .sources.base import Source
from .sources.registry import SourceRegistry

logger = logging.getLogger("syncer")


def log_banner(config: SyncConfiguration, source: Source) -> None:
    """Log the effective configuration (never the passphrase)."""
    rows = {
        "Type": config.source_kind,
        "Source": config.source,
        "Dest": str(config.destination),
        "Update interval": f"{config.poll_interval.total_seconds():g}s",
    }
    rows.update(source.describe(config))
    logger.info("Initialising syncer...")
    for key, value in rows.items():
        logger.info(f"{key:>18} = {value}")


def start(
    environ: Optional[Mapping[str, str]] = None,
    strict: bool = False,
) -> Tuple[SyncConfiguration, Source]:
    """
    Load configuration, configure the source and initialize the destination.

    A non-fatal error during initialization (drift) is logged and left for
    the next tick, unless strict is set.

    Raises:
        SyncerError: If any startup step fails fatally, or at all when strict
    """
    config = load_settings(environ)
    source = SourceRegistry().create(config)

    logger.info("Configuring syncer...")
    source.configure(config)
    log_banner(config, source)

    try:
        result = source.initialize(config)
    except SyncerError as e:
        if e.fatal or strict:
            raise
        logger.warning(f"Initial sync skipped (will retry next tick): {e}")
    else:
        record_result(result)

    logger.info("Initialisation complete.")
    return config, source


def run_daemon(environ: Optional[Mapping[str, str]] = None) -> int:
    """Run the full daemon. Returns the process exit code."""
    logger.info(f"syncer v{__version__}")

    try:
        config, source = start(environ)
    except SyncerError as e:
        logger.critical(f"Startup failed: {e}")
        return 1

    server = HealthServer(port=config.http_port)
    try:
        server.start()
    except OSError as e:
        logger.critical(f"Cannot serve health endpoint on port {config.http_port}: {e}")
        return 1

    scheduler = Scheduler(source, config)
    signal.signal(signal.SIGTERM, lambda signum, frame: scheduler.stop())

    try:
        scheduler.run()
        return 0
    except SyncerError as e:
        logger.critical(f"Error during update: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return 0
    finally:
        server.stop()


@click.group(invoke_without_command=True)
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR (default: $LOG_LEVEL or INFO)")
@click.option("--log-format", type=click.Choice(["text", "json"]), default=None, help="Log output format")
@click.version_option(__version__, prog_name="syncer")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str], log_format: Optional[str]) -> None:
    """Syncer — keep a directory mirrored to a git branch or tag."""
    setup_logging(level=log_level, format_type=log_format)
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Initialize the mirror, then poll for updates and serve /health."""
    ctx.exit(run_daemon())


@cli.command()
@click.pass_context
def once(ctx: click.Context) -> None:
    """Initialize or update the mirror once and exit."""
    try:
        config, _ = start(strict=True)
    except SyncerError as e:
        click.secho(f"✗ {e}", fg="red", err=True)
        ctx.exit(1)
    click.secho(f"✓ {config.destination} is in sync", fg="green")


@cli.command("check-config")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def check_config(ctx: click.Context, as_json: bool) -> None:
    """Validate the SYNCER_* configuration without touching the destination."""
    try:
        config = load_settings()
        source = SourceRegistry().create(config)
        source.configure(config)
    except SyncerError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": str(e)}, indent=2))
        else:
            click.secho(f"✗ Invalid configuration: {e}", fg="red", err=True)
        ctx.exit(1)

    summary = config.to_display_dict()
    if as_json:
        click.echo(json.dumps({"valid": True, "config": summary}, indent=2))
        return

    click.secho("✓ Configuration is valid", fg="green")
    for key, value in summary.items():
        click.echo(f"  {key:<22} {value}")


@cli.command("inspect")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def inspect_cmd(ctx: click.Context, as_json: bool) -> None:
    """Show what the engine would see in the destination right now."""
    try:
        config = load_settings()
    except SyncerError as e:
        click.secho(f"✗ Invalid configuration: {e}", fg="red", err=True)
        ctx.exit(1)

    inspector = RepositoryInspector(GitRunner(timeout=config.git_timeout))
    try:
        state = inspector.inspect(config.destination, config.source, config.upstream)
    except (GitCommandError, OSError) as e:
        click.secho(f"✗ Cannot inspect {config.destination}: {e}", fg="red", err=True)
        ctx.exit(1)
    mirror_state = classify(state, config.source)

    if as_json:
        click.echo(json.dumps({"state": mirror_state.value, **state.to_dict()}, indent=2))
        return

    click.echo(f"Destination:     {config.destination}")
    click.echo(f"State:           {mirror_state.value}")
    click.echo(f"Non-empty:       {state.exists}")
    click.echo(f"Has metadata:    {state.has_metadata}")
    click.echo(f"Recorded origin: {state.recorded_origin or '-'}")
    click.echo(f"Valid clone:     {state.is_valid_clone}")
    if state.is_clean is not None:
        click.echo(f"Clean:           {state.is_clean}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
