"""
erpsync CLI entry point.

Commands:
    run        Provision the replica schema and replicate every selected entity
    provision  Create replica tables, indexes and the cursor table only
    status     Show stored watermarks and replica row counts

Exit codes: 0 success, 1 sync/connectivity failure, 2 configuration error.
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console

from erpsync.application.container import Container
from erpsync.application.sync_service import provision_replica
from erpsync.domain.config import ReplicatorConfig
from erpsync.domain.errors import ConfigurationError, EntitySyncError
from erpsync.infrastructure.config_loader import ConfigLoader
from erpsync.infrastructure.logging_config import setup_logging
from .formatters import SyncResultFormatter

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_CONFIG = 2

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="erpsync",
    help="Incremental ERP sales data replication (MySQL -> PostgreSQL).",
    add_completion=False,
    no_args_is_help=True,
)

ConfigOption = typer.Option(None, "--config", "-c", help="JSON config file", exists=False, dir_okay=False)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose (DEBUG) logging")
LogFileOption = typer.Option(None, "--log-file", help="Also write DEBUG logs to this file")


def _load_config(config_path: Optional[Path], verbose: bool, log_file: Optional[str], **sync) -> ReplicatorConfig:
    """Load .env, build the configuration and configure logging."""
    load_dotenv(find_dotenv(usecwd=True), override=False)
    sync["verbose"] = verbose or None
    sync["log_file"] = log_file
    config = ConfigLoader(config_path).load({"sync": sync})
    setup_logging(logging.DEBUG if config.sync.verbose else logging.INFO, config.sync.log_file)
    return config


def _exit_for(error: Exception) -> typer.Exit:
    """Report a failure on stderr and map it to an exit code."""
    logger.debug("Command failed", exc_info=error)
    err_console.print(f"[red]Error:[/red] {error}")
    if isinstance(error, ConfigurationError):
        return typer.Exit(EXIT_CONFIG)
    return typer.Exit(EXIT_FAILURE)


@app.command("run")
def run_command(
    config: Optional[Path] = ConfigOption,
    only: Optional[str] = typer.Option(
        None, "--only", help="Comma-separated entities to sync (item, invoice, invoice_item)"
    ),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Max rows per fetch"),
    timeout_ms: Optional[int] = typer.Option(None, "--timeout-ms", help="Deadline for each fetch"),
    always_probe: bool = typer.Option(
        False, "--always-probe", help="Confirm exhaustion with an empty fetch"
    ),
    verbose: bool = VerboseOption,
    log_file: Optional[str] = LogFileOption,
):
    """
    Replicate changed rows from the source into the replica.

    Resumes each entity from its saved watermark; re-running after a
    failure is safe.
    """
    try:
        settings = _load_config(
            config,
            verbose,
            log_file,
            only=only,
            batch_size=batch_size,
            query_timeout_ms=timeout_ms,
            always_probe=always_probe or None,
        )
    except ConfigurationError as e:
        raise _exit_for(e)

    formatter = SyncResultFormatter(console)
    with Container(settings) as container:
        try:
            run = container.sync_service.run()
        except EntitySyncError as e:
            if e.run_result is not None:
                formatter.display_run(e.run_result)
            raise _exit_for(e)
        except Exception as e:
            raise _exit_for(e)

    formatter.display_run(run)


@app.command("provision")
def provision_command(
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
    log_file: Optional[str] = LogFileOption,
):
    """Create replica tables, indexes and the cursor table if missing."""
    try:
        settings = _load_config(config, verbose, log_file)
        with Container(settings) as container:
            provision_replica(container.replica_engine, container.schema)
    except Exception as e:
        raise _exit_for(e)
    console.print("[green]Replica schema ready[/green]")


@app.command("status")
def status_command(
    config: Optional[Path] = ConfigOption,
    verbose: bool = VerboseOption,
    log_file: Optional[str] = LogFileOption,
):
    """Show saved watermarks and replica row counts per entity."""
    try:
        settings = _load_config(config, verbose, log_file)
        with Container(settings) as container:
            statuses = container.status_service.collect()
    except Exception as e:
        raise _exit_for(e)
    SyncResultFormatter(console).display_status(statuses)


def main() -> None:
    """Console script entry point."""
    app()
