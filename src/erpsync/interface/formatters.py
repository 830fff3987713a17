"""
CLI result formatters for sync runs and replication status.

Separates display logic from command logic.
"""

from typing import List

from rich.console import Console
from rich.table import Table

from erpsync.application.status_service import EntityStatus
from erpsync.domain.models import SyncRunResult, format_timestamp


class SyncResultFormatter:
    """Renders run summaries and status tables."""

    def __init__(self, console: Console):
        self.console = console

    def display_run(self, run: SyncRunResult) -> None:
        """Per-entity table of one run, failed entity included."""
        table = Table(title="Sync run")
        table.add_column("Entity", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Rows", justify="right")
        table.add_column("Batches", justify="right")
        table.add_column("Fetches", justify="right")
        table.add_column("Watermark", style="dim")
        table.add_column("Time", justify="right")

        for result in run.entities:
            status = "[green]done[/green]" if result.succeeded else "[red]failed[/red]"
            table.add_row(
                result.entity_id,
                status,
                str(result.rows),
                str(result.batches),
                str(result.fetches),
                f"{format_timestamp(result.end.time)} {result.end.key}",
                f"{result.duration_seconds:.1f}s",
            )

        self.console.print(table)
        if run.succeeded:
            self.console.print(f"[green]Sync complete[/green]: {run.total_rows} rows replicated")

    def display_status(self, statuses: List[EntityStatus]) -> None:
        table = Table(title="Replication status")
        table.add_column("Entity", style="cyan", no_wrap=True)
        table.add_column("Source table")
        table.add_column("Replica table")
        table.add_column("Replica rows", justify="right")
        table.add_column("Last modified")
        table.add_column("Last name")

        for status in statuses:
            rows = "[dim]not provisioned[/dim]" if status.replica_rows is None else str(status.replica_rows)
            if status.started:
                modified = format_timestamp(status.watermark.time)
                name = status.watermark.key
            else:
                modified, name = "[dim]never synced[/dim]", ""
            table.add_row(status.entity_id, status.source_table, status.target_table, rows, modified, name)

        self.console.print(table)
