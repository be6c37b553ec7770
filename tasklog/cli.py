"""Command line interface for inspecting and maintaining task log storage.

Commands:
- init / health / stats / csv-stats: set up and check the backing store
- logs / groups: list data with the same filters the store supports
- log / add-group: record new entries and groups
- export / import: JSON backup and restore
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

import typer

from tasklog.settings import StoreSettings, load_storage_config
from tasklog.storage.base import DataStore
from tasklog.storage.factory import create_data_store
from tasklog.storage.structured_store import StructuredCsvStore
from tasklog.storage.views import time_to_minutes
from tasklog.types.data_store import DataStoreError, ErrorCode
from tasklog.types.task_log import (
    DateRangeFilter,
    SearchFilter,
    TaskGroup,
    TaskGroupFilter,
    TaskGroupFilterType,
    TaskLogEntry,
    TimeRangeFilter,
    TimeRangeType,
    new_id,
)
from tasklog.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = typer.Typer(
    name="tasklog",
    help="Inspect and maintain task log storage",
    no_args_is_help=True,
)


def _config_option():
    return typer.Option(
        None,
        "--config",
        "-c",
        help="YAML or JSON storage config. Defaults to TASKLOG_* environment settings.",
    )


def _open_store(config_path: Path | None) -> DataStore:
    if config_path is not None:
        config = load_storage_config(config_path)
    else:
        config = StoreSettings().to_storage_config()
    return create_data_store(config)


def _run(config_path: Path | None, action: Callable[[DataStore], Awaitable[T]]) -> T:
    """Open the store, run ``action`` and always clean up.

    Storage errors become a message on stderr and exit code 1.
    """

    async def runner() -> T:
        store = _open_store(config_path)
        try:
            return await action(store)
        finally:
            await store.cleanup()

    try:
        return asyncio.run(runner())
    except DataStoreError as exc:
        logger.debug("Command failed", exc_info=exc)
        typer.echo(f"Error ({exc.code.value}): {exc}", err=True)
        raise typer.Exit(1)


def _format_entry(entry: TaskLogEntry) -> str:
    content = entry.content.replace("\n", " / ")
    return (
        f"{entry.id}  {entry.date} {entry.start_time}-{entry.end_time} "
        f"({entry.duration}m) [{entry.task_group_name}] {content}"
    )


@app.callback()
def main() -> None:
    """Configure logging from TASKLOG_* settings."""
    settings = StoreSettings()
    setup_logging(log_dir=settings.log_dir, level=settings.log_level)


@app.command()
def init(config_path: Path | None = _config_option()) -> None:
    """Create the CSV files and check the store answers queries."""

    async def action(store: DataStore) -> bool:
        return await store.is_healthy()

    if not _run(config_path, action):
        typer.echo("Store initialized but unhealthy", err=True)
        raise typer.Exit(1)
    typer.echo("Store initialized")


@app.command()
def health(config_path: Path | None = _config_option()) -> None:
    """Exit 0 when the store is healthy, 1 otherwise."""

    async def action(store: DataStore) -> bool:
        return await store.is_healthy()

    healthy = _run(config_path, action)
    typer.echo("healthy" if healthy else "unhealthy")
    if not healthy:
        raise typer.Exit(1)


@app.command()
def stats(config_path: Path | None = _config_option()) -> None:
    """Print entry and group counts, date range and storage size as JSON."""

    async def action(store: DataStore):
        return await store.get_stats()

    typer.echo(_run(config_path, action).model_dump_json(indent=2))


@app.command("csv-stats")
def csv_stats(config_path: Path | None = _config_option()) -> None:
    """Print per-file row counts, including rows that fail validation."""

    async def action(store: DataStore):
        if not isinstance(store, StructuredCsvStore):
            raise DataStoreError(
                "csv-stats is only available for the structured CSV store",
                ErrorCode.VALIDATION_ERROR,
            )
        return await store.get_file_stats()

    file_stats = _run(config_path, action)
    for name, file_stat in file_stats.items():
        typer.echo(
            f"{name}: {file_stat.total_rows} rows "
            f"({file_stat.valid_rows} valid, {file_stat.error_rows} invalid), "
            f"{file_stat.file_size} bytes, "
            f"modified {file_stat.last_modified:%Y-%m-%d %H:%M:%S}"
        )


@app.command()
def logs(
    config_path: Path | None = _config_option(),
    start_date: str | None = typer.Option(
        None, "--from", help="First day (YYYY-MM-DD)."
    ),
    end_date: str | None = typer.Option(None, "--to", help="Last day (YYYY-MM-DD)."),
    group_ids: list[str] | None = typer.Option(
        None, "--group", "-g", help="Task group id; repeat for several."
    ),
    search: str | None = typer.Option(None, "--search", "-s", help="Text to find."),
    case_sensitive: bool = typer.Option(False, "--case-sensitive"),
    after: str | None = typer.Option(
        None, "--after", help="Only entries starting at or after HH:mm."
    ),
    before: str | None = typer.Option(
        None, "--before", help="Only entries ending at or before HH:mm."
    ),
) -> None:
    """List task log entries, newest first when any filter is given."""
    date_range = None
    if start_date or end_date:
        date_range = DateRangeFilter(
            start_date=start_date or "0000-01-01", end_date=end_date or "9999-12-31"
        )
    time_range = None
    if after or before:
        time_range = TimeRangeFilter(
            type=TimeRangeType.CUSTOM,
            start_time=after or "0:00",
            end_time=before or "23:59",
        )
    task_group = None
    if group_ids:
        task_group = TaskGroupFilter(
            type=(
                TaskGroupFilterType.SPECIFIC
                if len(group_ids) == 1
                else TaskGroupFilterType.MULTIPLE
            ),
            selected_group_ids=group_ids,
        )
    search_filter = (
        SearchFilter(query=search, case_sensitive=case_sensitive) if search else None
    )

    async def action(store: DataStore) -> list[TaskLogEntry]:
        if not any((date_range, time_range, task_group, search_filter)):
            return await store.get_task_logs()
        return await store.get_filtered_task_logs(
            date_range=date_range,
            time_range=time_range,
            task_group=task_group,
            search=search_filter,
        )

    for entry in _run(config_path, action):
        typer.echo(_format_entry(entry))


@app.command()
def groups(
    config_path: Path | None = _config_option(),
    include_inactive: bool = typer.Option(
        False, "--all", help="Include inactive groups."
    ),
) -> None:
    """List task groups."""

    async def action(store: DataStore) -> list[TaskGroup]:
        return await store.get_task_groups()

    for group in _run(config_path, action):
        if not group.is_active and not include_inactive:
            continue
        state = "" if group.is_active else " (inactive)"
        color = f" {group.color}" if group.color else ""
        typer.echo(f"{group.id}  {group.name}{color}{state}")


@app.command("add-group")
def add_group(
    name: str = typer.Argument(..., help="Group name."),
    config_path: Path | None = _config_option(),
    color: str | None = typer.Option(None, "--color", help="Display color."),
) -> None:
    """Create a task group and print its id."""
    group = TaskGroup(id=new_id(), name=name, color=color)

    async def action(store: DataStore) -> None:
        await store.save_task_group(group)

    _run(config_path, action)
    typer.echo(group.id)


@app.command()
def log(
    content: str = typer.Argument(..., help="What was worked on."),
    config_path: Path | None = _config_option(),
    date: str = typer.Option(..., "--date", "-d", help="Day (YYYY-MM-DD)."),
    start_time: str = typer.Option(..., "--start", help="Start time (HH:mm)."),
    end_time: str = typer.Option(..., "--end", help="End time (HH:mm)."),
    group_id: str = typer.Option(..., "--group", "-g", help="Task group id."),
) -> None:
    """Record a task log entry in an existing group."""
    start_minutes = time_to_minutes(start_time)
    end_minutes = time_to_minutes(end_time)
    if start_minutes is None or end_minutes is None or end_minutes < start_minutes:
        typer.echo(f"Invalid time range: {start_time}-{end_time}", err=True)
        raise typer.Exit(1)

    async def action(store: DataStore) -> TaskLogEntry:
        matching = [g for g in await store.get_task_groups() if g.id == group_id]
        if not matching:
            raise DataStoreError(
                f"Task group with ID {group_id} not found", ErrorCode.NOT_FOUND
            )
        entry = TaskLogEntry(
            date=date,
            start_time=start_time,
            end_time=end_time,
            duration=end_minutes - start_minutes,
            task_group_id=group_id,
            task_group_name=matching[0].name,
            content=content,
        )
        await store.save_task_log(entry)
        return entry

    entry = _run(config_path, action)
    typer.echo(f"Logged {entry.duration}m in {entry.task_group_name}")


@app.command()
def export(
    config_path: Path | None = _config_option(),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Write to this file instead of stdout."
    ),
) -> None:
    """Export all task logs and groups as JSON."""

    async def action(store: DataStore) -> str:
        return await store.export_data()

    document = _run(config_path, action)
    if output is None:
        typer.echo(document)
        return
    output.write_text(document, encoding="utf-8")
    summary = json.loads(document)
    typer.echo(
        f"Exported {len(summary['taskLogs'])} task logs and "
        f"{len(summary['taskGroups'])} task groups to {output}"
    )


@app.command("import")
def import_(
    input_path: Path = typer.Argument(..., help="JSON file produced by export."),
    config_path: Path | None = _config_option(),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Delete existing data before importing."
    ),
    merge_strategy: str | None = typer.Option(
        None,
        "--merge-strategy",
        help="'latest' keeps the newer record, 'keep_existing' skips known ids.",
    ),
) -> None:
    """Import a JSON export."""
    if merge_strategy not in (None, "latest", "keep_existing"):
        typer.echo(f"Unknown merge strategy: {merge_strategy}", err=True)
        raise typer.Exit(1)
    data = input_path.read_text(encoding="utf-8")

    async def action(store: DataStore) -> None:
        await store.import_data(
            data, overwrite=overwrite, merge_strategy=merge_strategy
        )

    _run(config_path, action)
    typer.echo(f"Imported {input_path}")


if __name__ == "__main__":
    app()
