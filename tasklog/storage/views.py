"""SQL projections of the CSV files.

The tables below are the queryable views over ``task_logs.csv`` and
``task_groups.csv``. They hold the on-disk string values of each row plus its
position in the file; nothing here is authoritative, the CSV files are.
"""

from sqlalchemy import Column, Integer, MetaData, String, Table

ViewBase = MetaData()

task_logs_view = Table(
    "task_logs",
    ViewBase,
    Column("row_index", Integer, primary_key=True),  # 0-based data row position
    Column("date", String, index=True),
    Column("start_time", String),
    Column("end_time", String),
    # start/end as minutes after midnight, since "9:00" > "10:00" as text
    Column("start_minutes", Integer),
    Column("end_minutes", Integer),
    Column("duration_minutes", String),
    Column("task_group_id", String, index=True),
    Column("task_group_name", String),
    Column("content", String),
    Column("created_at", String),
    Column("updated_at", String),
)

task_groups_view = Table(
    "task_groups",
    ViewBase,
    Column("row_index", Integer, primary_key=True),
    Column("id", String),
    Column("name", String),
    Column("color", String),
    Column("created_at", String),
    Column("updated_at", String),
    Column("is_active", String),
)


def time_to_minutes(value: str | None) -> int | None:
    """Convert ``H:mm``/``HH:mm`` to minutes after midnight, None if malformed."""
    if not value:
        return None
    hours, sep, minutes = value.partition(":")
    if not sep or not hours.isdigit() or not minutes.isdigit():
        return None
    return int(hours) * 60 + int(minutes)
