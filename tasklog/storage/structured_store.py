"""Structured CSV store.

Two CSV files are the source of truth:

1. ``task_logs.csv`` - one row per logged work interval (no id column)
2. ``task_groups.csv`` - one row per task group

Filtered reads go through an embedded SQLite database holding one table per
CSV file. Those tables are projections only: each is rebuilt from its own file
after that file is written, and the task log table again before a query
whenever the file on disk no longer matches what was loaded. Unfiltered
reads parse the CSV directly.

Every mutation reads the whole collection, changes it in memory and rewrites
the whole file (atomically, via a temp file). There is no locking between
processes: two writers racing on the same files lose one of the updates.
Inside one process, each store call runs to completion without yielding to
the event loop, so mutations on one store do not interleave.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

from pydantic import ValidationError
from sqlalchemy import String, and_, create_engine, event, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.elements import ColumnElement

from tasklog.parsers.csv_parser import CsvParser
from tasklog.storage.base import DataStore, MergeStrategy
from tasklog.storage.identity_cache import EntryIdentityCache, content_digest
from tasklog.storage.views import (
    ViewBase,
    task_groups_view,
    task_logs_view,
    time_to_minutes,
)
from tasklog.types.csv_schema import (
    TASK_GROUP_CSV_HEADERS,
    TASK_GROUP_CSV_VALIDATION_RULES,
    TASK_LOG_CSV_HEADERS,
    TASK_LOG_CSV_VALIDATION_RULES,
    CsvParseError,
    CsvStats,
)
from tasklog.types.data_store import (
    EXPORT_FORMAT_VERSION,
    DataStoreError,
    DateRange,
    ErrorCode,
    ExportDocument,
    StoreStats,
    StructuredCsvConfig,
)
from tasklog.types.task_log import (
    DateRangeFilter,
    SearchFilter,
    TaskGroup,
    TaskGroupFilter,
    TaskGroupFilterType,
    TaskLogEntry,
    TimeRangeFilter,
    apply_updates,
    new_id,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

TASK_LOGS_FILENAME = "task_logs.csv"
TASK_GROUPS_FILENAME = "task_groups.csv"
VIEW_CACHE_FILENAME = ".tasklog_views.sqlite"

SETTINGS_NOT_IMPLEMENTED = "Settings management not implemented yet"

_SEARCH_COLUMNS = {
    "content": task_logs_view.c.content,
    "taskGroupName": task_logs_view.c.task_group_name,
}


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _sqlite_pragma_listener(max_cache_size_mb: int):
    """Build a connect listener for every new connection.

    Applies the cache size and registers ``casefold()``, since SQLite's
    ``lower()`` only folds ASCII letters.
    """

    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        # Negative cache_size is in KiB
        cursor.execute(f"PRAGMA cache_size=-{int(max_cache_size_mb) * 1024}")
        cursor.close()
        dbapi_conn.create_function("casefold", 1, _casefold, deterministic=True)

    return set_sqlite_pragma


def build_task_log_conditions(
    date_range: DateRangeFilter | None = None,
    time_range: TimeRangeFilter | None = None,
    task_group: TaskGroupFilter | None = None,
    search: SearchFilter | None = None,
) -> list[ColumnElement[bool]]:
    """Translate filters into WHERE conditions, combined by the caller with AND.

    All values are bound parameters.

    Raises:
        DataStoreError: VALIDATION_ERROR if a time window is malformed
    """
    view = task_logs_view.c
    conditions: list[ColumnElement[bool]] = []

    if date_range is not None:
        conditions.append(view.date.between(date_range.start_date, date_range.end_date))

    if time_range is not None:
        window = time_range.window()
        if window is not None:
            start, end = (time_to_minutes(value) for value in window)
            if start is None or end is None:
                raise DataStoreError(
                    f"Invalid time range: {window[0]}-{window[1]}",
                    ErrorCode.VALIDATION_ERROR,
                )
            conditions.append(
                and_(view.start_minutes >= start, view.end_minutes <= end)
            )

    if (
        task_group is not None
        and task_group.type != TaskGroupFilterType.ALL
        and task_group.selected_group_ids is not None
    ):
        # An empty selection matches nothing
        conditions.append(view.task_group_id.in_(task_group.selected_group_ids))

    if search is not None:
        # The view holds the escaped on-disk text
        query = CsvParser.escape_csv_value(search.query)
        matches = []
        for field in search.fields or list(_SEARCH_COLUMNS):
            column = _SEARCH_COLUMNS[field]
            if search.case_sensitive:
                matches.append(func.instr(column, query) > 0)
            else:
                matches.append(
                    func.casefold(column, type_=String).contains(
                        query.casefold(), autoescape=True
                    )
                )
        conditions.append(or_(*matches))

    return conditions


@dataclass
class _TaskLogSnapshot:
    content: str
    rows: list[tuple[int, dict[str, str]]]
    entries: list[TaskLogEntry]


@dataclass
class _TaskGroupSnapshot:
    content: str
    rows: list[tuple[int, dict[str, str]]]
    groups: list[TaskGroup]


class StructuredCsvStore(DataStore):
    """CSV-backed store with SQL views for filtered reads.

    Usage:
        store = StructuredCsvStore(StructuredCsvConfig(csv_base_path="data"))
        await store.save_task_group(TaskGroup(name="Writing"))
        logs = await store.get_task_logs(DateRangeFilter(...))
        await store.cleanup()

    Initialization is lazy and idempotent; every public method performs it.
    The initialized flag is plain instance state and is not guarded against
    two concurrent first calls.
    """

    def __init__(
        self,
        config: StructuredCsvConfig,
        identity_cache: EntryIdentityCache | None = None,
        parser: CsvParser | None = None,
    ):
        """Create the store without touching the filesystem.

        Args:
            config: Structured CSV backend configuration
            identity_cache: Process-scoped ids for task log rows; a private
                cache is created when omitted
            parser: CSV codec (defaults to comma-separated, validating)

        Raises:
            DataStoreError: VALIDATION_ERROR if ``config`` is not a
                structured CSV configuration
        """
        if not isinstance(config, StructuredCsvConfig):
            raise DataStoreError(
                "Invalid structured CSV configuration", ErrorCode.VALIDATION_ERROR
            )

        self.config = config
        self.base_path = Path(config.csv_base_path)
        self.task_logs_path = self.base_path / TASK_LOGS_FILENAME
        self.task_groups_path = self.base_path / TASK_GROUPS_FILENAME

        self._parser = parser or CsvParser()
        self._identity = (
            identity_cache if identity_cache is not None else EntryIdentityCache()
        )
        self._engine: Engine | None = None
        self._initialized = False
        self._view_digests: dict[str, str] = {}
        # Task log ids indexed by the view's row_index
        self._view_ids: list[str] = []

    # Setup

    async def initialize(self) -> None:
        """Create the directory, both CSV files and the SQL views if needed."""
        if self._initialized:
            return

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            self._ensure_csv_files_exist()
            self._engine = self._create_engine()
            ViewBase.create_all(self._engine)
        except PermissionError as exc:
            raise DataStoreError(
                f"Failed to initialize structured CSV store: {exc}",
                ErrorCode.PERMISSION_ERROR,
                exc,
            ) from exc
        except Exception as exc:
            raise DataStoreError(
                f"Failed to initialize structured CSV store: {exc}",
                ErrorCode.CONNECTION_ERROR,
                exc,
            ) from exc

        self._view_digests.clear()
        self._initialized = True
        logger.info(f"Structured CSV store ready at {self.base_path}")

    def _ensure_csv_files_exist(self) -> None:
        if not self.task_logs_path.exists():
            self._parser.write_header_only(TASK_LOG_CSV_HEADERS, self.task_logs_path)
            logger.info(f"Created {self.task_logs_path}")
        if not self.task_groups_path.exists():
            self._parser.write_header_only(
                TASK_GROUP_CSV_HEADERS, self.task_groups_path
            )
            logger.info(f"Created {self.task_groups_path}")

    def _create_engine(self) -> Engine:
        if self.config.enable_in_memory_cache:
            engine = create_engine(
                "sqlite://",
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            engine = create_engine(f"sqlite:///{self.base_path / VIEW_CACHE_FILENAME}")
        event.listen(
            engine, "connect", _sqlite_pragma_listener(self.config.max_cache_size_mb)
        )
        return engine

    def _require_engine(self) -> Engine:
        if self._engine is None:
            raise DataStoreError(
                "Structured CSV store is not initialized", ErrorCode.CONNECTION_ERROR
            )
        return self._engine

    def _dispose_engine(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._initialized = False
        self._view_digests.clear()
        self._view_ids = []

    @contextmanager
    def _wrap_errors(self, action: str) -> Iterator[None]:
        """Re-raise anything escaping the block as a DataStoreError kind."""
        try:
            yield
        except DataStoreError:
            raise
        except CsvParseError as exc:
            raise DataStoreError(
                f"CSV operation failed: {exc}", ErrorCode.VALIDATION_ERROR, exc
            ) from exc
        except (ValidationError, ValueError) as exc:
            raise DataStoreError(
                f"Failed to {action}: {exc}", ErrorCode.VALIDATION_ERROR, exc
            ) from exc
        except PermissionError as exc:
            raise DataStoreError(
                f"Failed to {action}: {exc}", ErrorCode.PERMISSION_ERROR, exc
            ) from exc
        except Exception as exc:
            raise DataStoreError(
                f"Failed to {action}: {exc}", ErrorCode.UNKNOWN, exc
            ) from exc

    # File access

    def _load_task_logs(self) -> _TaskLogSnapshot:
        content = self._parser.read_text(self.task_logs_path)
        rows = self._parser.parse_rows(content, TASK_LOG_CSV_HEADERS)
        entries = [
            self._parser.csv_row_to_task_log_entry(row, line_num)
            for line_num, row in rows
        ]
        ids = self._identity.assign(
            str(self.task_logs_path), content, [entry.id for entry in entries]
        )
        for entry, entry_id in zip(entries, ids):
            entry.id = entry_id
        return _TaskLogSnapshot(content=content, rows=rows, entries=entries)

    def _load_task_groups(self) -> _TaskGroupSnapshot:
        content = self._parser.read_text(self.task_groups_path)
        rows = self._parser.parse_rows(content, TASK_GROUP_CSV_HEADERS)
        groups = [
            self._parser.csv_row_to_task_group(row, line_num) for line_num, row in rows
        ]
        return _TaskGroupSnapshot(content=content, rows=rows, groups=groups)

    def _write_task_logs(self, entries: Sequence[TaskLogEntry]) -> None:
        content = self._parser.write_task_logs_csv(entries, self.task_logs_path)
        self._identity.remember(
            str(self.task_logs_path), content, [entry.id for entry in entries]
        )
        self._refresh_task_logs_view()

    def _write_task_groups(self, groups: Sequence[TaskGroup]) -> None:
        self._parser.write_task_groups_csv(groups, self.task_groups_path)
        self._refresh_task_groups_view()

    def _truncate(self) -> None:
        self._parser.write_header_only(TASK_LOG_CSV_HEADERS, self.task_logs_path)
        self._parser.write_header_only(TASK_GROUP_CSV_HEADERS, self.task_groups_path)
        self._identity.forget(str(self.task_logs_path))
        self._refresh_task_logs_view()
        self._refresh_task_groups_view()

    def _refresh_task_logs_view(self) -> None:
        """Rebuild the task log view if its CSV file changed since it was loaded.

        Only the task log file is read; the groups file is not touched.
        """
        engine = self._require_engine()

        logs = self._load_task_logs()
        logs_digest = content_digest(logs.content)
        if self._view_digests.get(task_logs_view.name) != logs_digest:
            records = []
            for row_index, (line_num, row) in enumerate(logs.rows):
                records.append(
                    {
                        **row,
                        "row_index": row_index,
                        "start_minutes": time_to_minutes(row["start_time"]),
                        "end_minutes": time_to_minutes(row["end_time"]),
                    }
                )
            with engine.begin() as conn:
                conn.execute(task_logs_view.delete())
                if records:
                    conn.execute(task_logs_view.insert(), records)
            self._view_digests[task_logs_view.name] = logs_digest
            logger.debug(f"Rebuilt {task_logs_view.name} view ({len(records)} rows)")
        self._view_ids = [entry.id for entry in logs.entries]

    def _refresh_task_groups_view(self) -> None:
        engine = self._require_engine()

        groups = self._load_task_groups()
        groups_digest = content_digest(groups.content)
        if self._view_digests.get(task_groups_view.name) != groups_digest:
            records = [
                {**row, "row_index": row_index}
                for row_index, (line_num, row) in enumerate(groups.rows)
            ]
            with engine.begin() as conn:
                conn.execute(task_groups_view.delete())
                if records:
                    conn.execute(task_groups_view.insert(), records)
            self._view_digests[task_groups_view.name] = groups_digest
            logger.debug(f"Rebuilt {task_groups_view.name} view ({len(records)} rows)")

    def _query_task_logs(
        self, conditions: Sequence[ColumnElement[bool]]
    ) -> list[TaskLogEntry]:
        self._refresh_task_logs_view()

        statement = select(task_logs_view)
        if conditions:
            statement = statement.where(and_(*conditions))
        statement = statement.order_by(
            task_logs_view.c.date.desc(),
            task_logs_view.c.start_minutes.desc(),
            task_logs_view.c.row_index,
        )

        with self._require_engine().connect() as conn:
            result_rows = conn.execute(statement).mappings().all()

        entries = []
        for result in result_rows:
            row = {header: result[header] or "" for header in TASK_LOG_CSV_HEADERS}
            entry = self._parser.csv_row_to_task_log_entry(row)
            entry.id = self._view_ids[result["row_index"]]
            entries.append(entry)
        return entries

    @staticmethod
    def _find_index(items: Sequence[TaskLogEntry | TaskGroup], id: str) -> int | None:
        if not id:
            return None
        for index, item in enumerate(items):
            if item.id == id:
                return index
        return None

    # Task logs

    async def save_task_log(self, entry: TaskLogEntry) -> None:
        """Replace the entry with the same id, or append it.

        ``updated_at`` is always set to now. New entries get an id and
        ``created_at`` when they have none.
        """
        await self.initialize()

        with self._wrap_errors("save task log"):
            entries = self._load_task_logs().entries
            now = utc_now_iso()
            index = self._find_index(entries, entry.id)

            if index is not None:
                saved = entry.model_copy(
                    update={
                        "created_at": entry.created_at or entries[index].created_at,
                        "updated_at": now,
                    }
                )
                entries[index] = saved
            else:
                saved = entry.model_copy(
                    update={
                        "id": entry.id or new_id(),
                        "created_at": entry.created_at or now,
                        "updated_at": now,
                    }
                )
                entries.append(saved)

            self._write_task_logs(entries)
            logger.debug(f"Saved task log {saved.id} ({len(entries)} total)")

    async def get_task_logs(
        self, filter: DateRangeFilter | None = None
    ) -> list[TaskLogEntry]:
        await self.initialize()

        with self._wrap_errors("get task logs"):
            if filter is None:
                return self._load_task_logs().entries
            return self._query_task_logs(build_task_log_conditions(date_range=filter))

    async def search_task_logs(self, search: SearchFilter) -> list[TaskLogEntry]:
        await self.initialize()

        with self._wrap_errors("search task logs"):
            return self._query_task_logs(build_task_log_conditions(search=search))

    async def get_filtered_task_logs(
        self,
        date_range: DateRangeFilter | None = None,
        time_range: TimeRangeFilter | None = None,
        task_group: TaskGroupFilter | None = None,
        search: SearchFilter | None = None,
    ) -> list[TaskLogEntry]:
        await self.initialize()

        with self._wrap_errors("get filtered task logs"):
            conditions = build_task_log_conditions(
                date_range=date_range,
                time_range=time_range,
                task_group=task_group,
                search=search,
            )
            return self._query_task_logs(conditions)

    async def update_task_log(self, id: str, updates: Mapping[str, Any]) -> None:
        await self.initialize()

        with self._wrap_errors("update task log"):
            entries = self._load_task_logs().entries
            index = self._find_index(entries, id)
            if index is None:
                raise DataStoreError(
                    f"Task log with ID {id} not found", ErrorCode.NOT_FOUND
                )

            updated = apply_updates(entries[index], updates)
            updated.updated_at = utc_now_iso()
            entries[index] = updated
            self._write_task_logs(entries)

    async def delete_task_log(self, id: str) -> None:
        await self.initialize()

        with self._wrap_errors("delete task log"):
            entries = self._load_task_logs().entries
            remaining = [entry for entry in entries if entry.id != id]
            if len(remaining) == len(entries):
                raise DataStoreError(
                    f"Task log with ID {id} not found", ErrorCode.NOT_FOUND
                )
            self._write_task_logs(remaining)

    # Task groups

    async def save_task_group(self, group: TaskGroup) -> None:
        await self.initialize()

        with self._wrap_errors("save task group"):
            groups = self._load_task_groups().groups
            now = utc_now_iso()
            index = self._find_index(groups, group.id)

            if index is not None:
                groups[index] = group.model_copy(
                    update={
                        "created_at": group.created_at or groups[index].created_at,
                        "updated_at": now,
                    }
                )
            else:
                groups.append(
                    group.model_copy(
                        update={
                            "id": group.id or new_id(),
                            "created_at": group.created_at or now,
                            "updated_at": now,
                        }
                    )
                )

            self._write_task_groups(groups)

    async def get_task_groups(self) -> list[TaskGroup]:
        await self.initialize()

        with self._wrap_errors("get task groups"):
            return self._load_task_groups().groups

    async def update_task_group(self, id: str, updates: Mapping[str, Any]) -> None:
        await self.initialize()

        with self._wrap_errors("update task group"):
            groups = self._load_task_groups().groups
            index = self._find_index(groups, id)
            if index is None:
                raise DataStoreError(
                    f"Task group with ID {id} not found", ErrorCode.NOT_FOUND
                )

            updated = apply_updates(groups[index], updates)
            updated.updated_at = utc_now_iso()
            groups[index] = updated
            self._write_task_groups(groups)

    async def delete_task_group(self, id: str) -> None:
        """Delete a group. Entries referencing it keep their group id and name."""
        await self.initialize()

        with self._wrap_errors("delete task group"):
            groups = self._load_task_groups().groups
            remaining = [group for group in groups if group.id != id]
            if len(remaining) == len(groups):
                raise DataStoreError(
                    f"Task group with ID {id} not found", ErrorCode.NOT_FOUND
                )
            self._write_task_groups(remaining)

    # Settings are sourced elsewhere for this backend

    async def save_setting(self, key: str, value: Any) -> None:
        raise DataStoreError(SETTINGS_NOT_IMPLEMENTED, ErrorCode.UNKNOWN)

    async def get_setting(self, key: str) -> Any:
        raise DataStoreError(SETTINGS_NOT_IMPLEMENTED, ErrorCode.UNKNOWN)

    async def delete_setting(self, key: str) -> None:
        raise DataStoreError(SETTINGS_NOT_IMPLEMENTED, ErrorCode.UNKNOWN)

    # Backup

    async def export_data(self) -> str:
        await self.initialize()

        with self._wrap_errors("export data"):
            document = ExportDocument(
                version=EXPORT_FORMAT_VERSION,
                exported_at=utc_now_iso(),
                task_logs=self._load_task_logs().entries,
                task_groups=self._load_task_groups().groups,
            )
            return document.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    async def import_data(
        self,
        data: str,
        overwrite: bool = False,
        merge_strategy: MergeStrategy | None = None,
    ) -> None:
        """Replay an export document through the normal save path.

        Args:
            data: JSON produced by ``export_data``
            overwrite: Truncate both files to their header before importing
            merge_strategy: None upserts every record; "keep_existing" skips
                ids already present; "latest" skips records older than the
                stored one (by ``updated_at``)

        Raises:
            DataStoreError: VALIDATION_ERROR for malformed documents
        """
        await self.initialize()

        try:
            document = ExportDocument.model_validate_json(data)
        except ValidationError as exc:
            raise DataStoreError(
                f"Failed to import data: {exc}", ErrorCode.VALIDATION_ERROR, exc
            ) from exc

        if document.version != EXPORT_FORMAT_VERSION:
            logger.warning(
                f"Importing export version {document.version}, "
                f"expected {EXPORT_FORMAT_VERSION}"
            )

        with self._wrap_errors("import data"):
            if overwrite:
                self._truncate()
                logger.info("Cleared existing data before import")
            existing_groups = {g.id: g for g in self._load_task_groups().groups}
            existing_logs = {e.id: e for e in self._load_task_logs().entries}

        imported_groups = 0
        for group in document.task_groups:
            if _should_import(group, existing_groups.get(group.id), merge_strategy):
                await self.save_task_group(group)
                imported_groups += 1

        imported_logs = 0
        for entry in document.task_logs:
            if _should_import(entry, existing_logs.get(entry.id), merge_strategy):
                await self.save_task_log(entry)
                imported_logs += 1

        logger.info(
            f"Imported {imported_groups}/{len(document.task_groups)} task groups "
            f"and {imported_logs}/{len(document.task_logs)} task logs"
        )

    # Health

    async def is_healthy(self) -> bool:
        """True when both files exist and the SQL engine answers a query."""
        try:
            await self.initialize()
            if not (self.task_logs_path.exists() and self.task_groups_path.exists()):
                return False
            with self._require_engine().connect() as conn:
                conn.execute(
                    select(func.count()).select_from(task_logs_view)
                ).scalar_one()
            return True
        except Exception as exc:
            logger.warning(f"Health check failed: {exc}")
            return False

    async def get_stats(self) -> StoreStats:
        await self.initialize()

        with self._wrap_errors("get stats"):
            entries = self._load_task_logs().entries
            groups = self._load_task_groups().groups
            storage_size = (
                self.task_logs_path.stat().st_size
                + self.task_groups_path.stat().st_size
            )
            # YYYY-MM-DD sorts chronologically as text
            dates = sorted(entry.date for entry in entries)

            return StoreStats(
                total_task_logs=len(entries),
                total_task_groups=len(groups),
                date_range=DateRange(
                    earliest=dates[0] if dates else "",
                    latest=dates[-1] if dates else "",
                ),
                storage_size=storage_size,
            )

    async def get_file_stats(self) -> dict[str, CsvStats]:
        """Per-file row counts, including rows failing validation."""
        await self.initialize()

        with self._wrap_errors("get file stats"):
            return {
                TASK_LOGS_FILENAME: self._parser.get_csv_stats(
                    self.task_logs_path,
                    TASK_LOG_CSV_HEADERS,
                    TASK_LOG_CSV_VALIDATION_RULES,
                ),
                TASK_GROUPS_FILENAME: self._parser.get_csv_stats(
                    self.task_groups_path,
                    TASK_GROUP_CSV_HEADERS,
                    TASK_GROUP_CSV_VALIDATION_RULES,
                ),
            }

    async def cleanup(self) -> None:
        try:
            self._dispose_engine()
        except Exception as exc:
            raise DataStoreError(
                f"Failed to cleanup: {exc}", ErrorCode.UNKNOWN, exc
            ) from exc


def _should_import(
    incoming: TaskLogEntry | TaskGroup,
    existing: TaskLogEntry | TaskGroup | None,
    merge_strategy: MergeStrategy | None,
) -> bool:
    if existing is None or merge_strategy is None:
        return True
    if merge_strategy == "keep_existing":
        return False
    return incoming.updated_at >= existing.updated_at
