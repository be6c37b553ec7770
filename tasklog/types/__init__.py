"""Shared vocabulary for task log storage: entities, CSV schema, contract types."""

from tasklog.types.csv_schema import (
    TASK_GROUP_CSV_HEADERS,
    TASK_LOG_CSV_HEADERS,
    CsvConfig,
    CsvParseError,
    CsvStats,
)
from tasklog.types.data_store import (
    DataStoreError,
    ErrorCode,
    StorageConfig,
    StorageType,
    StoreStats,
)
from tasklog.types.task_log import (
    DateRangeFilter,
    SearchFilter,
    TaskGroup,
    TaskGroupFilter,
    TaskLogEntry,
    TimeRangeFilter,
)

__all__ = [
    "TASK_GROUP_CSV_HEADERS",
    "TASK_LOG_CSV_HEADERS",
    "CsvConfig",
    "CsvParseError",
    "CsvStats",
    "DataStoreError",
    "ErrorCode",
    "StorageConfig",
    "StorageType",
    "StoreStats",
    "DateRangeFilter",
    "SearchFilter",
    "TaskGroup",
    "TaskGroupFilter",
    "TaskLogEntry",
    "TimeRangeFilter",
]
