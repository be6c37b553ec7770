"""CSV file schema for the structured CSV store.

Headers, row shapes and the declarative per-field validation rules applied to
every row that is read from or written to disk. Pure data, no I/O.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, TypedDict


class TaskLogCsvRow(TypedDict):
    date: str
    start_time: str
    end_time: str
    duration_minutes: str
    task_group_id: str
    task_group_name: str
    content: str
    created_at: str
    updated_at: str


class TaskGroupCsvRow(TypedDict):
    id: str
    name: str
    color: str
    created_at: str
    updated_at: str
    is_active: str


TASK_LOG_CSV_HEADERS: tuple[str, ...] = (
    "date",
    "start_time",
    "end_time",
    "duration_minutes",
    "task_group_id",
    "task_group_name",
    "content",
    "created_at",
    "updated_at",
)

TASK_GROUP_CSV_HEADERS: tuple[str, ...] = (
    "id",
    "name",
    "color",
    "created_at",
    "updated_at",
    "is_active",
)


class CsvParseError(Exception):
    """A CSV file or row could not be parsed or failed validation.

    Attributes:
        row: 1-based physical line number (the header is line 1)
        column: Name of the offending field
        original_data: Raw offending value, line, or file path
    """

    def __init__(
        self,
        message: str,
        row: int | None = None,
        column: str | None = None,
        original_data: str | None = None,
    ):
        super().__init__(message)
        self.row = row
        self.column = column
        self.original_data = original_data

    def __str__(self) -> str:
        message = super().__str__()
        location = []
        if self.row is not None:
            location.append(f"row {self.row}")
        if self.column is not None:
            location.append(f"field '{self.column}'")
        if location:
            return f"{message} ({', '.join(location)})"
        return message


@dataclass(frozen=True)
class CsvValidationRule:
    field: str
    required: bool
    pattern: re.Pattern[str] | None = None
    validator: Callable[[str], bool] | None = None
    error_message: str | None = None


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^\d{1,2}:\d{2}$")
TIMESTAMP_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d{3})?Z$")
# UUIDs are what the application mints, but imported data may carry other
# opaque identifiers. Anything without whitespace or CSV metacharacters passes.
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$")


def _non_empty(value: str) -> bool:
    return len(value) > 0


TASK_LOG_CSV_VALIDATION_RULES: tuple[CsvValidationRule, ...] = (
    CsvValidationRule(
        field="date",
        required=True,
        pattern=DATE_PATTERN,
        error_message="Date must be in YYYY-MM-DD format",
    ),
    CsvValidationRule(
        field="start_time",
        required=True,
        pattern=TIME_PATTERN,
        error_message="Start time must be in HH:mm format",
    ),
    CsvValidationRule(
        field="end_time",
        required=True,
        pattern=TIME_PATTERN,
        error_message="End time must be in HH:mm format",
    ),
    CsvValidationRule(
        field="duration_minutes",
        required=True,
        pattern=re.compile(r"^\d+$"),
        error_message="Duration must be a non-negative integer",
    ),
    CsvValidationRule(
        field="task_group_id",
        required=True,
        pattern=IDENTIFIER_PATTERN,
        error_message="Task group ID must be a valid identifier",
    ),
    CsvValidationRule(
        field="task_group_name",
        required=True,
        validator=_non_empty,
        error_message="Task group name cannot be empty",
    ),
    CsvValidationRule(
        field="content",
        required=True,
        validator=_non_empty,
        error_message="Content cannot be empty",
    ),
    CsvValidationRule(
        field="created_at",
        required=True,
        pattern=TIMESTAMP_PATTERN,
        error_message="Created at must be a valid ISO 8601 timestamp",
    ),
    CsvValidationRule(
        field="updated_at",
        required=True,
        pattern=TIMESTAMP_PATTERN,
        error_message="Updated at must be a valid ISO 8601 timestamp",
    ),
)

TASK_GROUP_CSV_VALIDATION_RULES: tuple[CsvValidationRule, ...] = (
    CsvValidationRule(
        field="id",
        required=True,
        pattern=IDENTIFIER_PATTERN,
        error_message="Task group ID must be a valid identifier",
    ),
    CsvValidationRule(
        field="name",
        required=True,
        validator=_non_empty,
        error_message="Task group name cannot be empty",
    ),
    CsvValidationRule(
        field="created_at",
        required=True,
        pattern=TIMESTAMP_PATTERN,
        error_message="Created at must be a valid ISO 8601 timestamp",
    ),
    CsvValidationRule(
        field="updated_at",
        required=True,
        pattern=TIMESTAMP_PATTERN,
        error_message="Updated at must be a valid ISO 8601 timestamp",
    ),
    CsvValidationRule(
        field="is_active",
        required=True,
        pattern=re.compile(r"^(true|false)$"),
        error_message="Is active must be 'true' or 'false'",
    ),
)


@dataclass
class CsvConfig:
    """Options for reading and writing CSV files."""

    file_path: str = ""
    has_header: bool = True
    delimiter: str = ","
    quote: str = '"'
    # Same as quote means RFC-4180 doubled-quote escaping
    escape: str = '"'
    encoding: str = "utf-8"
    enable_validation: bool = True


@dataclass(frozen=True)
class CsvStats:
    total_rows: int
    valid_rows: int
    error_rows: int
    file_size: int
    last_modified: datetime
