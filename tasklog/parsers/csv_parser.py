"""CSV parsing and conversion between CSV rows and task log entities.

The codec owns line tokenization, quoting, free-text escaping and the
field-level validation pass. Every row read from disk and every row about to
be written goes through the same rule set, so a file written here always
parses back.
"""

import csv
import io
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterator, Mapping, Sequence

from tasklog.types.csv_schema import (
    TASK_GROUP_CSV_HEADERS,
    TASK_GROUP_CSV_VALIDATION_RULES,
    TASK_LOG_CSV_HEADERS,
    TASK_LOG_CSV_VALIDATION_RULES,
    CsvConfig,
    CsvParseError,
    CsvStats,
    CsvValidationRule,
    TaskGroupCsvRow,
    TaskLogCsvRow,
)
from tasklog.types.task_log import TaskGroup, TaskLogEntry, new_id

logger = logging.getLogger(__name__)

_ESCAPED_LINE_BREAK = re.compile(r"\\([nr])")


class CsvParser:
    """Reads, writes and validates the task log and task group CSV files."""

    def __init__(self, config: CsvConfig | None = None):
        self.config = config or CsvConfig()

    # Entity <-> row conversion

    def task_log_entry_to_csv_row(self, entry: TaskLogEntry) -> TaskLogCsvRow:
        return {
            "date": entry.date,
            "start_time": entry.start_time,
            "end_time": entry.end_time,
            "duration_minutes": str(entry.duration),
            "task_group_id": entry.task_group_id,
            "task_group_name": self.escape_csv_value(entry.task_group_name),
            "content": self.escape_csv_value(entry.content),
            "created_at": entry.created_at,
            "updated_at": entry.updated_at,
        }

    def csv_row_to_task_log_entry(
        self, row: Mapping[str, str], row_index: int | None = None
    ) -> TaskLogEntry:
        """Build an entry from a CSV row.

        The log file has no id column, so every call mints a fresh identifier.
        Callers that need ids to survive a re-read must track them themselves.
        """
        if self.config.enable_validation:
            self.validate_row(row, TASK_LOG_CSV_VALIDATION_RULES, row_index)

        try:
            duration = int(row["duration_minutes"])
        except (KeyError, ValueError) as exc:
            raise CsvParseError(
                "Duration must be a non-negative integer",
                row_index,
                "duration_minutes",
                row.get("duration_minutes"),
            ) from exc

        return TaskLogEntry(
            id=new_id(),
            date=row["date"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            duration=duration,
            task_group_id=row["task_group_id"],
            task_group_name=self.unescape_csv_value(row["task_group_name"]),
            content=self.unescape_csv_value(row["content"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def task_group_to_csv_row(self, group: TaskGroup) -> TaskGroupCsvRow:
        return {
            "id": group.id,
            "name": self.escape_csv_value(group.name),
            "color": group.color or "",
            "created_at": group.created_at,
            "updated_at": group.updated_at,
            "is_active": "true" if group.is_active else "false",
        }

    def csv_row_to_task_group(
        self, row: Mapping[str, str], row_index: int | None = None
    ) -> TaskGroup:
        if self.config.enable_validation:
            self.validate_row(row, TASK_GROUP_CSV_VALIDATION_RULES, row_index)

        return TaskGroup(
            id=row["id"],
            name=self.unescape_csv_value(row["name"]),
            color=row["color"] or None,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            is_active=row["is_active"] == "true",
        )

    # Text level

    def _reader(self, content: str):
        doublequote = self.config.escape == self.config.quote
        return csv.reader(
            io.StringIO(content, newline=""),
            delimiter=self.config.delimiter,
            quotechar=self.config.quote,
            doublequote=doublequote,
            escapechar=None if doublequote else self.config.escape,
        )

    def iter_records(self, content: str) -> Iterator[tuple[int, list[str]]]:
        """Yield (line number, fields) for each non-blank record.

        Quoted fields may contain the delimiter and line breaks; a doubled
        quote inside a quoted field is one literal quote.
        """
        reader = self._reader(content)
        while True:
            try:
                fields = next(reader)
            except StopIteration:
                return
            except csv.Error as exc:
                raise CsvParseError(
                    f"Failed to parse line {reader.line_num}: {exc}",
                    reader.line_num,
                ) from exc
            if len(fields) <= 1 and not "".join(fields).strip():
                continue
            yield reader.line_num, fields

    def parse_csv_content(self, content: str) -> list[list[str]]:
        return [fields for _, fields in self.iter_records(content)]

    def _data_records(
        self, content: str, headers: Sequence[str]
    ) -> Iterator[tuple[int, list[str]]]:
        records = self.iter_records(content)
        if self.config.has_header:
            header_line = next(records, None)
            if header_line is not None and tuple(header_line[1]) != tuple(headers):
                raise CsvParseError(
                    "Unexpected CSV header",
                    header_line[0],
                    None,
                    self.config.delimiter.join(header_line[1]),
                )
        return records

    def _fields_to_row(
        self, line_num: int, fields: Sequence[str], headers: Sequence[str]
    ) -> dict[str, str]:
        if len(fields) > len(headers):
            raise CsvParseError(
                f"Expected {len(headers)} fields, found {len(fields)}",
                line_num,
                None,
                self.config.delimiter.join(fields),
            )
        return {
            header: fields[index] if index < len(fields) else ""
            for index, header in enumerate(headers)
        }

    def parse_rows(
        self, content: str, headers: Sequence[str]
    ) -> list[tuple[int, dict[str, str]]]:
        """Tokenize file contents into header-keyed rows, without validation.

        Missing trailing fields become empty strings so the validation pass
        reports them by name. Extra fields raise CsvParseError.
        """
        return [
            (line_num, self._fields_to_row(line_num, fields, headers))
            for line_num, fields in self._data_records(content, headers)
        ]

    def format_csv_field(self, value: str) -> str:
        """Quote a field only when it holds the delimiter, a quote or a line break."""
        quote = self.config.quote
        if (
            self.config.delimiter in value
            or quote in value
            or "\n" in value
            or "\r" in value
        ):
            return quote + value.replace(quote, quote + quote) + quote
        return value

    def generate_csv_content(
        self, rows: Sequence[Mapping[str, str]], headers: Sequence[str]
    ) -> str:
        lines = []
        if self.config.has_header:
            lines.append(
                self.config.delimiter.join(self.format_csv_field(h) for h in headers)
            )
        for row in rows:
            lines.append(
                self.config.delimiter.join(
                    self.format_csv_field(row.get(header) or "") for header in headers
                )
            )
        return "\n".join(lines) + "\n"

    @staticmethod
    def escape_csv_value(value: str) -> str:
        """Keep free text on one physical line."""
        return value.replace("\n", "\\n").replace("\r", "\\r")

    @staticmethod
    def unescape_csv_value(value: str) -> str:
        return _ESCAPED_LINE_BREAK.sub(
            lambda match: "\n" if match.group(1) == "n" else "\r", value
        )

    # Validation

    def validate_row(
        self,
        row: Mapping[str, str],
        rules: Sequence[CsvValidationRule],
        row_index: int | None = None,
    ) -> None:
        """Apply ``rules`` in order; the first failure raises.

        Raises:
            CsvParseError: carrying the row number, field name and raw value
        """
        for rule in rules:
            value = row.get(rule.field) or ""

            if rule.required and not value.strip():
                raise CsvParseError(
                    rule.error_message or f"Field '{rule.field}' is required",
                    row_index,
                    rule.field,
                    value,
                )

            if value and rule.pattern is not None and not rule.pattern.match(value):
                raise CsvParseError(
                    rule.error_message or f"Field '{rule.field}' has invalid format",
                    row_index,
                    rule.field,
                    value,
                )

            if value and rule.validator is not None and not rule.validator(value):
                raise CsvParseError(
                    rule.error_message or f"Field '{rule.field}' validation failed",
                    row_index,
                    rule.field,
                    value,
                )

    # File level

    def _resolve_path(self, file_path: str | Path | None) -> Path:
        path = file_path or self.config.file_path
        if not path:
            raise CsvParseError("CSV file path is required")
        return Path(path)

    def read_text(self, file_path: str | Path | None = None) -> str:
        path = self._resolve_path(file_path)
        with open(path, "r", encoding=self.config.encoding, newline="") as handle:
            return handle.read()

    def write_text(self, content: str, file_path: str | Path | None = None) -> None:
        """Replace the file contents atomically via a sibling temp file."""
        path = self._resolve_path(file_path)
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, "w", encoding=self.config.encoding, newline="") as handle:
            handle.write(content)
        os.replace(tmp_path, path)

    def task_logs_from_content(self, content: str) -> list[TaskLogEntry]:
        return [
            self.csv_row_to_task_log_entry(row, line_num)
            for line_num, row in self.parse_rows(content, TASK_LOG_CSV_HEADERS)
        ]

    def task_groups_from_content(self, content: str) -> list[TaskGroup]:
        return [
            self.csv_row_to_task_group(row, line_num)
            for line_num, row in self.parse_rows(content, TASK_GROUP_CSV_HEADERS)
        ]

    def task_logs_to_content(self, entries: Sequence[TaskLogEntry]) -> str:
        rows = [self.task_log_entry_to_csv_row(entry) for entry in entries]
        self._validate_outgoing(rows, TASK_LOG_CSV_VALIDATION_RULES)
        return self.generate_csv_content(rows, TASK_LOG_CSV_HEADERS)

    def task_groups_to_content(self, groups: Sequence[TaskGroup]) -> str:
        rows = [self.task_group_to_csv_row(group) for group in groups]
        self._validate_outgoing(rows, TASK_GROUP_CSV_VALIDATION_RULES)
        return self.generate_csv_content(rows, TASK_GROUP_CSV_HEADERS)

    def _validate_outgoing(
        self, rows: Sequence[Mapping[str, str]], rules: Sequence[CsvValidationRule]
    ) -> None:
        if not self.config.enable_validation:
            return
        first_data_line = 2 if self.config.has_header else 1
        for offset, row in enumerate(rows):
            self.validate_row(row, rules, first_data_line + offset)

    def read_task_logs_csv(
        self, file_path: str | Path | None = None
    ) -> list[TaskLogEntry]:
        return self.task_logs_from_content(self.read_text(file_path))

    def write_task_logs_csv(
        self, entries: Sequence[TaskLogEntry], file_path: str | Path | None = None
    ) -> str:
        """Rewrite the whole file and return the text that was written."""
        content = self.task_logs_to_content(entries)
        self.write_text(content, file_path)
        logger.debug(f"Wrote {len(entries)} task log rows")
        return content

    def read_task_groups_csv(
        self, file_path: str | Path | None = None
    ) -> list[TaskGroup]:
        return self.task_groups_from_content(self.read_text(file_path))

    def write_task_groups_csv(
        self, groups: Sequence[TaskGroup], file_path: str | Path | None = None
    ) -> str:
        content = self.task_groups_to_content(groups)
        self.write_text(content, file_path)
        logger.debug(f"Wrote {len(groups)} task group rows")
        return content

    def write_header_only(
        self, headers: Sequence[str], file_path: str | Path | None = None
    ) -> str:
        content = self.generate_csv_content([], headers)
        self.write_text(content, file_path)
        return content

    def get_csv_stats(
        self,
        file_path: str | Path,
        headers: Sequence[str],
        rules: Sequence[CsvValidationRule],
    ) -> CsvStats:
        """Row counts (with a real validation pass), size and mtime of a CSV file."""
        path = self._resolve_path(file_path)
        stat = path.stat()
        total_rows = 0
        error_rows = 0
        for line_num, fields in self._data_records(self.read_text(path), headers):
            total_rows += 1
            try:
                row = self._fields_to_row(line_num, fields, headers)
                self.validate_row(row, rules, line_num)
            except CsvParseError as exc:
                logger.debug(f"Invalid row in {path}: {exc}")
                error_rows += 1

        return CsvStats(
            total_rows=total_rows,
            valid_rows=total_rows - error_rows,
            error_rows=error_rows,
            file_size=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
        )
