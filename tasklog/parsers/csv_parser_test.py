"""Tests for the CSV codec"""

import pytest

from tasklog.parsers.csv_parser import CsvParser
from tasklog.storage.factories import TaskGroupFactory, TaskLogEntryFactory
from tasklog.types.csv_schema import (
    TASK_GROUP_CSV_HEADERS,
    TASK_LOG_CSV_HEADERS,
    TASK_LOG_CSV_VALIDATION_RULES,
    CsvConfig,
    CsvParseError,
)

TASK_LOG_HEADER_LINE = (
    "date,start_time,end_time,duration_minutes,task_group_id,"
    "task_group_name,content,created_at,updated_at"
)
TASK_GROUP_HEADER_LINE = "id,name,color,created_at,updated_at,is_active"

VALID_LOG_ROW = {
    "date": "2024-01-15",
    "start_time": "9:00",
    "end_time": "10:30",
    "duration_minutes": "90",
    "task_group_id": "g1",
    "task_group_name": "Writing",
    "content": "Draft chapter",
    "created_at": "2024-01-15T09:00:00.000Z",
    "updated_at": "2024-01-15T10:30:00.000Z",
}


@pytest.fixture
def parser():
    return CsvParser()


class TestTokenizer:
    def test_plain_fields(self, parser):
        assert parser.parse_csv_content("a,b,c\n") == [["a", "b", "c"]]

    def test_quoted_delimiter_and_doubled_quote(self, parser):
        rows = parser.parse_csv_content('a,"b,c","say ""hi"""\n')
        assert rows == [["a", "b,c", 'say "hi"']]

    def test_line_break_inside_quotes(self, parser):
        rows = parser.parse_csv_content('x,"first\nsecond",y\nnext,row,z\n')
        assert rows == [["x", "first\nsecond", "y"], ["next", "row", "z"]]

    def test_blank_lines_skipped(self, parser):
        assert parser.parse_csv_content("a,b\n\n\nc,d\n") == [["a", "b"], ["c", "d"]]

    def test_crlf_line_endings(self, parser):
        assert parser.parse_csv_content("a,b\r\nc,d\r\n") == [["a", "b"], ["c", "d"]]

    def test_custom_delimiter(self):
        parser = CsvParser(CsvConfig(delimiter=";"))
        assert parser.parse_csv_content('a;"b;c"\n') == [["a", "b;c"]]


class TestFormatting:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("plain", "plain"),
            ("a,b", '"a,b"'),
            ('say "hi"', '"say ""hi"""'),
            ("two\nlines", '"two\nlines"'),
            ("", ""),
        ],
    )
    def test_format_csv_field(self, parser, value, expected):
        assert parser.format_csv_field(value) == expected

    def test_generate_csv_content_header_and_trailing_newline(self, parser):
        content = parser.generate_csv_content(
            [{"id": "g1", "name": "Writing", "color": "", "created_at": "",
              "updated_at": "", "is_active": "true"}],
            TASK_GROUP_CSV_HEADERS,
        )
        assert content == f"{TASK_GROUP_HEADER_LINE}\ng1,Writing,,,,true\n"

    def test_header_only(self, parser, tmp_path):
        path = tmp_path / "task_logs.csv"
        parser.write_header_only(TASK_LOG_CSV_HEADERS, path)
        assert path.read_text(encoding="utf-8") == TASK_LOG_HEADER_LINE + "\n"


class TestEscaping:
    def test_escape_line_breaks(self):
        assert CsvParser.escape_csv_value("a\nb\rc") == "a\\nb\\rc"

    def test_unescape_line_breaks(self):
        assert CsvParser.unescape_csv_value("a\\nb\\rc") == "a\nb\rc"

    def test_multiline_content_stays_on_one_line(self, parser):
        entry = TaskLogEntryFactory(content="line one\nline two, with comma")
        content = parser.task_logs_to_content([entry])

        lines = content.splitlines()
        assert len(lines) == 2
        assert "line one\\nline two, with comma" in lines[1]

        [parsed] = parser.task_logs_from_content(content)
        assert parsed.content == "line one\nline two, with comma"


class TestEntityConversion:
    def test_task_log_row_fields(self, parser):
        entry = TaskLogEntryFactory(duration=45)
        row = parser.task_log_entry_to_csv_row(entry)

        assert tuple(row) == TASK_LOG_CSV_HEADERS
        assert row["duration_minutes"] == "45"

    def test_task_log_read_mints_fresh_ids(self, parser):
        entry = parser.csv_row_to_task_log_entry(VALID_LOG_ROW)
        again = parser.csv_row_to_task_log_entry(VALID_LOG_ROW)

        assert entry.id and again.id
        assert entry.id != again.id
        assert entry.duration == 90
        assert entry.task_group_name == "Writing"

    def test_task_group_round_trip_is_fixed_point(self, parser):
        groups = [
            TaskGroupFactory(name="Deep, focused work", color=None),
            TaskGroupFactory(name='The "quoted" one', is_active=False),
        ]
        content = parser.task_groups_to_content(groups)
        parsed = parser.task_groups_from_content(content)

        assert parsed == groups
        assert parser.task_groups_to_content(parsed) == content

    def test_task_group_boolean_and_color_encoding(self, parser):
        row = parser.task_group_to_csv_row(TaskGroupFactory(color=None, is_active=False))
        assert row["color"] == ""
        assert row["is_active"] == "false"


class TestValidation:
    @pytest.mark.parametrize(
        "field,bad_value",
        [
            ("date", "15/01/2024"),
            ("start_time", "9am"),
            ("end_time", "10.30"),
            ("duration_minutes", "-5"),
            ("task_group_id", "has space"),
            ("task_group_name", ""),
            ("content", ""),
            ("created_at", "yesterday"),
            ("updated_at", "2024-01-15 10:30:00"),
        ],
    )
    def test_each_rule_reports_field_and_row(self, parser, field, bad_value):
        row = {**VALID_LOG_ROW, field: bad_value}

        with pytest.raises(CsvParseError) as exc_info:
            parser.validate_row(row, TASK_LOG_CSV_VALIDATION_RULES, 7)

        assert exc_info.value.column == field
        assert exc_info.value.row == 7
        assert exc_info.value.original_data == bad_value

    def test_first_failing_rule_wins(self, parser):
        row = {**VALID_LOG_ROW, "date": "", "content": ""}

        with pytest.raises(CsvParseError) as exc_info:
            parser.validate_row(row, TASK_LOG_CSV_VALIDATION_RULES)

        assert exc_info.value.column == "date"

    def test_valid_row_passes(self, parser):
        parser.validate_row(VALID_LOG_ROW, TASK_LOG_CSV_VALIDATION_RULES, 2)

    def test_invalid_row_in_file_reports_line_number(self, parser):
        bad = ",".join({**VALID_LOG_ROW, "start_time": "noon"}.values())
        good = ",".join(VALID_LOG_ROW.values())
        content = f"{TASK_LOG_HEADER_LINE}\n{good}\n{bad}\n"

        with pytest.raises(CsvParseError) as exc_info:
            parser.task_logs_from_content(content)

        assert exc_info.value.row == 3
        assert exc_info.value.column == "start_time"

    def test_outgoing_rows_are_validated(self, parser):
        entry = TaskLogEntryFactory(date="not-a-date")

        with pytest.raises(CsvParseError) as exc_info:
            parser.task_logs_to_content([entry])

        assert exc_info.value.column == "date"
        assert exc_info.value.row == 2

    def test_validation_can_be_disabled(self):
        parser = CsvParser(CsvConfig(enable_validation=False))
        row = {**VALID_LOG_ROW, "date": "whenever"}
        assert parser.csv_row_to_task_log_entry(row).date == "whenever"

    def test_unexpected_header(self, parser):
        with pytest.raises(CsvParseError, match="Unexpected CSV header") as exc_info:
            parser.parse_rows("id,title\ng1,Writing\n", TASK_GROUP_CSV_HEADERS)
        assert exc_info.value.row == 1

    def test_missing_trailing_fields_reported_by_name(self, parser):
        content = f"{TASK_LOG_HEADER_LINE}\n2024-01-15,9:00,10:00,60,g1\n"

        with pytest.raises(CsvParseError) as exc_info:
            parser.task_logs_from_content(content)

        assert exc_info.value.column == "task_group_name"

    def test_extra_fields_are_rejected(self, parser):
        good = ",".join(VALID_LOG_ROW.values())
        content = f"{TASK_LOG_HEADER_LINE}\n{good}\n{good},EXTRA\n"

        with pytest.raises(CsvParseError, match="Expected 9 fields, found 10") as exc_info:
            parser.task_logs_from_content(content)

        assert exc_info.value.row == 3
        assert exc_info.value.original_data.endswith(",EXTRA")


class TestFiles:
    def test_write_is_atomic_and_leaves_no_temp_file(self, parser, tmp_path):
        path = tmp_path / "task_groups.csv"
        parser.write_task_groups_csv([TaskGroupFactory()], path)

        assert path.exists()
        assert not (tmp_path / "task_groups.csv.tmp").exists()

    def test_write_then_read_task_logs(self, parser, tmp_path):
        path = tmp_path / "task_logs.csv"
        entries = TaskLogEntryFactory.build_batch(3)

        written = parser.write_task_logs_csv(entries, path)
        parsed = parser.read_task_logs_csv(path)

        assert written == path.read_text(encoding="utf-8")
        assert [e.content for e in parsed] == [e.content for e in entries]
        assert [e.date for e in parsed] == [e.date for e in entries]

    def test_missing_path(self, parser):
        with pytest.raises(CsvParseError, match="path is required"):
            parser.read_text()

    def test_csv_stats_counts_invalid_rows(self, parser, tmp_path):
        path = tmp_path / "task_logs.csv"
        good = ",".join(VALID_LOG_ROW.values())
        bad = ",".join({**VALID_LOG_ROW, "duration_minutes": "lots"}.values())
        path.write_text(f"{TASK_LOG_HEADER_LINE}\n{good}\n{bad}\n{good}\n")

        stats = parser.get_csv_stats(path, TASK_LOG_CSV_HEADERS, TASK_LOG_CSV_VALIDATION_RULES)

        assert stats.total_rows == 3
        assert stats.valid_rows == 2
        assert stats.error_rows == 1
        assert stats.file_size == path.stat().st_size

    def test_csv_stats_counts_too_wide_rows(self, parser, tmp_path):
        path = tmp_path / "task_logs.csv"
        good = ",".join(VALID_LOG_ROW.values())
        path.write_text(f"{TASK_LOG_HEADER_LINE}\n{good}\n{good},EXTRA\n")

        stats = parser.get_csv_stats(path, TASK_LOG_CSV_HEADERS, TASK_LOG_CSV_VALIDATION_RULES)

        assert stats.total_rows == 2
        assert stats.error_rows == 1
