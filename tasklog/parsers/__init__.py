"""CSV codec for the structured CSV store."""

from tasklog.parsers.csv_parser import CsvParser

__all__ = ["CsvParser"]
