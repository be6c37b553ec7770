"""Storage contract types: errors, backend configuration and result shapes."""

from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from tasklog.types.task_log import CamelModel, TaskGroup, TaskLogEntry

EXPORT_FORMAT_VERSION = "1.0"


class ErrorCode(str, Enum):
    CONNECTION_ERROR = "CONNECTION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    DUPLICATE = "DUPLICATE"  # reserved
    PERMISSION_ERROR = "PERMISSION_ERROR"
    UNKNOWN = "UNKNOWN"


class DataStoreError(Exception):
    """Single error type raised across the storage boundary.

    The originating exception, when there is one, is kept in ``details`` and
    chained as ``__cause__``.
    """

    def __init__(self, message: str, code: ErrorCode, details: Any = None):
        super().__init__(message)
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"DataStoreError({str(self)!r}, code={self.code.value})"


class StorageType(str, Enum):
    # Wire value kept for compatibility with stored preferences
    STRUCTURED_CSV = "duckdb-csv"
    LOCAL_FILE = "local-file"
    REMOTE_DOCUMENT_STORE = "remote-document-store"
    NOTE_VAULT = "note-vault"


class StructuredCsvConfig(BaseModel):
    type: Literal["duckdb-csv"] = "duckdb-csv"
    csv_base_path: str
    enable_in_memory_cache: bool = True
    max_cache_size_mb: int = Field(100, ge=1)


class LocalFileConfig(BaseModel):
    type: Literal["local-file"] = "local-file"
    data_path: str


class RemoteDocumentStoreConfig(BaseModel):
    type: Literal["remote-document-store"] = "remote-document-store"
    api_key: str
    auth_domain: str
    project_id: str
    storage_bucket: str
    messaging_sender_id: str
    app_id: str


class NoteVaultConfig(BaseModel):
    type: Literal["note-vault"] = "note-vault"
    vault_path: str
    note_format: str = "markdown"
    enable_advanced_uri: bool = False


StorageConfig = Annotated[
    Union[
        StructuredCsvConfig,
        LocalFileConfig,
        RemoteDocumentStoreConfig,
        NoteVaultConfig,
    ],
    Field(discriminator="type"),
]

_storage_config_adapter: TypeAdapter[StorageConfig] = TypeAdapter(StorageConfig)


def parse_storage_config(data: Mapping[str, Any]) -> StorageConfig:
    """Validate a raw mapping into the matching StorageConfig variant.

    Raises:
        DataStoreError: VALIDATION_ERROR for unknown kinds or malformed fields
    """
    try:
        return _storage_config_adapter.validate_python(dict(data))
    except ValidationError as exc:
        raise DataStoreError(
            f"Invalid storage configuration: {exc}",
            ErrorCode.VALIDATION_ERROR,
            exc,
        ) from exc


class DateRange(BaseModel):
    earliest: str
    latest: str


class StoreStats(BaseModel):
    total_task_logs: int
    total_task_groups: int
    date_range: DateRange
    storage_size: int | None = None


class ExportDocument(CamelModel):
    version: str = EXPORT_FORMAT_VERSION
    exported_at: str = ""
    task_logs: list[TaskLogEntry]
    task_groups: list[TaskGroup]
