"""Settings for selecting and configuring the storage backend."""

import json
from pathlib import Path

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tasklog.types.data_store import (
    DataStoreError,
    ErrorCode,
    StorageConfig,
    StorageType,
    StructuredCsvConfig,
    parse_storage_config,
)


class StoreSettings(BaseSettings):
    """Storage settings read from ``TASKLOG_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="TASKLOG_")

    base_path: Path = Field(
        Path("."),
        description="Base directory for relative storage and log paths.",
    )

    storage_type: StorageType = Field(
        StorageType.STRUCTURED_CSV,
        description="Backend kind to create.",
    )

    csv_base_path: Path = Field(
        Path("data"),
        description="Directory holding task_logs.csv and task_groups.csv.",
    )

    enable_in_memory_cache: bool = Field(
        True,
        description="Keep the SQL views in memory instead of a SQLite file.",
    )

    max_cache_size_mb: int = Field(
        100,
        ge=1,
        description="SQLite page cache size for the SQL views.",
    )

    log_level: str = Field("INFO", description="Root log level.")

    log_dir: Path | None = Field(
        Path("logs"),
        description="Directory for rotating log files; unset for console only.",
    )

    @model_validator(mode="after")
    def _apply_base_path(self) -> "StoreSettings":
        self.csv_base_path = self._resolve_under_base(self.csv_base_path)
        if self.log_dir is not None:
            self.log_dir = self._resolve_under_base(self.log_dir)
        return self

    def _resolve_under_base(self, path: Path) -> Path:
        if path.is_absolute():
            return path
        return self.base_path / path

    def to_storage_config(self) -> StorageConfig:
        """Build the backend configuration these settings describe.

        Only the structured CSV backend can be described by environment
        variables; other kinds need a config file (see load_storage_config).
        """
        if self.storage_type != StorageType.STRUCTURED_CSV:
            raise DataStoreError(
                f"Storage type {self.storage_type.value} must be configured "
                "with a config file",
                ErrorCode.VALIDATION_ERROR,
            )
        return StructuredCsvConfig(
            csv_base_path=str(self.csv_base_path),
            enable_in_memory_cache=self.enable_in_memory_cache,
            max_cache_size_mb=self.max_cache_size_mb,
        )


def load_storage_config(config_path: Path) -> StorageConfig:
    """Load a StorageConfig from a YAML or JSON file.

    Raises:
        DataStoreError: VALIDATION_ERROR if the file is not a mapping or does
            not describe a known backend
    """
    with open(config_path, "r", encoding="utf-8") as handle:
        if config_path.suffix.lower() == ".json":
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise DataStoreError(
                    f"Invalid JSON in {config_path}: {exc}",
                    ErrorCode.VALIDATION_ERROR,
                    exc,
                ) from exc
        else:
            try:
                data = yaml.safe_load(handle) or {}
            except yaml.YAMLError as exc:
                raise DataStoreError(
                    f"Invalid YAML in {config_path}: {exc}",
                    ErrorCode.VALIDATION_ERROR,
                    exc,
                ) from exc

    if not isinstance(data, dict):
        raise DataStoreError(
            f"Config file must be a mapping: {config_path}",
            ErrorCode.VALIDATION_ERROR,
        )
    return parse_storage_config(data)
