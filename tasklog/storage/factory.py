"""Select a storage backend from a StorageConfig."""

import logging
from pathlib import Path
from typing import Any, Mapping

from tasklog.storage.base import DataStore
from tasklog.storage.identity_cache import EntryIdentityCache
from tasklog.storage.structured_store import StructuredCsvStore
from tasklog.types.data_store import (
    DataStoreError,
    ErrorCode,
    LocalFileConfig,
    NoteVaultConfig,
    RemoteDocumentStoreConfig,
    StorageConfig,
    StorageType,
    StructuredCsvConfig,
    parse_storage_config,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_CACHE_SIZE_MB = 100


def create_data_store(
    config: StorageConfig | Mapping[str, Any],
    identity_cache: EntryIdentityCache | None = None,
) -> DataStore:
    """Construct the backend named by ``config``.

    Args:
        config: A StorageConfig variant, or a raw mapping with a ``type`` key
        identity_cache: Passed to backends that track row identities

    Returns:
        An uninitialized DataStore

    Raises:
        DataStoreError: UNKNOWN for backends that are not implemented yet,
            VALIDATION_ERROR for unknown kinds or malformed configuration
    """
    if isinstance(config, Mapping):
        kind = config.get("type")
        if kind not in {storage_type.value for storage_type in StorageType}:
            raise DataStoreError(
                f"Unsupported storage type: {kind}", ErrorCode.VALIDATION_ERROR
            )
        config = parse_storage_config(config)

    if isinstance(config, StructuredCsvConfig):
        logger.debug(f"Creating structured CSV store at {config.csv_base_path}")
        return StructuredCsvStore(config, identity_cache=identity_cache)

    if isinstance(config, LocalFileConfig):
        raise DataStoreError("Local file store not implemented yet", ErrorCode.UNKNOWN)

    if isinstance(config, RemoteDocumentStoreConfig):
        raise DataStoreError(
            "Remote document store not implemented yet", ErrorCode.UNKNOWN
        )

    if isinstance(config, NoteVaultConfig):
        raise DataStoreError("Note vault store not implemented yet", ErrorCode.UNKNOWN)

    raise DataStoreError(
        f"Unsupported storage type: {getattr(config, 'type', type(config).__name__)}",
        ErrorCode.VALIDATION_ERROR,
    )


def create_default_csv_config(csv_base_path: str | Path) -> StructuredCsvConfig:
    return StructuredCsvConfig(
        csv_base_path=str(csv_base_path),
        enable_in_memory_cache=True,
        max_cache_size_mb=DEFAULT_MAX_CACHE_SIZE_MB,
    )
