"""Tests for backend selection."""

import pytest

from tasklog.storage.factory import (
    DEFAULT_MAX_CACHE_SIZE_MB,
    create_data_store,
    create_default_csv_config,
)
from tasklog.storage.identity_cache import EntryIdentityCache
from tasklog.storage.structured_store import StructuredCsvStore
from tasklog.types.data_store import (
    DataStoreError,
    ErrorCode,
    LocalFileConfig,
    NoteVaultConfig,
    RemoteDocumentStoreConfig,
    StructuredCsvConfig,
)


class TestCreateDataStore:
    def test_structured_csv_config(self, tmp_path):
        store = create_data_store(StructuredCsvConfig(csv_base_path=str(tmp_path)))

        assert isinstance(store, StructuredCsvStore)
        assert store.base_path == tmp_path

    def test_raw_mapping(self, tmp_path):
        store = create_data_store(
            {"type": "duckdb-csv", "csv_base_path": str(tmp_path), "max_cache_size_mb": 8}
        )

        assert isinstance(store, StructuredCsvStore)
        assert store.config.max_cache_size_mb == 8

    def test_passes_identity_cache(self, tmp_path):
        cache = EntryIdentityCache()
        store = create_data_store(
            StructuredCsvConfig(csv_base_path=str(tmp_path)), identity_cache=cache
        )

        assert store._identity is cache

    @pytest.mark.parametrize(
        "config,message",
        [
            (LocalFileConfig(data_path="data"), "Local file store"),
            (
                RemoteDocumentStoreConfig(
                    api_key="key",
                    auth_domain="example.com",
                    project_id="project",
                    storage_bucket="bucket",
                    messaging_sender_id="sender",
                    app_id="app",
                ),
                "Remote document store",
            ),
            (NoteVaultConfig(vault_path="vault"), "Note vault store"),
        ],
    )
    def test_unimplemented_backends(self, config, message):
        with pytest.raises(DataStoreError, match=message) as exc_info:
            create_data_store(config)
        assert exc_info.value.code == ErrorCode.UNKNOWN

    def test_unknown_type(self):
        with pytest.raises(DataStoreError, match="Unsupported storage type: mystery") as exc_info:
            create_data_store({"type": "mystery"})
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_missing_type(self):
        with pytest.raises(DataStoreError) as exc_info:
            create_data_store({"csv_base_path": "data"})
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_malformed_known_type(self):
        with pytest.raises(DataStoreError) as exc_info:
            create_data_store({"type": "duckdb-csv", "max_cache_size_mb": 0})
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    def test_unrelated_object(self):
        with pytest.raises(DataStoreError) as exc_info:
            create_data_store(object())
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR


def test_default_csv_config(tmp_path):
    config = create_default_csv_config(tmp_path)

    assert config.type == "duckdb-csv"
    assert config.csv_base_path == str(tmp_path)
    assert config.enable_in_memory_cache is True
    assert config.max_cache_size_mb == DEFAULT_MAX_CACHE_SIZE_MB == 100
