"""Storage backends for task logs and task groups.

The structured CSV store keeps two CSV files as the source of truth:
1. task_logs.csv - logged work intervals
2. task_groups.csv - labels used to categorize entries

Backends are selected through ``create_data_store`` (see storage/factory.py).
"""

from tasklog.storage.base import DataStore
from tasklog.storage.factory import create_data_store, create_default_csv_config
from tasklog.storage.identity_cache import EntryIdentityCache
from tasklog.storage.structured_store import StructuredCsvStore

__all__ = [
    "DataStore",
    "EntryIdentityCache",
    "StructuredCsvStore",
    "create_data_store",
    "create_default_csv_config",
]
