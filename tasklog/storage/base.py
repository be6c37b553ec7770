"""Backend-independent storage contract.

Every backend (structured CSV, local file, remote document store, note vault)
implements ``DataStore`` so callers can switch backends through the factory
without changing how they read and write task logs.
"""

from abc import ABC, abstractmethod
from typing import Any, Literal, Mapping

from tasklog.types.data_store import StoreStats
from tasklog.types.task_log import (
    DateRangeFilter,
    SearchFilter,
    TaskGroup,
    TaskGroupFilter,
    TaskLogEntry,
    TimeRangeFilter,
)

MergeStrategy = Literal["latest", "keep_existing"]


class DataStore(ABC):
    """Asynchronous storage contract for task logs and task groups.

    All failures surface as ``DataStoreError``.
    """

    # Task logs

    @abstractmethod
    async def save_task_log(self, entry: TaskLogEntry) -> None:
        """Insert or replace an entry by id."""

    @abstractmethod
    async def get_task_logs(
        self, filter: DateRangeFilter | None = None
    ) -> list[TaskLogEntry]:
        """All entries, or those inside a date range when ``filter`` is given."""

    @abstractmethod
    async def search_task_logs(self, search: SearchFilter) -> list[TaskLogEntry]: ...

    @abstractmethod
    async def get_filtered_task_logs(
        self,
        date_range: DateRangeFilter | None = None,
        time_range: TimeRangeFilter | None = None,
        task_group: TaskGroupFilter | None = None,
        search: SearchFilter | None = None,
    ) -> list[TaskLogEntry]:
        """Entries matching every supplied filter."""

    @abstractmethod
    async def update_task_log(self, id: str, updates: Mapping[str, Any]) -> None: ...

    @abstractmethod
    async def delete_task_log(self, id: str) -> None: ...

    # Task groups

    @abstractmethod
    async def save_task_group(self, group: TaskGroup) -> None: ...

    @abstractmethod
    async def get_task_groups(self) -> list[TaskGroup]: ...

    @abstractmethod
    async def update_task_group(self, id: str, updates: Mapping[str, Any]) -> None: ...

    @abstractmethod
    async def delete_task_group(self, id: str) -> None: ...

    # Settings

    @abstractmethod
    async def save_setting(self, key: str, value: Any) -> None: ...

    @abstractmethod
    async def get_setting(self, key: str) -> Any: ...

    @abstractmethod
    async def delete_setting(self, key: str) -> None: ...

    # Backup

    @abstractmethod
    async def export_data(self) -> str:
        """Serialize everything to a JSON document."""

    @abstractmethod
    async def import_data(
        self,
        data: str,
        overwrite: bool = False,
        merge_strategy: MergeStrategy | None = None,
    ) -> None: ...

    async def sync_data(self) -> None:
        """Push/pull with a remote. Local backends have nothing to sync."""
        return None

    # Health

    @abstractmethod
    async def is_healthy(self) -> bool: ...

    @abstractmethod
    async def get_stats(self) -> StoreStats: ...

    @abstractmethod
    async def cleanup(self) -> None:
        """Release engines and file handles."""
