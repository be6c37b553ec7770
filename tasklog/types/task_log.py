"""Task log entities and read filters.

These models are shared by every storage backend. Field names are snake_case
in Python; the JSON export document uses the camelCase aliases.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Mapping, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

M = TypeVar("M", bound=BaseModel)


def utc_now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaskLogEntry(CamelModel):
    """One logged work interval.

    ``task_group_name`` is a snapshot of the group's name at write time and is
    not kept in sync with later renames or deletions of the group.
    ``original_entry`` is provenance only and has no CSV column.
    """

    id: str = ""
    date: str
    start_time: str
    end_time: str
    duration: int
    task_group_id: str
    task_group_name: str
    content: str
    created_at: str = ""
    updated_at: str = ""
    original_entry: str | None = None


class TaskGroup(CamelModel):
    id: str = ""
    name: str
    color: str | None = None
    created_at: str = ""
    updated_at: str = ""
    is_active: bool = True


def apply_updates(model: M, updates: Mapping[str, Any]) -> M:
    """Return a validated copy of ``model`` with ``updates`` applied.

    Keys may be field names or their camelCase aliases. The identifier is
    never changed by an update.
    """
    fields = type(model).model_fields
    alias_to_name = {info.alias: name for name, info in fields.items() if info.alias}
    merged = model.model_dump()
    for key, value in updates.items():
        name = alias_to_name.get(key, key)
        if name not in fields:
            raise ValueError(f"Unknown field '{key}' for {type(model).__name__}")
        if name == "id":
            continue
        merged[name] = value
    return type(model).model_validate(merged)


class DateRangeFilter(CamelModel):
    """Inclusive calendar-day bounds (``YYYY-MM-DD``)."""

    start_date: str
    end_date: str


class TimeRangeType(str, Enum):
    ALL_DAY = "all_day"
    BUSINESS_HOURS = "business_hours"
    CUSTOM = "custom"


class TimeRangeFilter(CamelModel):
    type: TimeRangeType = TimeRangeType.ALL_DAY
    start_time: str | None = None
    end_time: str | None = None

    def window(self) -> tuple[str, str] | None:
        """Return the (start, end) bounds this filter restricts to, if any.

        Only a custom range with both bounds restricts; all_day and
        business_hours match every entry.
        """
        if self.type == TimeRangeType.CUSTOM and self.start_time and self.end_time:
            return self.start_time, self.end_time
        return None


class TaskGroupFilterType(str, Enum):
    ALL = "all"
    SPECIFIC = "specific"
    MULTIPLE = "multiple"


class TaskGroupFilter(CamelModel):
    type: TaskGroupFilterType = TaskGroupFilterType.ALL
    selected_group_ids: list[str] | None = None


SearchField = Literal["content", "taskGroupName"]


class SearchFilter(CamelModel):
    query: str
    fields: list[SearchField] = Field(
        default_factory=lambda: ["content", "taskGroupName"]
    )
    case_sensitive: bool = False

    @field_validator("fields", mode="before")
    @classmethod
    def _accept_column_names(cls, value: Any) -> Any:
        if value is None:
            return ["content", "taskGroupName"]
        # Older callers pass the CSV column name instead of the entity field
        if isinstance(value, list):
            return ["taskGroupName" if v == "task_group_name" else v for v in value]
        return value
