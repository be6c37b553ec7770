"""factory_boy factories for task log entities.

Entities are plain pydantic models, so factories only build instances; tests
persist them through a store.
"""

import factory

from tasklog.types.task_log import TaskGroup, TaskLogEntry, new_id, utc_now_iso


class TaskGroupFactory(factory.Factory):
    class Meta:
        model = TaskGroup

    id = factory.LazyFunction(new_id)
    name = factory.Sequence(lambda n: f"Group {n}")
    color = factory.Faker("hex_color")
    created_at = factory.LazyFunction(utc_now_iso)
    updated_at = factory.LazyAttribute(lambda o: o.created_at)
    is_active = True


class TaskLogEntryFactory(factory.Factory):
    """Builds a one-hour entry starting between 9:00 and 16:00.

    Pass ``group=`` to take the group id and name from an existing group.
    """

    class Meta:
        model = TaskLogEntry
        exclude = ("group", "start_hour")

    group = factory.SubFactory(TaskGroupFactory)
    start_hour = factory.Faker("random_int", min=9, max=16)

    id = factory.LazyFunction(new_id)
    date = factory.Faker("date", pattern="%Y-%m-%d")
    start_time = factory.LazyAttribute(lambda o: f"{o.start_hour}:00")
    end_time = factory.LazyAttribute(lambda o: f"{o.start_hour + 1}:00")
    duration = 60
    task_group_id = factory.LazyAttribute(lambda o: o.group.id)
    task_group_name = factory.LazyAttribute(lambda o: o.group.name)
    content = factory.Faker("sentence")
    created_at = factory.LazyFunction(utc_now_iso)
    updated_at = factory.LazyAttribute(lambda o: o.created_at)
