import typing as t

from .base import WithTimestamps
from .enum import TaskKind, TaskStatus
from .id import TaskID


class DeferredTask(WithTimestamps):
    task_id: TaskID
    kind: TaskKind
    payload: dict[str, t.Any] = {}
    status: TaskStatus = TaskStatus.Pending
    attempts: int = 0
    error: str | None = None
