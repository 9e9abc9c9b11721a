from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.lib import NotSet
from gradepush.model import DeferredTask, TaskID, TaskKind, TaskStatus

from . import Session
from .table import deferred_tasks


def get(task_id: TaskID, *, session: Session = di.Provide["storage.persistent.session"]) -> DeferredTask | None:
    stmt = sqla.select(deferred_tasks.__table__).where(deferred_tasks.task_id == task_id)
    row = session.execute(stmt).mappings().one_or_none()
    return DeferredTask(**row) if row else None


def find(
    *,
    kind: TaskKind | None = None,
    status: TaskStatus | t.Collection[TaskStatus] | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[DeferredTask, ...]:
    """Find tasks, oldest first."""
    stmt = sqla.select(deferred_tasks.__table__).order_by(deferred_tasks.create_time, deferred_tasks.task_id)
    if kind is not None:
        stmt = stmt.where(deferred_tasks.kind == kind)
    if isinstance(status, TaskStatus):
        stmt = stmt.where(deferred_tasks.status == status)
    elif status is not None:
        stmt = stmt.where(deferred_tasks.status.in_(list(status)))
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(DeferredTask(**row) for row in rows)


def create(
    *, kind: TaskKind, payload: dict[str, t.Any], session: Session = di.Provide["storage.persistent.session"]
) -> DeferredTask:
    task_id = TaskID()
    stmt = sqla.insert(deferred_tasks).values(
        task_id=task_id, kind=kind, payload=payload, status=TaskStatus.Pending, attempts=0
    )
    session.execute(stmt)
    session.flush()
    task = get(task_id, session=session)
    assert task is not None
    return task


def update(
    task_id: TaskID,
    *,
    status: TaskStatus | NotSet = NotSet(),
    attempts: int | NotSet = NotSet(),
    error: str | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update a task.

    Raises:
        KeyError: If task_id does not correspond to a task
    """
    values: dict[str, t.Any] = {}
    if not isinstance(status, NotSet):
        values["status"] = status
    if not isinstance(attempts, NotSet):
        values["attempts"] = attempts
    if not isinstance(error, NotSet):
        values["error"] = error

    stmt = (
        sqla
        .update(deferred_tasks)
        .where(deferred_tasks.task_id == task_id)
        .values(**(values or {"task_id": task_id}))
    )
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"Task {task_id} not found")
    session.flush()
