"""Re-derive extension state from full roster snapshots.

Three triggers queue work here: a mapping created (or switched on) with
extensions enabled, a student enrolled in a course, and an administrator
asking for a full re-scan. Each runs as a deferred task; a handler that has
more to do returns the payload of its own continuation.
"""

from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradepush.storage.enrolment as enrolment_store
import gradepush.storage.mapping as mapping_store
import gradepush.storage.task as task_store
import gradepush.storage.user as user_store
from gradepush.core.config import ExtensionSettings
from gradepush.core.provider import LoggingProvider
from gradepush.lib.vendor.sits import SITSClient
from gradepush.model import BaseModel, DeferredTask, EnrolmentEvent, ExtensionFamily, ExtensionScope, \
    MappingWithComponent, StudentRecord, TaskKind, TaskStatus

from . import resolver
from .applier import ExtensionApplier
from .errors import ScanAlreadyQueuedError

logger = LoggingProvider.get_logger()

T = t.TypeVar("T")

Unfinished = (TaskStatus.Pending, TaskStatus.Running)


class NewMappingPayload(BaseModel):
    mapping_id: int


class NewEnrolmentPayload(BaseModel):
    course_id: int


class FullRescanPayload(BaseModel):
    course_id: int = 0
    scope: ExtensionScope = ExtensionScope.Both
    cursor: int | None = None

    def overlaps(self, other: FullRescanPayload) -> bool:
        courses = self.course_id == 0 or other.course_id == 0 or self.course_id == other.course_id
        return courses and self.scope.overlaps(other.scope)


def next_batch(
    cursor: int | None,
    fetch: t.Callable[[int | None, int], t.Sequence[T]],
    limit: int,
    key: t.Callable[[T], int],
) -> tuple[list[T], int | None]:
    """One page of work after `cursor`, and the cursor to continue from, or None when done.

    Fetches one row beyond `limit` to learn whether anything remains.
    """
    rows = list(fetch(cursor, limit + 1))
    batch = rows[:limit]
    if len(rows) > limit and batch:
        return batch, key(batch[-1])
    return batch, None


# queueing


def _pending(kind: TaskKind, *, session: Session) -> tuple[DeferredTask, ...]:
    return task_store.find(kind=kind, status=Unfinished, session=session)


def queue_full_rescan(
    course_id: int = 0, scope: ExtensionScope = ExtensionScope.Both, *, session: Session
) -> DeferredTask:
    """Queue a re-scan of every extension-enabled mapping, optionally within one course.

    Raises:
        ScanAlreadyQueuedError: If an unfinished scan overlaps in both course and extension type
    """
    requested = FullRescanPayload(course_id=course_id, scope=scope)
    for task in _pending(TaskKind.FullRescan, session=session):
        existing = FullRescanPayload.model_validate(task.payload)
        if existing.overlaps(requested):
            raise ScanAlreadyQueuedError(
                "an overlapping re-scan is already queued",
                task_id=str(task.task_id),
                course_id=existing.course_id,
                scope=existing.scope.value,
            )
    task = task_store.create(kind=TaskKind.FullRescan, payload=requested.model_dump(mode="json"), session=session)
    logger.info(
        "queued full re-scan", extra={"task_id": str(task.task_id), "course_id": course_id, "scope": scope.value}
    )
    return task


def queue_new_mapping(mapping_id: int, *, session: Session) -> DeferredTask:
    for task in _pending(TaskKind.NewMapping, session=session):
        if NewMappingPayload.model_validate(task.payload).mapping_id == mapping_id:
            return task
    payload = NewMappingPayload(mapping_id=mapping_id).model_dump(mode="json")
    return task_store.create(kind=TaskKind.NewMapping, payload=payload, session=session)


def queue_new_enrolment(course_id: int, *, session: Session) -> DeferredTask:
    for task in _pending(TaskKind.NewEnrolment, session=session):
        if NewEnrolmentPayload.model_validate(task.payload).course_id == course_id:
            return task
    payload = NewEnrolmentPayload(course_id=course_id).model_dump(mode="json")
    return task_store.create(kind=TaskKind.NewEnrolment, payload=payload, session=session)


def on_mapping_created(mapping: MappingWithComponent, *, settings: ExtensionSettings, session: Session) -> None:
    if settings.enabled and mapping.enable_extension:
        queue_new_mapping(mapping.mapping_id, session=session)


def on_extension_toggled(
    mapping: MappingWithComponent, enabled: bool, *, settings: ExtensionSettings, session: Session
) -> None:
    """Switching extensions on catches the mapping up on its whole roster."""
    if settings.enabled and enabled and not mapping.enable_extension:
        queue_new_mapping(mapping.mapping_id, session=session)


def on_user_enrolled(
    course_id: int, user_id: int, role: str, *, settings: ExtensionSettings, session: Session
) -> EnrolmentEvent | None:
    """Record a gradebook-role enrolment for the next new-enrolment task."""
    if not settings.enabled or role not in settings.gradebook_roles:
        return None
    event = enrolment_store.create(course_id=course_id, user_id=user_id, session=session)
    queue_new_enrolment(course_id, session=session)
    return event


# handlers


class RescanTasks(object):
    def __init__(
        self,
        session: Session,
        *,
        sits: SITSClient,
        settings: ExtensionSettings,
        applier: ExtensionApplier,
    ):
        self.session = session
        self.sits = sits
        self.settings = settings
        self.applier = applier

    @property
    def handlers(self) -> dict[TaskKind, t.Callable[[dict[str, t.Any]], dict[str, t.Any] | None]]:
        return {
            TaskKind.NewMapping: self.new_mapping,
            TaskKind.NewEnrolment: self.new_enrolment,
            TaskKind.FullRescan: self.full_rescan,
        }

    def roster(self, mapping: MappingWithComponent) -> tuple[StudentRecord, ...]:
        students = self.sits.get_students(
            mapping.component.map_code,
            mapping.component.mab_seq,
            fresh=True,
            attempts=self.settings.api_attempts,
        )
        return resolver.attach_user_ids(students, session=self.session)

    def update_mapping(
        self,
        mapping: MappingWithComponent,
        students: t.Sequence[StudentRecord],
        families: t.Collection[ExtensionFamily] = frozenset(ExtensionFamily),
    ) -> None:
        if ExtensionFamily.RAA in families:
            self.applier.update_raa_for_mapping(mapping, students)
        if ExtensionFamily.EC in families:
            self.applier.update_ec_for_mapping(mapping, students)

    def new_mapping(self, payload: dict[str, t.Any]) -> dict[str, t.Any] | None:
        p = NewMappingPayload.model_validate(payload)
        mapping = mapping_store.get(p.mapping_id, session=self.session)
        ctx: dict[str, t.Any] = {"mapping_id": p.mapping_id}
        if mapping is None or mapping.is_removed or not mapping.enable_extension:
            logger.info("mapping is gone or has extensions disabled", extra=ctx)
            return None
        self.update_mapping(mapping, self.roster(mapping))
        return None

    def new_enrolment(self, payload: dict[str, t.Any]) -> dict[str, t.Any] | None:
        p = NewEnrolmentPayload.model_validate(payload)
        ctx: dict[str, t.Any] = {"course_id": p.course_id}
        max_attempts = self.settings.new_enrolment_max_attempts

        mappings = resolver.mappings_for_course(p.course_id, settings=self.settings, session=self.session)
        if not mappings:
            # a later new-mapping task covers everyone enrolled by then
            stale = enrolment_store.find(course_id=p.course_id, session=self.session)
            enrolment_store.delete([e.enrolment_event_id for e in stale], session=self.session)
            logger.info("course has no extension-enabled mappings, events dropped", extra={**ctx, "events": len(stale)})
            return None

        events = enrolment_store.find(
            course_id=p.course_id,
            max_attempts=max_attempts,
            limit=self.settings.new_enrolment_batch_limit,
            session=self.session,
        )
        if not events:
            return None

        users = {u.user_id: u for u in user_store.find(user_ids=[e.user_id for e in events], session=self.session)}
        matched: set[int] = set()
        for mapping in mappings:
            try:
                with self.session.begin_nested():
                    by_code = {s.student_code: s for s in self.roster(mapping)}
                    for event in events:
                        user = users.get(event.user_id)
                        student = by_code.get(user.student_code) if user and user.student_code else None
                        if student is None:
                            continue
                        student = student.model_copy(update={"user_id": event.user_id})
                        self.update_mapping(mapping, [student])
                        matched.add(event.user_id)
            except Exception:
                logger.exception(
                    "failed to process new enrolments for mapping", extra={**ctx, "mapping_id": mapping.mapping_id}
                )

        done = [e.enrolment_event_id for e in events if e.user_id in matched]
        retry = [e for e in events if e.user_id not in matched]
        enrolment_store.delete(done, session=self.session)
        enrolment_store.increment_attempts([e.enrolment_event_id for e in retry], session=self.session)

        exhausted = [e for e in retry if e.attempts + 1 >= max_attempts]
        if exhausted:
            logger.warning(
                "students not found on any roster after final attempt, dropping enrolment events",
                extra={**ctx, "user_ids": [e.user_id for e in exhausted]},
            )
            enrolment_store.delete([e.enrolment_event_id for e in exhausted], session=self.session)

        logger.info(
            "processed new enrolments",
            extra={**ctx, "matched": len(done), "retry": len(retry) - len(exhausted), "dropped": len(exhausted)},
        )
        if enrolment_store.find(course_id=p.course_id, max_attempts=max_attempts, limit=1, session=self.session):
            return NewEnrolmentPayload(course_id=p.course_id).model_dump(mode="json")
        return None

    def full_rescan(self, payload: dict[str, t.Any]) -> dict[str, t.Any] | None:
        p = FullRescanPayload.model_validate(payload)
        ctx: dict[str, t.Any] = {"course_id": p.course_id, "scope": p.scope.value}

        def fetch(after_id: int | None, limit: int) -> tuple[MappingWithComponent, ...]:
            return resolver.mappings_for_course(
                p.course_id, settings=self.settings, session=self.session, after_id=after_id, limit=limit
            )

        batch, cursor = next_batch(p.cursor, fetch, self.settings.all_mappings_batch_limit, lambda m: m.mapping_id)
        for mapping in batch:
            try:
                with self.session.begin_nested():
                    self.update_mapping(mapping, self.roster(mapping), p.scope.families)
            except Exception:
                logger.exception("failed to re-scan mapping", extra={**ctx, "mapping_id": mapping.mapping_id})

        logger.info("re-scanned mappings", extra={**ctx, "mappings": len(batch), "cursor": cursor})
        if cursor is None:
            return None
        return p.model_copy(update={"cursor": cursor}).model_dump(mode="json")


class TaskRunSummary(BaseModel):
    complete: int = 0
    failed: int = 0
    requeued: int = 0


def run_pending_tasks(tasks: RescanTasks, *, limit: int | None = None) -> TaskRunSummary:
    """Claim pending tasks oldest first and run each in its own transaction."""
    session = tasks.session
    summary = TaskRunSummary()
    with session.begin():
        pending = task_store.find(status=TaskStatus.Pending, limit=limit, session=session)

    for task in pending:
        ctx: dict[str, t.Any] = {"task_id": str(task.task_id), "kind": task.kind.value}
        with session.begin():
            task_store.update(task.task_id, status=TaskStatus.Running, attempts=task.attempts + 1, session=session)
        try:
            with session.begin():
                continuation = tasks.handlers[task.kind](task.payload)
        except Exception as e:
            logger.exception("deferred task failed", extra=ctx)
            with session.begin():
                task_store.update(
                    task.task_id, status=TaskStatus.Failed, error=f"{type(e).__name__}: {e}", session=session
                )
            summary.failed += 1
            continue

        with session.begin():
            task_store.update(task.task_id, status=TaskStatus.Complete, session=session)
            if continuation is not None:
                task_store.create(kind=task.kind, payload=continuation, session=session)
                summary.requeued += 1
        summary.complete += 1
        logger.info("deferred task complete", extra={**ctx, "continued": continuation is not None})
    return summary
