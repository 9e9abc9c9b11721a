"""Tests for gradepush.storage.task and gradepush.storage.enrolment modules."""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

import gradepush.storage.enrolment as enrolment_store
import gradepush.storage.task as task_store
from gradepush.model import TaskID, TaskKind, TaskStatus


class TestTasks(object):
    def test_create_pending(self, db_session: Session) -> None:
        """New tasks start pending with no attempts."""
        with db_session.begin():
            task = task_store.create(kind=TaskKind.NewMapping, payload={"mapping_id": 5}, session=db_session)

        assert task.task_id.startswith("task$")
        assert task.status is TaskStatus.Pending
        assert task.attempts == 0
        assert task.payload == {"mapping_id": 5}

    def test_find_by_statuses(self, db_session: Session) -> None:
        """`status` takes a single status or a collection of them."""
        with db_session.begin():
            pending = task_store.create(kind=TaskKind.FullRescan, payload={}, session=db_session)
            running = task_store.create(kind=TaskKind.FullRescan, payload={}, session=db_session)
            done = task_store.create(kind=TaskKind.NewEnrolment, payload={}, session=db_session)
            task_store.update(running.task_id, status=TaskStatus.Running, attempts=1, session=db_session)
            task_store.update(done.task_id, status=TaskStatus.Complete, session=db_session)

            unfinished = task_store.find(status=(TaskStatus.Pending, TaskStatus.Running), session=db_session)
            only_pending = task_store.find(status=TaskStatus.Pending, session=db_session)
            rescans = task_store.find(kind=TaskKind.FullRescan, session=db_session)

        assert {t.task_id for t in unfinished} == {pending.task_id, running.task_id}
        assert [t.task_id for t in only_pending] == [pending.task_id]
        assert len(rescans) == 2

    def test_update(self, db_session: Session) -> None:
        """Status and error are saved together."""
        with db_session.begin():
            task = task_store.create(kind=TaskKind.NewMapping, payload={}, session=db_session)
            task_store.update(task.task_id, status=TaskStatus.Failed, error="RuntimeError: boom", session=db_session)
            failed = task_store.get(task.task_id, session=db_session)

        assert failed is not None
        assert failed.status is TaskStatus.Failed
        assert failed.error == "RuntimeError: boom"

    def test_update_missing(self, db_session: Session) -> None:
        """Updating a task that does not exist raises."""
        with db_session.begin():
            with pytest.raises(KeyError):
                task_store.update(TaskID(), status=TaskStatus.Complete, session=db_session)


class TestEnrolmentEvents(object):
    def test_create_is_idempotent(self, db_session: Session) -> None:
        """A second enrolment of the same user returns the pending event."""
        with db_session.begin():
            first = enrolment_store.create(course_id=100, user_id=1, session=db_session)
            second = enrolment_store.create(course_id=100, user_id=1, session=db_session)
            other = enrolment_store.create(course_id=200, user_id=1, session=db_session)

        assert first.enrolment_event_id == second.enrolment_event_id
        assert other.enrolment_event_id != first.enrolment_event_id

    def test_attempts(self, db_session: Session) -> None:
        """Events past the attempt limit drop out of the pending list."""
        with db_session.begin():
            a = enrolment_store.create(course_id=100, user_id=1, session=db_session)
            b = enrolment_store.create(course_id=100, user_id=2, session=db_session)
            enrolment_store.increment_attempts([a.enrolment_event_id], session=db_session)
            enrolment_store.increment_attempts([a.enrolment_event_id], session=db_session)
            enrolment_store.increment_attempts([], session=db_session)

            live = enrolment_store.find(course_id=100, max_attempts=2, session=db_session)
            every = enrolment_store.find(course_id=100, session=db_session)

        assert [e.enrolment_event_id for e in live] == [b.enrolment_event_id]
        assert {e.user_id: e.attempts for e in every} == {1: 2, 2: 0}

    def test_delete(self, db_session: Session) -> None:
        """Only the named events are deleted."""
        with db_session.begin():
            a = enrolment_store.create(course_id=100, user_id=1, session=db_session)
            enrolment_store.create(course_id=100, user_id=2, session=db_session)

            assert enrolment_store.delete([a.enrolment_event_id], session=db_session) == 1
            assert enrolment_store.delete([], session=db_session) == 0
            assert [e.user_id for e in enrolment_store.find(course_id=100, session=db_session)] == [2]
