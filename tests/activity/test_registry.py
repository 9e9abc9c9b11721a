"""Tests for gradepush.activity package."""

from __future__ import annotations

import datetime
import typing as t

import pytest
from sqlalchemy.orm import Session

import gradepush.storage.activity as activity_store
from gradepush.activity import ActivityStore, AssignStore, CourseworkStore, QuizStore, get_store, register, \
    registered_types
from gradepush.extension.errors import ActivityNotFoundError, UnsupportedActivityError
from gradepush.model import Activity, ActivityType, LmsUser, Schedule

utc = datetime.timezone.utc


class TestRegistry(object):
    def test_every_type_registered(self) -> None:
        """Every activity type has a store."""
        assert registered_types() == frozenset(ActivityType)

    @pytest.mark.parametrize(
        "activity_type,cls",
        [
            (ActivityType.Assign, AssignStore),
            (ActivityType.Quiz, QuizStore),
            (ActivityType.Coursework, CourseworkStore),
        ],
    )
    def test_get_store(self, db_session: Session, activity_type: ActivityType, cls: type[ActivityStore]) -> None:
        """Each type resolves to its store class, bound to the given session."""
        store = get_store(activity_type, db_session)
        assert isinstance(store, cls)
        assert store.session is db_session

    def test_duplicate_registration_rejected(self) -> None:
        """A second store for the same type is refused."""
        with pytest.raises(ValueError):

            @register
            class AnotherAssign(ActivityStore):  # pyright: ignore [reportUnusedClass]
                activity_type = ActivityType.Assign

    @pytest.mark.parametrize(
        "activity_type,groups,time_limited",
        [
            (ActivityType.Assign, True, False),
            (ActivityType.Quiz, True, True),
            (ActivityType.Lesson, True, True),
            (ActivityType.Coursework, False, False),
            (ActivityType.LTI, False, False),
            (ActivityType.Turnitin, False, False),
        ],
    )
    def test_capabilities(
        self, db_session: Session, activity_type: ActivityType, groups: bool, time_limited: bool
    ) -> None:
        """Only types with group overrides can take deadline groups."""
        store = get_store(activity_type, db_session)
        assert store.supports_group_overrides is groups
        assert store.time_limited is time_limited


class TestActivityStore(object):
    def test_wrong_type_not_found(
        self, db_session: Session, activity_factory: t.Callable[..., Activity]
    ) -> None:
        """An activity id is only meaningful together with its type."""
        activity = activity_factory(activity_type=ActivityType.Assign)
        with db_session.begin():
            with pytest.raises(ActivityNotFoundError):
                get_store(ActivityType.Quiz, db_session).get_current_schedule(activity.activity_id)

    def test_group_override_unsupported(
        self, db_session: Session, activity_factory: t.Callable[..., Activity]
    ) -> None:
        """Coursework has no groups to read or write."""
        activity = activity_factory(activity_type=ActivityType.Coursework)
        store = get_store(ActivityType.Coursework, db_session)
        with db_session.begin():
            assert store.find_group_overrides(activity.activity_id) == ()
            with pytest.raises(UnsupportedActivityError):
                store.write_group_override(activity.activity_id, 1, Schedule(close_time=activity.close_time))

    def test_write_replaces_override(
        self,
        db_session: Session,
        activity_factory: t.Callable[..., Activity],
        student_factory: t.Callable[..., LmsUser],
    ) -> None:
        """Writing twice for the same user updates a single override row."""
        activity = activity_factory(activity_type=ActivityType.Quiz, time_limit=3600)
        student = student_factory()
        store = get_store(ActivityType.Quiz, db_session)
        close = datetime.datetime(2025, 2, 20, 12, tzinfo=utc)

        with db_session.begin():
            first = store.write_user_override(activity.activity_id, student.user_id, Schedule(close_time=close))
            second = store.write_user_override(
                activity.activity_id, student.user_id, Schedule(close_time=close, time_limit=5400)
            )
            override = activity_store.get_override(second, session=db_session)

        assert first == second
        assert override is not None
        assert override.close_time == close
        assert override.time_limit == 5400

    def test_snapshot_keeps_persisted_fields(
        self,
        db_session: Session,
        activity_factory: t.Callable[..., Activity],
        student_factory: t.Callable[..., LmsUser],
    ) -> None:
        """Coursework overrides only carry a deadline; the snapshot does too, and restores from it."""
        activity = activity_factory(activity_type=ActivityType.Coursework)
        student = student_factory()
        store = get_store(ActivityType.Coursework, db_session)
        close = datetime.datetime(2025, 2, 20, 12, tzinfo=utc)

        with db_session.begin():
            written = store.write_user_override(
                activity.activity_id, student.user_id, Schedule(open_time=close, close_time=close)
            )
            override = store.get_override_by_id(written)
            assert override is not None
            snapshot = store.snapshot(override)
            store.delete_override(written)
            store.restore(activity.activity_id, snapshot, user_id=student.user_id)
            restored = store.get_override(activity.activity_id, user_id=student.user_id)

        assert snapshot == {"close_time": "2025-02-20T12:00:00Z"}
        assert restored is not None
        assert restored.close_time == close
        assert restored.open_time is None

    def test_is_participant(
        self,
        db_session: Session,
        activity_factory: t.Callable[..., Activity],
        student_factory: t.Callable[..., LmsUser],
    ) -> None:
        """Participants are enrolled in the course with one of the given roles."""
        activity = activity_factory()
        student = student_factory()
        outsider = student_factory(course_id=999)
        store = get_store(ActivityType.Assign, db_session)

        with db_session.begin():
            assert store.is_participant(activity.activity_id, student.user_id, {"student"})
            assert not store.is_participant(activity.activity_id, student.user_id, {"editingteacher"})
            assert not store.is_participant(activity.activity_id, outsider.user_id, {"student"})
