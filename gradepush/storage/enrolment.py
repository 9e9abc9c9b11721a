from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import EnrolmentEvent, EnrolmentEventID

from . import Session
from .table import enrolment_events


def get(
    enrolment_event_id: EnrolmentEventID, *, session: Session = di.Provide["storage.persistent.session"]
) -> EnrolmentEvent | None:
    stmt = sqla.select(enrolment_events.__table__).where(enrolment_events.enrolment_event_id == enrolment_event_id)
    row = session.execute(stmt).mappings().one_or_none()
    return EnrolmentEvent(**row) if row else None


def find(
    *,
    course_id: int | None = None,
    user_id: int | None = None,
    max_attempts: int | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[EnrolmentEvent, ...]:
    """Find events, oldest first. `max_attempts` excludes events that have used up their attempts."""
    stmt = sqla.select(enrolment_events.__table__).order_by(
        enrolment_events.create_time, enrolment_events.enrolment_event_id
    )
    if course_id is not None:
        stmt = stmt.where(enrolment_events.course_id == course_id)
    if user_id is not None:
        stmt = stmt.where(enrolment_events.user_id == user_id)
    if max_attempts is not None:
        stmt = stmt.where(enrolment_events.attempts < max_attempts)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(EnrolmentEvent(**row) for row in rows)


def create(
    *, course_id: int, user_id: int, session: Session = di.Provide["storage.persistent.session"]
) -> EnrolmentEvent:
    """Record an enrolment, returning the pending event if one already exists."""
    existing = find(course_id=course_id, user_id=user_id, session=session)
    if existing:
        return existing[0]
    enrolment_event_id = EnrolmentEventID()
    stmt = sqla.insert(enrolment_events).values(
        enrolment_event_id=enrolment_event_id, course_id=course_id, user_id=user_id, attempts=0
    )
    session.execute(stmt)
    session.flush()
    event = get(enrolment_event_id, session=session)
    assert event is not None
    return event


def increment_attempts(
    keys: t.Collection[EnrolmentEventID], *, session: Session = di.Provide["storage.persistent.session"]
) -> None:
    if not keys:
        return
    stmt = (
        sqla
        .update(enrolment_events)
        .where(enrolment_events.enrolment_event_id.in_(list(keys)))
        .values(attempts=enrolment_events.attempts + 1)
    )
    session.execute(stmt)
    session.flush()


def delete(
    keys: t.Collection[EnrolmentEventID], *, session: Session = di.Provide["storage.persistent.session"]
) -> int:
    if not keys:
        return 0
    stmt = sqla.delete(enrolment_events).where(enrolment_events.enrolment_event_id.in_(list(keys)))
    result = session.execute(stmt)
    return result.rowcount  # pyright: ignore[reportAttributeAccessIssue]
