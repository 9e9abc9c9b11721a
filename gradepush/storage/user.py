from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import CourseEnrolment, LmsUser

from . import Session
from .table import course_enrolments, lms_users


def get(user_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> LmsUser | None:
    stmt = sqla.select(lms_users.__table__).where(lms_users.user_id == user_id)
    row = session.execute(stmt).mappings().one_or_none()
    return LmsUser(**row) if row else None


def find(
    *,
    student_codes: t.Collection[str] | None = None,
    user_ids: t.Collection[int] | None = None,
    course_id: int | None = None,
    roles: t.Collection[str] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[LmsUser, ...]:
    """Find users; `course_id` limits to users enrolled there, optionally under one of `roles`."""
    stmt = sqla.select(lms_users.__table__).order_by(lms_users.user_id)
    if student_codes is not None:
        stmt = stmt.where(lms_users.student_code.in_(list(student_codes)))
    if user_ids is not None:
        stmt = stmt.where(lms_users.user_id.in_(list(user_ids)))
    if course_id is not None:
        enrolled = sqla.select(course_enrolments.user_id).where(course_enrolments.course_id == course_id)
        if roles is not None:
            enrolled = enrolled.where(course_enrolments.role.in_(list(roles)))
        stmt = stmt.where(lms_users.user_id.in_(enrolled))
    rows = session.execute(stmt).mappings().all()
    return tuple(LmsUser(**row) for row in rows)


def create(
    *,
    username: str,
    student_code: str | None = None,
    user_id: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> LmsUser:
    values: dict[str, t.Any] = {"username": username, "student_code": student_code}
    if user_id is not None:
        values["user_id"] = user_id
    result = session.execute(sqla.insert(lms_users).values(**values))
    session.flush()
    user = get(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert user is not None
    return user


def enrol(
    *, course_id: int, user_id: int, role: str, session: Session = di.Provide["storage.persistent.session"]
) -> CourseEnrolment:
    if not is_enrolled(course_id, user_id, roles=[role], session=session):
        stmt = sqla.insert(course_enrolments).values(course_id=course_id, user_id=user_id, role=role)
        session.execute(stmt)
        session.flush()
    return CourseEnrolment(course_id=course_id, user_id=user_id, role=role)


def is_enrolled(
    course_id: int,
    user_id: int,
    *,
    roles: t.Collection[str] | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> bool:
    stmt = (
        sqla
        .select(course_enrolments.user_id)
        .where(course_enrolments.course_id == course_id)
        .where(course_enrolments.user_id == user_id)
    )
    if roles is not None:
        stmt = stmt.where(course_enrolments.role.in_(list(roles)))
    return session.execute(stmt.limit(1)).first() is not None
