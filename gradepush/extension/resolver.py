"""Find the mappings an extension update applies to."""

from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradepush.storage.mapping as mapping_store
import gradepush.storage.user as user_store
from gradepush.activity import registered_types
from gradepush.core.config import ExtensionSettings
from gradepush.model import ActivityType, LmsUser, MappingWithComponent, StudentRecord

from .errors import MalformedEventError


def split_identifier(identifier: str) -> tuple[str, str]:
    """`LAWS0024A6UF-001` -> (`LAWS0024A6UF`, `001`)."""
    map_code, sep, mab_seq = identifier.strip().rpartition("-")
    if not sep or not map_code or not mab_seq:
        raise MalformedEventError(f"bad component identifier: {identifier!r}", identifier=identifier)
    return map_code, mab_seq


def eligible_types(settings: ExtensionSettings) -> frozenset[ActivityType]:
    return settings.supported_activity_types & registered_types()


def user_for_student(student_code: str, *, session: Session) -> LmsUser | None:
    users = user_store.find(student_codes=[student_code], session=session)
    return users[0] if users else None


def mappings_for_user(
    user_id: int, *, settings: ExtensionSettings, session: Session
) -> tuple[MappingWithComponent, ...]:
    """Extension-enabled mappings in every course where the user holds a gradebook role."""
    return mapping_store.find(
        enrolled_user_id=user_id,
        enrolled_roles=settings.gradebook_roles,
        enable_extension=True,
        activity_types=eligible_types(settings),
        session=session,
    )


def mappings_for_component(
    identifier: str, *, settings: ExtensionSettings, session: Session
) -> tuple[MappingWithComponent, ...]:
    map_code, mab_seq = split_identifier(identifier)
    return mapping_store.find(
        map_code=map_code,
        mab_seq=mab_seq,
        enable_extension=True,
        activity_types=eligible_types(settings),
        session=session,
    )


def mappings_for_course(
    course_id: int | None,
    *,
    settings: ExtensionSettings,
    session: Session,
    after_id: int | None = None,
    limit: int | None = None,
) -> tuple[MappingWithComponent, ...]:
    return mapping_store.find(
        course_id=course_id or None,
        enable_extension=True,
        activity_types=eligible_types(settings),
        after_id=after_id,
        limit=limit,
        session=session,
    )


def attach_user_ids(students: t.Iterable[StudentRecord], *, session: Session) -> tuple[StudentRecord, ...]:
    """Fill in `user_id` for roster entries whose student code matches a local user."""
    students = tuple(students)
    missing = {s.student_code for s in students if s.user_id is None}
    if not missing:
        return students

    by_code = {u.student_code: u.user_id for u in user_store.find(student_codes=missing, session=session)}
    return tuple(
        s if s.user_id is not None else s.model_copy(update={"user_id": by_code.get(s.student_code)})
        for s in students
    )
