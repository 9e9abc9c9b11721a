from __future__ import annotations

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import Group

from . import Session
from .table import group_members, groups


def get(group_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> Group | None:
    stmt = sqla.select(groups.__table__).where(groups.group_id == group_id)
    row = session.execute(stmt).mappings().one_or_none()
    return Group(**row) if row else None


def find(
    *,
    course_id: int | None = None,
    name: str | None = None,
    name_prefix: str | None = None,
    member_user_id: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[Group, ...]:
    stmt = sqla.select(groups.__table__).order_by(groups.group_id)
    if course_id is not None:
        stmt = stmt.where(groups.course_id == course_id)
    if name is not None:
        stmt = stmt.where(groups.name == name)
    if name_prefix is not None:
        stmt = stmt.where(groups.name.startswith(name_prefix, autoescape=True))
    if member_user_id is not None:
        members = sqla.select(group_members.group_id).where(group_members.user_id == member_user_id)
        stmt = stmt.where(groups.group_id.in_(members))
    rows = session.execute(stmt).mappings().all()
    return tuple(Group(**row) for row in rows)


def get_or_create(*, course_id: int, name: str, session: Session = di.Provide["storage.persistent.session"]) -> Group:
    found = find(course_id=course_id, name=name, session=session)
    if found:
        return found[0]
    result = session.execute(sqla.insert(groups).values(course_id=course_id, name=name))
    session.flush()
    group = get(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert group is not None
    return group


def delete(group_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    """Delete a group together with its memberships."""
    session.execute(sqla.delete(group_members).where(group_members.group_id == group_id))
    result = session.execute(sqla.delete(groups).where(groups.group_id == group_id))
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]


def members(group_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> tuple[int, ...]:
    stmt = sqla.select(group_members.user_id).where(group_members.group_id == group_id).order_by(group_members.user_id)
    return tuple(session.execute(stmt).scalars().all())


def is_member(group_id: int, user_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    stmt = (
        sqla
        .select(group_members.user_id)
        .where(group_members.group_id == group_id)
        .where(group_members.user_id == user_id)
    )
    return session.execute(stmt).first() is not None


def add_member(group_id: int, user_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    """Add a user to a group; False if they were already a member."""
    if is_member(group_id, user_id, session=session):
        return False
    session.execute(sqla.insert(group_members).values(group_id=group_id, user_id=user_id))
    session.flush()
    return True


def remove_member(group_id: int, user_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    stmt = sqla.delete(group_members).where(group_members.group_id == group_id).where(group_members.user_id == user_id)
    result = session.execute(stmt)
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]
