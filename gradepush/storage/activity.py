from __future__ import annotations

import datetime
import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.lib import NotSet
from gradepush.model import Activity, ActivityOverride, ActivityType

from . import Session
from .table import activities, activity_overrides, group_members, groups


def get(activity_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> Activity | None:
    stmt = sqla.select(activities.__table__).where(activities.activity_id == activity_id)
    row = session.execute(stmt).mappings().one_or_none()
    return Activity(**row) if row else None


def create(
    *,
    course_id: int,
    activity_type: ActivityType,
    name: str,
    open_time: datetime.datetime | None = None,
    close_time: datetime.datetime | None = None,
    time_limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> Activity:
    stmt = sqla.insert(activities).values(
        course_id=course_id,
        activity_type=activity_type,
        name=name,
        open_time=open_time,
        close_time=close_time,
        time_limit=time_limit,
    )
    result = session.execute(stmt)
    session.flush()
    activity = get(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert activity is not None
    return activity


# Overrides


def get_override(
    activity_override_id: int, *, session: Session = di.Provide["storage.persistent.session"]
) -> ActivityOverride | None:
    stmt = sqla.select(activity_overrides.__table__).where(
        activity_overrides.activity_override_id == activity_override_id
    )
    row = session.execute(stmt).mappings().one_or_none()
    return ActivityOverride(**row) if row else None


def find_override(
    activity_id: int,
    *,
    user_id: int | None = None,
    group_id: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> ActivityOverride | None:
    """The override for exactly one subject on an activity."""
    if (user_id is None) == (group_id is None):
        raise ValueError("exactly one of user_id and group_id is required")
    stmt = sqla.select(activity_overrides.__table__).where(activity_overrides.activity_id == activity_id)
    if user_id is not None:
        stmt = stmt.where(activity_overrides.user_id == user_id)
    else:
        stmt = stmt.where(activity_overrides.group_id == group_id).where(activity_overrides.user_id.is_(None))
    row = session.execute(stmt.limit(1)).mappings().one_or_none()
    return ActivityOverride(**row) if row else None


def find_group_overrides(
    activity_id: int,
    *,
    name_prefix: str | None = None,
    member_user_id: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[ActivityOverride, ...]:
    """Group overrides on an activity, latest close first with unset closes last."""
    stmt = (
        sqla
        .select(activity_overrides.__table__)
        .join(groups, groups.group_id == activity_overrides.group_id)
        .where(activity_overrides.activity_id == activity_id)
        .where(activity_overrides.user_id.is_(None))
        .order_by(
            sqla.case((activity_overrides.close_time.is_(None), 1), else_=0),
            activity_overrides.close_time.desc(),
            activity_overrides.activity_override_id,
        )
    )
    if name_prefix is not None:
        stmt = stmt.where(groups.name.startswith(name_prefix, autoescape=True))
    if member_user_id is not None:
        members = sqla.select(group_members.group_id).where(group_members.user_id == member_user_id)
        stmt = stmt.where(activity_overrides.group_id.in_(members))
    rows = session.execute(stmt).mappings().all()
    return tuple(ActivityOverride(**row) for row in rows)


def create_override(
    *,
    activity_id: int,
    user_id: int | None = None,
    group_id: int | None = None,
    open_time: datetime.datetime | None = None,
    close_time: datetime.datetime | None = None,
    time_limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> ActivityOverride:
    if (user_id is None) == (group_id is None):
        raise ValueError("exactly one of user_id and group_id is required")
    stmt = sqla.insert(activity_overrides).values(
        activity_id=activity_id,
        user_id=user_id,
        group_id=group_id,
        open_time=open_time,
        close_time=close_time,
        time_limit=time_limit,
    )
    result = session.execute(stmt)
    session.flush()
    override = get_override(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert override is not None
    return override


def update_override(
    activity_override_id: int,
    *,
    open_time: datetime.datetime | None | NotSet = NotSet(),
    close_time: datetime.datetime | None | NotSet = NotSet(),
    time_limit: int | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update an override.

    Raises:
        KeyError: If activity_override_id does not correspond to an override
    """
    values: dict[str, t.Any] = {}
    if not isinstance(open_time, NotSet):
        values["open_time"] = open_time
    if not isinstance(close_time, NotSet):
        values["close_time"] = close_time
    if not isinstance(time_limit, NotSet):
        values["time_limit"] = time_limit

    stmt = (
        sqla
        .update(activity_overrides)
        .where(activity_overrides.activity_override_id == activity_override_id)
        .values(**(values or {"activity_override_id": activity_override_id}))
    )
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"Activity override {activity_override_id} not found")
    session.flush()


def delete_override(
    activity_override_id: int, *, session: Session = di.Provide["storage.persistent.session"]
) -> bool:
    stmt = sqla.delete(activity_overrides).where(activity_overrides.activity_override_id == activity_override_id)
    result = session.execute(stmt)
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]
