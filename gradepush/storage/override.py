from __future__ import annotations

import datetime
import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.lib import NotSet
from gradepush.model import ActivityType, ExtensionFamily, OverrideRecord, OverrideRecordID

from . import Session
from .table import extension_overrides


def get(key: OverrideRecordID, *, session: Session = di.Provide["storage.persistent.session"]) -> OverrideRecord | None:
    stmt = sqla.select(extension_overrides.__table__).where(extension_overrides.override_record_id == key)
    row = session.execute(stmt).mappings().one_or_none()
    return OverrideRecord(**row) if row else None


def find(
    *,
    mapping_id: int | None = None,
    family: ExtensionFamily | None = None,
    activity_id: int | None = None,
    user_id: int | None = None,
    group_id: int | None = None,
    source_id: str | None = None,
    stacked_on: OverrideRecordID | None = None,
    active: bool | None = True,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[OverrideRecord, ...]:
    """Find ledger rows. By default only rows that have not been restored."""
    stmt = sqla.select(extension_overrides.__table__).order_by(extension_overrides.create_time)
    if mapping_id is not None:
        stmt = stmt.where(extension_overrides.mapping_id == mapping_id)
    if family is not None:
        stmt = stmt.where(extension_overrides.family == family)
    if activity_id is not None:
        stmt = stmt.where(extension_overrides.activity_id == activity_id)
    if user_id is not None:
        stmt = stmt.where(extension_overrides.user_id == user_id)
    if group_id is not None:
        stmt = stmt.where(extension_overrides.group_id == group_id)
    if source_id is not None:
        stmt = stmt.where(extension_overrides.source_id == source_id)
    if stacked_on is not None:
        stmt = stmt.where(extension_overrides.stacked_on == stacked_on)
    if active is True:
        stmt = stmt.where(extension_overrides.restore_time.is_(None))
    elif active is False:
        stmt = stmt.where(extension_overrides.restore_time.is_not(None))
    rows = session.execute(stmt).mappings().all()
    return tuple(OverrideRecord(**row) for row in rows)


def get_active(
    mapping_id: int,
    family: ExtensionFamily,
    *,
    user_id: int | None = None,
    group_id: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> OverrideRecord | None:
    """The single active row for a (mapping, subject, family), if any."""
    if (user_id is None) == (group_id is None):
        raise ValueError("exactly one of user_id and group_id is required")
    stmt = (
        sqla
        .select(extension_overrides.__table__)
        .where(extension_overrides.mapping_id == mapping_id)
        .where(extension_overrides.family == family)
        .where(extension_overrides.restore_time.is_(None))
    )
    if user_id is not None:
        stmt = stmt.where(extension_overrides.user_id == user_id)
    else:
        stmt = stmt.where(extension_overrides.group_id == group_id)
    row = session.execute(stmt).mappings().one_or_none()
    return OverrideRecord(**row) if row else None


def create(
    params: OverrideRecordCreateParams, session: Session = di.Provide["storage.persistent.session"]
) -> OverrideRecord:
    if (params.get("user_id") is None) == (params.get("group_id") is None):
        raise ValueError("exactly one of user_id and group_id is required")
    record = extension_overrides(
        override_record_id=OverrideRecordID(),
        mapping_id=params["mapping_id"],
        activity_type=params["activity_type"],
        activity_id=params["activity_id"],
        family=params["family"],
        user_id=params.get("user_id"),
        group_id=params.get("group_id"),
        override_id=params.get("override_id"),
        original=params.get("original"),
        stacked_on=params.get("stacked_on"),
        source_id=params.get("source_id"),
        created_by=params.get("created_by"),
    )
    session.add(record)
    session.flush()
    return get(record.override_record_id, session=session)  # type: ignore


def update(
    key: OverrideRecordID,
    *,
    override_id: int | None | NotSet = NotSet(),
    original: dict[str, t.Any] | None | NotSet = NotSet(),
    stacked_on: OverrideRecordID | None | NotSet = NotSet(),
    source_id: str | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update an active ledger row in place.

    Raises:
        KeyError: If key does not correspond to a ledger row
    """
    values: dict[str, t.Any] = {}
    if not isinstance(override_id, NotSet):
        values["override_id"] = override_id
    if not isinstance(original, NotSet):
        values["original"] = original
    if not isinstance(stacked_on, NotSet):
        values["stacked_on"] = stacked_on
    if not isinstance(source_id, NotSet):
        values["source_id"] = source_id

    stmt = (
        sqla
        .update(extension_overrides)
        .where(extension_overrides.override_record_id == key)
        .values(**(values or {"override_record_id": key}))
    )
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"Override record {key} not found")
    session.flush()


def mark_restored(
    key: OverrideRecordID,
    *,
    restored_by: str,
    restore_time: datetime.datetime,
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    stmt = (
        sqla
        .update(extension_overrides)
        .where(extension_overrides.override_record_id == key)
        .where(extension_overrides.restore_time.is_(None))
        .values(restored_by=restored_by, restore_time=restore_time)
    )
    session.execute(stmt)
    session.flush()


def delete_for_mapping(mapping_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> int:
    stmt = sqla.delete(extension_overrides).where(extension_overrides.mapping_id == mapping_id)
    result = session.execute(stmt)
    return result.rowcount  # pyright: ignore[reportAttributeAccessIssue]


class OverrideRecordCreateParams(t.TypedDict, total=False):
    mapping_id: t.Required[int]
    activity_type: t.Required[ActivityType]
    activity_id: t.Required[int]
    family: t.Required[ExtensionFamily]
    user_id: int | None
    group_id: int | None
    override_id: int | None
    original: dict[str, t.Any] | None
    stacked_on: OverrideRecordID | None
    source_id: str | None
    created_by: str | None
