from __future__ import annotations

import datetime
import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.lib import NotSet
from gradepush.model import ActivityType, ComponentGrade, MappingWithComponent

from . import Session
from .table import assessment_mappings, component_grades, course_enrolments


def _select() -> sqla.Select[t.Any]:
    return sqla.select(
        assessment_mappings.__table__,
        component_grades.map_code,
        component_grades.mab_seq,
        component_grades.ast_code,
        component_grades.name.label("component_name"),
    ).join(component_grades, component_grades.component_grade_id == assessment_mappings.component_grade_id)


def _from_row(row: sqla.RowMapping) -> MappingWithComponent:
    d = dict(row)
    component = ComponentGrade(
        component_grade_id=d["component_grade_id"],
        map_code=d.pop("map_code"),
        mab_seq=d.pop("mab_seq"),
        ast_code=d.pop("ast_code"),
        name=d.pop("component_name"),
    )
    return MappingWithComponent(**d, component=component)


def get(
    mapping_id: int,
    *,
    session: Session = di.Provide["storage.persistent.session"],
) -> MappingWithComponent | None:
    """Get a mapping, removed or not, joined to its component."""
    stmt = _select().where(assessment_mappings.mapping_id == mapping_id)
    row = session.execute(stmt).mappings().one_or_none()
    return _from_row(row) if row else None


def find(
    *,
    course_id: int | None = None,
    component_grade_id: int | None = None,
    map_code: str | None = None,
    mab_seq: str | None = None,
    activity_type: ActivityType | None = None,
    activity_id: int | None = None,
    activity_types: t.Collection[ActivityType] | None = None,
    enrolled_user_id: int | None = None,
    enrolled_roles: t.Collection[str] | None = None,
    enable_extension: bool | None = None,
    include_removed: bool = False,
    after_id: int | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[MappingWithComponent, ...]:
    """Find mappings matching criteria, ordered by mapping id.

    `enrolled_user_id` restricts to courses the user is enrolled in, optionally
    only under one of `enrolled_roles`.
    """
    stmt = _select().order_by(assessment_mappings.mapping_id)
    if course_id is not None:
        stmt = stmt.where(assessment_mappings.course_id == course_id)
    if component_grade_id is not None:
        stmt = stmt.where(assessment_mappings.component_grade_id == component_grade_id)
    if map_code is not None:
        stmt = stmt.where(component_grades.map_code == map_code)
    if mab_seq is not None:
        stmt = stmt.where(component_grades.mab_seq == mab_seq)
    if activity_type is not None:
        stmt = stmt.where(assessment_mappings.activity_type == activity_type)
    if activity_id is not None:
        stmt = stmt.where(assessment_mappings.activity_id == activity_id)
    if activity_types is not None:
        stmt = stmt.where(assessment_mappings.activity_type.in_(list(activity_types)))
    if enrolled_user_id is not None:
        enrolled = sqla.select(course_enrolments.course_id).where(course_enrolments.user_id == enrolled_user_id)
        if enrolled_roles is not None:
            enrolled = enrolled.where(course_enrolments.role.in_(list(enrolled_roles)))
        stmt = stmt.where(assessment_mappings.course_id.in_(enrolled))
    if enable_extension is not None:
        stmt = stmt.where(assessment_mappings.enable_extension.is_(enable_extension))
    if not include_removed:
        stmt = stmt.where(assessment_mappings.removed_time.is_(None))
    if after_id is not None:
        stmt = stmt.where(assessment_mappings.mapping_id > after_id)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(_from_row(row) for row in rows)


def create(
    *,
    course_id: int,
    activity_type: ActivityType,
    activity_id: int,
    component_grade_id: int,
    enable_extension: bool = False,
    reassessment: bool = False,
    session: Session = di.Provide["storage.persistent.session"],
) -> MappingWithComponent:
    stmt = sqla.insert(assessment_mappings).values(
        course_id=course_id,
        activity_type=activity_type,
        activity_id=activity_id,
        component_grade_id=component_grade_id,
        enable_extension=enable_extension,
        reassessment=reassessment,
    )
    result = session.execute(stmt)
    session.flush()
    mapping = get(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert mapping is not None
    return mapping


def update(
    mapping_id: int,
    *,
    enable_extension: bool | NotSet = NotSet(),
    removed_time: datetime.datetime | None | NotSet = NotSet(),
    session: Session = di.Provide["storage.persistent.session"],
) -> None:
    """Update a mapping.

    Raises:
        KeyError: If mapping_id does not correspond to a mapping
    """
    values: dict[str, t.Any] = {}
    if not isinstance(enable_extension, NotSet):
        values["enable_extension"] = enable_extension
    if not isinstance(removed_time, NotSet):
        values["removed_time"] = removed_time

    stmt = (
        sqla
        .update(assessment_mappings)
        .where(assessment_mappings.mapping_id == mapping_id)
        .values(**(values or {"mapping_id": mapping_id}))
    )
    result = session.execute(stmt)
    if result.rowcount == 0:  # pyright: ignore[reportAttributeAccessIssue]
        raise KeyError(f"Mapping {mapping_id} not found")
    session.flush()


def delete(mapping_id: int, *, session: Session = di.Provide["storage.persistent.session"]) -> bool:
    stmt = sqla.delete(assessment_mappings).where(assessment_mappings.mapping_id == mapping_id)
    result = session.execute(stmt)
    return bool(result.rowcount)  # pyright: ignore[reportUnknownArgumentType, reportAttributeAccessIssue]
