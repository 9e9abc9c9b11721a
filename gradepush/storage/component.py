from __future__ import annotations

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import ComponentGrade

from . import Session
from .table import component_grades


def get(
    component_grade_id: int, *, session: Session = di.Provide["storage.persistent.session"]
) -> ComponentGrade | None:
    stmt = sqla.select(component_grades.__table__).where(component_grades.component_grade_id == component_grade_id)
    row = session.execute(stmt).mappings().one_or_none()
    return ComponentGrade(**row) if row else None


def find(
    *,
    map_code: str | None = None,
    mab_seq: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[ComponentGrade, ...]:
    stmt = sqla.select(component_grades.__table__).order_by(component_grades.component_grade_id)
    if map_code is not None:
        stmt = stmt.where(component_grades.map_code == map_code)
    if mab_seq is not None:
        stmt = stmt.where(component_grades.mab_seq == mab_seq)
    rows = session.execute(stmt).mappings().all()
    return tuple(ComponentGrade(**row) for row in rows)


def get_by_identifier(
    identifier: str, *, session: Session = di.Provide["storage.persistent.session"]
) -> ComponentGrade | None:
    """Look up a component by its `MAPCODE-SEQ` identifier."""
    map_code, sep, mab_seq = identifier.rpartition("-")
    if not sep or not map_code or not mab_seq:
        return None
    found = find(map_code=map_code, mab_seq=mab_seq, session=session)
    return found[0] if found else None


def create(
    *,
    map_code: str,
    mab_seq: str,
    ast_code: str | None = None,
    name: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> ComponentGrade:
    stmt = sqla.insert(component_grades).values(map_code=map_code, mab_seq=mab_seq, ast_code=ast_code, name=name)
    result = session.execute(stmt)
    session.flush()
    component = get(result.inserted_primary_key[0], session=session)  # pyright: ignore [reportOptionalSubscript]
    assert component is not None
    return component
