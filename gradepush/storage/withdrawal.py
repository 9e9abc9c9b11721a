from __future__ import annotations

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import ExtensionFamily

from . import Session
from .table import withdrawn_requests


def exists(
    source_id: str, family: ExtensionFamily, *, session: Session = di.Provide["storage.persistent.session"]
) -> bool:
    stmt = (
        sqla
        .select(withdrawn_requests.source_id)
        .where(withdrawn_requests.source_id == source_id)
        .where(withdrawn_requests.family == family)
    )
    return session.execute(stmt).first() is not None


def record(
    source_id: str, family: ExtensionFamily, *, session: Session = di.Provide["storage.persistent.session"]
) -> bool:
    """Remember that a request was withdrawn; False when it already was."""
    if exists(source_id, family, session=session):
        return False
    session.add(withdrawn_requests(source_id=source_id, family=family))
    session.flush()
    return True
