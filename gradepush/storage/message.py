from __future__ import annotations

import typing as t

import sqlalchemy as sqla

from gradepush.core import di
from gradepush.model import MessageRecordID, MessageStatus, ProcessedMessageRecord, QueueName

from . import Session
from .table import processed_messages


def get(
    message_id: str, queue_name: QueueName, *, session: Session = di.Provide["storage.persistent.session"]
) -> ProcessedMessageRecord | None:
    stmt = (
        sqla
        .select(processed_messages.__table__)
        .where(processed_messages.message_id == message_id)
        .where(processed_messages.queue_name == queue_name)
    )
    row = session.execute(stmt).mappings().one_or_none()
    return ProcessedMessageRecord(**row) if row else None


def find(
    *,
    queue_name: QueueName | None = None,
    status: MessageStatus | None = None,
    message_id: str | None = None,
    limit: int | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> tuple[ProcessedMessageRecord, ...]:
    stmt = sqla.select(processed_messages.__table__).order_by(processed_messages.update_time)
    if queue_name is not None:
        stmt = stmt.where(processed_messages.queue_name == queue_name)
    if status is not None:
        stmt = stmt.where(processed_messages.status == status)
    if message_id is not None:
        stmt = stmt.where(processed_messages.message_id == message_id)
    if limit is not None:
        stmt = stmt.limit(limit)
    rows = session.execute(stmt).mappings().all()
    return tuple(ProcessedMessageRecord(**row) for row in rows)


def save(
    *,
    message_id: str,
    queue_name: QueueName,
    status: MessageStatus,
    payload: dict[str, t.Any] | None = None,
    body: str | None = None,
    error: str | None = None,
    session: Session = di.Provide["storage.persistent.session"],
) -> ProcessedMessageRecord:
    """Insert or update the ledger row for a message, counting the attempt."""
    existing = get(message_id, queue_name, session=session)
    if existing is None:
        stmt = sqla.insert(processed_messages).values(
            message_record_id=MessageRecordID(),
            message_id=message_id,
            queue_name=queue_name,
            status=status,
            attempts=1,
            payload=payload,
            body=body,
            error=error,
        )
    else:
        stmt = (
            sqla
            .update(processed_messages)
            .where(processed_messages.message_record_id == existing.message_record_id)
            .values(
                status=status,
                attempts=processed_messages.attempts + 1,
                payload=payload if payload is not None else existing.payload,
                body=body if body is not None else existing.body,
                error=error,
            )
        )
    session.execute(stmt)
    session.flush()
    saved = get(message_id, queue_name, session=session)
    assert saved is not None
    return saved
