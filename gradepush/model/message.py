import typing as t

from .base import BaseModel, WithTimestamps
from .enum import MessageStatus, QueueName
from .id import MessageRecordID


class ProcessedMessageRecord(WithTimestamps):
    message_record_id: MessageRecordID
    message_id: str
    queue_name: QueueName
    status: MessageStatus
    attempts: int = 0
    payload: dict[str, t.Any] | None = None
    body: str | None = None
    error: str | None = None


class QueueMessage(BaseModel):
    """A message as received from the queue, before its body is parsed."""

    message_id: str
    receipt_handle: str
    body: str
