import typing as t

from .base import BaseModel


class StudentRecord(BaseModel):
    """One student on a component roster, as returned by the student-records API.

    `payload` keeps the raw API record so the same normalizer handles both the
    queue events and the snapshot.
    """

    student_code: str
    user_id: int | None = None
    payload: dict[str, t.Any] = {}
