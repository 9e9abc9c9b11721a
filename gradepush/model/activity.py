from __future__ import annotations

import datetime

from .base import BaseModel
from .enum import ActivityType


class Schedule(BaseModel):
    """Open/close window of an activity, plus its time limit in seconds."""

    open_time: datetime.datetime | None = None
    close_time: datetime.datetime | None = None
    time_limit: int | None = None

    @property
    def window(self) -> int | None:
        if self.open_time is None or self.close_time is None:
            return None
        return int((self.close_time - self.open_time).total_seconds())

    @property
    def duration(self) -> int | None:
        """The lesser of the time limit and the open window, in seconds."""
        window = self.window
        if window is None:
            return None
        return min(self.time_limit, window) if self.time_limit else window

    def merged(self, base: Schedule) -> Schedule:
        """Fill fields this schedule leaves unset from `base`."""
        return Schedule(
            open_time=self.open_time if self.open_time is not None else base.open_time,
            close_time=self.close_time if self.close_time is not None else base.close_time,
            time_limit=self.time_limit if self.time_limit is not None else base.time_limit,
        )


class Activity(BaseModel):
    activity_id: int
    course_id: int
    activity_type: ActivityType
    name: str

    open_time: datetime.datetime | None = None
    close_time: datetime.datetime | None = None
    time_limit: int | None = None

    @property
    def schedule(self) -> Schedule:
        return Schedule(open_time=self.open_time, close_time=self.close_time, time_limit=self.time_limit)


class ActivityOverride(BaseModel):
    activity_override_id: int
    activity_id: int
    user_id: int | None = None
    group_id: int | None = None

    open_time: datetime.datetime | None = None
    close_time: datetime.datetime | None = None
    time_limit: int | None = None

    @property
    def schedule(self) -> Schedule:
        return Schedule(open_time=self.open_time, close_time=self.close_time, time_limit=self.time_limit)


class Group(BaseModel):
    group_id: int
    course_id: int
    name: str


class LmsUser(BaseModel):
    user_id: int
    username: str
    student_code: str | None = None


class CourseEnrolment(BaseModel):
    course_id: int
    user_id: int
    role: str
