from __future__ import annotations

import datetime
import typing as t
import zoneinfo

from gradepush.model import ExtensionDirective, ExtensionKind, Schedule

from .errors import UnsupportedActivityError

MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

GroupPrefix = "RAA-Activity-"

utc = datetime.timezone.utc


class Calendar(object):
    """Local-time date arithmetic: working days and date-only deadline moves."""

    def __init__(self, tz: datetime.tzinfo | str, closure_days: t.Iterable[datetime.date] = ()):
        self.tz = zoneinfo.ZoneInfo(tz) if isinstance(tz, str) else tz
        self.closure_days = frozenset(closure_days)

    def is_working_day(self, day: datetime.date) -> bool:
        return day.weekday() < 5 and day not in self.closure_days

    def add_working_days(self, when: datetime.datetime, days: int) -> datetime.datetime:
        """Move `when` forward by `days` working days, keeping its local wall-clock time."""
        local = when.astimezone(self.tz).replace(tzinfo=None)
        added = 0
        while added < days:
            local += datetime.timedelta(days=1)
            if self.is_working_day(local.date()):
                added += 1
        return local.replace(tzinfo=self.tz).astimezone(utc)

    def combine(self, day: datetime.date, original: datetime.datetime) -> datetime.datetime:
        """`day` at the local time of day of `original`."""
        local = original.astimezone(self.tz)
        return datetime.datetime.combine(day, local.time(), tzinfo=self.tz).astimezone(utc)

    def format(self, when: datetime.datetime, fmt: str = "%Y%m%d%H%M%S") -> str:
        return when.astimezone(self.tz).strftime(fmt)


def format_duration(seconds: int) -> str:
    """2 days 3 hours 30 minutes reads `2days3hrs30mins`; units that are zero are left out."""
    days, rem = divmod(max(seconds, 0), DAY)
    hours, rem = divmod(rem, HOUR)
    minutes = rem // MINUTE

    parts: list[str] = []
    for n, unit in ((days, "day"), (hours, "hr"), (minutes, "min")):
        if n > 0:
            parts.append(f"{n}{unit}{'s' if n > 1 else ''}")
    return "".join(parts)


def group_name(
    activity_id: int,
    seconds: int,
    *,
    due: datetime.datetime | None = None,
    calendar: Calendar | None = None,
) -> str:
    """Name of the accommodation group shared by every student with the same extension."""
    name = f"{GroupPrefix}{activity_id}-Extension-{format_duration(seconds)}"
    if due is not None:
        stamp = calendar.format(due) if calendar else due.astimezone(utc).strftime("%Y%m%d%H%M%S")
        name += f"-Due-{stamp}"
    return name


def group_prefix(activity_id: int) -> str:
    return f"{GroupPrefix}{activity_id}-"


def assessment_duration(schedule: Schedule, *, time_limited: bool) -> int:
    """Seconds a student is expected to spend: the time limit when it is shorter than the window."""
    if schedule.open_time is None or schedule.close_time is None:
        raise UnsupportedActivityError("a per-hour extension needs an open and a close time")
    if time_limited:
        duration = schedule.duration
        assert duration is not None
        return duration
    window = schedule.window
    assert window is not None
    return window


def extension_seconds(directive: ExtensionDirective, schedule: Schedule, *, time_limited: bool) -> int:
    match directive.kind:
        case ExtensionKind.Days:
            return directive.magnitude * DAY
        case ExtensionKind.Hours:
            return directive.magnitude * HOUR
        case ExtensionKind.TimePerHour:
            duration = assessment_duration(schedule, time_limited=time_limited)
            return int(duration / HOUR * directive.magnitude * MINUTE)


class Extension(t.NamedTuple):
    schedule: Schedule
    seconds: int


def extend(
    schedule: Schedule, directive: ExtensionDirective, *, time_limited: bool, calendar: Calendar
) -> Extension:
    """Apply an accommodation to a schedule.

    For time-limited activities an hours or per-hour extension lengthens the
    time limit and only pushes the close when the longer attempt would no
    longer fit in the window. Days always move the close, counted in working
    days.
    """
    if schedule.close_time is None:
        raise UnsupportedActivityError("activity has no close time to extend")

    seconds = extension_seconds(directive, schedule, time_limited=time_limited)
    if directive.kind is ExtensionKind.Days:
        close = calendar.add_working_days(schedule.close_time, directive.magnitude)
        return Extension(schedule.model_copy(update={"close_time": close}), seconds)

    delta = datetime.timedelta(seconds=seconds)
    if not time_limited or not schedule.time_limit:
        return Extension(schedule.model_copy(update={"close_time": schedule.close_time + delta}), seconds)

    time_limit = schedule.time_limit + seconds
    close = schedule.close_time
    if schedule.open_time is None or schedule.open_time + datetime.timedelta(seconds=time_limit) > close:
        close = close + delta
    return Extension(schedule.model_copy(update={"time_limit": time_limit, "close_time": close}), seconds)
