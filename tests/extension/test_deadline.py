"""Tests for gradepush.extension.deadline module."""

from __future__ import annotations

import datetime

import pytest

from gradepush.extension import deadline
from gradepush.extension.errors import UnsupportedActivityError
from gradepush.model import ExtensionDirective, ExtensionKind, Schedule

utc = datetime.timezone.utc
london = deadline.Calendar("Europe/London")


def at(*args: int) -> datetime.datetime:
    return datetime.datetime(*args, tzinfo=utc)


class TestCalendar(object):
    def test_skips_weekends(self) -> None:
        """Friday plus one working day is Monday."""
        friday = at(2025, 2, 14, 12)
        assert london.add_working_days(friday, 1) == at(2025, 2, 17, 12)

    def test_skips_closure_days(self) -> None:
        """Closure dates do not count as working days."""
        calendar = deadline.Calendar("Europe/London", [datetime.date(2025, 2, 18)])
        assert calendar.add_working_days(at(2025, 2, 17, 12), 1) == at(2025, 2, 19, 12)

    def test_keeps_local_time_across_dst(self) -> None:
        """Noon local stays noon local when the clocks change in between."""
        # 2025-03-28 is a Friday on GMT; 2025-03-31 is on BST
        result = london.add_working_days(at(2025, 3, 28, 12), 1)
        assert result == at(2025, 3, 31, 11)

    def test_combine(self) -> None:
        """combine() puts a date at the local time of day of the original deadline."""
        assert london.combine(datetime.date(2025, 2, 27), at(2025, 2, 17, 12)) == at(2025, 2, 27, 12)

    def test_combine_across_dst(self) -> None:
        """The local time of day is kept when the date crosses into summer time."""
        assert london.combine(datetime.date(2025, 4, 7), at(2025, 3, 17, 12)) == at(2025, 4, 7, 11)


class TestFormatDuration(object):
    @pytest.mark.parametrize(
        "seconds,expected",
        [
            (2 * deadline.DAY + 3 * deadline.HOUR + 30 * deadline.MINUTE, "2days3hrs30mins"),
            (deadline.DAY, "1day"),
            (90 * deadline.MINUTE, "1hr30mins"),
            (45 * deadline.MINUTE, "45mins"),
            (59, ""),
        ],
    )
    def test_format(self, seconds: int, expected: str) -> None:
        """Units that are zero are left out; singular units have no s."""
        assert deadline.format_duration(seconds) == expected


class TestGroupName(object):
    def test_plain(self) -> None:
        """Group names spell out the extension."""
        assert deadline.group_name(42, 2 * deadline.DAY) == "RAA-Activity-42-Extension-2days"

    def test_with_due(self) -> None:
        """Deadline-group accommodations carry the local due time in the name."""
        name = deadline.group_name(42, deadline.HOUR, due=at(2025, 6, 2, 11), calendar=london)
        assert name == "RAA-Activity-42-Extension-1hr-Due-20250602120000"

    def test_prefix(self) -> None:
        """An activity's prefix does not match another activity whose id starts the same way."""
        assert deadline.group_name(42, deadline.HOUR).startswith(deadline.group_prefix(42))
        assert not deadline.group_name(421, deadline.HOUR).startswith(deadline.group_prefix(42))


class TestExtend(object):
    """Tests for deadline.extend()."""

    def test_days_move_close_by_working_days(self) -> None:
        """Day extensions skip the weekend."""
        schedule = Schedule(open_time=at(2025, 2, 3, 9), close_time=at(2025, 2, 14, 12))
        result = deadline.extend(
            schedule, ExtensionDirective(kind=ExtensionKind.Days, magnitude=2), time_limited=False, calendar=london
        )
        assert result.schedule.close_time == at(2025, 2, 18, 12)
        assert result.seconds == 2 * deadline.DAY

    def test_hours_move_close(self) -> None:
        """Hour extensions are counted in clock hours."""
        schedule = Schedule(open_time=at(2025, 2, 3, 9), close_time=at(2025, 2, 14, 12))
        result = deadline.extend(
            schedule, ExtensionDirective(kind=ExtensionKind.Hours, magnitude=24), time_limited=False, calendar=london
        )
        assert result.schedule.close_time == at(2025, 2, 15, 12)

    def test_time_per_hour_on_window(self) -> None:
        """Per-hour extensions scale with the open window of untimed activities."""
        schedule = Schedule(open_time=at(2025, 2, 14, 9), close_time=at(2025, 2, 14, 13))
        result = deadline.extend(
            schedule,
            ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=15),
            time_limited=False,
            calendar=london,
        )
        assert result.seconds == 60 * deadline.MINUTE
        assert result.schedule.close_time == at(2025, 2, 14, 14)

    def test_time_limited_quiz_pushes_close(self) -> None:
        """A 60 minute quiz in a 2 hour window with +2 hours becomes 180 minutes and the close moves."""
        schedule = Schedule(open_time=at(2025, 2, 14, 10), close_time=at(2025, 2, 14, 12), time_limit=3600)
        result = deadline.extend(
            schedule, ExtensionDirective(kind=ExtensionKind.Hours, magnitude=2), time_limited=True, calendar=london
        )
        assert result.schedule.time_limit == 3 * 3600
        assert result.schedule.close_time == at(2025, 2, 14, 14)

    def test_time_limited_quiz_fits_window(self) -> None:
        """The close stays put while the longer attempt still fits the window."""
        schedule = Schedule(open_time=at(2025, 2, 14, 9), close_time=at(2025, 2, 14, 17), time_limit=3600)
        result = deadline.extend(
            schedule,
            ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=30),
            time_limited=True,
            calendar=london,
        )
        assert result.seconds == 30 * deadline.MINUTE
        assert result.schedule.time_limit == 5400
        assert result.schedule.close_time == at(2025, 2, 14, 17)

    def test_time_limited_days_leave_limit(self) -> None:
        """Days move the close of a timed activity without touching its limit."""
        schedule = Schedule(open_time=at(2025, 2, 14, 9), close_time=at(2025, 2, 14, 17), time_limit=3600)
        result = deadline.extend(
            schedule, ExtensionDirective(kind=ExtensionKind.Days, magnitude=1), time_limited=True, calendar=london
        )
        assert result.schedule.time_limit == 3600
        assert result.schedule.close_time == at(2025, 2, 17, 17)

    def test_time_per_hour_needs_open(self) -> None:
        """A per-hour extension needs an open time to measure the window from."""
        schedule = Schedule(close_time=at(2025, 2, 14, 17))
        with pytest.raises(UnsupportedActivityError):
            deadline.extend(
                schedule,
                ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=10),
                time_limited=False,
                calendar=london,
            )

    def test_needs_close(self) -> None:
        """There is nothing to extend without a close time."""
        with pytest.raises(UnsupportedActivityError):
            directive = ExtensionDirective(kind=ExtensionKind.Days, magnitude=1)
            deadline.extend(Schedule(), directive, time_limited=False, calendar=london)
