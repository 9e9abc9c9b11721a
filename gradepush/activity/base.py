from __future__ import annotations

import typing as t

from sqlalchemy.orm import Session

import gradepush.storage.activity as activity_store
import gradepush.storage.user as user_store
from gradepush.extension.errors import ActivityNotFoundError, UnsupportedActivityError
from gradepush.model import Activity, ActivityOverride, ActivityType, Schedule

ScheduleField = t.Literal["open_time", "close_time", "time_limit"]


class ActivityStore(object):
    """Schedule read and override write capability for one activity type.

    Subclasses declare which schedule fields their override rows carry and
    whether the type takes group overrides at all.
    """

    activity_type: t.ClassVar[ActivityType]
    override_fields: t.ClassVar[frozenset[ScheduleField]] = frozenset({"close_time"})
    supports_group_overrides: t.ClassVar[bool] = False

    def __init__(self, session: Session):
        self.session = session

    @property
    def time_limited(self) -> bool:
        return "time_limit" in self.override_fields

    def get_activity(self, activity_id: int) -> Activity:
        activity = activity_store.get(activity_id, session=self.session)
        if activity is None or activity.activity_type is not self.activity_type:
            raise ActivityNotFoundError(
                f"no {self.activity_type.value} activity {activity_id}", activity_id=activity_id
            )
        return activity

    def get_current_schedule(self, activity_id: int) -> Schedule:
        return self.get_activity(activity_id).schedule

    def get_override(
        self, activity_id: int, *, user_id: int | None = None, group_id: int | None = None
    ) -> ActivityOverride | None:
        return activity_store.find_override(activity_id, user_id=user_id, group_id=group_id, session=self.session)

    def get_override_by_id(self, override_id: int) -> ActivityOverride | None:
        return activity_store.get_override(override_id, session=self.session)

    def find_group_overrides(
        self, activity_id: int, *, name_prefix: str | None = None, member_user_id: int | None = None
    ) -> tuple[ActivityOverride, ...]:
        if not self.supports_group_overrides:
            return ()
        return activity_store.find_group_overrides(
            activity_id, name_prefix=name_prefix, member_user_id=member_user_id, session=self.session
        )

    def write_user_override(self, activity_id: int, user_id: int, schedule: Schedule) -> int:
        """Create or replace the user's override; returns its id."""
        return self._write(activity_id, schedule, user_id=user_id)

    def write_group_override(self, activity_id: int, group_id: int, schedule: Schedule) -> int:
        if not self.supports_group_overrides:
            raise UnsupportedActivityError(
                f"{self.activity_type.value} does not take group overrides", activity_id=activity_id
            )
        return self._write(activity_id, schedule, group_id=group_id)

    def delete_override(self, override_id: int) -> None:
        activity_store.delete_override(override_id, session=self.session)

    def is_participant(self, activity_id: int, user_id: int, roles: t.Collection[str]) -> bool:
        activity = self.get_activity(activity_id)
        return user_store.is_enrolled(activity.course_id, user_id, roles=roles, session=self.session)

    def snapshot(self, override: ActivityOverride) -> dict[str, t.Any]:
        """The fields of an override this type persists, in a form the ledger can store."""
        return override.schedule.model_dump(mode="json", include=set(self.override_fields))

    def restore(self, activity_id: int, original: dict[str, t.Any], *, user_id: int | None = None) -> int:
        """Write a snapshot taken by `snapshot` back as the user's override."""
        if user_id is None:
            raise ValueError("only user overrides are restored")
        return self._write(activity_id, Schedule.model_validate(original), user_id=user_id)

    def _write(
        self, activity_id: int, schedule: Schedule, *, user_id: int | None = None, group_id: int | None = None
    ) -> int:
        self.get_activity(activity_id)
        values: dict[str, t.Any] = {f: getattr(schedule, f) for f in self.override_fields}
        existing = self.get_override(activity_id, user_id=user_id, group_id=group_id)
        if existing is not None:
            activity_store.update_override(existing.activity_override_id, session=self.session, **values)
            return existing.activity_override_id
        created = activity_store.create_override(
            activity_id=activity_id, user_id=user_id, group_id=group_id, session=self.session, **values
        )
        return created.activity_override_id
