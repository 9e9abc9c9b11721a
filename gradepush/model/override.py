import datetime
import typing as t

from .base import WithTimestamps
from .enum import ActivityType, ExtensionFamily
from .id import OverrideRecordID


class OverrideRecord(WithTimestamps):
    """Ledger row for one override this system placed on an activity.

    Exactly one of `user_id` and `group_id` is set. `original` holds the
    subject's override as it was before we touched it, or None when there was
    none to restore. `stacked_on` names the active row whose user override this
    one was written over, when two rows share one override.
    """

    override_record_id: OverrideRecordID
    mapping_id: int
    activity_type: ActivityType
    activity_id: int
    user_id: int | None = None
    group_id: int | None = None
    family: ExtensionFamily

    override_id: int | None = None
    original: dict[str, t.Any] | None = None
    stacked_on: OverrideRecordID | None = None
    source_id: str | None = None
    created_by: str | None = None

    restored_by: str | None = None
    restore_time: datetime.datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.restore_time is None
