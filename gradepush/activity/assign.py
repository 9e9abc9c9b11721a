from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class AssignStore(ActivityStore):
    activity_type = ActivityType.Assign
    override_fields = frozenset({"open_time", "close_time"})
    supports_group_overrides = True
