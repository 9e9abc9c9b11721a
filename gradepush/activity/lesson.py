from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class LessonStore(ActivityStore):
    activity_type = ActivityType.Lesson
    override_fields = frozenset({"open_time", "close_time", "time_limit"})
    supports_group_overrides = True
