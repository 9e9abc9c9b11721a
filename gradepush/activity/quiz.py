from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class QuizStore(ActivityStore):
    """Timed quizzes: overrides carry the time limit as well as the window."""

    activity_type = ActivityType.Quiz
    override_fields = frozenset({"open_time", "close_time", "time_limit"})
    supports_group_overrides = True
