from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class CourseworkStore(ActivityStore):
    """Coursework deadlines are extended per student only."""

    activity_type = ActivityType.Coursework
