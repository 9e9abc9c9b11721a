from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class LTIStore(ActivityStore):
    activity_type = ActivityType.LTI
