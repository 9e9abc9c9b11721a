from gradepush.model import ActivityType

from .base import ActivityStore
from .registry import register


@register
class TurnitinStore(ActivityStore):
    activity_type = ActivityType.Turnitin
