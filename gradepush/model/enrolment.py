from .base import WithCtime
from .id import EnrolmentEventID


class EnrolmentEvent(WithCtime):
    enrolment_event_id: EnrolmentEventID
    course_id: int
    user_id: int
    attempts: int = 0
