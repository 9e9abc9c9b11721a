__all__ = [
    "ActivityStore",
    "AssignStore",
    "CourseworkStore",
    "LTIStore",
    "LessonStore",
    "QuizStore",
    "TurnitinStore",
    "get_store",
    "register",
    "registered_types",
]

from .assign import AssignStore
from .base import ActivityStore
from .coursework import CourseworkStore
from .lesson import LessonStore
from .lti import LTIStore
from .quiz import QuizStore
from .registry import get_store, register, registered_types
from .turnitin import TurnitinStore
