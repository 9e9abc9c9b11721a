import datetime

from .base import BaseModel, WithTimestamps
from .enum import ActivityType


class ComponentGrade(BaseModel):
    """One assessment component in the student-records system."""

    component_grade_id: int
    map_code: str
    mab_seq: str
    ast_code: str | None = None
    name: str | None = None

    @property
    def identifier(self) -> str:
        return f"{self.map_code}-{self.mab_seq}"


class AssessmentMapping(WithTimestamps):
    mapping_id: int
    course_id: int
    activity_type: ActivityType
    activity_id: int
    component_grade_id: int

    enable_extension: bool = False
    reassessment: bool = False
    removed_time: datetime.datetime | None = None

    @property
    def is_removed(self) -> bool:
        return self.removed_time is not None


class MappingWithComponent(AssessmentMapping):
    component: ComponentGrade
