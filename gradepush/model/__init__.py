__all__ = [
    # Base
    "BaseModel",
    "WithCtime",
    "WithMtime",
    "WithTimestamps",
    # Enums
    "ActivityType",
    "DeploymentEnvironment",
    "ExtensionFamily",
    "ExtensionKind",
    "ExtensionScope",
    "MessageStatus",
    "QueueName",
    "TaskKind",
    "TaskStatus",
    # ID Types
    "EnrolmentEventID",
    "MessageRecordID",
    "OverrideRecordID",
    "TaskID",
    # Mappings
    "AssessmentMapping",
    "ComponentGrade",
    "MappingWithComponent",
    # Activities
    "Activity",
    "ActivityOverride",
    "CourseEnrolment",
    "Group",
    "LmsUser",
    "Schedule",
    # Extensions
    "AccommodationProvisions",
    "AccommodationStatusChange",
    "Disposition",
    "ExtensionDirective",
    "ExtensionUpdate",
    "ExtensionWithdrawal",
    "ExtenuatingCircumstanceGrant",
    "FieldChange",
    # Ledgers
    "DeferredTask",
    "EnrolmentEvent",
    "OverrideRecord",
    "ProcessedMessageRecord",
    "QueueMessage",
    "StudentRecord",
]

from .activity import Activity, ActivityOverride, CourseEnrolment, Group, LmsUser, Schedule
from .base import BaseModel, WithCtime, WithMtime, WithTimestamps
from .enrolment import EnrolmentEvent
from .enum import ActivityType, DeploymentEnvironment, ExtensionFamily, ExtensionKind, ExtensionScope, \
    MessageStatus, QueueName, TaskKind, TaskStatus
from .extension import AccommodationProvisions, AccommodationStatusChange, Disposition, ExtensionDirective, \
    ExtensionUpdate, ExtensionWithdrawal, ExtenuatingCircumstanceGrant, FieldChange
from .id import EnrolmentEventID, MessageRecordID, OverrideRecordID, TaskID
from .mapping import AssessmentMapping, ComponentGrade, MappingWithComponent
from .message import ProcessedMessageRecord, QueueMessage
from .override import OverrideRecord
from .student import StudentRecord
from .task import DeferredTask
