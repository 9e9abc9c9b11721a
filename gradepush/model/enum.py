from __future__ import annotations

import enum


class DeploymentEnvironment(enum.Enum):
    Production = "production"
    Development = "development"
    Staging = "staging"
    Sandbox = "sandbox"
    Test = "test"
    Local = "local"


class ActivityType(enum.Enum):
    Assign = "assign"
    Quiz = "quiz"
    Coursework = "coursework"
    Lesson = "lesson"
    LTI = "lti"
    Turnitin = "turnitintooltwo"


class ExtensionFamily(enum.Enum):
    RAA = "raa"
    EC = "ec"


class ExtensionScope(enum.Enum):
    RAA = "raa"
    EC = "ec"
    Both = "both"

    @property
    def families(self) -> frozenset[ExtensionFamily]:
        if self is ExtensionScope.Both:
            return frozenset(ExtensionFamily)
        return frozenset({ExtensionFamily(self.value)})

    def overlaps(self, other: ExtensionScope) -> bool:
        return bool(self.families & other.families)


class ExtensionKind(enum.Enum):
    Days = "days"
    Hours = "hours"
    TimePerHour = "time_per_hour"


class MessageStatus(enum.Enum):
    Processed = "processed"
    Ignored = "ignored"
    Failed = "failed"


class QueueName(enum.Enum):
    RAA = "raa"
    EC = "ec"


class TaskKind(enum.Enum):
    NewMapping = "new_mapping"
    NewEnrolment = "new_enrolment"
    FullRescan = "full_rescan"


class TaskStatus(enum.Enum):
    Pending = "pending"
    Running = "running"
    Complete = "complete"
    Failed = "failed"
