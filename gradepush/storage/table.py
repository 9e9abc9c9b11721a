import datetime
import enum
import typing as t

from sqlalchemy import CheckConstraint, ForeignKey, func, Index, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, MappedAsDataclass

from gradepush.model import ActivityType, EnrolmentEventID, ExtensionFamily, MessageRecordID, MessageStatus, \
    OverrideRecordID, QueueName, TaskID, TaskKind, TaskStatus

from .type import PrefixedIDType, UTCDateTime, ValueEnumMapper


class base(MappedAsDataclass, DeclarativeBase):
    type_annotation_map = {
        OverrideRecordID: PrefixedIDType(OverrideRecordID),
        MessageRecordID: PrefixedIDType(MessageRecordID),
        EnrolmentEventID: PrefixedIDType(EnrolmentEventID),
        TaskID: PrefixedIDType(TaskID),
        datetime.datetime: UTCDateTime(),
        dict[str, t.Any]: JSON().with_variant(JSONB(), "postgresql"),
        enum.Enum: ValueEnumMapper,
    }


# Mappings


class component_grades(base):
    __tablename__ = "component_grades"
    __table_args__ = (UniqueConstraint("map_code", "mab_seq"),)

    component_grade_id: Mapped[int] = mapped_column(primary_key=True)
    map_code: Mapped[str]
    mab_seq: Mapped[str]
    ast_code: Mapped[str | None] = mapped_column(default=None)
    name: Mapped[str | None] = mapped_column(default=None)


class assessment_mappings(base):
    __tablename__ = "assessment_mappings"

    mapping_id: Mapped[int] = mapped_column(primary_key=True)
    course_id: Mapped[int] = mapped_column(index=True)
    activity_type: Mapped[ActivityType]
    activity_id: Mapped[int]
    component_grade_id: Mapped[int] = mapped_column(ForeignKey("component_grades.component_grade_id"))
    enable_extension: Mapped[bool] = mapped_column(default=False)
    reassessment: Mapped[bool] = mapped_column(default=False)
    removed_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# Ledgers


class extension_overrides(base):
    __tablename__ = "extension_overrides"
    __table_args__ = (
        CheckConstraint("(user_id IS NULL) <> (group_id IS NULL)", name="ck_extension_overrides_subject"),
    )

    override_record_id: Mapped[OverrideRecordID] = mapped_column(primary_key=True)
    mapping_id: Mapped[int] = mapped_column(index=True)
    activity_type: Mapped[ActivityType]
    activity_id: Mapped[int]
    family: Mapped[ExtensionFamily]
    user_id: Mapped[int | None] = mapped_column(default=None)
    group_id: Mapped[int | None] = mapped_column(default=None)
    override_id: Mapped[int | None] = mapped_column(default=None)
    original: Mapped[dict[str, t.Any] | None] = mapped_column(default=None)
    # the active row whose user override this one was written over
    stacked_on: Mapped[OverrideRecordID | None] = mapped_column(default=None)
    source_id: Mapped[str | None] = mapped_column(default=None, index=True)
    created_by: Mapped[str | None] = mapped_column(default=None)
    restored_by: Mapped[str | None] = mapped_column(default=None)
    restore_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# at most one active row per (mapping, subject, family)
Index(
    "uq_extension_overrides_active",
    extension_overrides.__table__.c.mapping_id,
    extension_overrides.__table__.c.family,
    func.coalesce(extension_overrides.__table__.c.user_id, 0),
    func.coalesce(extension_overrides.__table__.c.group_id, 0),
    unique=True,
    postgresql_where=extension_overrides.__table__.c.restore_time.is_(None),
    sqlite_where=extension_overrides.__table__.c.restore_time.is_(None),
)


class processed_messages(base):
    __tablename__ = "processed_messages"
    __table_args__ = (UniqueConstraint("message_id", "queue_name"),)

    message_record_id: Mapped[MessageRecordID] = mapped_column(primary_key=True)
    message_id: Mapped[str]
    queue_name: Mapped[QueueName]
    status: Mapped[MessageStatus]
    attempts: Mapped[int] = mapped_column(default=0)
    payload: Mapped[dict[str, t.Any] | None] = mapped_column(default=None)
    # raw message body, kept when it could not be unwrapped
    body: Mapped[str | None] = mapped_column(default=None)
    error: Mapped[str | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


class withdrawn_requests(base):
    __tablename__ = "withdrawn_requests"

    source_id: Mapped[str] = mapped_column(primary_key=True)
    family: Mapped[ExtensionFamily] = mapped_column(primary_key=True)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())


class enrolment_events(base):
    __tablename__ = "enrolment_events"
    __table_args__ = (UniqueConstraint("course_id", "user_id"),)

    enrolment_event_id: Mapped[EnrolmentEventID] = mapped_column(primary_key=True)
    course_id: Mapped[int] = mapped_column(index=True)
    user_id: Mapped[int]
    attempts: Mapped[int] = mapped_column(default=0)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())


class deferred_tasks(base):
    __tablename__ = "deferred_tasks"

    task_id: Mapped[TaskID] = mapped_column(primary_key=True)
    kind: Mapped[TaskKind]
    payload: Mapped[dict[str, t.Any]] = mapped_column(default_factory=dict)
    status: Mapped[TaskStatus] = mapped_column(default=TaskStatus.Pending, index=True)
    attempts: Mapped[int] = mapped_column(default=0)
    error: Mapped[str | None] = mapped_column(default=None)
    create_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now())
    update_time: Mapped[datetime.datetime] = mapped_column(default=None, server_default=func.now(), onupdate=func.now())


# Learning platform


class lms_users(base):
    __tablename__ = "lms_users"

    user_id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(unique=True)
    student_code: Mapped[str | None] = mapped_column(default=None, index=True)


class course_enrolments(base):
    __tablename__ = "course_enrolments"

    course_id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("lms_users.user_id"), primary_key=True)
    role: Mapped[str] = mapped_column(primary_key=True)


class activities(base):
    __tablename__ = "activities"

    activity_id: Mapped[int] = mapped_column(primary_key=True)
    course_id: Mapped[int] = mapped_column(index=True)
    activity_type: Mapped[ActivityType]
    name: Mapped[str]
    open_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    close_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    time_limit: Mapped[int | None] = mapped_column(default=None)


class activity_overrides(base):
    __tablename__ = "activity_overrides"

    activity_override_id: Mapped[int] = mapped_column(primary_key=True)
    activity_id: Mapped[int] = mapped_column(ForeignKey("activities.activity_id"), index=True)
    user_id: Mapped[int | None] = mapped_column(default=None)
    group_id: Mapped[int | None] = mapped_column(default=None)
    open_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    close_time: Mapped[datetime.datetime | None] = mapped_column(default=None)
    time_limit: Mapped[int | None] = mapped_column(default=None)


class groups(base):
    __tablename__ = "groups"
    __table_args__ = (UniqueConstraint("course_id", "name"),)

    group_id: Mapped[int] = mapped_column(primary_key=True)
    course_id: Mapped[int]
    name: Mapped[str]


class group_members(base):
    __tablename__ = "group_members"

    group_id: Mapped[int] = mapped_column(ForeignKey("groups.group_id"), primary_key=True)
    user_id: Mapped[int] = mapped_column(primary_key=True)
