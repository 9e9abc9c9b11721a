"""Initial schema for extension processing

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""

import enum
import typing as t

import sqlalchemy as sa
from alembic import op
from sqlalchemy import func as f
from sqlalchemy.dialects.postgresql import ENUM, JSONB
from sqlalchemy.schema import Column, ForeignKey
from sqlalchemy.types import Boolean, DateTime, Integer, String, Text

from gradepush.model import ActivityType, ExtensionFamily, MessageStatus, QueueName, TaskKind, TaskStatus

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | t.Sequence[str] | None = None
depends_on: str | t.Sequence[str] | None = None

Enums: tuple[type[enum.Enum], ...] = (ActivityType, ExtensionFamily, MessageStatus, QueueName, TaskKind, TaskStatus)


def _enum(en: type[enum.Enum]) -> ENUM:
    # types are created once up front; tables only reference them
    return ENUM(*[m.value for m in en], name=en.__name__.lower(), create_type=False)


def _timestamps() -> list[Column[t.Any]]:
    return [
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        Column("update_time", DateTime(timezone=True), server_default=f.now(), onupdate=f.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for en in Enums:
        _enum(en).create(bind, checkfirst=True)

    # Component grades and mappings
    op.create_table(
        "component_grades",
        Column("component_grade_id", Integer, primary_key=True),
        Column("map_code", String, nullable=False),
        Column("mab_seq", String, nullable=False),
        Column("ast_code", String, nullable=True),
        Column("name", String, nullable=True),
        sa.UniqueConstraint("map_code", "mab_seq"),
    )

    op.create_table(
        "assessment_mappings",
        Column("mapping_id", Integer, primary_key=True),
        Column("course_id", Integer, nullable=False),
        Column("activity_type", _enum(ActivityType), nullable=False),
        Column("activity_id", Integer, nullable=False),
        Column(
            "component_grade_id", Integer, ForeignKey("component_grades.component_grade_id"), nullable=False
        ),
        Column("enable_extension", Boolean, nullable=False, server_default=sa.false()),
        Column("reassessment", Boolean, nullable=False, server_default=sa.false()),
        Column("removed_time", DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # Ledgers
    op.create_table(
        "extension_overrides",
        Column("override_record_id", String(22), primary_key=True),
        Column("mapping_id", Integer, nullable=False),
        Column("activity_type", _enum(ActivityType), nullable=False),
        Column("activity_id", Integer, nullable=False),
        Column("family", _enum(ExtensionFamily), nullable=False),
        Column("user_id", Integer, nullable=True),
        Column("group_id", Integer, nullable=True),
        Column("override_id", Integer, nullable=True),
        Column("original", JSONB, nullable=True),
        Column("source_id", String, nullable=True),
        Column("created_by", String, nullable=True),
        Column("restored_by", String, nullable=True),
        Column("restore_time", DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("(user_id IS NULL) <> (group_id IS NULL)", name="ck_extension_overrides_subject"),
    )

    op.create_table(
        "processed_messages",
        Column("message_record_id", String(22), primary_key=True),
        Column("message_id", String, nullable=False),
        Column("queue_name", _enum(QueueName), nullable=False),
        Column("status", _enum(MessageStatus), nullable=False),
        Column("attempts", Integer, nullable=False, server_default="0"),
        Column("payload", JSONB, nullable=True),
        Column("error", Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("message_id", "queue_name"),
    )

    op.create_table(
        "enrolment_events",
        Column("enrolment_event_id", String(22), primary_key=True),
        Column("course_id", Integer, nullable=False),
        Column("user_id", Integer, nullable=False),
        Column("attempts", Integer, nullable=False, server_default="0"),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        sa.UniqueConstraint("course_id", "user_id"),
    )

    op.create_table(
        "deferred_tasks",
        Column("task_id", String(22), primary_key=True),
        Column("kind", _enum(TaskKind), nullable=False),
        Column("payload", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        Column("status", _enum(TaskStatus), nullable=False),
        Column("attempts", Integer, nullable=False, server_default="0"),
        Column("error", Text, nullable=True),
        *_timestamps(),
    )

    # Learning platform
    op.create_table(
        "lms_users",
        Column("user_id", Integer, primary_key=True),
        Column("username", String, unique=True, nullable=False),
        Column("student_code", String, nullable=True),
    )

    op.create_table(
        "course_enrolments",
        Column("course_id", Integer, primary_key=True),
        Column("user_id", Integer, ForeignKey("lms_users.user_id"), primary_key=True),
        Column("role", String, primary_key=True),
    )

    op.create_table(
        "activities",
        Column("activity_id", Integer, primary_key=True),
        Column("course_id", Integer, nullable=False),
        Column("activity_type", _enum(ActivityType), nullable=False),
        Column("name", String, nullable=False),
        Column("open_time", DateTime(timezone=True), nullable=True),
        Column("close_time", DateTime(timezone=True), nullable=True),
        Column("time_limit", Integer, nullable=True),
    )

    op.create_table(
        "activity_overrides",
        Column("activity_override_id", Integer, primary_key=True),
        Column("activity_id", Integer, ForeignKey("activities.activity_id"), nullable=False),
        Column("user_id", Integer, nullable=True),
        Column("group_id", Integer, nullable=True),
        Column("open_time", DateTime(timezone=True), nullable=True),
        Column("close_time", DateTime(timezone=True), nullable=True),
        Column("time_limit", Integer, nullable=True),
    )

    op.create_table(
        "groups",
        Column("group_id", Integer, primary_key=True),
        Column("course_id", Integer, nullable=False),
        Column("name", String, nullable=False),
        sa.UniqueConstraint("course_id", "name"),
    )

    op.create_table(
        "group_members",
        Column("group_id", Integer, ForeignKey("groups.group_id"), primary_key=True),
        Column("user_id", Integer, primary_key=True),
    )

    op.create_index("ix_assessment_mappings_course_id", "assessment_mappings", ["course_id"])
    op.create_index("ix_extension_overrides_mapping_id", "extension_overrides", ["mapping_id"])
    op.create_index("ix_extension_overrides_source_id", "extension_overrides", ["source_id"])
    op.create_index(
        "uq_extension_overrides_active",
        "extension_overrides",
        ["mapping_id", "family", sa.text("coalesce(user_id, 0)"), sa.text("coalesce(group_id, 0)")],
        unique=True,
        postgresql_where=sa.text("restore_time IS NULL"),
    )
    op.create_index("ix_enrolment_events_course_id", "enrolment_events", ["course_id"])
    op.create_index("ix_deferred_tasks_status", "deferred_tasks", ["status"])
    op.create_index("ix_lms_users_student_code", "lms_users", ["student_code"])
    op.create_index("ix_activities_course_id", "activities", ["course_id"])
    op.create_index("ix_activity_overrides_activity_id", "activity_overrides", ["activity_id"])


def downgrade() -> None:
    op.drop_table("group_members")
    op.drop_table("groups")
    op.drop_table("activity_overrides")
    op.drop_table("activities")
    op.drop_table("course_enrolments")
    op.drop_table("lms_users")
    op.drop_table("deferred_tasks")
    op.drop_table("enrolment_events")
    op.drop_table("processed_messages")
    op.drop_table("extension_overrides")
    op.drop_table("assessment_mappings")
    op.drop_table("component_grades")

    bind = op.get_bind()
    for en in Enums:
        _enum(en).drop(bind, checkfirst=True)
