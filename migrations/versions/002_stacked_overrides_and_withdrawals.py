"""Stacked user overrides, withdrawn requests and raw message bodies

Revision ID: 002_stacked_withdrawn
Revises: 001_initial
Create Date: 2026-10-19

"""

import typing as t

import sqlalchemy as sa
from alembic import op
from sqlalchemy import func as f
from sqlalchemy.dialects.postgresql import ENUM
from sqlalchemy.schema import Column
from sqlalchemy.types import DateTime, String, Text

from gradepush.model import ExtensionFamily

# revision identifiers, used by Alembic.
revision: str = "002_stacked_withdrawn"
down_revision: str | None = "001_initial"
branch_labels: str | t.Sequence[str] | None = None
depends_on: str | t.Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("extension_overrides", Column("stacked_on", String(22), nullable=True))
    op.add_column("processed_messages", Column("body", Text, nullable=True))

    family = ENUM(*[m.value for m in ExtensionFamily], name="extensionfamily", create_type=False)
    op.create_table(
        "withdrawn_requests",
        Column("source_id", String, nullable=False),
        Column("family", family, nullable=False),
        Column("create_time", DateTime(timezone=True), server_default=f.now(), nullable=False),
        sa.PrimaryKeyConstraint("source_id", "family"),
    )


def downgrade() -> None:
    op.drop_table("withdrawn_requests")
    op.drop_column("processed_messages", "body")
    op.drop_column("extension_overrides", "stacked_on")
