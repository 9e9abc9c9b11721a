from __future__ import annotations

import datetime
import enum
import typing as t

import pydantic as p

from .base import BaseModel
from .enum import ExtensionFamily, ExtensionKind


class ExtensionDirective(BaseModel):
    """A resolved extension: `magnitude` is days, hours or minutes-per-hour depending on `kind`."""

    model_config = p.ConfigDict(frozen=True)

    kind: ExtensionKind
    magnitude: int


class FieldChange(BaseModel):
    attribute: str
    from_: t.Any = p.Field(default=None, alias="from")
    to: t.Any = None

    model_config = p.ConfigDict(populate_by_name=True)


class Disposition(enum.Enum):
    Apply = "apply"
    Ignore = "ignore"


class _ExtensionUpdate(BaseModel):
    student_code: str
    source_id: str | None = None
    component_identifier: str | None = None
    changes: tuple[FieldChange, ...] = ()


class AccommodationStatusChange(_ExtensionUpdate):
    update_type: t.Literal["raa_status"] = "raa_status"
    type_code: str | None = None
    status: str | None = None
    approved: bool


class AccommodationProvisions(_ExtensionUpdate):
    update_type: t.Literal["raa_provisions"] = "raa_provisions"
    type_code: str | None = None
    status: str | None = None
    ast_code: str | None = None
    directive: ExtensionDirective | None = None


class ExtenuatingCircumstanceGrant(_ExtensionUpdate):
    update_type: t.Literal["ec_grant"] = "ec_grant"
    new_deadline: datetime.date | None = None
    request_status: str | None = None
    decision_type: str | None = None


class ExtensionWithdrawal(_ExtensionUpdate):
    update_type: t.Literal["withdrawal"] = "withdrawal"
    family: ExtensionFamily


ExtensionUpdate = t.Annotated[
    AccommodationStatusChange | AccommodationProvisions | ExtenuatingCircumstanceGrant | ExtensionWithdrawal,
    p.Field(discriminator="update_type"),
]
