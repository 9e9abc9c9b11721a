from __future__ import annotations

import datetime
import typing as t
import zoneinfo

import annotated_types as ant
import pydantic as p

from gradepush.model import ActivityType

from .base import BaseSettings


class ExtensionSettings(BaseSettings):
    """Knobs for accommodation and extenuating-circumstance processing."""

    enabled: bool = True
    timezone: str = "Europe/London"
    closure_days: tuple[datetime.date, ...] = ()

    raa_type_codes: frozenset[str] = frozenset({"RAPAS", "EXAM", "RAPXR"})
    # empty means every assessment type is eligible
    raa_ast_codes: frozenset[str] = frozenset()
    gradebook_roles: frozenset[str] = frozenset({"student"})
    # empty disables deadline group handling
    deadline_group_prefix: str = ""
    supported_activity_types: frozenset[ActivityType] = frozenset(ActivityType)

    ec_refresh_from_api: bool = True
    api_attempts: t.Annotated[int, ant.Ge(1)] = 2

    all_mappings_batch_limit: t.Annotated[int, ant.Gt(0)] = 30
    new_enrolment_batch_limit: t.Annotated[int, ant.Gt(0)] = 100
    new_enrolment_max_attempts: t.Annotated[int, ant.Gt(0)] = 2

    @p.field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            zoneinfo.ZoneInfo(v)
        except zoneinfo.ZoneInfoNotFoundError as e:
            raise ValueError(f"unknown timezone {v!r}") from e
        return v

    @property
    def tzinfo(self) -> zoneinfo.ZoneInfo:
        return zoneinfo.ZoneInfo(self.timezone)

    def is_ast_code_eligible(self, ast_code: str | None) -> bool:
        if not self.raa_ast_codes:
            return True
        return ast_code is not None and ast_code.strip() in self.raa_ast_codes
