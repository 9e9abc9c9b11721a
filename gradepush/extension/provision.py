"""Turn a raw accommodation provisions record into an extension directive."""

from __future__ import annotations

import decimal
import typing as t

import pydantic as p

from gradepush.model import BaseModel, ExtensionDirective, ExtensionKind

from .errors import ProvisionConflictError

ApprovedStatuses = frozenset({"5", "approved"})


def _present(value: t.Any) -> int | None:
    """A value counts only when it is numeric and strictly positive."""
    if value is None or isinstance(value, bool):
        return None
    try:
        n = decimal.Decimal(str(value).strip())
    except decimal.InvalidOperation:
        return None
    if not n.is_finite() or n <= 0:
        return None
    return int(n) or None


def is_approved(status: t.Any) -> bool:
    if status is None:
        return False
    return str(status).strip().lower() in ApprovedStatuses


class Provisions(BaseModel):
    model_config = p.ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    provision_tier: str | None = None
    no_dys_ext: str | None = None
    no_hrs_ext: str | None = None
    add_exam_time: str | None = None
    rest_brk_add_time: str | None = None
    asmnt_type_code: str | None = None
    accessibility_assessment_status: str | None = None

    @property
    def days(self) -> int | None:
        return _present(self.no_dys_ext)

    @property
    def hours(self) -> int | None:
        return _present(self.no_hrs_ext)

    @property
    def minutes_per_hour(self) -> int | None:
        extra, rest = _present(self.add_exam_time), _present(self.rest_brk_add_time)
        if extra is None and rest is None:
            return None
        return (extra or 0) + (rest or 0)

    @property
    def approved(self) -> bool:
        return is_approved(self.accessibility_assessment_status)

    @property
    def has_value(self) -> bool:
        return any(v is not None for v in (self.days, self.hours, self.minutes_per_hour))

    @property
    def has_extension(self) -> bool:
        return self.has_value and self.approved

    def kind(self) -> ExtensionKind | None:
        populated = [
            kind
            for kind, value in (
                (ExtensionKind.Days, self.days),
                (ExtensionKind.Hours, self.hours),
                (ExtensionKind.TimePerHour, self.minutes_per_hour),
            )
            if value is not None
        ]
        if len(populated) > 1:
            raise ProvisionConflictError(
                "more than one extension kind is populated",
                kinds=[k.value for k in populated],
                provision_tier=self.provision_tier,
            )
        return populated[0] if populated else None


def parse(raw: t.Mapping[str, t.Any]) -> Provisions:
    return Provisions.model_validate(dict(raw))


def resolve(raw: t.Mapping[str, t.Any] | Provisions) -> ExtensionDirective | None:
    """Map a provisions record to `(kind, magnitude)`, or None for no extension.

    Raises `ProvisionConflictError` when more than one kind carries a value,
    whatever the approval status.
    """
    provisions = raw if isinstance(raw, Provisions) else parse(raw)
    kind = provisions.kind()
    if kind is None or not provisions.approved:
        return None

    match kind:
        case ExtensionKind.Days:
            magnitude = provisions.days
        case ExtensionKind.Hours:
            magnitude = provisions.hours
        case ExtensionKind.TimePerHour:
            magnitude = provisions.minutes_per_hour
    assert magnitude is not None
    return ExtensionDirective(kind=kind, magnitude=magnitude)
