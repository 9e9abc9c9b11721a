"""Parse accommodation and extenuating-circumstance payloads into `ExtensionUpdate` values.

Queue events and student-records snapshots arrive in different shapes; both
end up as the same canonical models so the applier never sees raw JSON.
"""

from __future__ import annotations

import datetime
import json
import typing as t

import pydantic as p

from gradepush.lib.util import dig
from gradepush.model import AccommodationProvisions, AccommodationStatusChange, Disposition, ExtensionFamily, \
    ExtensionUpdate, ExtensionWithdrawal, ExtenuatingCircumstanceGrant, FieldChange, StudentRecord

from . import provision
from .errors import MalformedEventError

RAAStatusAttribute = "accessibility_assessment_status"
ECProcessStatusAttribute = "extenuating_circumstances.process_status"
ECDeletedStatus = "D"
ECCompleteStatus = "COMPLETE"
ECDecisionType = "DECISION"
DAPPrefix = "DAP-"

_timestamp = p.TypeAdapter(datetime.datetime)


class Envelope(t.NamedTuple):
    message: dict[str, t.Any]
    timestamp: datetime.datetime | None


def loads(body: str | bytes, what: str = "message") -> t.Any:
    try:
        return json.loads(body)
    except (TypeError, ValueError) as e:
        raise MalformedEventError(f"{what} is not valid JSON") from e


def parse_envelope(body: str) -> Envelope:
    """Unwrap a queue message body: `{"Message": "<json>", "Timestamp": ...}`."""
    outer = loads(body, "message body")
    if not isinstance(outer, dict) or "Message" not in outer:
        raise MalformedEventError("message body has no Message", field="Message")

    inner = outer["Message"]
    message = loads(inner, "Message") if isinstance(inner, (str, bytes)) else inner
    if not isinstance(message, dict):
        raise MalformedEventError("Message is not an object", field="Message")

    timestamp: datetime.datetime | None = None
    if outer.get("Timestamp"):
        try:
            timestamp = _timestamp.validate_python(outer["Timestamp"])
        except p.ValidationError as e:
            raise MalformedEventError("bad Timestamp", field="Timestamp") from e
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=datetime.timezone.utc)
    return Envelope(message=t.cast(dict[str, t.Any], message), timestamp=timestamp)


def _changes(data: t.Mapping[str, t.Any]) -> tuple[FieldChange, ...]:
    raw = data.get("changes") or []
    if not isinstance(raw, list):
        raise MalformedEventError("changes is not a list", field="changes")
    try:
        return tuple(FieldChange.model_validate(c) for c in t.cast(list[t.Any], raw))
    except p.ValidationError as e:
        raise MalformedEventError("bad change entry", field="changes") from e


def _require(value: t.Any, field: str) -> t.Any:
    if value is None or value == "":
        raise MalformedEventError(f"missing or invalid field: {field}", field=field)
    return value


def _as_date(value: t.Any, field: str) -> datetime.date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    try:
        # tolerate a trailing time component
        return datetime.date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise MalformedEventError(f"bad date in {field}: {value!r}", field=field) from e


def _pick_provisions(raw: list[t.Any]) -> dict[str, t.Any]:
    """Unwrap a single record; from several, take the first that carries a value."""
    records = [t.cast(dict[str, t.Any], r) for r in raw if isinstance(r, dict)]
    if not records:
        raise MalformedEventError("required_provisions holds no records", field="required_provisions")
    for record in records:
        if provision.parse(record).has_value:
            return record
    return records[0]


def parse_raa_event(data: t.Mapping[str, t.Any]) -> ExtensionUpdate:
    person_sora = dig(data, "entity", "person_sora")
    if not isinstance(person_sora, dict):
        raise MalformedEventError("missing or invalid field: person_sora", field="person_sora")
    person_sora = t.cast(dict[str, t.Any], person_sora)

    student_code = str(_require(dig(person_sora, "person", "student_code"), "student_code"))
    if "required_provisions" not in person_sora or person_sora["required_provisions"] is None:
        raise MalformedEventError("missing or invalid field: required_provisions", field="required_provisions")

    changes = _changes(data)
    type_code = dig(person_sora, "type", "code")
    status = person_sora.get(RAAStatusAttribute)
    source_id = person_sora.get("identifier")
    common: dict[str, t.Any] = {
        "student_code": student_code,
        "source_id": str(source_id) if source_id is not None else None,
        "changes": changes,
    }

    raw_provisions = person_sora["required_provisions"]
    if isinstance(raw_provisions, list) and not raw_provisions:
        return ExtensionWithdrawal(family=ExtensionFamily.RAA, **common)

    if any(RAAStatusAttribute in c.attribute for c in changes):
        return AccommodationStatusChange(
            type_code=type_code,
            status=status,
            approved=provision.is_approved(status),
            **common,
        )

    if isinstance(raw_provisions, list):
        record = _pick_provisions(t.cast(list[t.Any], raw_provisions))
    elif isinstance(raw_provisions, dict):
        record = t.cast(dict[str, t.Any], raw_provisions)
    else:
        raise MalformedEventError("required_provisions is not a record", field="required_provisions")

    # the status travels on person_sora, not on the provisions record
    record = {**record, RAAStatusAttribute: status}
    provisions = provision.parse(record)
    return AccommodationProvisions(
        type_code=type_code,
        status=status,
        ast_code=provisions.asmnt_type_code,
        directive=provision.resolve(provisions),
        **common,
    )


def parse_raa_snapshot(student: StudentRecord) -> AccommodationProvisions:
    """Accommodation state for one roster entry from the student-records API."""
    record = dig(student.payload, "student_assessment", "required_provisions")
    if not isinstance(record, dict):
        raise MalformedEventError(
            "missing or invalid field: required_provisions",
            field="required_provisions",
            student_code=student.student_code,
        )
    provisions = provision.parse(t.cast(dict[str, t.Any], record))
    return AccommodationProvisions(
        student_code=student.student_code,
        status=provisions.accessibility_assessment_status,
        ast_code=provisions.asmnt_type_code,
        directive=provision.resolve(provisions),
    )


def is_ec_deletion(changes: t.Sequence[FieldChange], request: t.Mapping[str, t.Any]) -> bool:
    if not request:
        return True
    return any(c.attribute == ECProcessStatusAttribute and c.to == ECDeletedStatus for c in changes)


def parse_ec_event(data: t.Mapping[str, t.Any]) -> ExtensionUpdate:
    student_ec = dig(data, "entity", "student_extenuating_circumstances")
    if not isinstance(student_ec, dict):
        raise MalformedEventError(
            "missing or invalid field: student_extenuating_circumstances", field="student_extenuating_circumstances"
        )
    student_ec = t.cast(dict[str, t.Any], student_ec)

    student_code = str(_require(dig(student_ec, "student", "student_code"), "student_code"))
    identifier = str(_require(dig(student_ec, "assessment_component", "identifier"), "assessment_component"))
    request = dig(student_ec, "extenuating_circumstances", "request")
    if not isinstance(request, dict):
        raise MalformedEventError("missing or invalid field: request", field="request")
    request = t.cast(dict[str, t.Any], request)

    changes = _changes(data)
    source_id = request.get("identifier")
    common: dict[str, t.Any] = {
        "student_code": student_code,
        "source_id": str(source_id) if source_id is not None else None,
        "component_identifier": identifier,
        "changes": changes,
    }
    if is_ec_deletion(changes, request):
        return ExtensionWithdrawal(family=ExtensionFamily.EC, **common)

    return ExtenuatingCircumstanceGrant(
        new_deadline=_as_date(request.get("new_deadline"), "new_deadline"),
        request_status=request.get("status"),
        decision_type=request.get("decision_type"),
        **common,
    )


def parse_ec_snapshot(student: StudentRecord, component_identifier: str | None = None) -> ExtenuatingCircumstanceGrant:
    """The student's latest granted deadline across all of their requests.

    A grant without a deadline means the student has no EC on the component.
    """
    latest: tuple[datetime.date, str | None] | None = None
    for entry in student.payload.get("extenuating_circumstance") or []:
        if not isinstance(entry, dict):
            continue
        entry = t.cast(dict[str, t.Any], entry)
        due = _as_date(entry.get("new_due_date"), "new_due_date")
        if due is None:
            continue
        if latest is None or due > latest[0]:
            ident = entry.get("identifier")
            latest = (due, str(ident) if ident is not None else None)

    return ExtenuatingCircumstanceGrant(
        student_code=student.student_code,
        component_identifier=component_identifier,
        new_deadline=latest[0] if latest else None,
        source_id=latest[1] if latest else None,
    )


def is_dap_deletion(update: ExtensionUpdate) -> bool:
    """Deleted DAP requests are traced through the ledger, not the event's component."""
    return (
        isinstance(update, ExtensionWithdrawal)
        and update.family is ExtensionFamily.EC
        and (update.source_id or "").startswith(DAPPrefix)
    )


def classify(update: ExtensionUpdate, *, raa_type_codes: t.Collection[str]) -> Disposition:
    """Decide whether a parsed queue event needs acting on.

    Ignored events are not-yet-actionable, which is different from failed.
    """
    if not update.changes:
        return Disposition.Ignore

    match update:
        case ExtensionWithdrawal():
            return Disposition.Apply
        case ExtenuatingCircumstanceGrant(request_status=status, decision_type=decision):
            if status == ECCompleteStatus and decision == ECDecisionType:
                return Disposition.Apply
            return Disposition.Ignore
        case AccommodationStatusChange(type_code=code) | AccommodationProvisions(type_code=code):
            return Disposition.Apply if code in raa_type_codes else Disposition.Ignore
    return Disposition.Ignore
