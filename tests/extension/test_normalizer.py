"""Tests for gradepush.extension.normalizer module."""

from __future__ import annotations

import datetime
import json
import typing as t

import pytest

from gradepush.extension import normalizer
from gradepush.extension.errors import MalformedEventError
from gradepush.model import AccommodationProvisions, AccommodationStatusChange, Disposition, ExtensionDirective, \
    ExtensionFamily, ExtensionKind, ExtensionWithdrawal, ExtenuatingCircumstanceGrant, StudentRecord

RAATypeCodes = frozenset({"RAPAS", "EXAM", "RAPXR"})
StatusChange = {"attribute": "request.status", "from": "NEW", "to": "COMPLETE"}


def raa_event(
    provisions: t.Any = ({"no_dys_ext": "3"},),
    *,
    status: str = "5",
    type_code: str = "RAPAS",
    changes: list[dict[str, t.Any]] | None = None,
) -> dict[str, t.Any]:
    return {
        "changes": changes if changes is not None else [{"attribute": "required_provisions", "from": None, "to": "x"}],
        "entity": {
            "person_sora": {
                "identifier": "SORA-1",
                "person": {"student_code": "12345678"},
                "type": {"code": type_code},
                "accessibility_assessment_status": status,
                "required_provisions": list(provisions) if isinstance(provisions, tuple) else provisions,
            }
        },
    }


def ec_event(
    request: dict[str, t.Any] | None = None,
    *,
    changes: list[dict[str, t.Any]] | None = None,
) -> dict[str, t.Any]:
    if request is None:
        request = {
            "identifier": "EC-77",
            "status": "COMPLETE",
            "decision_type": "DECISION",
            "new_deadline": "2025-02-27",
        }
    return {
        "changes": changes if changes is not None else [StatusChange],
        "entity": {
            "student_extenuating_circumstances": {
                "assessment_component": {"identifier": "LAWS0024A6UF-001"},
                "student": {"student_code": "12345678"},
                "extenuating_circumstances": {"request": request},
            }
        },
    }


class TestParseEnvelope(object):
    def test_unwraps_message_and_timestamp(self) -> None:
        """The inner Message is decoded and the Timestamp parsed as UTC."""
        body = json.dumps({"Message": json.dumps({"a": 1}), "Timestamp": "2025-02-10T09:00:00.000Z"})
        envelope = normalizer.parse_envelope(body)
        assert envelope.message == {"a": 1}
        assert envelope.timestamp == datetime.datetime(2025, 2, 10, 9, tzinfo=datetime.timezone.utc)

    def test_naive_timestamp_is_utc(self) -> None:
        """A Timestamp without an offset is taken as UTC."""
        body = json.dumps({"Message": "{}", "Timestamp": "2025-02-10T09:00:00"})
        timestamp = normalizer.parse_envelope(body).timestamp
        assert timestamp is not None and timestamp.tzinfo is not None

    @pytest.mark.parametrize("body", ["not json", "[]", json.dumps({"Other": 1}), json.dumps({"Message": "[1]"})])
    def test_malformed(self, body: str) -> None:
        """Bodies that are not the expected envelope are malformed."""
        with pytest.raises(MalformedEventError):
            normalizer.parse_envelope(body)


class TestParseRAAEvent(object):
    def test_provisions(self) -> None:
        """A provisions update resolves its directive."""
        update = normalizer.parse_raa_event(raa_event())
        assert isinstance(update, AccommodationProvisions)
        assert update.student_code == "12345678"
        assert update.source_id == "SORA-1"
        assert update.type_code == "RAPAS"
        assert update.directive == ExtensionDirective(kind=ExtensionKind.Days, magnitude=3)

    def test_status_comes_from_person_sora(self) -> None:
        """Approval is read from person_sora, so an unapproved record has no directive."""
        update = normalizer.parse_raa_event(raa_event(status="2"))
        assert isinstance(update, AccommodationProvisions)
        assert update.directive is None

    def test_empty_provisions_is_withdrawal(self) -> None:
        """An empty required_provisions list withdraws the accommodation."""
        update = normalizer.parse_raa_event(raa_event(()))
        assert isinstance(update, ExtensionWithdrawal)
        assert update.family is ExtensionFamily.RAA

    def test_multiple_records_take_first_with_value(self) -> None:
        """From several provision records, the first carrying a value is used."""
        update = normalizer.parse_raa_event(raa_event(({"provision_tier": "T1"}, {"no_hrs_ext": "6"})))
        assert isinstance(update, AccommodationProvisions)
        assert update.directive == ExtensionDirective(kind=ExtensionKind.Hours, magnitude=6)

    def test_status_change(self) -> None:
        """A change to the assessment status is a status change."""
        changes = [{"attribute": "accessibility_assessment_status", "from": "2", "to": "5"}]
        update = normalizer.parse_raa_event(raa_event(changes=changes))
        assert isinstance(update, AccommodationStatusChange)
        assert update.approved

    def test_missing_person_sora(self) -> None:
        """An event without person_sora is malformed."""
        with pytest.raises(MalformedEventError):
            normalizer.parse_raa_event({"changes": [], "entity": {}})

    def test_missing_student_code(self) -> None:
        """An event without a student code is malformed."""
        event = raa_event()
        del event["entity"]["person_sora"]["person"]
        with pytest.raises(MalformedEventError):
            normalizer.parse_raa_event(event)

    def test_missing_required_provisions(self) -> None:
        """The required_provisions key itself must be present."""
        event = raa_event()
        del event["entity"]["person_sora"]["required_provisions"]
        with pytest.raises(MalformedEventError):
            normalizer.parse_raa_event(event)


class TestParseRAASnapshot(object):
    def test_snapshot(self) -> None:
        """The snapshot carries its status inside required_provisions."""
        student = StudentRecord(
            student_code="12345678",
            payload={
                "student_assessment": {
                    "required_provisions": {"add_exam_time": "15", "accessibility_assessment_status": "5"}
                }
            },
        )
        update = normalizer.parse_raa_snapshot(student)
        assert update.directive == ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=15)

    def test_missing(self) -> None:
        """A roster entry without required_provisions is malformed."""
        with pytest.raises(MalformedEventError):
            normalizer.parse_raa_snapshot(StudentRecord(student_code="1", payload={}))


class TestParseECEvent(object):
    def test_grant(self) -> None:
        """A granted request carries the new deadline as a date."""
        update = normalizer.parse_ec_event(ec_event())
        assert isinstance(update, ExtenuatingCircumstanceGrant)
        assert update.new_deadline == datetime.date(2025, 2, 27)
        assert update.component_identifier == "LAWS0024A6UF-001"
        assert update.source_id == "EC-77"

    def test_deadline_with_time_component(self) -> None:
        """A deadline with a time part is cut to its date."""
        request = {"identifier": "EC-1", "status": "COMPLETE", "decision_type": "DECISION",
                   "new_deadline": "2025-02-27T00:00:00"}
        update = normalizer.parse_ec_event(ec_event(request))
        assert isinstance(update, ExtenuatingCircumstanceGrant)
        assert update.new_deadline == datetime.date(2025, 2, 27)

    def test_deleted_process_status(self) -> None:
        """Setting the process status to D deletes the request."""
        changes = [{"attribute": "extenuating_circumstances.process_status", "from": "A", "to": "D"}]
        update = normalizer.parse_ec_event(ec_event(changes=changes))
        assert isinstance(update, ExtensionWithdrawal)
        assert update.family is ExtensionFamily.EC

    def test_empty_request_is_deletion(self) -> None:
        """An empty request object deletes the request."""
        assert isinstance(normalizer.parse_ec_event(ec_event({})), ExtensionWithdrawal)

    def test_dap_deletion(self) -> None:
        """Deleted DAP requests are recognised by their identifier."""
        changes = [{"attribute": "extenuating_circumstances.process_status", "to": "D"}]
        update = normalizer.parse_ec_event(ec_event({"identifier": "DAP-9"}, changes=changes))
        assert normalizer.is_dap_deletion(update)
        assert not normalizer.is_dap_deletion(normalizer.parse_ec_event(ec_event()))

    def test_missing_request(self) -> None:
        """An event without a request container is malformed."""
        event = ec_event()
        del event["entity"]["student_extenuating_circumstances"]["extenuating_circumstances"]
        with pytest.raises(MalformedEventError):
            normalizer.parse_ec_event(event)

    def test_bad_deadline(self) -> None:
        """An unparseable deadline is malformed."""
        request = {"identifier": "EC-1", "status": "COMPLETE", "decision_type": "DECISION", "new_deadline": "soon"}
        with pytest.raises(MalformedEventError):
            normalizer.parse_ec_event(ec_event(request))


class TestParseECSnapshot(object):
    def test_latest_deadline_wins(self) -> None:
        """Across several requests the latest new_due_date is taken, with its identifier."""
        student = StudentRecord(
            student_code="12345678",
            payload={
                "extenuating_circumstance": [
                    {"identifier": "EC-1", "new_due_date": "2025-02-20"},
                    {"identifier": "EC-2", "new_due_date": "2025-03-01"},
                    {"identifier": "EC-3", "new_due_date": None},
                ]
            },
        )
        grant = normalizer.parse_ec_snapshot(student, "LAWS0024A6UF-001")
        assert grant.new_deadline == datetime.date(2025, 3, 1)
        assert grant.source_id == "EC-2"

    def test_no_ec(self) -> None:
        """A student without requests has no deadline."""
        grant = normalizer.parse_ec_snapshot(StudentRecord(student_code="1", payload={"extenuating_circumstance": []}))
        assert grant.new_deadline is None


class TestClassify(object):
    def test_no_changes_ignored(self) -> None:
        """Events without changes are ignored, withdrawals included."""
        assert normalizer.classify(
            normalizer.parse_raa_event(raa_event(changes=[])), raa_type_codes=RAATypeCodes
        ) is Disposition.Ignore
        assert normalizer.classify(
            normalizer.parse_raa_event(raa_event((), changes=[])), raa_type_codes=RAATypeCodes
        ) is Disposition.Ignore

    def test_unknown_type_code_ignored(self) -> None:
        """Accommodation types outside the configured codes are ignored."""
        update = normalizer.parse_raa_event(raa_event(type_code="OTHER"))
        assert normalizer.classify(update, raa_type_codes=RAATypeCodes) is Disposition.Ignore

    def test_accepted_type_code(self) -> None:
        """Configured type codes are acted on."""
        update = normalizer.parse_raa_event(raa_event(type_code="EXAM"))
        assert normalizer.classify(update, raa_type_codes=RAATypeCodes) is Disposition.Apply

    @pytest.mark.parametrize(
        "status,decision",
        [("NEW", "DECISION"), ("COMPLETE", "REFERRAL"), (None, None)],
    )
    def test_incomplete_ec_ignored(self, status: str | None, decision: str | None) -> None:
        """EC grants are acted on only once complete with a decision."""
        request = {"identifier": "EC-1", "status": status, "decision_type": decision, "new_deadline": "2025-02-27"}
        update = normalizer.parse_ec_event(ec_event(request))
        assert normalizer.classify(update, raa_type_codes=RAATypeCodes) is Disposition.Ignore

    def test_complete_ec_applied(self) -> None:
        """A complete request with a decision is acted on."""
        event = normalizer.parse_ec_event(ec_event())
        assert normalizer.classify(event, raa_type_codes=RAATypeCodes) is Disposition.Apply

    def test_withdrawal_applied(self) -> None:
        """Withdrawals with changes are always acted on."""
        update = normalizer.parse_ec_event(ec_event({}))
        assert normalizer.classify(update, raa_type_codes=frozenset()) is Disposition.Apply
