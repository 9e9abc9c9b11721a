"""Tests for gradepush.extension.provision module."""

from __future__ import annotations

import pytest

from gradepush.extension import provision
from gradepush.extension.errors import ProvisionConflictError
from gradepush.model import ExtensionDirective, ExtensionKind


class TestIsApproved(object):
    @pytest.mark.parametrize("status", ["5", 5, "approved", "Approved", " APPROVED "])
    def test_approved(self, status: object) -> None:
        """is_approved() accepts "5" and "approved" in any case."""
        assert provision.is_approved(status)

    @pytest.mark.parametrize("status", [None, "", "4", "pending", "rejected"])
    def test_not_approved(self, status: object) -> None:
        """is_approved() rejects every other status."""
        assert not provision.is_approved(status)


class TestResolve(object):
    """Tests for provision.resolve()."""

    def test_days(self) -> None:
        """No. of days maps to a days directive."""
        result = provision.resolve({"no_dys_ext": "3", "accessibility_assessment_status": "5"})
        assert result == ExtensionDirective(kind=ExtensionKind.Days, magnitude=3)

    def test_hours(self) -> None:
        """No. of hours maps to an hours directive, numbers as well as strings."""
        result = provision.resolve({"no_hrs_ext": 24, "accessibility_assessment_status": "approved"})
        assert result == ExtensionDirective(kind=ExtensionKind.Hours, magnitude=24)

    def test_time_per_hour_sums_rest_breaks(self) -> None:
        """Extra exam time and rest break time add up to minutes per hour."""
        result = provision.resolve({
            "add_exam_time": "15",
            "rest_brk_add_time": "10",
            "accessibility_assessment_status": "5",
        })
        assert result == ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=25)

    def test_time_per_hour_with_one_part(self) -> None:
        """Either half of the per-hour allowance may be missing."""
        result = provision.resolve({"rest_brk_add_time": "10", "accessibility_assessment_status": "5"})
        assert result == ExtensionDirective(kind=ExtensionKind.TimePerHour, magnitude=10)

    def test_unapproved_resolves_to_none(self) -> None:
        """A populated record without approval means no extension."""
        assert provision.resolve({"no_dys_ext": "3", "accessibility_assessment_status": "2"}) is None

    @pytest.mark.parametrize("value", [None, "", "0", "-2", "abc", "NaN"])
    def test_absent_values(self, value: object) -> None:
        """Empty, zero, negative and non-numeric values do not count as a provision."""
        assert provision.resolve({"no_dys_ext": value, "accessibility_assessment_status": "5"}) is None

    def test_conflict_raises(self) -> None:
        """More than one populated kind is a conflict."""
        with pytest.raises(ProvisionConflictError):
            provision.resolve({"no_dys_ext": "2", "no_hrs_ext": "4", "accessibility_assessment_status": "5"})

    def test_conflict_raises_without_approval(self) -> None:
        """Conflicts are reported whatever the status."""
        with pytest.raises(ProvisionConflictError) as exc:
            provision.resolve({"no_dys_ext": "2", "add_exam_time": "15", "provision_tier": "T2"})
        assert exc.value.context["provision_tier"] == "T2"

    def test_unknown_fields_ignored(self) -> None:
        """Fields the resolver does not know about are ignored."""
        result = provision.resolve({"no_dys_ext": "1", "accessibility_assessment_status": "5", "notes": "x"})
        assert result is not None


class TestProvisions(object):
    def test_has_extension(self) -> None:
        """has_extension needs a value and approval."""
        assert provision.parse({"no_hrs_ext": "2", "accessibility_assessment_status": "5"}).has_extension
        assert not provision.parse({"no_hrs_ext": "2"}).has_extension
        assert not provision.parse({"accessibility_assessment_status": "5"}).has_extension
