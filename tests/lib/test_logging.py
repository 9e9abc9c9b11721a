"""Tests for gradepush.lib.logging package."""

from __future__ import annotations

import datetime
import json
import logging

from gradepush.lib.logging import ExtraFormatter
from gradepush.lib.logging.json import MaxStringLength
from gradepush.model import QueueName


def record(msg: str, **extra: object) -> logging.LogRecord:
    rec = logging.LogRecord("gradepush.test", logging.INFO, __file__, 1, msg, None, None)
    rec.__dict__.update(extra)
    return rec


def formatter() -> ExtraFormatter:
    f = ExtraFormatter(logging.Formatter, "%(levelname)s %(message)s")
    f.base.no_color = True  # pyright: ignore [reportAttributeAccessIssue]
    return f


def context_of(line: str) -> dict[str, object]:
    return json.loads(line[line.index("{") :])


class TestExtraFormatter(object):
    def test_no_extra(self) -> None:
        """A record with no extra fields has no context block."""
        assert formatter().format(record("nothing to add")) == "INFO nothing to add"

    def test_identifiers_lead(self) -> None:
        """Message and mapping ids come first; other keys follow sorted."""
        line = formatter().format(record("applied", zeta=1, mapping_id=7, alpha=2, message_id="m-1"))

        assert line.startswith("INFO applied {")
        assert list(context_of(line)) == ["message_id", "mapping_id", "alpha", "zeta"]

    def test_encodes_domain_values(self) -> None:
        """Domain values are written as plain JSON."""
        when = datetime.datetime(2025, 2, 27, 12, tzinfo=datetime.timezone.utc)
        line = formatter().format(record("x", close_time=when, queue_name=QueueName.EC, codes={"B", "A"}))

        assert context_of(line) == {"close_time": "2025-02-27T12:00:00+00:00", "codes": ["A", "B"], "queue_name": "ec"}

    def test_long_strings_clipped(self) -> None:
        """Long strings are cut short with their length noted."""
        body = "x" * (MaxStringLength + 10)
        context = context_of(formatter().format(record("received", body=body)))

        assert context["body"] == f"{'x' * MaxStringLength}... ({len(body)} chars)"

    def test_unknown_objects_use_repr(self) -> None:
        """Values JSON cannot encode are written as their repr."""
        class Opaque(object):
            def __repr__(self) -> str:
                return "<Opaque>"

        assert context_of(formatter().format(record("x", thing=Opaque()))) == {"thing": "<Opaque>"}

    def test_multiline_aligned(self) -> None:
        """Continuation lines line up under the message."""
        line = formatter().format(record("first\nsecond"))
        assert line == "INFO first\n     second"
