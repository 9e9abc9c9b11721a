from __future__ import annotations

import typing as t


class ExtensionError(Exception):
    """Base for failures in extension processing."""

    def __init__(self, message: str, **context: t.Any):
        super().__init__(message)
        self.context = context


class MalformedEventError(ExtensionError):
    """An event payload is missing a required field or is not valid JSON."""


class ProvisionConflictError(ExtensionError):
    """More than one extension kind is populated on a provision record."""


class StudentNotFoundError(ExtensionError):
    """The student-records API returned no record for a student on a component."""


class UnsupportedActivityError(ExtensionError):
    """No store is registered for the activity type, or the type cannot take the operation."""


class ActivityNotFoundError(ExtensionError): ...


class ScanAlreadyQueuedError(ExtensionError):
    """A full re-scan covering the requested scope is already pending."""
