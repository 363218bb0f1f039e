"""Exceptions raised by the scheduling and payroll rules."""

from typing import Optional


class SchedulingError(Exception):
    """Base class for rule violations.

    ``record_id`` identifies the shift or payroll record that caused the
    failure, when there is one.
    """

    def __init__(self, message: str, record_id: Optional[int] = None):
        super().__init__(message)
        self.record_id = record_id


class FormatError(SchedulingError):
    """A time or date string could not be parsed."""


class ValidationError(SchedulingError):
    """A required field is missing or inconsistent."""


class InvalidStateError(SchedulingError):
    """A status transition is not allowed from the current status."""
