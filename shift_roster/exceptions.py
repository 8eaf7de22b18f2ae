"""
exceptions.py — Error taxonomy for the shift-roster engine

  InvalidParameters            malformed rotation parameters (per physician)
  NonEditableDay               edit attempted on an Off / Holiday / N/A day
  IncompatibleShiftForPattern  shift code not allowed by the rotation pattern
  StoreUnavailable             document store read / write / subscribe failed
  BatchCommitFailed            atomic multi-document write did not commit
"""

from datetime import date
from typing import Optional


class RosterError(Exception):
    """Base exception class for the shift-roster engine."""
    pass


class ConfigurationError(RosterError):
    """Raised when a configuration file is missing required data."""
    pass


class InvalidParameters(RosterError):
    """Raised when rotation parameters cannot produce a schedule."""

    def __init__(self, message: str, physician_id: Optional[str] = None):
        super().__init__(message)
        self.physician_id = physician_id


class NonEditableDay(RosterError):
    """Raised when an Off, Holiday or N/A cell is selected for editing."""

    def __init__(self, code: str, day: Optional[date] = None, physician_id: Optional[str] = None):
        super().__init__(f"Cannot edit this day ({code})")
        self.code = code
        self.day = day
        self.physician_id = physician_id


class IncompatibleShiftForPattern(RosterError):
    """Raised when a shift code is not valid for the physician's shift pattern."""

    def __init__(self, code: str, pattern: str, physician_id: Optional[str] = None):
        super().__init__(f"Shift {code} is not allowed for pattern {pattern}")
        self.code = code
        self.pattern = pattern
        self.physician_id = physician_id


class StoreUnavailable(RosterError):
    """Raised when the document store cannot be reached or rejects a request."""
    pass


class BatchCommitFailed(RosterError):
    """Raised when a batch of edits could not be committed. Nothing was persisted."""

    def __init__(self, message: str, edit_count: int = 0):
        super().__init__(message)
        self.edit_count = edit_count
