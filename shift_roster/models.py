"""
models.py — Data model for the physician shift roster

ShiftCode is the one closed set of day statuses. It is used both for computed
day statuses and for persisted custom-shift overrides; its value is the
wire-stable short token (WD, MS, AS, NS, OF, HO, LV, N/A).

Roster type: Dict[physician_id, Dict[day_of_month, ShiftCode]]
"""

from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Dict, Optional

from shift_roster.exceptions import InvalidParameters


class ShiftCode(Enum):
    WHOLE_DAY = "WD"
    MORNING = "MS"
    AFTERNOON = "AS"
    NIGHT = "NS"
    OFF = "OF"
    HOLIDAY = "HO"
    LEAVE = "LV"
    NOT_APPLICABLE = "N/A"

    @classmethod
    def parse(cls, token: str) -> "ShiftCode":
        """Parse a short token (e.g. 'MS'). Raises ValueError on unknown tokens."""
        try:
            return cls(str(token).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown shift code: {token!r}") from None

    @property
    def is_working(self) -> bool:
        return self in WORKING_CODES

    @property
    def is_editable(self) -> bool:
        return self not in NON_EDITABLE_CODES

    @property
    def is_override_code(self) -> bool:
        return self in OVERRIDE_CODES


WORKING_CODES = frozenset({
    ShiftCode.WHOLE_DAY, ShiftCode.MORNING, ShiftCode.AFTERNOON, ShiftCode.NIGHT,
})
NON_EDITABLE_CODES = frozenset({
    ShiftCode.OFF, ShiftCode.HOLIDAY, ShiftCode.NOT_APPLICABLE,
})
# Codes an admin may persist as a custom override
OVERRIDE_CODES = frozenset(WORKING_CODES | {ShiftCode.LEAVE})

Roster = Dict[str, Dict[int, ShiftCode]]


class ShiftPattern(Enum):
    """How many shift slots rotate during active days. Value = stored slot count."""
    WHOLE_DAY = 1
    MORNING_EVENING = 2
    MORNING_AFTERNOON_EVENING = 3

    @classmethod
    def from_slots(cls, slots: int) -> "ShiftPattern":
        try:
            return cls(int(slots))
        except (TypeError, ValueError):
            raise InvalidParameters(f"Shift pattern must have 1, 2 or 3 slots, got {slots!r}") from None


@dataclass
class RotationParameters:
    active_days: int
    off_days: int
    shift_pattern: ShiftPattern
    switch_interval: int
    start_date: date

    @property
    def cycle_length(self) -> int:
        return self.active_days + self.off_days

    def validate(self) -> None:
        """Raise InvalidParameters if no schedule can be derived from these values."""
        if self.active_days < 0 or self.off_days < 0:
            raise InvalidParameters(
                f"Active/off days must be >= 0 (active={self.active_days}, off={self.off_days})"
            )
        if self.cycle_length == 0:
            raise InvalidParameters("Rotation cycle length is 0 (active + off days)")
        if self.switch_interval < 1:
            raise InvalidParameters(f"Shift switch interval must be >= 1, got {self.switch_interval}")

    @classmethod
    def default(cls, today: date) -> "RotationParameters":
        """Onboarding default: 5 on / 2 off, whole-day shifts, starting today."""
        return cls(
            active_days=5,
            off_days=2,
            shift_pattern=ShiftPattern.WHOLE_DAY,
            switch_interval=5,
            start_date=today,
        )


@dataclass
class CustomShiftOverride:
    date: date
    shift_code: ShiftCode
    document_id: Optional[str] = None


@dataclass
class LeaveInterval:
    start_date: date
    end_date: date
    type: str = "Manual"
    document_id: Optional[str] = None

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise ValueError(f"Leave end {self.end_date} is before start {self.start_date}")

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def days(self):
        current = self.start_date
        while current <= self.end_date:
            yield current
            current += timedelta(days=1)


@dataclass
class HolidayDate:
    date: date
    name: str = ""


class EditAction(Enum):
    MARK_LEAVE = "mark_leave"
    SET_SHIFT = "set_shift"


@dataclass
class CellEdit:
    """One selected (physician, day) cell and what to do with it."""
    physician_id: str
    date: date
    action: EditAction
    shift_code: Optional[ShiftCode] = None

    def __post_init__(self):
        if self.action is EditAction.SET_SHIFT:
            if self.shift_code is None:
                raise ValueError("SET_SHIFT edit requires a shift_code")
            if not self.shift_code.is_override_code:
                raise ValueError(f"{self.shift_code.value} cannot be stored as a custom shift")
