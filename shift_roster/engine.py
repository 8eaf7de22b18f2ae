"""
engine.py — Shift Recurrence & Overlay Engine

Core algorithm: a rotation cycle of `active_days` on / `off_days` off,
anchored at the physician's start date. Active days advance a running
active-day counter (off days do not), and every `switch_interval` active days
the shift slot moves to the next one in the pattern:

  days_since_start = (day - start_date).days
  cycle_index      = days_since_start % (active + off)
  cycle_index >= active                     → OF
  active_day_index = full_cycles * active + cycle_index
  slot             = (active_day_index // switch_interval) % n_slots

Overlay precedence per day (highest first):
  1. N/A from the recurrence (before start date) is final
  2. custom shift override for that date
  3. leave interval covering that date       → LV
  4. holiday on that date                    → HO
  5. recurrence value

Everything here is pure: no store access, no clock.
"""

import calendar
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from shift_roster.exceptions import InvalidParameters
from shift_roster.models import (
    CustomShiftOverride,
    HolidayDate,
    LeaveInterval,
    Roster,
    RotationParameters,
    ShiftCode,
)
from shift_roster.roster_config import PATTERN_SLOTS, SHIFT_DEFINITIONS

logger = logging.getLogger(__name__)

DaySchedule = Dict[int, ShiftCode]   # day of month → code


# ---------------------------------------------------------------------------
# Month helpers
# ---------------------------------------------------------------------------

def days_in_month(year: int, month: int) -> int:
    if not 1 <= month <= 12:
        raise ValueError(f"Month must be 1..12, got {month}")
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    """Return (first day, last day) of the month."""
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def month_dates(year: int, month: int) -> List[date]:
    return [date(year, month, d) for d in range(1, days_in_month(year, month) + 1)]


def parse_month(value: str) -> Tuple[int, int]:
    """Parse 'YYYY-MM' (or 'YYYY-M') into (year, month)."""
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m")
    except ValueError:
        raise ValueError(f"Invalid month {value!r}, expected YYYY-MM") from None
    return parsed.year, parsed.month


# ---------------------------------------------------------------------------
# Core: recurrence calculator
# ---------------------------------------------------------------------------

def _slot_for_active_day(params: RotationParameters, active_day_index: int) -> ShiftCode:
    slots = PATTERN_SLOTS[params.shift_pattern]
    if len(slots) == 1:
        return slots[0]
    block = active_day_index // params.switch_interval
    return slots[block % len(slots)]


def compute_base_schedule(
    params: RotationParameters,
    year: int,
    month: int,
) -> DaySchedule:
    """
    Derive the recurrence-only shift code for every day of the month.

    Args:
        params: Physician rotation parameters (validated here)
        year:   Calendar year
        month:  Calendar month, 1..12

    Returns:
        {day: ShiftCode} for days 1..days_in_month

    Raises:
        InvalidParameters: switch_interval < 1 or a zero-length cycle
    """
    params.validate()
    n_days = days_in_month(year, month)
    cycle_length = params.cycle_length
    schedule: DaySchedule = {}

    for d in range(1, n_days + 1):
        day = date(year, month, d)

        if day < params.start_date:
            schedule[d] = ShiftCode.NOT_APPLICABLE
            continue

        days_since_start = (day - params.start_date).days
        if days_since_start < 0:
            # Unreachable after the start-date check
            schedule[d] = ShiftCode.WHOLE_DAY
            continue

        cycle_index = days_since_start % cycle_length
        if cycle_index >= params.active_days:
            schedule[d] = ShiftCode.OFF
            continue

        full_cycles = days_since_start // cycle_length
        active_day_index = full_cycles * params.active_days + cycle_index
        schedule[d] = _slot_for_active_day(params, active_day_index)

    return schedule


# ---------------------------------------------------------------------------
# Core: overlay resolver
# ---------------------------------------------------------------------------

def apply_overlay(
    base: DaySchedule,
    year: int,
    month: int,
    custom_shifts: Iterable[CustomShiftOverride] = (),
    leaves: Iterable[LeaveInterval] = (),
    holidays: Iterable[HolidayDate] = (),
) -> DaySchedule:
    """
    Resolve exceptions over a base schedule. Returns a new dict.

    Records dated outside (year, month) are ignored. If several custom
    overrides share a date, the last one wins.
    """
    custom_by_day: Dict[int, ShiftCode] = {}
    for override in custom_shifts:
        if override.date.year == year and override.date.month == month:
            custom_by_day[override.date.day] = override.shift_code

    leave_days = set()
    for leave in leaves:
        for day in leave.days():
            if day.year == year and day.month == month:
                leave_days.add(day.day)

    holiday_days = {
        h.date.day for h in holidays
        if h.date.year == year and h.date.month == month
    }

    resolved: DaySchedule = {}
    for d, code in base.items():
        if code is ShiftCode.NOT_APPLICABLE:
            resolved[d] = code
        elif d in custom_by_day:
            resolved[d] = custom_by_day[d]
        elif d in leave_days:
            resolved[d] = ShiftCode.LEAVE
        elif d in holiday_days:
            resolved[d] = ShiftCode.HOLIDAY
        else:
            resolved[d] = code
    return resolved


def compute_physician_month(
    params: RotationParameters,
    year: int,
    month: int,
    custom_shifts: Iterable[CustomShiftOverride] = (),
    leaves: Iterable[LeaveInterval] = (),
    holidays: Iterable[HolidayDate] = (),
) -> DaySchedule:
    """Recurrence + overlay for one physician."""
    base = compute_base_schedule(params, year, month)
    return apply_overlay(base, year, month, custom_shifts, leaves, holidays)


def compute_roster(
    inputs: Dict[str, Dict[str, Any]],
    year: int,
    month: int,
    holidays: Iterable[HolidayDate] = (),
) -> Tuple[Roster, Dict[str, InvalidParameters]]:
    """
    Compute many physicians at once, isolating invalid parameters.

    Args:
        inputs: {physician_id: {"params": RotationParameters,
                                "custom_shifts": [...], "leaves": [...]}}

    Returns:
        (roster, errors) — an errored physician gets an empty row
    """
    holidays = list(holidays)
    roster: Roster = {}
    errors: Dict[str, InvalidParameters] = {}

    for physician_id, data in inputs.items():
        try:
            roster[physician_id] = compute_physician_month(
                data["params"], year, month,
                data.get("custom_shifts", ()),
                data.get("leaves", ()),
                holidays,
            )
        except InvalidParameters as e:
            e.physician_id = physician_id
            logger.warning(f"Skipping schedule for {physician_id}: {e}")
            roster[physician_id] = {}
            errors[physician_id] = e

    return roster, errors


# ---------------------------------------------------------------------------
# Workload metrics
# ---------------------------------------------------------------------------

def calculate_workload_metrics(
    roster: Roster,
    physician_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Working-day counts per physician with spread statistics.

    Returns:
        {
          mean, std, cv, min, max,
          counts: {physician_id: int},            working days
          hours:  {physician_id: float},          nominal hours
          per_code: {code_token: {physician_id: int}},
        }
    """
    import numpy as np

    ids = physician_ids if physician_ids is not None else list(roster.keys())
    counts: Dict[str, int] = {}
    hours: Dict[str, float] = {}
    per_code: Dict[str, Dict[str, int]] = {code.value: {} for code in ShiftCode}

    for pid in ids:
        row = roster.get(pid, {})
        counts[pid] = sum(1 for code in row.values() if code.is_working)
        hours[pid] = float(sum(SHIFT_DEFINITIONS[code]["hours"] for code in row.values()))
        for code in row.values():
            per_code[code.value][pid] = per_code[code.value].get(pid, 0) + 1

    values = np.array([counts[pid] for pid in ids], dtype=float)
    if values.size:
        mean_val = float(np.mean(values))
        std_val = float(np.std(values))
        min_val, max_val = int(values.min()), int(values.max())
    else:
        mean_val = std_val = 0.0
        min_val = max_val = 0
    cv = (std_val / mean_val * 100) if mean_val > 0 else 0.0

    return {
        "mean": mean_val,
        "std": std_val,
        "cv": cv,
        "min": min_val,
        "max": max_val,
        "counts": counts,
        "hours": hours,
        "per_code": {k: v for k, v in per_code.items() if v},
    }
