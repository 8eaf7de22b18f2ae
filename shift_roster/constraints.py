"""
constraints.py — Coverage & Edit Constraints for the Physician Roster

Coverage (reported, never blocks computation):
  - COVERAGE_GAP: a day on which no physician in the active set works
                  (every code is OF / HO / LV / N/A, or the row is missing)

Edit preconditions (checked before a batch is built; raise, no store write):
  - NonEditableDay:              cell resolves to OF, HO or N/A
  - IncompatibleShiftForPattern: SET_SHIFT code outside the pattern's allowed set

Usage:
  conflicts = detect_conflicts(roster, active_ids, days_in_month(2024, 3))
  validate_edits(edits, roster, patterns)
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from shift_roster.exceptions import IncompatibleShiftForPattern, NonEditableDay
from shift_roster.models import CellEdit, EditAction, Roster, ShiftCode, ShiftPattern
from shift_roster.roster_config import ALLOWED_SHIFTS_BY_PATTERN

logger = logging.getLogger(__name__)


class ConstraintSeverity(Enum):
    HARD = "hard"
    SOFT = "soft"


@dataclass
class ConstraintViolation:
    severity: ConstraintSeverity
    constraint_type: str
    description: str
    date: Optional[str] = None
    physician: Optional[str] = None

    def __str__(self) -> str:
        parts = [f"[{self.severity.value.upper()}] {self.constraint_type}"]
        if self.date:
            parts.append(f"date={self.date}")
        if self.physician:
            parts.append(f"physician={self.physician}")
        parts.append(f"→ {self.description}")
        return " | ".join(parts)


# ---------------------------------------------------------------------------
# Coverage
# ---------------------------------------------------------------------------

def coverage_by_day(
    roster: Roster,
    active_physician_ids: Iterable[str],
    days_in_month: int,
) -> Dict[int, int]:
    """Number of working physicians per day among the active set."""
    active = list(active_physician_ids)
    coverage: Dict[int, int] = {}
    for d in range(1, days_in_month + 1):
        working = 0
        for pid in active:
            code = roster.get(pid, {}).get(d)
            if code is not None and code.is_working:
                working += 1
        coverage[d] = working
    return coverage


def detect_conflicts(
    roster: Roster,
    active_physician_ids: Iterable[str],
    days_in_month: int,
) -> Set[int]:
    """
    Days with zero coverage across the active physician set.

    A physician with no row (errored or not yet loaded) contributes no
    working days. An empty active set flags every day.
    """
    coverage = coverage_by_day(roster, active_physician_ids, days_in_month)
    conflicts = {d for d, working in coverage.items() if working == 0}
    if conflicts:
        logger.info(f"Coverage gaps on days {sorted(conflicts)}")
    return conflicts


def conflict_violations(conflicts: Iterable[int], year: int, month: int) -> List[ConstraintViolation]:
    """Express coverage gaps as report entries."""
    return [
        ConstraintViolation(
            severity=ConstraintSeverity.SOFT,
            constraint_type="COVERAGE_GAP",
            description="No physicians available",
            date=date(year, month, d).isoformat(),
        )
        for d in sorted(conflicts)
    ]


# ---------------------------------------------------------------------------
# Edit preconditions
# ---------------------------------------------------------------------------

def allowed_shift_codes(pattern: ShiftPattern) -> Set[ShiftCode]:
    return set(ALLOWED_SHIFTS_BY_PATTERN[pattern])


def check_edit(
    current_code: ShiftCode,
    pattern: ShiftPattern,
    action: EditAction,
    shift_code: Optional[ShiftCode] = None,
    day: Optional[date] = None,
    physician_id: Optional[str] = None,
) -> None:
    """
    Raise if a single cell edit is not permitted.

    Raises:
        NonEditableDay:              current_code is OF, HO or N/A
        IncompatibleShiftForPattern: SET_SHIFT code not allowed for the pattern
    """
    if not current_code.is_editable:
        raise NonEditableDay(current_code.value, day=day, physician_id=physician_id)

    if action is EditAction.SET_SHIFT:
        if shift_code not in ALLOWED_SHIFTS_BY_PATTERN[pattern]:
            code_label = shift_code.value if shift_code else None
            raise IncompatibleShiftForPattern(code_label, pattern.name, physician_id=physician_id)


def validate_edits(
    edits: Iterable[CellEdit],
    roster: Roster,
    patterns: Dict[str, ShiftPattern],
) -> None:
    """
    Check every edit of a selection against the displayed roster.

    A cell missing from the roster is treated as N/A (not editable).
    A physician with no known pattern is treated as Whole Day.
    """
    for edit in edits:
        current = roster.get(edit.physician_id, {}).get(edit.date.day, ShiftCode.NOT_APPLICABLE)
        pattern = patterns.get(edit.physician_id, ShiftPattern.WHOLE_DAY)
        check_edit(
            current, pattern, edit.action, edit.shift_code,
            day=edit.date, physician_id=edit.physician_id,
        )


def editor_mode(
    current_code: ShiftCode,
    pattern: ShiftPattern,
    has_custom_shift: bool,
) -> str:
    """
    Which editor a selected cell opens: 'leave' or 'shift'.

    Whole-day physicians on a plain recurrence day can only be marked as
    leave. Everything else (multi-slot patterns, days already overridden,
    leave days) gets the shift picker.

    Raises NonEditableDay for OF / HO / N/A cells.
    """
    if not current_code.is_editable:
        raise NonEditableDay(current_code.value)
    if (pattern is ShiftPattern.WHOLE_DAY and not has_custom_shift
            and current_code is not ShiftCode.LEAVE):
        return "leave"
    return "shift"
