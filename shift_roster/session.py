"""
session.py — Roster view session

Owns every live subscription for one displayed month:

  holidays                         (once per session)
  rotation / custom shifts / leaves (per physician)

Any change recomputes the affected physician's row (recurrence + overlay)
and then the coverage conflicts over the currently filtered physicians.
Opening a new month bumps a generation token; callbacks carrying an older
token are dropped so a late snapshot from the previous month never lands in
the current roster.

Usage:
  session = RosterSession(ScheduleStoreAdapter(store))
  session.open(2024, 3, physicians)
  session.roster, session.conflicts, session.errors
  session.submit_edits([CellEdit(...)])
  session.close()
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from shift_roster.batch import BatchOverrideCoordinator, BatchResult
from shift_roster.config import filter_physicians
from shift_roster.constraints import detect_conflicts, editor_mode, validate_edits
from shift_roster.engine import compute_physician_month, days_in_month
from shift_roster.exceptions import InvalidParameters, NonEditableDay, RosterError
from shift_roster.models import (
    CellEdit,
    CustomShiftOverride,
    HolidayDate,
    LeaveInterval,
    Roster,
    RotationParameters,
    ShiftCode,
    ShiftPattern,
)
from shift_roster.schedule_store import ScheduleStoreAdapter
from shift_roster.store import Subscription

logger = logging.getLogger(__name__)


@dataclass
class PhysicianState:
    params: Optional[RotationParameters] = None
    custom_shifts: List[CustomShiftOverride] = field(default_factory=list)
    leaves: List[LeaveInterval] = field(default_factory=list)
    subscriptions: List[Subscription] = field(default_factory=list)


class RosterSession:
    """
    Live month roster for a set of physicians.

    Args:
        adapter:     Schedule store adapter
        coordinator: Batch coordinator (defaults to one on the same adapter)
        on_change:   Called with the session after every recomputation
    """

    def __init__(
        self,
        adapter: ScheduleStoreAdapter,
        coordinator: Optional[BatchOverrideCoordinator] = None,
        on_change: Optional[Callable[["RosterSession"], None]] = None,
    ):
        self.adapter = adapter
        self.coordinator = coordinator or BatchOverrideCoordinator(adapter)
        self.on_change = on_change

        self.year: Optional[int] = None
        self.month: Optional[int] = None
        self._generation = 0
        self._physicians: Dict[str, Dict[str, Any]] = {}
        self._states: Dict[str, PhysicianState] = {}
        self._holidays: List[HolidayDate] = []
        self._holiday_subscription: Optional[Subscription] = None

        self._roster: Roster = {}
        self._errors: Dict[str, RosterError] = {}
        self._conflicts: Set[int] = set()
        self._search: Optional[str] = None
        self._department_id: Optional[str] = None

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self.year is not None

    def open(self, year: int, month: int, physicians: Iterable[Dict[str, Any]]) -> None:
        """Subscribe to everything needed to display (year, month)."""
        days_in_month(year, month)
        self.close()
        self._generation += 1
        generation = self._generation
        self.year, self.month = year, month
        self._physicians = {p["id"]: p for p in physicians}
        self._states = {pid: PhysicianState() for pid in self._physicians}

        logger.info(f"Opening roster {year}-{month:02d} for {len(self._physicians)} physicians")
        self._holiday_subscription = self.adapter.subscribe_holidays(
            partial(self._on_holidays, generation),
            partial(self._on_error, generation, None),
        )
        for pid in self._physicians:
            state = self._states[pid]
            on_error = partial(self._on_error, generation, pid)
            state.subscriptions.append(self.adapter.subscribe_rotation(
                pid, partial(self._on_rotation, generation, pid), on_error))
            state.subscriptions.append(self.adapter.subscribe_custom_shifts(
                pid, year, month, partial(self._on_custom_shifts, generation, pid), on_error))
            state.subscriptions.append(self.adapter.subscribe_leaves(
                pid, year, month, partial(self._on_leaves, generation, pid), on_error))

        self._recompute_conflicts()
        self._emit()

    def close(self) -> None:
        """Unsubscribe everything and drop the computed roster."""
        if self._holiday_subscription is not None:
            self._holiday_subscription.unsubscribe()
            self._holiday_subscription = None
        count = 0
        for state in self._states.values():
            for sub in state.subscriptions:
                sub.unsubscribe()
                count += 1
        if self.is_open:
            logger.info(f"Closed roster {self.year}-{self.month:02d} ({count} physician subscriptions)")
        self._generation += 1
        self.year = self.month = None
        self._physicians = {}
        self._states = {}
        self._holidays = []
        self._roster = {}
        self._errors = {}
        self._conflicts = set()

    # -----------------------------------------------------------------------
    # Subscription callbacks
    # -----------------------------------------------------------------------

    def _is_current(self, generation: int, physician_id: Optional[str] = None) -> bool:
        if generation != self._generation:
            logger.debug(f"Discarding stale event (generation {generation}, current {self._generation})")
            return False
        if physician_id is not None and physician_id not in self._states:
            logger.debug(f"Discarding event for unknown physician {physician_id}")
            return False
        return True

    def _on_rotation(self, generation: int, physician_id: str, params: RotationParameters) -> None:
        if not self._is_current(generation, physician_id):
            return
        self._states[physician_id].params = params
        self._refresh(physician_id)

    def _on_custom_shifts(self, generation: int, physician_id: str, overrides: List[CustomShiftOverride]) -> None:
        if not self._is_current(generation, physician_id):
            return
        self._states[physician_id].custom_shifts = overrides
        self._refresh(physician_id)

    def _on_leaves(self, generation: int, physician_id: str, leaves: List[LeaveInterval]) -> None:
        if not self._is_current(generation, physician_id):
            return
        self._states[physician_id].leaves = leaves
        self._refresh(physician_id)

    def _on_holidays(self, generation: int, holidays: List[HolidayDate]) -> None:
        if not self._is_current(generation):
            return
        self._holidays = holidays
        for pid in self._states:
            self._recompute_physician(pid)
        self._recompute_conflicts()
        self._emit()

    def _on_error(self, generation: int, physician_id: Optional[str], error: RosterError) -> None:
        if not self._is_current(generation, physician_id):
            return
        key = physician_id or "*"
        if isinstance(error, InvalidParameters):
            error.physician_id = physician_id
            logger.warning(f"Invalid rotation for {physician_id}: {error}")
            self._states[physician_id].params = None
            self._roster[physician_id] = {}
        else:
            # Keep the last good row
            logger.error(f"Store error for {key}: {error}")
        self._errors[key] = error
        self._recompute_conflicts()
        self._emit()

    # -----------------------------------------------------------------------
    # Recomputation
    # -----------------------------------------------------------------------

    def _refresh(self, physician_id: str) -> None:
        self._recompute_physician(physician_id)
        self._recompute_conflicts()
        self._emit()

    def _recompute_physician(self, physician_id: str) -> None:
        state = self._states[physician_id]
        if state.params is None:
            return
        try:
            self._roster[physician_id] = compute_physician_month(
                state.params, self.year, self.month,
                state.custom_shifts, state.leaves, self._holidays,
            )
            self._errors.pop(physician_id, None)
        except InvalidParameters as e:
            e.physician_id = physician_id
            logger.warning(f"Cannot compute schedule for {physician_id}: {e}")
            self._roster[physician_id] = {}
            self._errors[physician_id] = e

    def _recompute_conflicts(self) -> None:
        if not self.is_open:
            self._conflicts = set()
            return
        active_ids = [p["id"] for p in self.active_physicians()]
        self._conflicts = detect_conflicts(self._roster, active_ids, days_in_month(self.year, self.month))

    def _emit(self) -> None:
        if self.on_change is not None:
            self.on_change(self)

    # -----------------------------------------------------------------------
    # Filter
    # -----------------------------------------------------------------------

    def set_filter(self, search: Optional[str] = None, department_id: Optional[str] = None) -> None:
        self._search = search
        self._department_id = department_id
        self._recompute_conflicts()
        self._emit()

    def active_physicians(self) -> List[Dict[str, Any]]:
        return filter_physicians(list(self._physicians.values()), self._search, self._department_id)

    # -----------------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------------

    @property
    def roster(self) -> Roster:
        return {pid: dict(row) for pid, row in self._roster.items()}

    @property
    def conflicts(self) -> Set[int]:
        return set(self._conflicts)

    @property
    def errors(self) -> Dict[str, RosterError]:
        return dict(self._errors)

    @property
    def holidays(self) -> List[HolidayDate]:
        return list(self._holidays)

    def physicians(self) -> List[Dict[str, Any]]:
        return list(self._physicians.values())

    def rotation(self, physician_id: str) -> Optional[RotationParameters]:
        state = self._states.get(physician_id)
        return state.params if state else None

    def patterns(self) -> Dict[str, ShiftPattern]:
        return {pid: s.params.shift_pattern for pid, s in self._states.items() if s.params is not None}

    def cell(self, physician_id: str, day: int) -> ShiftCode:
        return self._roster.get(physician_id, {}).get(day, ShiftCode.NOT_APPLICABLE)

    # -----------------------------------------------------------------------
    # Editing
    # -----------------------------------------------------------------------

    def editor_for(self, physician_id: str, day: date) -> str:
        """'leave' or 'shift' for a clicked cell; raises NonEditableDay."""
        state = self._states.get(physician_id)
        pattern = state.params.shift_pattern if state and state.params else ShiftPattern.WHOLE_DAY
        has_custom = bool(state) and any(o.date == day for o in state.custom_shifts)
        return editor_mode(self.cell(physician_id, day.day), pattern, has_custom)

    def submit_edits(self, edits: Iterable[CellEdit]) -> BatchResult:
        """
        Validate a selection against the displayed roster and commit it.

        Raises NonEditableDay / IncompatibleShiftForPattern before any write,
        BatchCommitFailed if the store rejects the batch.
        """
        if not self.is_open:
            raise RosterError("Roster session is not open")
        edits = list(edits)
        for edit in edits:
            if (edit.date.year, edit.date.month) != (self.year, self.month):
                raise NonEditableDay(ShiftCode.NOT_APPLICABLE.value, day=edit.date, physician_id=edit.physician_id)
        validate_edits(edits, self._roster, self.patterns())
        return self.coordinator.apply_batch(edits)
