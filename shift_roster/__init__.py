"""
Physician Shift Roster Engine

Modules:
- models: shift codes, rotation parameters, overrides, leaves, edits
- engine: recurrence calculator, overlay resolver, workload metrics
- constraints: coverage conflicts and edit preconditions
- store / firestore_client: document store contract and backends
- schedule_store: typed store access (rotation, custom shifts, leaves, holidays)
- batch: atomic multi-cell edits
- session: live month roster driven by store subscriptions
- exporter: CSV / Excel / print view / coverage chart
"""

from .models import (
    ShiftCode,
    ShiftPattern,
    RotationParameters,
    CustomShiftOverride,
    LeaveInterval,
    HolidayDate,
    EditAction,
    CellEdit,
)

from .engine import (
    compute_base_schedule,
    apply_overlay,
    compute_physician_month,
    compute_roster,
    calculate_workload_metrics,
)

from .constraints import detect_conflicts, validate_edits

from .store import InMemoryDocumentStore, JsonFileDocumentStore
from .schedule_store import ScheduleStoreAdapter
from .batch import BatchOverrideCoordinator, BatchResult
from .session import RosterSession

__all__ = [
    "ShiftCode",
    "ShiftPattern",
    "RotationParameters",
    "CustomShiftOverride",
    "LeaveInterval",
    "HolidayDate",
    "EditAction",
    "CellEdit",
    "compute_base_schedule",
    "apply_overlay",
    "compute_physician_month",
    "compute_roster",
    "calculate_workload_metrics",
    "detect_conflicts",
    "validate_edits",
    "InMemoryDocumentStore",
    "JsonFileDocumentStore",
    "ScheduleStoreAdapter",
    "BatchOverrideCoordinator",
    "BatchResult",
    "RosterSession",
]
