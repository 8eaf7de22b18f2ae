"""
batch.py — Batch Override Coordinator

Turns a multi-cell selection into one atomic store commit:

  MARK_LEAVE (pid, day)       → new Leaves doc {StartDate = EndDate = day, Type = "Manual"}
  SET_SHIFT  (pid, day, code) → existing CustomShifts doc for that day updated in place,
                                otherwise a new one

Either every write lands or none does. The coordinator never touches the
displayed roster; the store's change notifications drive recomputation.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Tuple

from shift_roster.exceptions import BatchCommitFailed, StoreUnavailable
from shift_roster.models import CellEdit, CustomShiftOverride, EditAction, LeaveInterval
from shift_roster.roster_config import LEAVE_TYPE_MANUAL
from shift_roster.schedule_store import (
    ScheduleStoreAdapter,
    custom_shift_to_document,
    leave_to_document,
)
from shift_roster.store import BatchWrite

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    physician_ids: List[str] = field(default_factory=list)
    leaves_added: int = 0
    overrides_inserted: int = 0
    overrides_updated: int = 0

    @property
    def write_count(self) -> int:
        return self.leaves_added + self.overrides_inserted + self.overrides_updated

    def __str__(self) -> str:
        return (
            f"{self.write_count} writes for {len(self.physician_ids)} physicians "
            f"(leaves={self.leaves_added}, inserted={self.overrides_inserted}, "
            f"updated={self.overrides_updated})"
        )


class BatchOverrideCoordinator:
    """Apply manual edits through a ScheduleStoreAdapter's store."""

    def __init__(self, adapter: ScheduleStoreAdapter):
        self.adapter = adapter

    def _existing_overrides(self, edits: List[CellEdit]) -> Dict[Tuple[str, date], str]:
        """(physician_id, date) → document id of the stored custom shift."""
        dates_by_physician: Dict[str, set] = defaultdict(set)
        for edit in edits:
            if edit.action is EditAction.SET_SHIFT:
                dates_by_physician[edit.physician_id].add(edit.date)

        existing: Dict[Tuple[str, date], str] = {}
        for physician_id, dates in dates_by_physician.items():
            for override in self.adapter.find_custom_shifts(physician_id, dates):
                existing[(physician_id, override.date)] = override.document_id
        return existing

    def build_writes(self, edits: List[CellEdit]) -> Tuple[List[BatchWrite], BatchResult]:
        """Translate edits into store writes without committing anything."""
        store = self.adapter.store
        existing = self._existing_overrides(edits)
        writes: List[BatchWrite] = []
        pending: Dict[Tuple[str, date], BatchWrite] = {}
        result = BatchResult()

        for edit in edits:
            if edit.physician_id not in result.physician_ids:
                result.physician_ids.append(edit.physician_id)

            if edit.action is EditAction.MARK_LEAVE:
                leave = LeaveInterval(edit.date, edit.date, type=LEAVE_TYPE_MANUAL)
                writes.append(BatchWrite(
                    self.adapter.leaves_path(edit.physician_id),
                    leave_to_document(leave),
                    document_id=store.new_document_id(),
                ))
                result.leaves_added += 1
                continue

            key = (edit.physician_id, edit.date)
            code = edit.shift_code.value
            if key in pending:
                # Same cell twice in one selection: last code wins
                pending[key].data["Shift"] = code
                continue

            path = self.adapter.custom_shifts_path(edit.physician_id)
            if key in existing:
                write = BatchWrite(path, {"Shift": code}, document_id=existing[key], merge=True)
                result.overrides_updated += 1
            else:
                override = CustomShiftOverride(edit.date, edit.shift_code)
                write = BatchWrite(path, custom_shift_to_document(override), document_id=store.new_document_id())
                result.overrides_inserted += 1
            pending[key] = write
            writes.append(write)

        return writes, result

    def apply_batch(self, edits: Iterable[CellEdit]) -> BatchResult:
        """
        Persist all edits in one atomic commit.

        Raises:
            BatchCommitFailed: lookup or commit failed; nothing was persisted
        """
        edits = list(edits)
        if not edits:
            logger.info("Empty batch, nothing to commit")
            return BatchResult()

        try:
            writes, result = self.build_writes(edits)
            self.adapter.store.commit_batch(writes)
        except StoreUnavailable as e:
            logger.error(f"Batch of {len(edits)} edits failed: {e}")
            raise BatchCommitFailed(f"Could not save {len(edits)} edits: {e}", edit_count=len(edits)) from e

        logger.info(f"Committed batch: {result}")
        return result
