"""
schedule_store.py — Schedule Store Adapter

Maps roster concepts onto store documents:

  Users/{pid}/Schedule      {"Active Days", "Off Days", "Shift", "Shift Start", "Shift Switch"}
  Users/{pid}/CustomShifts  {"Date", "Shift"}
  Users/{pid}/Leaves        {"StartDate", "EndDate", "Type"}
  Holidays                  {"Date", "Name"}

Dates are written as ISO strings (YYYY-MM-DD) so range filters compare
lexically; date / datetime values are accepted when reading.

A physician with no Schedule document is healed on first read: the default
rotation (5 on / 2 off, whole day, switch 5, starting today) is written and
emitted.
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from shift_roster.engine import month_bounds
from shift_roster.exceptions import InvalidParameters, RosterError, StoreUnavailable
from shift_roster.models import (
    CustomShiftOverride,
    HolidayDate,
    LeaveInterval,
    RotationParameters,
    ShiftCode,
    ShiftPattern,
)
from shift_roster.roster_config import (
    CUSTOM_SHIFTS_SUBCOLLECTION,
    DEFAULT_ROTATION,
    HOLIDAYS_COLLECTION,
    LEAVE_TYPE_MANUAL,
    LEAVES_SUBCOLLECTION,
    ROTATION_FIELDS,
    SCHEDULE_SUBCOLLECTION,
    USERS_COLLECTION,
)
from shift_roster.store import BatchWrite, Document, DocumentStore, Filter, Subscription

logger = logging.getLogger(__name__)

ErrorHandler = Callable[[RosterError], None]


# ---------------------------------------------------------------------------
# Serialisers
# ---------------------------------------------------------------------------

def parse_date(value: Any) -> date:
    """Accept 'YYYY-MM-DD' (a time suffix is ignored), date or datetime."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value.strip()[:10])
    raise ValueError(f"Not a date: {value!r}")


def _int_field(data: Dict[str, Any], key: str) -> int:
    wire = ROTATION_FIELDS[key]
    raw = data.get(wire)
    if raw is None or raw == "":
        return int(DEFAULT_ROTATION[key])
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidParameters(f"{wire} must be an integer, got {raw!r}") from None


def rotation_from_document(data: Dict[str, Any], today: date) -> RotationParameters:
    """Build RotationParameters from a Schedule document; missing fields take defaults."""
    raw_start = data.get(ROTATION_FIELDS["start_date"])
    try:
        start = parse_date(raw_start) if raw_start else today
    except ValueError:
        raise InvalidParameters(f"Invalid shift start date {raw_start!r}") from None

    return RotationParameters(
        active_days=_int_field(data, "active_days"),
        off_days=_int_field(data, "off_days"),
        shift_pattern=ShiftPattern.from_slots(_int_field(data, "shift_slots")),
        switch_interval=_int_field(data, "switch_interval"),
        start_date=start,
    )


def rotation_to_document(params: RotationParameters) -> Dict[str, Any]:
    return {
        ROTATION_FIELDS["active_days"]: params.active_days,
        ROTATION_FIELDS["off_days"]: params.off_days,
        ROTATION_FIELDS["shift_slots"]: params.shift_pattern.value,
        ROTATION_FIELDS["start_date"]: params.start_date.isoformat(),
        ROTATION_FIELDS["switch_interval"]: params.switch_interval,
    }


def custom_shift_from_document(doc: Document) -> CustomShiftOverride:
    return CustomShiftOverride(
        date=parse_date(doc.data["Date"]),
        shift_code=ShiftCode.parse(doc.data["Shift"]),
        document_id=doc.id,
    )


def custom_shift_to_document(override: CustomShiftOverride) -> Dict[str, Any]:
    return {"Date": override.date.isoformat(), "Shift": override.shift_code.value}


def leave_from_document(doc: Document) -> LeaveInterval:
    return LeaveInterval(
        start_date=parse_date(doc.data["StartDate"]),
        end_date=parse_date(doc.data["EndDate"]),
        type=str(doc.data.get("Type", LEAVE_TYPE_MANUAL)),
        document_id=doc.id,
    )


def leave_to_document(leave: LeaveInterval) -> Dict[str, Any]:
    return {
        "StartDate": leave.start_date.isoformat(),
        "EndDate": leave.end_date.isoformat(),
        "Type": leave.type,
    }


def holiday_from_document(doc: Document) -> HolidayDate:
    return HolidayDate(date=parse_date(doc.data["Date"]), name=str(doc.data.get("Name", "") or ""))


def holiday_to_document(holiday: HolidayDate) -> Dict[str, Any]:
    data: Dict[str, Any] = {"Date": holiday.date.isoformat()}
    if holiday.name:
        data["Name"] = holiday.name
    return data


def _parse_all(docs: List[Document], parser, label: str) -> list:
    """Parse documents, skipping malformed ones with a warning."""
    parsed = []
    for doc in docs:
        try:
            parsed.append(parser(doc))
        except (KeyError, ValueError) as e:
            logger.warning(f"Skipping malformed {label} document {doc.id}: {e}")
    return parsed


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class ScheduleStoreAdapter:
    """
    Typed access to rotation, custom shift, leave and holiday documents.

    Args:
        store: Any DocumentStore backend
        today: Clock used for default rotations (injectable for tests)
    """

    def __init__(self, store: DocumentStore, today: Callable[[], date] = date.today):
        self.store = store
        self.today = today

    # -----------------------------------------------------------------------
    # Paths
    # -----------------------------------------------------------------------

    @staticmethod
    def schedule_path(physician_id: str) -> str:
        return f"{USERS_COLLECTION}/{physician_id}/{SCHEDULE_SUBCOLLECTION}"

    @staticmethod
    def custom_shifts_path(physician_id: str) -> str:
        return f"{USERS_COLLECTION}/{physician_id}/{CUSTOM_SHIFTS_SUBCOLLECTION}"

    @staticmethod
    def leaves_path(physician_id: str) -> str:
        return f"{USERS_COLLECTION}/{physician_id}/{LEAVES_SUBCOLLECTION}"

    @staticmethod
    def holidays_path() -> str:
        return HOLIDAYS_COLLECTION

    # -----------------------------------------------------------------------
    # Rotation
    # -----------------------------------------------------------------------

    def _write_default_rotation(self, physician_id: str, params: RotationParameters) -> None:
        logger.info(f"No rotation stored for {physician_id}, writing default")
        self.store.add_document(self.schedule_path(physician_id), rotation_to_document(params))

    def subscribe_rotation(
        self,
        physician_id: str,
        on_params: Callable[[RotationParameters], None],
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """
        Emit the physician's rotation now and on every change.

        An empty snapshot emits the default rotation and persists it. Bad
        field values are reported through on_error as InvalidParameters.
        """
        def handle(docs: List[Document]) -> None:
            if not docs:
                params = RotationParameters.default(self.today())
                on_params(params)
                try:
                    self._write_default_rotation(physician_id, params)
                except StoreUnavailable as e:
                    if on_error is None:
                        raise
                    on_error(e)
                return
            try:
                params = rotation_from_document(docs[0].data, self.today())
            except InvalidParameters as e:
                e.physician_id = physician_id
                if on_error is None:
                    raise
                on_error(e)
                return
            on_params(params)

        return self.store.subscribe(self.schedule_path(physician_id), [], handle, on_error)

    def get_rotation(self, physician_id: str) -> RotationParameters:
        docs = self.store.query_documents(self.schedule_path(physician_id))
        if not docs:
            params = RotationParameters.default(self.today())
            self._write_default_rotation(physician_id, params)
            return params
        return rotation_from_document(docs[0].data, self.today())

    def save_rotation(self, physician_id: str, params: RotationParameters) -> str:
        """Validate and persist rotation parameters. Returns the document id."""
        params.validate()
        path = self.schedule_path(physician_id)
        data = rotation_to_document(params)
        docs = self.store.query_documents(path)
        if docs:
            self.store.set_document(path, docs[0].id, data, merge=True)
            logger.info(f"Updated rotation for {physician_id}")
            return docs[0].id
        document_id = self.store.add_document(path, data)
        logger.info(f"Created rotation for {physician_id}")
        return document_id

    # -----------------------------------------------------------------------
    # Custom shifts & leaves
    # -----------------------------------------------------------------------

    def subscribe_custom_shifts(
        self,
        physician_id: str,
        year: int,
        month: int,
        on_overrides: Callable[[List[CustomShiftOverride]], None],
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        first, last = month_bounds(year, month)
        filters = [Filter("Date", ">=", first.isoformat()), Filter("Date", "<=", last.isoformat())]

        def handle(docs: List[Document]) -> None:
            on_overrides(_parse_all(docs, custom_shift_from_document, "custom shift"))

        return self.store.subscribe(self.custom_shifts_path(physician_id), filters, handle, on_error)

    def subscribe_leaves(
        self,
        physician_id: str,
        year: int,
        month: int,
        on_leaves: Callable[[List[LeaveInterval]], None],
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        """Leaves overlapping the month: StartDate <= last day and EndDate >= first day."""
        first, last = month_bounds(year, month)
        filters = [Filter("StartDate", "<=", last.isoformat()), Filter("EndDate", ">=", first.isoformat())]

        def handle(docs: List[Document]) -> None:
            on_leaves(_parse_all(docs, leave_from_document, "leave"))

        return self.store.subscribe(self.leaves_path(physician_id), filters, handle, on_error)

    def find_custom_shifts(self, physician_id: str, dates: Iterable[date]) -> List[CustomShiftOverride]:
        """Existing custom-shift documents for the given dates (ids included)."""
        wanted = sorted({d.isoformat() for d in dates})
        if not wanted:
            return []
        docs = self.store.query_documents(
            self.custom_shifts_path(physician_id), [Filter("Date", "in", wanted)]
        )
        return _parse_all(docs, custom_shift_from_document, "custom shift")

    # -----------------------------------------------------------------------
    # Holidays
    # -----------------------------------------------------------------------

    def subscribe_holidays(
        self,
        on_holidays: Callable[[List[HolidayDate]], None],
        on_error: Optional[ErrorHandler] = None,
    ) -> Subscription:
        def handle(docs: List[Document]) -> None:
            on_holidays(_parse_all(docs, holiday_from_document, "holiday"))

        return self.store.subscribe(self.holidays_path(), [], handle, on_error)

    def seed_holidays(self, holidays: Iterable[HolidayDate]) -> int:
        """Add holidays whose date is not stored yet, in one batch. Returns count added."""
        existing = {
            h.date for h in _parse_all(
                self.store.query_documents(self.holidays_path()), holiday_from_document, "holiday"
            )
        }
        writes = []
        for holiday in holidays:
            if holiday.date in existing:
                continue
            existing.add(holiday.date)
            writes.append(BatchWrite(
                self.holidays_path(), holiday_to_document(holiday),
                document_id=self.store.new_document_id(),
            ))
        if writes:
            self.store.commit_batch(writes)
            logger.info(f"Seeded {len(writes)} holidays")
        return len(writes)
