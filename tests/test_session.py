"""
tests/test_session.py — Roster session: live recomputation from store
changes, conflicts over the filtered set, error isolation, stale events.
"""

import sys
from datetime import date
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from shift_roster.exceptions import (
    BatchCommitFailed,
    IncompatibleShiftForPattern,
    InvalidParameters,
    NonEditableDay,
    StoreUnavailable,
)
from shift_roster.models import CellEdit, EditAction, RotationParameters, ShiftCode, ShiftPattern
from shift_roster.schedule_store import ScheduleStoreAdapter, rotation_to_document
from shift_roster.session import RosterSession
from shift_roster.store import InMemoryDocumentStore

WD, MS, NS = ShiftCode.WHOLE_DAY, ShiftCode.MORNING, ShiftCode.NIGHT
OF, HO, LV, NA = ShiftCode.OFF, ShiftCode.HOLIDAY, ShiftCode.LEAVE, ShiftCode.NOT_APPLICABLE

PHYSICIANS = [
    {"id": "p1", "title": "Dr.", "first_name": "Amina", "last_name": "Haddad",
     "department_id": "D1", "department": "Emergency"},
    {"id": "p2", "title": "Dr.", "first_name": "Jonas", "last_name": "Berg",
     "department_id": "D2", "department": "Cardiology"},
]


def put_rotation(store, pid, params):
    store.add_document(f"Users/{pid}/Schedule", rotation_to_document(params))


@pytest.fixture
def store():
    s = InMemoryDocumentStore()
    # p1 works days 1-5, 8-12, ...; p2 works 3-7, 10-14, ...
    put_rotation(s, "p1", RotationParameters(5, 2, ShiftPattern.WHOLE_DAY, 5, date(2024, 3, 1)))
    put_rotation(s, "p2", RotationParameters(5, 2, ShiftPattern.MORNING_EVENING, 5, date(2024, 3, 3)))
    return s


@pytest.fixture
def session(store):
    s = RosterSession(ScheduleStoreAdapter(store, today=lambda: date(2024, 3, 1)))
    s.open(2024, 3, PHYSICIANS)
    yield s
    s.close()


class TestOpen:

    def test_rows_computed_on_open(self, session):
        roster = session.roster
        assert set(roster) == {"p1", "p2"}
        assert roster["p1"][1] is WD
        assert roster["p2"][1] is NA
        assert roster["p2"][3] is MS

    def test_conflicts_on_open(self, session):
        # the two rotations cover each other's off days
        assert session.conflicts == set()

    def test_default_rotation_for_new_physician(self, store):
        s = RosterSession(ScheduleStoreAdapter(store, today=lambda: date(2024, 3, 15)))
        s.open(2024, 3, PHYSICIANS + [{"id": "p3", "first_name": "New", "last_name": "Doc",
                                       "department_id": "D1", "department": "Emergency"}])
        assert s.rotation("p3") == RotationParameters.default(date(2024, 3, 15))
        assert s.roster["p3"][14] is NA
        assert s.roster["p3"][15] is WD
        assert store.collection_size("Users/p3/Schedule") == 1
        s.close()

    def test_invalid_month(self, store):
        s = RosterSession(ScheduleStoreAdapter(store))
        with pytest.raises(ValueError):
            s.open(2024, 0, PHYSICIANS)

    def test_close_unsubscribes(self, session, store):
        assert store.subscription_count == 1 + 3 * len(PHYSICIANS)
        session.close()
        assert store.subscription_count == 0
        assert session.roster == {}
        assert not session.is_open


class TestLiveUpdates:

    def test_holiday_recomputes_everyone(self, session, store):
        store.add_document("Holidays", {"Date": "2024-03-04"})
        assert session.roster["p1"][4] is HO
        assert session.roster["p2"][4] is HO
        assert 4 in session.conflicts

    def test_leave_recomputes_one_physician(self, session, store):
        store.add_document("Users/p1/Leaves", {"StartDate": "2024-03-08", "EndDate": "2024-03-09", "Type": "Annual"})
        assert session.roster["p1"][8] is LV
        assert session.roster["p1"][9] is LV
        assert session.roster["p2"][8] is OF
        assert {8, 9} <= session.conflicts

    def test_rotation_change_recomputes(self, session):
        session.adapter.save_rotation("p1", RotationParameters(7, 0, ShiftPattern.WHOLE_DAY, 5, date(2024, 3, 1)))
        assert all(code is WD for code in session.roster["p1"].values())

    def test_on_change_callback(self, store):
        seen = []
        s = RosterSession(ScheduleStoreAdapter(store), on_change=lambda sess: seen.append(len(sess.roster)))
        s.open(2024, 3, PHYSICIANS)
        count = len(seen)
        store.add_document("Holidays", {"Date": "2024-03-20"})
        assert len(seen) == count + 1
        s.close()


class TestFilter:

    def test_conflicts_follow_filter(self, session):
        session.set_filter(department_id="D2")
        # p2 alone: days 1-2 N/A, off on 8, 9
        assert {1, 2, 8, 9} <= session.conflicts
        session.set_filter(search="haddad")
        assert [p["id"] for p in session.active_physicians()] == ["p1"]
        assert {6, 7} <= session.conflicts

    def test_search_matches_department_name(self, session):
        session.set_filter(search="cardio")
        assert [p["id"] for p in session.active_physicians()] == ["p2"]

    def test_empty_selection_flags_every_day(self, session):
        session.set_filter(search="nobody")
        assert session.conflicts == set(range(1, 32))


class TestErrors:

    def test_invalid_rotation_isolated(self, store):
        store.add_document("Users/p3/Schedule", {"Active Days": 5, "Off Days": 2, "Shift Switch": 0})
        s = RosterSession(ScheduleStoreAdapter(store))
        s.open(2024, 3, PHYSICIANS + [{"id": "p3", "first_name": "Bad", "last_name": "Params",
                                       "department_id": "D1", "department": "Emergency"}])
        assert s.roster["p3"] == {}
        assert isinstance(s.errors["p3"], InvalidParameters)
        assert len(s.roster["p1"]) == 31
        s.close()

    def test_fixing_rotation_clears_error(self, store):
        store.add_document("Users/p3/Schedule", {"Shift": 9})
        s = RosterSession(ScheduleStoreAdapter(store))
        s.open(2024, 3, [{"id": "p3", "first_name": "A", "last_name": "B",
                          "department_id": "D1", "department": "Emergency"}])
        assert "p3" in s.errors
        s.adapter.save_rotation("p3", RotationParameters(5, 2, ShiftPattern.WHOLE_DAY, 5, date(2024, 3, 1)))
        assert "p3" not in s.errors
        assert s.roster["p3"][1] is WD
        s.close()

    def test_store_error_keeps_last_row(self, session):
        row = dict(session.roster["p1"])
        session._on_error(session._generation, "p1", StoreUnavailable("timeout"))
        assert session.roster["p1"] == row
        assert isinstance(session.errors["p1"], StoreUnavailable)


class TestStaleEvents:

    def test_old_generation_discarded(self, session):
        old = session._generation
        session.open(2024, 4, PHYSICIANS)
        session._on_rotation(old, "p1", RotationParameters(7, 0, ShiftPattern.WHOLE_DAY, 5, date(2024, 1, 1)))
        assert session.roster["p1"][10] is OF  # April 10 is an off day of the March rotation

    def test_unknown_physician_discarded(self, session):
        session._on_leaves(session._generation, "ghost", [])
        assert "ghost" not in session.roster

    def test_closed_session_ignores_store_changes(self, session, store):
        session.close()
        store.add_document("Holidays", {"Date": "2024-03-04"})
        assert session.roster == {}


class TestEditing:

    def test_submit_edits_updates_roster_via_store(self, session):
        result = session.submit_edits([
            CellEdit("p1", date(2024, 3, 4), EditAction.MARK_LEAVE),
            CellEdit("p2", date(2024, 3, 4), EditAction.SET_SHIFT, NS),
        ])
        assert result.write_count == 2
        assert session.roster["p1"][4] is LV
        assert session.roster["p2"][4] is NS
        assert 4 not in session.conflicts

    def test_non_editable_cell_rejected_before_write(self, session, store):
        with pytest.raises(NonEditableDay):
            session.submit_edits([
                CellEdit("p1", date(2024, 3, 4), EditAction.MARK_LEAVE),
                CellEdit("p1", date(2024, 3, 6), EditAction.MARK_LEAVE),
            ])
        assert store.collection_size("Users/p1/Leaves") == 0

    def test_incompatible_shift_rejected(self, session, store):
        with pytest.raises(IncompatibleShiftForPattern):
            session.submit_edits([CellEdit("p2", date(2024, 3, 4), EditAction.SET_SHIFT, WD)])
        assert store.collection_size("Users/p2/CustomShifts") == 0

    def test_edit_outside_open_month(self, session):
        with pytest.raises(NonEditableDay):
            session.submit_edits([CellEdit("p1", date(2024, 4, 1), EditAction.MARK_LEAVE)])

    def test_batch_failure_leaves_roster_untouched(self, store):
        class Broken(InMemoryDocumentStore):
            def commit_batch(self, writes):
                raise StoreUnavailable("write quota exceeded")

        broken = Broken({"Users/p1/Schedule": {"s": rotation_to_document(
            RotationParameters(5, 2, ShiftPattern.WHOLE_DAY, 5, date(2024, 3, 1)))}})
        s = RosterSession(ScheduleStoreAdapter(broken))
        s.open(2024, 3, PHYSICIANS[:1])
        before = s.roster
        with pytest.raises(BatchCommitFailed):
            s.submit_edits([CellEdit("p1", date(2024, 3, 4), EditAction.MARK_LEAVE)])
        assert s.roster == before
        s.close()

    def test_editor_for(self, session):
        assert session.editor_for("p1", date(2024, 3, 4)) == "leave"
        assert session.editor_for("p2", date(2024, 3, 4)) == "shift"
        with pytest.raises(NonEditableDay):
            session.editor_for("p1", date(2024, 3, 6))
