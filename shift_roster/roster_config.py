"""
roster_config.py — Shift Code & Rotation Configuration

SHIFT CODES
───────────
  WD  Whole Day          MS  Morning Shift      AS  Afternoon Shift
  NS  Night Shift        OF  Day Off            HO  Holiday
  LV  Leave              N/A Not available (before rotation start)

  Colours match the printed roster legend. Hours are nominal and only feed
  the workload metrics.

PATTERNS → ALLOWED MANUAL SHIFTS
────────────────────────────────
  Whole Day (1 slot)                    WD, LV
  Morning / Evening (2 slots)           MS, NS, LV
  Morning / Afternoon / Evening (3)     WD, MS, AS, NS, LV

STORE LAYOUT
────────────
  Users/{physician}/Schedule      one rotation document
  Users/{physician}/CustomShifts  one document per overridden date
  Users/{physician}/Leaves        leave intervals (inclusive)
  Holidays                        global holiday dates
"""

from typing import Any, Dict, FrozenSet

from shift_roster.models import ShiftCode, ShiftPattern


SHIFT_DEFINITIONS: Dict[ShiftCode, Dict[str, Any]] = {
    ShiftCode.WHOLE_DAY:      {"label": "Whole Day",       "color": "#2dd4bf", "hours": 12},
    ShiftCode.MORNING:        {"label": "Morning Shift",   "color": "#2563eb", "hours": 6,
                               "timing_key": "Morning"},
    ShiftCode.AFTERNOON:      {"label": "Afternoon Shift", "color": "#ea580c", "hours": 6,
                               "timing_key": "Afternoon"},
    ShiftCode.NIGHT:          {"label": "Night Shift",     "color": "#9333ea", "hours": 12,
                               "timing_key": "Evening"},
    ShiftCode.OFF:            {"label": "Day Off",         "color": "#6b7280", "hours": 0},
    ShiftCode.HOLIDAY:        {"label": "Holiday",         "color": "#ef4444", "hours": 0},
    ShiftCode.LEAVE:          {"label": "Leave",           "color": "#ca8a04", "hours": 0},
    ShiftCode.NOT_APPLICABLE: {"label": "Not available (before shift start date)",
                               "color": "#1f2937", "hours": 0},
}

# Legend order used by the table and print views
LEGEND_ORDER = [
    ShiftCode.WHOLE_DAY, ShiftCode.MORNING, ShiftCode.AFTERNOON, ShiftCode.NIGHT,
    ShiftCode.OFF, ShiftCode.HOLIDAY, ShiftCode.LEAVE, ShiftCode.NOT_APPLICABLE,
]

UNKNOWN_CODE_COLOR = "#d1d5db"
CONFLICT_FILL_COLOR = "#ffe6e6"

ALLOWED_SHIFTS_BY_PATTERN: Dict[ShiftPattern, FrozenSet[ShiftCode]] = {
    ShiftPattern.WHOLE_DAY: frozenset({ShiftCode.WHOLE_DAY, ShiftCode.LEAVE}),
    ShiftPattern.MORNING_EVENING: frozenset({ShiftCode.MORNING, ShiftCode.NIGHT, ShiftCode.LEAVE}),
    ShiftPattern.MORNING_AFTERNOON_EVENING: frozenset({
        ShiftCode.WHOLE_DAY, ShiftCode.MORNING, ShiftCode.AFTERNOON,
        ShiftCode.NIGHT, ShiftCode.LEAVE,
    }),
}

# Slot order per pattern; the recurrence walks these in sequence
PATTERN_SLOTS: Dict[ShiftPattern, tuple] = {
    ShiftPattern.WHOLE_DAY: (ShiftCode.WHOLE_DAY,),
    ShiftPattern.MORNING_EVENING: (ShiftCode.MORNING, ShiftCode.NIGHT),
    ShiftPattern.MORNING_AFTERNOON_EVENING: (ShiftCode.MORNING, ShiftCode.AFTERNOON, ShiftCode.NIGHT),
}

DEFAULT_ROTATION: Dict[str, int] = {
    "active_days": 5,
    "off_days": 2,
    "shift_slots": ShiftPattern.WHOLE_DAY.value,
    "switch_interval": 5,
}

DEFAULT_SHIFT_TIMINGS: Dict[str, Dict[str, str]] = {
    "Morning":   {"Start": "08:00", "End": "14:00"},
    "Afternoon": {"Start": "14:00", "End": "20:00"},
    "Evening":   {"Start": "20:00", "End": "08:00"},
}

# ---------------------------------------------------------------------------
# Document store layout (field names are the persisted wire names)
# ---------------------------------------------------------------------------

USERS_COLLECTION = "Users"
SCHEDULE_SUBCOLLECTION = "Schedule"
CUSTOM_SHIFTS_SUBCOLLECTION = "CustomShifts"
LEAVES_SUBCOLLECTION = "Leaves"
HOLIDAYS_COLLECTION = "Holidays"

ROTATION_FIELDS = {
    "active_days": "Active Days",
    "off_days": "Off Days",
    "shift_slots": "Shift",
    "start_date": "Shift Start",
    "switch_interval": "Shift Switch",
}

LEAVE_TYPE_MANUAL = "Manual"

# Stores that cap `in` filters (Firestore) get queries split into chunks of this size
IN_QUERY_LIMIT = 10

ITEMS_PER_PAGE = 6
PAGE_WINDOW = 5
