"""
config.py — Configuration Module for the Physician Shift Roster

Loads the physician list, the holiday calendar and shift timings from
config/. Static constants (codes, colours, defaults) live in roster_config.

physicians.csv columns:
  id, first_name, last_name, department_id, department, title (optional),
  active (optional, yes/no)

holidays.csv columns:
  date (YYYY-MM-DD), name (optional)
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from shift_roster.exceptions import ConfigurationError
from shift_roster.models import HolidayDate
from shift_roster.roster_config import (
    DEFAULT_ROTATION,
    DEFAULT_SHIFT_TIMINGS,
    IN_QUERY_LIMIT,
    ITEMS_PER_PAGE,
    LEGEND_ORDER,
    PAGE_WINDOW,
    SHIFT_DEFINITIONS,
)

logger = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_PHYSICIANS_PATH = DEFAULT_CONFIG_DIR / "physicians.csv"
DEFAULT_HOLIDAYS_PATH   = DEFAULT_CONFIG_DIR / "holidays.csv"
DEFAULT_TIMINGS_PATH    = DEFAULT_CONFIG_DIR / "shift_timings.json"

REQUIRED_PHYSICIAN_COLUMNS = ("id", "first_name", "last_name", "department_id", "department")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_yes_no(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("yes", "true", "1", "y")


def _clean(value: Any) -> str:
    if value is None or (isinstance(value, float) and value != value):
        return ""
    return str(value).strip()


# ---------------------------------------------------------------------------
# Physician loader
# ---------------------------------------------------------------------------

def load_physicians(
    physicians_path: Optional[Path] = None,
    include_inactive: bool = False,
) -> List[Dict[str, Any]]:
    """
    Load physicians from physicians.csv.

    Returns list of dicts in file order:
      {id, title, first_name, last_name, department_id, department, active}
    """
    import pandas as pd

    path = Path(physicians_path or DEFAULT_PHYSICIANS_PATH)
    if not path.exists():
        raise FileNotFoundError(f"Physicians file not found: {path}")

    df = pd.read_csv(path, dtype=str)
    missing = [c for c in REQUIRED_PHYSICIAN_COLUMNS if c not in df.columns]
    if missing:
        raise ConfigurationError(f"{path.name} is missing columns: {missing}")

    physicians: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        active = _parse_yes_no(row["active"]) if "active" in df.columns and _clean(row["active"]) else True
        if not active and not include_inactive:
            continue
        physicians.append({
            "id":            _clean(row["id"]),
            "title":         _clean(row.get("title", "")),
            "first_name":    _clean(row["first_name"]),
            "last_name":     _clean(row["last_name"]),
            "department_id": _clean(row["department_id"]),
            "department":    _clean(row["department"]),
            "active":        active,
        })

    ids = [p["id"] for p in physicians]
    if "" in ids:
        raise ConfigurationError(f"{path.name} has rows without an id")
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate physician ids in {path.name}: {duplicates}")

    logger.info(f"Loaded {len(physicians)} physicians from {path}")
    return physicians


# ---------------------------------------------------------------------------
# Holiday loader
# ---------------------------------------------------------------------------

def load_holidays(holidays_path: Optional[Path] = None) -> List[HolidayDate]:
    """Load holidays.csv. Returns [] if the file is missing."""
    import pandas as pd

    path = Path(holidays_path or DEFAULT_HOLIDAYS_PATH)
    if not path.exists():
        logger.warning(f"Holiday calendar not found: {path}. No holidays applied.")
        return []

    df = pd.read_csv(path, dtype=str)
    if "date" not in df.columns:
        raise ConfigurationError(f"{path.name} must have a 'date' column")

    holidays: List[HolidayDate] = []
    for _, row in df.iterrows():
        raw = _clean(row["date"])
        if not raw:
            continue
        parsed = pd.to_datetime(raw, errors="coerce")
        if pd.isna(parsed):
            raise ConfigurationError(f"Invalid holiday date {raw!r} in {path.name}")
        holidays.append(HolidayDate(date=parsed.date(), name=_clean(row.get("name", ""))))

    logger.info(f"Loaded {len(holidays)} holidays from {path}")
    return holidays


# ---------------------------------------------------------------------------
# Shift timings
# ---------------------------------------------------------------------------

def load_shift_timings(timings_path: Optional[Path] = None) -> Dict[str, Dict[str, str]]:
    """
    Load {"Morning": {"Start": "08:00", "End": "14:00"}, ...}.
    Missing file or missing entries fall back to the defaults.
    """
    timings = {name: dict(t) for name, t in DEFAULT_SHIFT_TIMINGS.items()}
    path = Path(timings_path or DEFAULT_TIMINGS_PATH)
    if not path.exists():
        logger.warning(f"Shift timings not found: {path}. Using defaults.")
        return timings

    with open(path) as f:
        data = json.load(f)
    for name, window in data.items():
        if not isinstance(window, dict):
            raise ConfigurationError(f"Shift timing {name!r} must be an object with Start/End")
        timings.setdefault(name, {}).update({k: str(v) for k, v in window.items()})
    return timings


# ---------------------------------------------------------------------------
# Physician filter
# ---------------------------------------------------------------------------

def physician_display_name(physician: Dict[str, Any]) -> str:
    parts = [physician.get("title", ""), physician.get("first_name", ""), physician.get("last_name", "")]
    return " ".join(p for p in parts if p)


def filter_physicians(
    physicians: List[Dict[str, Any]],
    search: Optional[str] = None,
    department_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Search matches "first last" or the department name (case-insensitive);
    department_id must match exactly. Order is preserved.
    """
    term = (search or "").strip().lower()
    selected = []
    for p in physicians:
        if department_id and p.get("department_id") != department_id:
            continue
        if term:
            full_name = f"{p.get('first_name', '')} {p.get('last_name', '')}".lower()
            if term not in full_name and term not in str(p.get("department", "")).lower():
                continue
        selected.append(p)
    return selected


# ---------------------------------------------------------------------------
# Full config dict
# ---------------------------------------------------------------------------

def get_config() -> Dict[str, Any]:
    return {
        "shift_definitions": {code.value: dict(d) for code, d in SHIFT_DEFINITIONS.items()},
        "legend_order":      [code.value for code in LEGEND_ORDER],
        "default_rotation":  DEFAULT_ROTATION.copy(),
        "shift_timings":     {k: dict(v) for k, v in DEFAULT_SHIFT_TIMINGS.items()},
        "in_query_limit":    IN_QUERY_LIMIT,
        "items_per_page":    ITEMS_PER_PAGE,
        "page_window":       PAGE_WINDOW,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    physicians = load_physicians()
    print(f"Loaded {len(physicians)} physicians")
    for p in physicians:
        print(f"  [{p['id']}] {physician_display_name(p):<28} {p['department']}")

    holidays = load_holidays()
    print(f"\nHolidays: {len(holidays)}")
    for h in holidays:
        print(f"  {h.date.isoformat()} {h.name}")
