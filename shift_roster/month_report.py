"""
month_report.py — Month Roster Report (physician shift schedule)

Full orchestration:
  1. Load physicians, holidays and shift timings from config/
  2. Open the document store and import the holiday calendar
  3. Open a roster session for the month (rotation, custom shifts, leaves)
  4. Apply requested edits as one validated, atomic batch
  5. Check coverage (days with no working physician) and workload
  6. Export CSV, Excel, print view, violations report (+ optional chart)

Usage:
  python -m shift_roster.month_report --month 2024-03 --store data/store.json
  python -m shift_roster.month_report --month 2024-03 --store data/store.json \\
      --department D1 --mark-leave p1:12 --set-shift p2:14:NS --visual
"""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shift_roster.config import load_holidays, load_physicians, load_shift_timings
from shift_roster.constraints import (
    ConstraintSeverity,
    ConstraintViolation,
    conflict_violations,
    coverage_by_day,
)
from shift_roster.engine import calculate_workload_metrics, days_in_month, parse_month
from shift_roster.exceptions import InvalidParameters, RosterError
from shift_roster.exporter import (
    export_coverage_chart,
    export_print_schedule,
    export_roster_csv,
    export_roster_excel,
    month_title,
    render_print_schedule,
)
from shift_roster.models import CellEdit, EditAction, ShiftCode
from shift_roster.schedule_store import ScheduleStoreAdapter
from shift_roster.session import RosterSession
from shift_roster.store import JsonFileDocumentStore

logger = logging.getLogger(__name__)

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
DEFAULT_STORE_PATH = PROJECT_ROOT / "data" / "store.json"


# ---------------------------------------------------------------------------
# Edit arguments
# ---------------------------------------------------------------------------

def _edit_day(year: int, month: int, raw: str) -> date:
    try:
        day = int(raw)
    except ValueError:
        raise ValueError(f"Day must be a number, got {raw!r}") from None
    if not 1 <= day <= days_in_month(year, month):
        raise ValueError(f"Day {day} is outside {year}-{month:02d}")
    return date(year, month, day)


def parse_edits(
    year: int,
    month: int,
    mark_leave: Iterable[str] = (),
    set_shift: Iterable[str] = (),
) -> List[CellEdit]:
    """
    Parse CLI edit tokens.

      mark_leave: "PID:DAY"
      set_shift:  "PID:DAY:CODE"   (CODE in WD, MS, AS, NS, LV)
    """
    edits: List[CellEdit] = []
    for token in mark_leave:
        parts = token.rsplit(":", 1)
        if len(parts) != 2 or not parts[0]:
            raise ValueError(f"--mark-leave expects PID:DAY, got {token!r}")
        edits.append(CellEdit(parts[0], _edit_day(year, month, parts[1]), EditAction.MARK_LEAVE))
    for token in set_shift:
        parts = token.rsplit(":", 2)
        if len(parts) != 3 or not parts[0]:
            raise ValueError(f"--set-shift expects PID:DAY:CODE, got {token!r}")
        edits.append(CellEdit(
            parts[0], _edit_day(year, month, parts[1]), EditAction.SET_SHIFT, ShiftCode.parse(parts[2]),
        ))
    return edits


def _error_violations(errors: Dict[str, RosterError]) -> List[ConstraintViolation]:
    violations = []
    for pid, error in sorted(errors.items()):
        kind = "INVALID_PARAMETERS" if isinstance(error, InvalidParameters) else "STORE_ERROR"
        violations.append(ConstraintViolation(
            severity=ConstraintSeverity.HARD,
            constraint_type=kind,
            description=str(error),
            physician=pid,
        ))
    return violations


# ---------------------------------------------------------------------------
# Main orchestrator
# ---------------------------------------------------------------------------

def run_month_report(
    year: int,
    month: int,
    store_path: Path = DEFAULT_STORE_PATH,
    physicians_path: Optional[Path] = None,
    holidays_path: Optional[Path] = None,
    timings_path: Optional[Path] = None,
    output_dir: Path = OUTPUTS_DIR,
    department_id: Optional[str] = None,
    search: Optional[str] = None,
    edits: Optional[List[CellEdit]] = None,
    hospital_name: str = "Default Hospital",
    visual: bool = False,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Build, optionally edit, and export the roster for one month.

    Args:
        year, month:     Month to display (1-based month)
        store_path:      JSON document store file (created if missing)
        department_id:   Restrict the displayed physicians to one department
        search:          Name / department-name search
        edits:           Cell edits committed as one batch before export
        today:           Start date for default rotations (defaults to today)

    Returns:
        Dict with roster, conflicts, errors, metrics, batch result, output paths

    Raises:
        NonEditableDay / IncompatibleShiftForPattern / BatchCommitFailed on edits
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = f"roster_{year}-{month:02d}"
    sep = "=" * 70

    print(f"\n{sep}")
    print(f"  MONTH ROSTER: {month_title(year, month)}")
    print(f"  Store: {store_path}")
    print(f"{sep}\n")

    # ── 1. Load configuration ──────────────────────────────────────────────
    print("Step 1/6: Loading configuration...")
    physicians = load_physicians(physicians_path)
    holidays   = load_holidays(holidays_path)
    timings    = load_shift_timings(timings_path)
    print(f"  ✓ {len(physicians)} physicians | {len(holidays)} holidays | {len(timings)} shift windows")

    # ── 2. Open store ──────────────────────────────────────────────────────
    print("\nStep 2/6: Opening document store...")
    store = JsonFileDocumentStore(Path(store_path))
    adapter = ScheduleStoreAdapter(store, today=(lambda: today) if today else date.today)
    added = adapter.seed_holidays(holidays)
    print(f"  ✓ Store ready | {added} new holidays imported")

    # ── 3. Open session ────────────────────────────────────────────────────
    print("\nStep 3/6: Computing month roster...")
    session = RosterSession(adapter)
    session.open(year, month, physicians)
    session.set_filter(search=search, department_id=department_id)
    shown = session.active_physicians()
    print(f"  ✓ {len(session.roster)} rows computed | {len(shown)} physicians shown")
    for pid, error in session.errors.items():
        print(f"  ⚠ {pid}: {error}")

    # ── 4. Apply edits ─────────────────────────────────────────────────────
    print("\nStep 4/6: Applying edits...")
    batch = None
    if edits:
        try:
            batch = session.submit_edits(edits)
        except RosterError:
            session.close()
            raise
        print(f"  ✓ {batch}")
    else:
        print("  ✓ No edits requested")

    # ── 5. Coverage & workload ─────────────────────────────────────────────
    print("\nStep 5/6: Checking coverage...")
    roster    = session.roster
    conflicts = session.conflicts
    errors    = session.errors
    shown_ids = [p["id"] for p in shown]
    coverage  = coverage_by_day(roster, shown_ids, days_in_month(year, month))
    metrics   = calculate_workload_metrics(roster, shown_ids)
    violations = conflict_violations(conflicts, year, month) + _error_violations(errors)

    status = "✓" if not conflicts else "✗"
    print(f"  {status} Coverage gaps: {len(conflicts)}" + (f" (days {sorted(conflicts)})" if conflicts else ""))
    print(f"    Working days: mean {metrics['mean']:.1f} | CV {metrics['cv']:.1f}%")

    # ── 6. Export ──────────────────────────────────────────────────────────
    print("\nStep 6/6: Exporting outputs...")
    csv_path        = output_dir / f"{prefix}.csv"
    xlsx_path       = output_dir / f"{prefix}.xlsx"
    print_path      = output_dir / f"{prefix}_print.txt"
    violations_path = output_dir / f"{prefix}_violations.txt"
    metrics_path    = output_dir / f"{prefix}_workload.json"

    department_name = None
    if department_id:
        department_name = next(
            (p["department"] for p in physicians if p["department_id"] == department_id),
            "All Departments",
        )

    export_roster_csv(roster, shown, year, month, csv_path)
    export_roster_excel(roster, shown, year, month, xlsx_path, conflicts=conflicts, timings=timings)
    export_print_schedule(
        render_print_schedule(
            roster, shown, year, month,
            conflicts=conflicts,
            hospital_name=hospital_name,
            department_name=department_name,
            timings=timings,
            metrics=metrics,
        ),
        print_path,
    )

    with open(metrics_path, "w") as f:
        json.dump({
            "month": f"{year}-{month:02d}",
            "conflicts": sorted(conflicts),
            "coverage": {str(d): n for d, n in coverage.items()},
            "mean": metrics["mean"],
            "std": metrics["std"],
            "cv": metrics["cv"],
            "counts": metrics["counts"],
            "hours": metrics["hours"],
        }, f, indent=2)

    hard = [v for v in violations if v.severity is ConstraintSeverity.HARD]
    soft = [v for v in violations if v.severity is ConstraintSeverity.SOFT]
    with open(violations_path, "w") as f:
        f.write("=== Roster Issues ===\n\n")
        f.write(f"HARD ({len(hard)}):\n")
        for v in hard:
            f.write(f"  {v}\n")
        f.write(f"\nSOFT ({len(soft)}):\n")
        for v in soft:
            f.write(f"  {v}\n")

    print(f"  ✓ CSV:        {csv_path.name}")
    print(f"  ✓ Excel:      {xlsx_path.name}")
    print(f"  ✓ Print view: {print_path.name}")
    print(f"  ✓ Workload:   {metrics_path.name}")
    print(f"  ✓ Issues:     {violations_path.name}")

    chart_path = None
    if visual:
        chart_path = output_dir / f"{prefix}_coverage.png"
        export_coverage_chart(coverage, conflicts, year, month, chart_path)
        print(f"  ✓ Visual  → {chart_path.name}")

    # ── Summary ────────────────────────────────────────────────────────────
    print(f"\n{sep}")
    print("  SUMMARY")
    print(f"{sep}")
    print(f"  Month:             {month_title(year, month)}")
    print(f"  Physicians shown:  {len(shown)}")
    print(f"  Coverage gaps:     {len(conflicts)}  {status}")
    print(f"  Physician errors:  {len(errors)}")
    print(f"  Working days:      min {metrics['min']} / max {metrics['max']}")
    print(f"\n{sep}\n")

    session.close()

    return {
        "roster":     roster,
        "conflicts":  conflicts,
        "errors":     errors,
        "metrics":    metrics,
        "batch":      batch,
        "violations": violations,
        "outputs": {
            "csv":        csv_path,
            "excel":      xlsx_path,
            "print":      print_path,
            "workload":   metrics_path,
            "violations": violations_path,
            "chart":      chart_path,
        },
    }


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    parser = argparse.ArgumentParser(
        description="Compute, edit and export a month of the physician shift roster"
    )
    parser.add_argument("--month",       required=True, help="Month YYYY-MM")
    parser.add_argument("--store",       default=None,  help="JSON store file (default: data/store.json)")
    parser.add_argument("--physicians",  default=None,  help="Physicians CSV (default: config/physicians.csv)")
    parser.add_argument("--holidays",    default=None,  help="Holidays CSV (default: config/holidays.csv)")
    parser.add_argument("--timings",     default=None,  help="Shift timings JSON (default: config/shift_timings.json)")
    parser.add_argument("--department",  default=None,  help="Only show this department id")
    parser.add_argument("--search",      default=None,  help="Filter by physician or department name")
    parser.add_argument("--mark-leave",  action="append", default=[], metavar="PID:DAY",
                        help="Mark a day as leave (repeatable)")
    parser.add_argument("--set-shift",   action="append", default=[], metavar="PID:DAY:CODE",
                        help="Set a custom shift WD/MS/AS/NS/LV (repeatable)")
    parser.add_argument("--hospital",    default="Default Hospital", help="Hospital name for the print view")
    parser.add_argument("--output-dir",  default=None,  help="Output directory (default: outputs/)")
    parser.add_argument("--visual",      action="store_true", help="Generate coverage chart (matplotlib)")
    args = parser.parse_args(argv)

    try:
        year, month = parse_month(args.month)
        edits = parse_edits(year, month, args.mark_leave, args.set_shift)
    except ValueError as e:
        print(f"Invalid arguments: {e}")
        sys.exit(1)

    try:
        run_month_report(
            year, month,
            store_path=Path(args.store) if args.store else DEFAULT_STORE_PATH,
            physicians_path=Path(args.physicians) if args.physicians else None,
            holidays_path=Path(args.holidays) if args.holidays else None,
            timings_path=Path(args.timings) if args.timings else None,
            output_dir=Path(args.output_dir) if args.output_dir else OUTPUTS_DIR,
            department_id=args.department,
            search=args.search,
            edits=edits,
            hospital_name=args.hospital,
            visual=args.visual,
        )
    except RosterError as e:
        print(f"\n  ✗ {type(e).__name__}: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
