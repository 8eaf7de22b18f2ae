"""
exporter.py — Export & Presentation Layer for the Physician Shift Roster

Outputs:
  - CSV: physician × day grid of shift tokens
  - Excel (.xlsx): same grid, cells coloured per shift code, conflict days
    highlighted, legend sheet
  - Print view (.txt): hospital header, month title, conflict warning,
    legend and grid
  - Coverage chart (.png): working physicians per day, conflicts marked

Table helpers (month_days, paginate, page_numbers, legend_entries,
shift_tooltip) back any front end rendering the month view.

Usage:
  from shift_roster.exporter import roster_to_frame, export_roster_excel, render_print_schedule
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from shift_roster.config import physician_display_name
from shift_roster.engine import days_in_month
from shift_roster.models import Roster, ShiftCode
from shift_roster.roster_config import (
    CONFLICT_FILL_COLOR,
    ITEMS_PER_PAGE,
    LEGEND_ORDER,
    PAGE_WINDOW,
    SHIFT_DEFINITIONS,
    UNKNOWN_CODE_COLOR,
)

logger = logging.getLogger(__name__)

WEEKDAY_LABELS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")


# ---------------------------------------------------------------------------
# Table helpers
# ---------------------------------------------------------------------------

def month_days(year: int, month: int) -> List[Tuple[int, str]]:
    """[(day, weekday label)] for every day of the month."""
    return [
        (d, WEEKDAY_LABELS[date(year, month, d).weekday()])
        for d in range(1, days_in_month(year, month) + 1)
    ]


def month_title(year: int, month: int) -> str:
    return date(year, month, 1).strftime("%B %Y")


def shift_color(code: Optional[ShiftCode]) -> str:
    if code is None:
        return UNKNOWN_CODE_COLOR
    return SHIFT_DEFINITIONS.get(code, {}).get("color", UNKNOWN_CODE_COLOR)


def shift_tooltip(code: ShiftCode, timings: Optional[Dict[str, Dict[str, str]]] = None) -> str:
    """Label with the shift window when timings are known, e.g. 'Morning Shift (08:00 - 14:00)'."""
    definition = SHIFT_DEFINITIONS[code]
    key = definition.get("timing_key")
    if key and timings and key in timings:
        window = timings[key]
        return f"{definition['label']} ({window.get('Start', '?')} - {window.get('End', '?')})"
    return definition["label"]


def legend_entries(timings: Optional[Dict[str, Dict[str, str]]] = None) -> List[Dict[str, str]]:
    return [
        {
            "code": code.value,
            "label": SHIFT_DEFINITIONS[code]["label"],
            "color": SHIFT_DEFINITIONS[code]["color"],
            "tooltip": shift_tooltip(code, timings),
        }
        for code in LEGEND_ORDER
    ]


def total_pages(n_items: int, per_page: int = ITEMS_PER_PAGE) -> int:
    return max(1, -(-n_items // per_page))


def paginate(items: Sequence[Any], page: int, per_page: int = ITEMS_PER_PAGE) -> List[Any]:
    """1-based page slice; pages past the end come back empty."""
    if page < 1:
        raise ValueError(f"Page must be >= 1, got {page}")
    start = (page - 1) * per_page
    return list(items[start:start + per_page])


def page_numbers(current: int, total: int, window: int = PAGE_WINDOW) -> List[int]:
    """Page links centred on the current page, at most `window` of them."""
    start = max(1, current - window // 2)
    end = min(total, start + window - 1)
    return list(range(start, end + 1))


# ---------------------------------------------------------------------------
# DataFrame
# ---------------------------------------------------------------------------

def roster_to_frame(
    roster: Roster,
    physicians: List[Dict[str, Any]],
    year: int,
    month: int,
):
    """
    Rows = physician display names (in the given order), columns = day
    numbers, cells = shift tokens. Missing cells render as N/A.
    """
    import pandas as pd

    days = [d for d, _ in month_days(year, month)]
    rows = []
    index = []
    for p in physicians:
        row = roster.get(p["id"], {})
        rows.append([row.get(d, ShiftCode.NOT_APPLICABLE).value for d in days])
        index.append(physician_display_name(p))

    df = pd.DataFrame(rows, index=index, columns=days)
    df.index.name = "Physician"
    return df


# ---------------------------------------------------------------------------
# CSV Export
# ---------------------------------------------------------------------------

def export_roster_csv(
    roster: Roster,
    physicians: List[Dict[str, Any]],
    year: int,
    month: int,
    output_path: Path,
) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    roster_to_frame(roster, physicians, year, month).to_csv(output_path)
    logger.info(f"CSV exported → {output_path}")


# ---------------------------------------------------------------------------
# Excel Export
# ---------------------------------------------------------------------------

def export_roster_excel(
    roster: Roster,
    physicians: List[Dict[str, Any]],
    year: int,
    month: int,
    output_path: Path,
    conflicts: Iterable[int] = (),
    timings: Optional[Dict[str, Dict[str, str]]] = None,
) -> None:
    """
    Export the month grid to Excel with one sheet for the roster and one for
    the legend. Cells are filled with the shift colour; conflict day headers
    are filled red.
    """
    import pandas as pd

    output_path.parent.mkdir(parents=True, exist_ok=True)
    grid = roster_to_frame(roster, physicians, year, month)
    legend = pd.DataFrame(legend_entries(timings))

    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        grid.to_excel(writer, sheet_name="Roster")
        legend.to_excel(writer, sheet_name="Legend", index=False)
        _format_roster_sheet(writer.sheets["Roster"], year, month, set(conflicts))

    logger.info(f"Excel exported → {output_path}")


def _format_roster_sheet(ws: Any, year: int, month: int, conflicts: Set[int]) -> None:
    """Header styling, per-code fills and conflict highlighting."""
    from openpyxl.styles import Alignment, Font, PatternFill

    header_fill = PatternFill("solid", fgColor="1F4E79")
    header_font = Font(bold=True, color="FFFFFF")
    conflict_fill = PatternFill("solid", fgColor=CONFLICT_FILL_COLOR.lstrip("#"))
    conflict_font = Font(bold=True, color="FF0000")
    weekdays = dict(month_days(year, month))

    for cell in ws[1]:
        cell.alignment = Alignment(horizontal="center")
        day = cell.value if isinstance(cell.value, int) else None
        if day in conflicts:
            cell.fill = conflict_fill
            cell.font = conflict_font
        else:
            cell.fill = header_fill
            cell.font = header_font
        if day in weekdays:
            cell.value = f"{weekdays[day]} {day}"

    fills = {code.value: PatternFill("solid", fgColor=shift_color(code).lstrip("#")) for code in ShiftCode}
    white = Font(color="FFFFFF", bold=True)
    for row in ws.iter_rows(min_row=2, min_col=2):
        for cell in row:
            fill = fills.get(cell.value)
            if fill is not None:
                cell.fill = fill
                cell.font = white
            cell.alignment = Alignment(horizontal="center")

    ws.column_dimensions["A"].width = max(
        (len(str(c.value)) for c in ws["A"] if c.value), default=12
    ) + 2
    for col in ws.iter_cols(min_col=2, max_row=1):
        ws.column_dimensions[col[0].column_letter].width = 7
    ws.freeze_panes = "B2"


# ---------------------------------------------------------------------------
# Print view
# ---------------------------------------------------------------------------

def render_print_schedule(
    roster: Roster,
    physicians: List[Dict[str, Any]],
    year: int,
    month: int,
    conflicts: Iterable[int] = (),
    hospital_name: str = "Default Hospital",
    department_name: Optional[str] = None,
    timings: Optional[Dict[str, Dict[str, str]]] = None,
    metrics: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Print-ready plain-text roster.

    Conflict day columns are marked with '!' under the day number.
    """
    conflicts = sorted(set(conflicts))
    title = f"Physician Shift Schedule - {month_title(year, month)}"
    sep = "=" * 70
    lines = [sep, f"  {hospital_name}", f"  {title}"]

    if not physicians:
        lines += [sep, "", "  No physicians found for the selected criteria.", ""]
        return "\n".join(lines)

    if department_name:
        lines.append(f"  Department: {department_name}")
    if conflicts:
        lines.append(f"  Warning: No physicians available on days {', '.join(str(d) for d in conflicts)}")
    lines += [sep, "", "  Shift Legend"]
    for entry in legend_entries(timings):
        lines.append(f"    {entry['code']:<4} {entry['tooltip'].split('(')[0].strip()}")
    lines.append("")

    days = month_days(year, month)
    names = [physician_display_name(p) for p in physicians]
    name_width = max(len("Physician"), max(len(n) for n in names)) + 2

    header_days = "".join(f"{label[:2]:>4}" for _, label in days)
    header_nums = "".join(f"{d:>4}" for d, _ in days)
    marks = "".join(f"{'!' if d in conflicts else '':>4}" for d, _ in days)
    lines.append(f"{'':<{name_width}}{header_days}")
    lines.append(f"{'Physician':<{name_width}}{header_nums}")
    if conflicts:
        lines.append(f"{'':<{name_width}}{marks}")
    lines.append("-" * (name_width + 4 * len(days)))

    for p, name in zip(physicians, names):
        row = roster.get(p["id"], {})
        cells = "".join(f"{row.get(d, ShiftCode.NOT_APPLICABLE).value:>4}" for d, _ in days)
        lines.append(f"{name:<{name_width}}{cells}")

    if metrics:
        lines += [
            "",
            "-" * 70,
            f"  Working days: mean {metrics.get('mean', 0):.1f}, std {metrics.get('std', 0):.2f}, "
            f"CV {metrics.get('cv', 0):.1f}%, min {metrics.get('min', 0)}, max {metrics.get('max', 0)}",
        ]

    lines.append("")
    return "\n".join(lines)


def export_print_schedule(text: str, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text, encoding="utf-8")
    logger.info(f"Print view exported → {output_path}")


# ---------------------------------------------------------------------------
# Coverage chart
# ---------------------------------------------------------------------------

def export_coverage_chart(
    coverage: Dict[int, int],
    conflicts: Iterable[int],
    year: int,
    month: int,
    output_path: Path,
) -> None:
    """Bar chart of working physicians per day; zero-coverage days in red."""
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    output_path.parent.mkdir(parents=True, exist_ok=True)
    conflicts = set(conflicts)
    days = sorted(coverage)
    colors = ["#ef4444" if d in conflicts else "#2dd4bf" for d in days]

    fig, ax = plt.subplots(figsize=(12, 4))
    ax.bar(days, [coverage[d] for d in days], color=colors)
    for d in days:
        if d in conflicts:
            ax.annotate("!", (d, 0), ha="center", va="bottom", color="#ef4444", fontweight="bold")
    ax.set_xticks(days)
    ax.set_xlabel("Day")
    ax.set_ylabel("Working physicians")
    ax.set_title(f"Coverage - {month_title(year, month)}")
    fig.tight_layout()
    fig.savefig(output_path, dpi=120)
    plt.close(fig)
    logger.info(f"Coverage chart exported → {output_path}")
