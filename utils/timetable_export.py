from __future__ import annotations

import io
import json
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from modules.timetable_ga import CONTINUATION_MARK, Gene, Individual, TimetableProblem


def _safe_sheet_name(name: str) -> str:
    """Excel sheet names: max 31 chars, cannot contain: `: \\ / ? * [ ]`."""

    bad = [":", "\\", "/", "?", "*", "[", "]"]
    out = str(name or "Sheet")
    for b in bad:
        out = out.replace(b, "-")
    out = out.strip() or "Sheet"
    return out[:31]


def _unique_sheet_name(name: str, used: set) -> str:
    """Safe sheet name not yet in `used` (compared case-insensitively, as Excel does)."""

    base = _safe_sheet_name(name)
    out = base
    n = 2
    while out.lower() in used:
        suffix = f"-{n}"
        out = base[: 31 - len(suffix)] + suffix
        n += 1
    used.add(out.lower())
    return out


def _lookup(getter: Callable[[str], Any], key: str) -> Optional[Any]:
    try:
        return getter(key)
    except KeyError:
        return None


def gene_cell(problem: TimetableProblem, gene: Gene) -> Dict[str, str]:
    """Display fields for one gene; unknown ids fall back to the raw id."""

    ref = problem.reference
    subj = _lookup(ref.subject, gene.subject_id)
    teacher = _lookup(ref.teacher, gene.teacher_id)
    room = _lookup(ref.room, gene.room_id)
    return {
        "subjectCode": (subj.code or subj.subject_id) if subj else gene.subject_id,
        "subjectName": subj.name if subj else "",
        "teacherShort": (teacher.short or teacher.teacher_id) if teacher else gene.teacher_id,
        "teacherName": teacher.name if teacher else "",
        "room": (room.name or room.room_id) if room else gene.room_id,
    }


def _gene_label(problem: TimetableProblem, gene: Gene) -> str:
    cell = gene_cell(problem, gene)
    return f"{cell['subjectCode']} / {cell['teacherShort']} / {cell['room']}"


def format_timetable(
    problem: TimetableProblem,
    individual: Individual,
    include: Callable[[Gene], bool],
) -> List[List[str]]:
    """Return a table (rows=days, cols=periods).

    The first period of a gene holds its label and later periods of a lab block
    hold a continuation mark. Lunch cells read "LUNCH". Clashing genes in one
    cell are joined with "; ".
    """

    week = problem.week
    day_row = {d: i for i, d in enumerate(week.days)}
    periods = int(week.periods_per_day)

    table = [["LUNCH" if week.is_lunch(p) else "" for p in range(periods)] for _ in week.days]

    for g in individual.genes:
        if not include(g) or g.day not in day_row:
            continue
        row = table[day_row[g.day]]
        label = _gene_label(problem, g)
        for p in g.occupied_periods():
            if not 0 <= p < periods:
                continue
            text = label if p == g.period else CONTINUATION_MARK
            if row[p] and row[p] != "LUNCH":
                row[p] = f"{row[p]}; {text}"
            else:
                row[p] = text

    return table


def _timetable_df_from_table(problem: TimetableProblem, table: List[List[str]]) -> pd.DataFrame:
    columns = [problem.week.label(p) for p in range(int(problem.week.periods_per_day))]
    df = pd.DataFrame(table, columns=columns)
    df.insert(0, "DAY", list(problem.week.days))
    return df


def branch_timetable_df(*, problem: TimetableProblem, individual: Individual, branch_id: str) -> pd.DataFrame:
    """Per-branch (class) timetable."""

    table = format_timetable(problem, individual, lambda g: g.branch_id == branch_id)
    return _timetable_df_from_table(problem, table)


def teacher_timetable_df(*, problem: TimetableProblem, individual: Individual, teacher_id: str) -> pd.DataFrame:
    """Individual teacher timetable."""

    table = format_timetable(problem, individual, lambda g: g.teacher_id == teacher_id)
    return _timetable_df_from_table(problem, table)


def room_timetable_df(*, problem: TimetableProblem, individual: Individual, room_id: str) -> pd.DataFrame:
    """Room / lab occupancy timetable."""

    table = format_timetable(problem, individual, lambda g: g.room_id == room_id)
    return _timetable_df_from_table(problem, table)


def schedule_rows_df(*, problem: TimetableProblem, individual: Individual) -> pd.DataFrame:
    rows = []
    for g in individual.genes:
        cell = gene_cell(problem, g)
        rows.append(
            {
                "branch_id": g.branch_id,
                "subject_id": g.subject_id,
                "subject_code": cell["subjectCode"],
                "teacher_id": g.teacher_id,
                "room_id": g.room_id,
                "day": g.day,
                "period": int(g.period) + 1,
                "end_period": int(g.period) + int(g.span_periods),
                "span_periods": int(g.span_periods),
            }
        )
    return pd.DataFrame(rows)


# ----------------------------
# Nested views (save / load)
# ----------------------------


def timetable_views(problem: TimetableProblem, individual: Individual) -> Dict[str, Dict[str, Any]]:
    """Group genes into branch, teacher and room views.

    Shape: {view: {display key: {day: {period: cell}}}}. The start cell of a lab
    carries `spanPeriods`; the following cell carries `continuationOf` with the
    start period.
    """

    ref = problem.reference
    views: Dict[str, Dict[str, Any]] = {"branchTables": {}, "teacherTables": {}, "labTables": {}}

    for g in individual.genes:
        cell = gene_cell(problem, g)
        branch = _lookup(ref.branch, g.branch_id)
        keys = {
            "branchTables": branch.display_name if branch else g.branch_id,
            "teacherTables": cell["teacherShort"],
            "labTables": cell["room"],
        }
        for view, key in keys.items():
            day_cells = views[view].setdefault(key, {}).setdefault(g.day, {})
            for p in g.occupied_periods():
                payload = dict(cell)
                if p == g.period:
                    payload["spanPeriods"] = int(g.span_periods)
                else:
                    payload["continuationOf"] = int(g.period)
                day_cells[p] = payload

    return views


def views_to_json(views: Dict[str, Dict[str, Any]]) -> str:
    return json.dumps(views, indent=2, ensure_ascii=False)


def views_from_json(text: str) -> Dict[str, Dict[str, Any]]:
    """Parse saved views; JSON object keys come back as strings so periods are re-keyed to int."""

    raw = json.loads(text)
    out: Dict[str, Dict[str, Any]] = {}
    for view in ("branchTables", "teacherTables", "labTables"):
        tables = raw.get(view) or {}
        out[view] = {
            key: {day: {int(p): cell for p, cell in (periods or {}).items()} for day, periods in (days or {}).items()}
            for key, days in tables.items()
        }
    return out


# ----------------------------
# Reports
# ----------------------------


def weekly_reports_workbook_bytes(*, problem: TimetableProblem, individual: Individual) -> bytes:
    """Build a multi-sheet Excel workbook.

    Includes:
    - One sheet listing every scheduled class
    - One sheet per branch
    - One sheet per teacher
    - One sheet per room / lab
    """

    # Pandas uses openpyxl to write .xlsx by default.
    out = io.BytesIO()
    ref = problem.reference

    used: set = set()

    with pd.ExcelWriter(out, engine="openpyxl") as writer:
        schedule_rows_df(problem=problem, individual=individual).to_excel(
            writer, sheet_name=_unique_sheet_name("Schedule", used), index=False
        )

        for b in ref.branches:
            df = branch_timetable_df(problem=problem, individual=individual, branch_id=b.branch_id)
            header_df = pd.DataFrame(
                [["BRANCH", b.name], ["SEMESTER", b.semester], ["SECTION", b.section]],
                columns=["Field", "Value"],
            )
            sheet = _unique_sheet_name(f"Branch-{b.branch_id}", used)
            header_df.to_excel(writer, sheet_name=sheet, index=False, startrow=0)
            df.to_excel(writer, sheet_name=sheet, index=False, startrow=len(header_df) + 2)

        for t in ref.teachers:
            df = teacher_timetable_df(problem=problem, individual=individual, teacher_id=t.teacher_id)
            df.to_excel(writer, sheet_name=_unique_sheet_name(f"Teacher-{t.short or t.teacher_id}", used), index=False)

        for r in ref.rooms:
            df = room_timetable_df(problem=problem, individual=individual, room_id=r.room_id)
            df.to_excel(writer, sheet_name=_unique_sheet_name(f"Room-{r.name or r.room_id}", used), index=False)

    return out.getvalue()


def df_to_markdown(df: pd.DataFrame) -> str:
    """Convert DataFrame to a GitHub-flavored Markdown table."""

    # pandas to_markdown requires tabulate; avoid extra dependency.
    cols = list(df.columns)
    rows = df.astype(str).values.tolist()

    def esc(s: str) -> str:
        return str(s).replace("\n", " ").replace("|", "\\|")

    header = "| " + " | ".join(esc(c) for c in cols) + " |"
    sep = "| " + " | ".join(["---"] * len(cols)) + " |"
    body = ["| " + " | ".join(esc(v) for v in r) + " |" for r in rows]
    return "\n".join([header, sep] + body) + "\n"
