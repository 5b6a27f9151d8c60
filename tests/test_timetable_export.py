from __future__ import annotations

import io
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pandas as pd
from openpyxl import load_workbook

from modules.timetable_ga import (
    AcademicWeek,
    Branch,
    Gene,
    Individual,
    ReferenceData,
    Room,
    RoomType,
    Subject,
    Teacher,
    TimetableProblem,
)
from utils.timetable_export import (
    branch_timetable_df,
    df_to_markdown,
    room_timetable_df,
    teacher_timetable_df,
    timetable_views,
    views_from_json,
    views_to_json,
    weekly_reports_workbook_bytes,
)


def _problem_and_schedule():
    reference = ReferenceData(
        teachers=(Teacher(teacher_id="T1", name="Ms. Kiran Dange", short="KD"),),
        subjects=(
            Subject(subject_id="S1", name="Microprocessor", code="MP"),
            Subject(subject_id="S2", name="Microprocessor Lab", code="MP-L", is_lab=True),
        ),
        rooms=(
            Room(room_id="R1", name="SCC-3", room_type=RoomType.CLASS),
            Room(room_id="L1", name="MP Lab", room_type=RoomType.LAB),
        ),
        branches=(Branch(branch_id="C1", name="CSE", semester=3, section="A"),),
    )
    week = AcademicWeek(days=("Mon", "Tue"), periods_per_day=4, lunch_period=2)
    problem = TimetableProblem(reference=reference, week=week)
    genes = (
        Gene("C1", "S1", "T1", "R1", "Tue", 3),
        Gene("C1", "S2", "T1", "L1", "Mon", 0, span_periods=2),
    )
    return problem, Individual(genes=genes, fitness=0)


def test_df_to_markdown_basic() -> None:
    df = pd.DataFrame([["A", "B"], ["C", "D"]], columns=["Col1", "Col2"])
    md = df_to_markdown(df)
    assert "| Col1 | Col2 |" in md
    assert "| A | B |" in md


def test_branch_grid_marks_lab_continuation_and_lunch() -> None:
    problem, best = _problem_and_schedule()

    df = branch_timetable_df(problem=problem, individual=best, branch_id="C1")

    assert list(df.columns) == ["DAY", "P1", "P2", "LUNCH", "P4"]
    mon = df.iloc[0].tolist()
    tue = df.iloc[1].tolist()
    assert mon == ["Mon", "MP-L / KD / MP Lab", "▸", "LUNCH", ""]
    assert tue == ["Tue", "", "", "LUNCH", "MP / KD / SCC-3"]


def test_teacher_and_room_grids_filter_genes() -> None:
    problem, best = _problem_and_schedule()

    teacher_df = teacher_timetable_df(problem=problem, individual=best, teacher_id="T1")
    room_df = room_timetable_df(problem=problem, individual=best, room_id="R1")

    assert teacher_df.iloc[0, 1] == "MP-L / KD / MP Lab"
    assert room_df.iloc[0, 1] == ""
    assert room_df.iloc[1, 4] == "MP / KD / SCC-3"


def test_views_mark_lab_blocks_explicitly_and_survive_json() -> None:
    problem, best = _problem_and_schedule()

    views = timetable_views(problem, best)
    branch = views["branchTables"]["CSE Sem-3 A"]
    assert branch["Mon"][0]["spanPeriods"] == 2
    assert branch["Mon"][1]["continuationOf"] == 0
    assert set(views["labTables"]) == {"SCC-3", "MP Lab"}

    loaded = views_from_json(views_to_json(views))
    assert loaded == views


def test_workbook_is_xlsx() -> None:
    problem, best = _problem_and_schedule()

    data = weekly_reports_workbook_bytes(problem=problem, individual=best)

    assert data[:2] == b"PK"


def test_workbook_sheet_names_stay_unique() -> None:
    reference = ReferenceData(
        teachers=(
            Teacher(teacher_id="T1", name="Ms. Kiran Dange", short="KD"),
            Teacher(teacher_id="T2", name="Mr. Kunal Deshmukh", short="KD"),
        ),
        subjects=(Subject(subject_id="S1", name="Microprocessor", code="MP"),),
        rooms=(Room(room_id="R1", name="SCC-3", room_type=RoomType.CLASS),),
        branches=(Branch(branch_id="Schedule", name="CSE"),),
    )
    problem = TimetableProblem(reference=reference, week=AcademicWeek(days=("Mon",), periods_per_day=2, lunch_period=None))
    best = Individual(genes=(Gene("Schedule", "S1", "T1", "R1", "Mon", 0),), fitness=0)

    data = weekly_reports_workbook_bytes(problem=problem, individual=best)
    names = load_workbook(io.BytesIO(data)).sheetnames

    assert names == ["Schedule", "Branch-Schedule", "Teacher-KD", "Teacher-KD-2", "Room-SCC-3"]
