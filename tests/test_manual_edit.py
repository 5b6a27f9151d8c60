from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from modules.errors import IllegalManualMove
from modules.manual_edit import ScheduleEditor
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
    calculate_fitness,
)


MATHS = Subject(subject_id="S1", name="Maths", code="MA")
PHYSICS = Subject(subject_id="S2", name="Physics", code="PH")
DSA_LAB = Subject(subject_id="S3", name="DSA Lab", code="DSA-L")
CHEMISTRY = Subject(subject_id="S4", name="Chemistry", code="CH")


def _problem(subjects=(MATHS, PHYSICS, DSA_LAB)) -> TimetableProblem:
    reference = ReferenceData(
        teachers=tuple(Teacher(teacher_id=t, name=t, short=t) for t in ("T1", "T2", "T3")),
        subjects=subjects,
        rooms=(
            Room(room_id="R1", name="R1", room_type=RoomType.CLASS),
            Room(room_id="R2", name="R2", room_type=RoomType.CLASS),
            Room(room_id="L1", name="L1", room_type=RoomType.LAB),
        ),
        branches=(Branch(branch_id="B1", name="CSE"), Branch(branch_id="B2", name="ECE")),
    )
    return TimetableProblem(reference=reference, week=AcademicWeek(days=("Mon", "Tue"), periods_per_day=8, lunch_period=5))


def _schedule(problem: TimetableProblem) -> Individual:
    genes = (
        Gene("B1", "S1", "T1", "R1", "Mon", 0),
        Gene("B1", "S2", "T2", "R2", "Mon", 1),
        Gene("B1", "S3", "T3", "L1", "Mon", 2, span_periods=2),
        Gene("B2", "S1", "T1", "R2", "Tue", 0),
    )
    return Individual(genes=genes, fitness=calculate_fitness(problem, genes))


def _editor():
    problem = _problem()
    return problem, ScheduleEditor(problem, _schedule(problem))


def test_move_single_class_to_empty_slot() -> None:
    problem, editor = _editor()
    original = editor.individual.genes

    result = editor.move("B1", ("Mon", 0), ("Tue", 1))

    assert len(result.delta.changes) == 1
    change = result.delta.changes[0]
    assert change.index == 0
    assert (change.new.day, change.new.period) == ("Tue", 1)
    assert result.individual.genes[0] == change.new
    assert result.individual.fitness == calculate_fitness(problem, result.individual.genes)
    assert editor.individual.genes == original
    assert editor.gene_at("B1", "Tue", 1) is None
    assert ScheduleEditor(problem, result.individual).gene_at("B1", "Tue", 1) == change.new


def test_move_onto_single_class_swaps_them() -> None:
    _, editor = _editor()

    result = editor.move("B1", ("Mon", 0), ("Mon", 1))

    genes = result.individual.genes
    assert (genes[0].day, genes[0].period) == ("Mon", 1)
    assert (genes[1].day, genes[1].period) == ("Mon", 0)
    assert sorted(c.index for c in result.delta.changes) == [0, 1]


def test_single_class_cannot_land_on_lab_block() -> None:
    _, editor = _editor()

    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Mon", 0), ("Mon", 3))


def test_single_class_cannot_land_on_lab_sharing_its_cell() -> None:
    # lab enumerated first, so the lecture overlapping its second period is the
    # later gene in that cell
    problem = _problem(subjects=(DSA_LAB, MATHS, PHYSICS))
    genes = (
        Gene("B1", "S3", "T3", "L1", "Mon", 2, span_periods=2),
        Gene("B1", "S1", "T1", "R1", "Mon", 3),
        Gene("B1", "S2", "T2", "R2", "Tue", 0),
    )
    editor = ScheduleEditor(problem, Individual(genes=genes, fitness=calculate_fitness(problem, genes)))

    with pytest.raises(IllegalManualMove, match="lab block"):
        editor.move("B1", ("Tue", 0), ("Mon", 3))


def test_single_class_cannot_land_on_cell_holding_two_classes() -> None:
    problem = _problem(subjects=(MATHS, PHYSICS, CHEMISTRY))
    genes = (
        Gene("B1", "S1", "T1", "R1", "Mon", 0),
        Gene("B1", "S2", "T2", "R2", "Mon", 0),
        Gene("B1", "S4", "T3", "R1", "Tue", 1),
    )
    editor = ScheduleEditor(problem, Individual(genes=genes, fitness=calculate_fitness(problem, genes)))

    with pytest.raises(IllegalManualMove, match="more than one class"):
        editor.move("B1", ("Tue", 1), ("Mon", 0))


def test_swap_rejected_when_displaced_class_clashes_at_source() -> None:
    problem = _problem()
    genes = (
        Gene("B1", "S1", "T1", "R1", "Mon", 0),
        Gene("B1", "S2", "T2", "R1", "Mon", 1),
        # T2 already teaches B2 in the slot the displaced class would take
        Gene("B2", "S1", "T2", "R2", "Mon", 0),
    )
    editor = ScheduleEditor(problem, Individual(genes=genes, fitness=calculate_fitness(problem, genes)))

    with pytest.raises(IllegalManualMove, match="Teacher T2"):
        editor.move("B1", ("Mon", 0), ("Mon", 1))


def test_single_class_cannot_land_on_lunch() -> None:
    _, editor = _editor()

    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Mon", 1), ("Mon", 5))


def test_lab_moves_as_a_two_period_block() -> None:
    _, editor = _editor()

    # addressed through its second period
    result = editor.move("B1", ("Mon", 3), ("Tue", 2))

    lab = result.individual.genes[2]
    assert (lab.day, lab.period, lab.span_periods) == ("Tue", 2, 2)
    assert list(lab.occupied_periods()) == [2, 3]


@pytest.mark.parametrize(
    "target",
    [
        ("Tue", 4),  # would cover lunch
        ("Tue", 5),  # starts at lunch
        ("Tue", 7),  # runs past the end of the day
        ("Mon", 0),  # occupied
        ("Mon", 3),  # overlaps itself, still occupied
    ],
)
def test_lab_rejected_targets(target) -> None:
    _, editor = _editor()

    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Mon", 2), target)


def test_empty_source_is_rejected() -> None:
    _, editor = _editor()

    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Tue", 6), ("Tue", 7))


def test_unknown_day_or_period_is_rejected() -> None:
    _, editor = _editor()

    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Mon", 0), ("Sat", 0))
    with pytest.raises(IllegalManualMove):
        editor.move("B1", ("Mon", 0), ("Tue", 8))


def test_move_creating_teacher_clash_is_rejected() -> None:
    _, editor = _editor()

    # T1 already teaches B2 on Tue period 0
    with pytest.raises(IllegalManualMove, match="Teacher T1"):
        editor.move("B1", ("Mon", 0), ("Tue", 0))


def test_move_creating_room_clash_is_rejected() -> None:
    _, editor = _editor()

    # R2 already hosts B2 on Tue period 0
    with pytest.raises(IllegalManualMove, match="Room R2"):
        editor.move("B1", ("Mon", 1), ("Tue", 0))


def test_move_creating_same_subject_day_is_rejected() -> None:
    problem = _problem()
    genes = (
        Gene("B1", "S1", "T1", "R1", "Mon", 0),
        Gene("B1", "S1", "T2", "R2", "Tue", 1),
    )
    editor = ScheduleEditor(problem, Individual(genes=genes, fitness=calculate_fitness(problem, genes)))

    with pytest.raises(IllegalManualMove, match="Subject S1"):
        editor.move("B1", ("Tue", 1), ("Mon", 2))


def test_move_to_same_slot_is_a_no_op() -> None:
    _, editor = _editor()

    result = editor.move("B1", ("Mon", 1), ("Mon", 1))

    assert result.delta.is_empty
    assert result.individual is editor.individual
