"""Weekly branch timetable generation with a genetic algorithm.

This module assigns a teacher, a room, a day and a period to every subject of
every branch (class/section) and searches for the assignment with the fewest
clashes using the reusable GA engine from `optimizer.genetic`.

Data model
----------
We schedule "genes". A gene is one weekly session of a subject for a branch.
There is exactly one gene per (branch, subject) pair, emitted in a fixed
`branches x subjects` order so that crossover can mix parents position by
position.

Lab subjects occupy two contiguous periods. The gene carries
`span_periods=2` and starts at a period `p` such that `p` and `p+1` are both
inside the day and neither is the lunch period. No gene ever touches lunch;
that is enforced structurally by the initializer and mutation, not by a
penalty.

Hard constraints (heavy penalties)
----------------------------------
- A teacher cannot teach 2 genes in the same (day, period)       -> 1000 each
- A room cannot host 2 genes in the same (day, period)            -> 800 each
- A branch should not see the same subject twice on one day       -> 50 each

Soft constraints (small penalties)
----------------------------------
- Every branch should cover all subjects                           -> 10 per gap
- Labs should sit mid-day (not first period, not last two)         -> 20 each
- Optional: teacher daily limit (`Teacher.max_per_day`), disabled by default

Fitness is an integer; lower is better and 0 means no modelled violation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import json
import logging
import random
from pathlib import Path

from modules.errors import InsufficientInputData, NoRoomAvailable, SchedulingError
from optimizer import GAConfig, evolve


logger = logging.getLogger(__name__)

LAB_NAME_PATTERN = "lab"
LAB_SPAN_PERIODS = 2
CONTINUATION_MARK = "▸"


# ----------------------------
# Data models
# ----------------------------


class RoomType(str, Enum):
    CLASS = "CLASS"
    LAB = "LAB"


@dataclass(frozen=True)
class Teacher:
    teacher_id: str
    name: str
    short: str = ""
    max_per_day: Optional[int] = None


@dataclass(frozen=True)
class Subject:
    subject_id: str
    name: str
    code: str = ""
    # None => decide by name/code (see is_lab_subject)
    is_lab: Optional[bool] = None


@dataclass(frozen=True)
class Room:
    room_id: str
    name: str
    room_type: RoomType = RoomType.CLASS


@dataclass(frozen=True)
class Branch:
    branch_id: str
    name: str = ""
    semester: Optional[int] = None
    section: str = ""

    @property
    def display_name(self) -> str:
        parts = [self.name or self.branch_id]
        if self.semester is not None:
            parts.append(f"Sem-{self.semester}")
        if self.section:
            parts.append(self.section)
        return " ".join(parts)


def is_lab_subject(subject: Subject) -> bool:
    """Explicit flag wins; otherwise a case-insensitive "lab" in name or code."""

    if subject.is_lab is not None:
        return bool(subject.is_lab)
    return LAB_NAME_PATTERN in (subject.name or "").lower() or LAB_NAME_PATTERN in (subject.code or "").lower()


def required_room_type(subject: Subject) -> RoomType:
    return RoomType.LAB if is_lab_subject(subject) else RoomType.CLASS


def room_matches(room: Room, subject: Subject) -> bool:
    return (room.room_type == RoomType.LAB) == is_lab_subject(subject)


def session_span(subject: Subject) -> int:
    return LAB_SPAN_PERIODS if is_lab_subject(subject) else 1


@dataclass(frozen=True)
class AcademicWeek:
    days: Tuple[str, ...] = ("Mon", "Tue", "Wed", "Thu", "Fri")
    periods_per_day: int = 8
    lunch_period: Optional[int] = 5  # 0-indexed
    # Optional display labels, one per period (e.g. "08:30-09:20")
    period_labels: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.days:
            raise ValueError("AcademicWeek needs at least one day")
        if len(set(self.days)) != len(self.days):
            raise ValueError("AcademicWeek days must be unique")
        if int(self.periods_per_day) < 1:
            raise ValueError("periods_per_day must be >= 1")
        if self.lunch_period is not None and not 0 <= int(self.lunch_period) < int(self.periods_per_day):
            raise ValueError("lunch_period must be inside the day")
        if self.period_labels and len(self.period_labels) != int(self.periods_per_day):
            raise ValueError("period_labels length must equal periods_per_day")

    def is_lunch(self, period: int) -> bool:
        return self.lunch_period is not None and int(period) == int(self.lunch_period)

    def teaching_periods(self) -> Tuple[int, ...]:
        return tuple(p for p in range(int(self.periods_per_day)) if not self.is_lunch(p))

    def lab_start_periods(self, span: int = LAB_SPAN_PERIODS) -> Tuple[int, ...]:
        """Start periods where `span` contiguous periods fit without touching lunch."""

        return tuple(
            p
            for p in range(int(self.periods_per_day) - span + 1)
            if not any(self.is_lunch(q) for q in range(p, p + span))
        )

    def start_periods(self, span: int) -> Tuple[int, ...]:
        return self.teaching_periods() if span <= 1 else self.lab_start_periods(span)

    def label(self, period: int) -> str:
        if self.period_labels:
            return str(self.period_labels[period])
        if self.is_lunch(period):
            return "LUNCH"
        return f"P{period + 1}"


@dataclass(frozen=True)
class ReferenceData:
    """Read-only reference lists supplied by the caller for one run."""

    teachers: Tuple[Teacher, ...] = ()
    subjects: Tuple[Subject, ...] = ()
    rooms: Tuple[Room, ...] = ()
    branches: Tuple[Branch, ...] = ()

    _teacher_by_id: Dict[str, Teacher] = field(init=False, repr=False, compare=False)
    _subject_by_id: Dict[str, Subject] = field(init=False, repr=False, compare=False)
    _room_by_id: Dict[str, Room] = field(init=False, repr=False, compare=False)
    _branch_by_id: Dict[str, Branch] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        for name in ("teachers", "subjects", "rooms", "branches"):
            object.__setattr__(self, name, tuple(getattr(self, name)))

        object.__setattr__(self, "_teacher_by_id", _index("teacher", self.teachers, lambda t: t.teacher_id))
        object.__setattr__(self, "_subject_by_id", _index("subject", self.subjects, lambda s: s.subject_id))
        object.__setattr__(self, "_room_by_id", _index("room", self.rooms, lambda r: r.room_id))
        object.__setattr__(self, "_branch_by_id", _index("branch", self.branches, lambda b: b.branch_id))

    def teacher(self, teacher_id: str) -> Teacher:
        return self._teacher_by_id[teacher_id]

    def subject(self, subject_id: str) -> Subject:
        return self._subject_by_id[subject_id]

    def room(self, room_id: str) -> Room:
        return self._room_by_id[room_id]

    def branch(self, branch_id: str) -> Branch:
        return self._branch_by_id[branch_id]

    def rooms_of_type(self, room_type: RoomType) -> Tuple[Room, ...]:
        return tuple(r for r in self.rooms if r.room_type == room_type)

    def missing(self) -> Tuple[str, ...]:
        """Names of the reference lists that are empty."""

        return tuple(
            name for name in ("teachers", "subjects", "rooms", "branches") if not getattr(self, name)
        )


def _index(kind: str, items: Sequence[Any], key: Callable[[Any], str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for item in items:
        k = key(item)
        if k in out:
            raise ValueError(f"Duplicate {kind} id: {k}")
        out[k] = item
    return out


@dataclass(frozen=True)
class TimetableProblem:
    reference: ReferenceData
    week: AcademicWeek = field(default_factory=AcademicWeek)


@dataclass(frozen=True)
class FitnessWeights:
    # Hard
    teacher_clash: int = 1000
    room_clash: int = 800
    subject_repeat: int = 50

    # Soft
    coverage_gap: int = 10
    lab_edge_period: int = 20

    # Per period above Teacher.max_per_day on one day (0 disables)
    teacher_daily_overload: int = 0


# ----------------------------
# State representation
# ----------------------------


@dataclass(frozen=True)
class Gene:
    branch_id: str
    subject_id: str
    teacher_id: str
    room_id: str
    day: str
    period: int  # 0-indexed start period
    span_periods: int = 1

    def occupied_periods(self) -> range:
        return range(int(self.period), int(self.period) + int(self.span_periods))


@dataclass
class Individual:
    genes: Tuple[Gene, ...]
    fitness: int = 0


# ----------------------------
# Validation
# ----------------------------


def validate_problem(problem: TimetableProblem) -> None:
    """Fail fast before any population is built."""

    ref = problem.reference
    missing = ref.missing()
    if missing:
        raise InsufficientInputData(missing)

    for subj in ref.subjects:
        rtype = required_room_type(subj)
        if not ref.rooms_of_type(rtype):
            raise NoRoomAvailable(subj.subject_id, rtype.value)
        if not problem.week.start_periods(session_span(subj)):
            raise SchedulingError(
                f"No {session_span(subj)}-period window outside lunch for subject {subj.subject_id}",
                details={"subject_id": subj.subject_id},
            )


# ----------------------------
# Fitness / metrics
# ----------------------------


def count_violations(problem: TimetableProblem, genes: Sequence[Gene]) -> Dict[str, int]:
    """Raw violation counts, before weighting."""

    ref = problem.reference
    periods_per_day = int(problem.week.periods_per_day)
    lab_ids = {s.subject_id for s in ref.subjects if is_lab_subject(s)}

    teacher_occ: Counter = Counter()  # (day, period, teacher_id)
    room_occ: Counter = Counter()  # (day, period, room_id)
    subject_day: Counter = Counter()  # (branch_id, day, subject_id)
    teacher_day_load: Counter = Counter()  # (teacher_id, day)
    scheduled: Dict[str, set[str]] = {b.branch_id: set() for b in ref.branches}
    lab_edge = 0

    for g in genes:
        for p in g.occupied_periods():
            teacher_occ[(g.day, p, g.teacher_id)] += 1
            room_occ[(g.day, p, g.room_id)] += 1
            teacher_day_load[(g.teacher_id, g.day)] += 1

        # a lab block counts once, not once per period
        subject_day[(g.branch_id, g.day, g.subject_id)] += 1
        scheduled.setdefault(g.branch_id, set()).add(g.subject_id)

        if g.subject_id in lab_ids and (g.period == 0 or g.period >= periods_per_day - 2):
            lab_edge += 1

    coverage_gap = sum(len(ref.subjects) - len(scheduled[b.branch_id]) for b in ref.branches)

    limits = {t.teacher_id: int(t.max_per_day) for t in ref.teachers if t.max_per_day is not None}
    overload = 0
    for (tid, _day), load in teacher_day_load.items():
        limit = limits.get(tid)
        if limit is not None and load > limit:
            overload += load - limit

    return {
        "teacher_conflicts": sum(c - 1 for c in teacher_occ.values() if c > 1),
        "room_conflicts": sum(c - 1 for c in room_occ.values() if c > 1),
        "subject_repeats": sum(c - 1 for c in subject_day.values() if c > 1),
        "coverage_gap": coverage_gap,
        "lab_edge_placements": lab_edge,
        "teacher_daily_overload": overload,
    }


def calculate_fitness(
    problem: TimetableProblem,
    genes: Sequence[Gene],
    weights: FitnessWeights = FitnessWeights(),
) -> int:
    counts = count_violations(problem, genes)
    return int(
        weights.teacher_clash * counts["teacher_conflicts"]
        + weights.room_clash * counts["room_conflicts"]
        + weights.subject_repeat * counts["subject_repeats"]
        + weights.coverage_gap * counts["coverage_gap"]
        + weights.lab_edge_period * counts["lab_edge_placements"]
        + weights.teacher_daily_overload * counts["teacher_daily_overload"]
    )


def evaluate_schedule(
    problem: TimetableProblem,
    genes: Sequence[Gene],
    weights: FitnessWeights = FitnessWeights(),
) -> Dict[str, float]:
    counts = count_violations(problem, genes)
    metrics: Dict[str, float] = {k: float(v) for k, v in counts.items()}
    metrics["fitness"] = float(calculate_fitness(problem, genes, weights))
    metrics["total_genes"] = float(len(genes))
    metrics["total_occupied_periods"] = float(sum(int(g.span_periods) for g in genes))
    return metrics


# ----------------------------
# Initial population / operators
# ----------------------------


def _random_slot(week: AcademicWeek, span: int, rng: random.Random) -> Tuple[str, int]:
    starts = week.start_periods(span)
    if not starts:
        raise SchedulingError(f"No {span}-period window outside lunch")
    return rng.choice(week.days), rng.choice(starts)


def create_random_individual(
    problem: TimetableProblem,
    rng: random.Random,
    weights: FitnessWeights = FitnessWeights(),
) -> Individual:
    """One random schedule. Clashes are left for the search to resolve."""

    ref = problem.reference
    missing = ref.missing()
    if missing:
        raise InsufficientInputData(missing)

    rooms_by_type = {rt: ref.rooms_of_type(rt) for rt in RoomType}

    genes: List[Gene] = []
    for branch in ref.branches:
        for subj in ref.subjects:
            teacher = rng.choice(ref.teachers)
            rtype = required_room_type(subj)
            candidates = rooms_by_type[rtype]
            if not candidates:
                raise NoRoomAvailable(subj.subject_id, rtype.value)
            room = rng.choice(candidates)
            span = session_span(subj)
            day, period = _random_slot(problem.week, span, rng)
            genes.append(
                Gene(
                    branch_id=branch.branch_id,
                    subject_id=subj.subject_id,
                    teacher_id=teacher.teacher_id,
                    room_id=room.room_id,
                    day=day,
                    period=period,
                    span_periods=span,
                )
            )

    genes_t = tuple(genes)
    return Individual(genes=genes_t, fitness=calculate_fitness(problem, genes_t, weights))


def mutate(
    problem: TimetableProblem,
    individual: Individual,
    rng: random.Random,
    rate: float = 0.1,
    weights: FitnessWeights = FitnessWeights(),
) -> Individual:
    """Copy `individual`, moving each gene to a random slot with probability `rate`.

    Teacher and room are kept. The input is not modified.
    """

    if not 0.0 <= float(rate) <= 1.0:
        raise ValueError("mutation rate must be between 0 and 1")

    genes = list(individual.genes)
    for i, g in enumerate(genes):
        if rng.random() < rate:
            day, period = _random_slot(problem.week, int(g.span_periods), rng)
            genes[i] = replace(g, day=day, period=period)

    genes_t = tuple(genes)
    return Individual(genes=genes_t, fitness=calculate_fitness(problem, genes_t, weights))


def crossover(
    problem: TimetableProblem,
    a: Individual,
    b: Individual,
    rng: random.Random,
    weights: FitnessWeights = FitnessWeights(),
) -> Individual:
    """Uniform crossover: each position comes from `a` or `b` with equal probability."""

    if len(a.genes) != len(b.genes):
        raise ValueError("crossover parents must have the same number of genes")

    child: List[Gene] = []
    for ga, gb in zip(a.genes, b.genes):
        if (ga.branch_id, ga.subject_id) != (gb.branch_id, gb.subject_id):
            raise ValueError(
                f"crossover parents are misaligned: {ga.branch_id}/{ga.subject_id} vs {gb.branch_id}/{gb.subject_id}"
            )
        child.append(ga if rng.random() < 0.5 else gb)

    genes_t = tuple(child)
    return Individual(genes=genes_t, fitness=calculate_fitness(problem, genes_t, weights))


# ----------------------------
# Solve
# ----------------------------


def solve_timetable(
    problem: TimetableProblem,
    config: GAConfig = GAConfig(),
    weights: FitnessWeights = FitnessWeights(),
    callback=None,
) -> Tuple[Individual, Dict[str, float]]:
    validate_problem(problem)
    ref = problem.reference
    logger.info(
        "Solving timetable: %d branches x %d subjects, %d teachers, %d rooms, %d days x %d periods",
        len(ref.branches),
        len(ref.subjects),
        len(ref.teachers),
        len(ref.rooms),
        len(problem.week.days),
        problem.week.periods_per_day,
    )

    def create(rng: random.Random) -> Individual:
        return create_random_individual(problem, rng, weights)

    def cross(a: Individual, b: Individual, rng: random.Random) -> Individual:
        return crossover(problem, a, b, rng, weights)

    def mut(ind: Individual, rate: float, rng: random.Random) -> Individual:
        return mutate(problem, ind, rng, rate, weights)

    def fit(ind: Individual) -> int:
        return ind.fitness

    result = evolve(create=create, crossover=cross, mutate=mut, fitness=fit, config=config, callback=callback)

    best = result.best
    metrics = evaluate_schedule(problem, best.genes, weights)
    metrics["best_generation"] = float(result.best_generation)
    metrics["generations_run"] = float(result.generations_run)
    metrics["stopped_early"] = float(result.stopped_early)

    return best, metrics


def run(
    teachers: Sequence[Teacher],
    subjects: Sequence[Subject],
    rooms: Sequence[Room],
    branches: Sequence[Branch],
    population_size: int = 30,
    generations: int = 100,
    mutation_rate: float = 0.1,
    *,
    week: Optional[AcademicWeek] = None,
    seed: Optional[int] = None,
    weights: FitnessWeights = FitnessWeights(),
) -> Individual:
    """Find the best schedule for the given reference lists."""

    problem = TimetableProblem(
        reference=ReferenceData(teachers=teachers, subjects=subjects, rooms=rooms, branches=branches),
        week=week or AcademicWeek(),
    )
    config = GAConfig(
        population_size=population_size,
        generations=generations,
        mutation_rate=mutation_rate,
        seed=seed,
    )
    best, _metrics = solve_timetable(problem, config=config, weights=weights)
    return best


# ----------------------------
# JSON input
# ----------------------------


def _lunch_from_labels(labels: Sequence[str]) -> Optional[int]:
    for i, label in enumerate(labels):
        if "lunch" in str(label).lower():
            return i
    return None


def week_from_dict(raw: Mapping[str, Any]) -> AcademicWeek:
    defaults = AcademicWeek()
    labels = tuple(str(x) for x in (raw.get("period_labels") or ()))
    periods = int(raw.get("periods_per_day") or len(labels) or defaults.periods_per_day)
    if "lunch_period" in raw:
        lunch = raw["lunch_period"]
        lunch = None if lunch is None else int(lunch)
    elif labels:
        lunch = _lunch_from_labels(labels)
    else:
        lunch = defaults.lunch_period

    kwargs: Dict[str, Any] = {"periods_per_day": periods, "lunch_period": lunch, "period_labels": labels}
    if raw.get("days"):
        kwargs["days"] = tuple(str(d) for d in raw["days"])
    return AcademicWeek(**kwargs)


def timetable_problem_from_dict(raw: Mapping[str, Any]) -> TimetableProblem:
    """Build a problem from records shaped like the reference-data provider's rows."""

    teachers = tuple(
        Teacher(
            teacher_id=str(t["id"]),
            name=str(t.get("name", "")),
            short=str(t.get("short", "")),
            max_per_day=int(t["maxPerDay"]) if t.get("maxPerDay") is not None else None,
        )
        for t in raw.get("teachers", [])
    )
    subjects = tuple(
        Subject(
            subject_id=str(s["id"]),
            name=str(s.get("name", "")),
            code=str(s.get("code", "")),
            is_lab=bool(s["isLab"]) if s.get("isLab") is not None else None,
        )
        for s in raw.get("subjects", [])
    )
    rooms = tuple(
        Room(
            room_id=str(r["id"]),
            name=str(r.get("name", "")),
            room_type=RoomType(str(r.get("type", "CLASS")).upper()),
        )
        for r in raw.get("rooms", [])
    )
    branches = tuple(
        Branch(
            branch_id=str(b["id"]),
            name=str(b.get("branch") or b.get("name") or ""),
            semester=int(b["semester"]) if b.get("semester") is not None else None,
            section=str(b.get("section", "")),
        )
        for b in raw.get("branches", [])
    )

    return TimetableProblem(
        reference=ReferenceData(teachers=teachers, subjects=subjects, rooms=rooms, branches=branches),
        week=week_from_dict(raw.get("week") or {}),
    )


def ga_config_from_dict(raw: Mapping[str, Any]) -> GAConfig:
    defaults = GAConfig()
    return GAConfig(
        population_size=int(raw.get("population_size", defaults.population_size)),
        generations=int(raw.get("generations", defaults.generations)),
        mutation_rate=float(raw.get("mutation_rate", defaults.mutation_rate)),
        seed=raw.get("seed", defaults.seed),
        time_limit_seconds=raw.get("time_limit_seconds", defaults.time_limit_seconds),
        workers=int(raw.get("workers", defaults.workers)),
    )


def load_timetable_problem_from_json(path: Union[str, Path]) -> TimetableProblem:
    """Load a `TimetableProblem` from a JSON file."""

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return timetable_problem_from_dict(raw)
