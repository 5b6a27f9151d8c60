"""Manual timetable edits (drag a cell to another slot).

An editor front-end lets a user move one class of a branch timetable to a
different (day, period). Before the move is accepted we re-check the same rules
the GA optimizes for:

- a one-period class may go to an empty slot, or swap with another one-period
  class of the same branch; it may never land on part of a two-period lab block
  or on a cell that already holds more than one class
- a two-period lab needs both the target period and the next one inside the
  day, neither of them lunch, and both currently empty for the branch
- the moved class(es) must not create a teacher clash, a room clash or a
  second occurrence of the same subject on that day for the branch

`ScheduleEditor` indexes one schedule snapshot so each check is a handful of
dictionary lookups. It never mutates the snapshot; an accepted move returns a
new `Individual` plus the list of replaced genes.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

import logging

from modules.errors import IllegalManualMove
from modules.timetable_ga import FitnessWeights, Gene, Individual, TimetableProblem, calculate_fitness


logger = logging.getLogger(__name__)

Slot = Tuple[str, int]  # (day, 0-indexed period)


@dataclass(frozen=True)
class GeneChange:
    index: int
    old: Gene
    new: Gene


@dataclass(frozen=True)
class MoveDelta:
    changes: Tuple[GeneChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.changes


@dataclass(frozen=True)
class MoveResult:
    individual: Individual
    delta: MoveDelta


class ScheduleEditor:
    """Validates and applies manual moves against one schedule snapshot."""

    def __init__(
        self,
        problem: TimetableProblem,
        individual: Individual,
        weights: FitnessWeights = FitnessWeights(),
    ):
        self.problem = problem
        self.individual = individual
        self.weights = weights

        # (branch_id, day, period) -> gene indices covering that cell
        self._cells: Dict[Tuple[str, str, int], List[int]] = {}
        # (day, period, teacher_id) / (day, period, room_id) -> gene indices
        self._teacher_slots: Dict[Tuple[str, int, str], List[int]] = {}
        self._room_slots: Dict[Tuple[str, int, str], List[int]] = {}
        # (branch_id, day, subject_id) -> gene indices
        self._subject_days: Dict[Tuple[str, str, str], List[int]] = {}

        for i, g in enumerate(individual.genes):
            for p in g.occupied_periods():
                self._cells.setdefault((g.branch_id, g.day, p), []).append(i)
                self._teacher_slots.setdefault((g.day, p, g.teacher_id), []).append(i)
                self._room_slots.setdefault((g.day, p, g.room_id), []).append(i)
            self._subject_days.setdefault((g.branch_id, g.day, g.subject_id), []).append(i)

    def occupant(self, branch_id: str, day: str, period: int) -> Optional[int]:
        """Index of the gene shown in a branch cell (the last one if several overlap)."""

        indices = self._cells.get((branch_id, day, int(period)))
        return indices[-1] if indices else None

    def gene_at(self, branch_id: str, day: str, period: int) -> Optional[Gene]:
        idx = self.occupant(branch_id, day, period)
        return None if idx is None else self.individual.genes[idx]

    def _check_slot(self, day: str, period: int) -> None:
        week = self.problem.week
        if day not in week.days:
            raise IllegalManualMove(f"Unknown day {day!r}", details={"day": day})
        if not 0 <= int(period) < int(week.periods_per_day):
            raise IllegalManualMove(f"Period {period} is outside the day", details={"period": period})

    def move(self, branch_id: str, source: Slot, target: Slot) -> MoveResult:
        """Move the class at `source` to `target` for one branch.

        Raises:
            IllegalManualMove: when the move would break a rule. The snapshot is
                left unchanged.
        """

        src_day, src_period = source[0], int(source[1])
        dst_day, dst_period = target[0], int(target[1])
        self._check_slot(src_day, src_period)
        self._check_slot(dst_day, dst_period)

        week = self.problem.week
        genes = self.individual.genes

        idx = self.occupant(branch_id, src_day, src_period)
        if idx is None:
            raise IllegalManualMove(
                f"No class at {src_day} period {src_period} for branch {branch_id}",
                details={"branch_id": branch_id, "source": [src_day, src_period]},
            )
        gene = genes[idx]

        moved: List[Tuple[int, Gene]] = []
        if gene.span_periods > 1:
            periods = range(dst_period, dst_period + int(gene.span_periods))
            if periods[-1] >= int(week.periods_per_day):
                raise IllegalManualMove("Lab block does not fit before the end of the day")
            if any(week.is_lunch(p) for p in periods):
                raise IllegalManualMove("Lab block cannot overlap lunch")
            if any(self._cells.get((branch_id, dst_day, p)) for p in periods):
                raise IllegalManualMove("Lab block needs two empty periods")
            moved.append((idx, replace(gene, day=dst_day, period=dst_period)))
        else:
            if week.is_lunch(dst_period):
                raise IllegalManualMove("Cannot place a class at lunch")
            occupants = list(self._cells.get((branch_id, dst_day, dst_period), ()))
            if idx in occupants:
                return MoveResult(individual=self.individual, delta=MoveDelta())
            if any(genes[j].span_periods > 1 for j in occupants):
                raise IllegalManualMove("Cannot drop onto a two-period lab block")
            if len(occupants) > 1:
                raise IllegalManualMove(
                    f"{dst_day} period {dst_period} holds more than one class for branch {branch_id}",
                    details={"branch_id": branch_id, "target": [dst_day, dst_period]},
                )
            moved.append((idx, replace(gene, day=dst_day, period=dst_period)))
            if occupants:
                other_idx = occupants[0]
                other = genes[other_idx]
                # swap: the displaced class takes the source slot
                moved.append((other_idx, replace(other, day=gene.day, period=gene.period)))

        self._check_clashes(moved)

        new_genes = list(genes)
        changes = []
        for i, new_gene in moved:
            changes.append(GeneChange(index=i, old=genes[i], new=new_gene))
            new_genes[i] = new_gene
        genes_t = tuple(new_genes)

        logger.debug("manual move accepted for %s: %s -> %s", branch_id, source, target)
        return MoveResult(
            individual=Individual(genes=genes_t, fitness=calculate_fitness(self.problem, genes_t, self.weights)),
            delta=MoveDelta(changes=tuple(changes)),
        )

    def _check_clashes(self, moved: List[Tuple[int, Gene]]) -> None:
        skip = {i for i, _g in moved}

        def others(indices: Optional[List[int]]) -> bool:
            return any(j not in skip for j in (indices or ()))

        for _i, g in moved:
            for p in g.occupied_periods():
                if others(self._teacher_slots.get((g.day, p, g.teacher_id))):
                    raise IllegalManualMove(
                        f"Teacher {g.teacher_id} already teaches on {g.day} period {p}",
                        details={"teacher_id": g.teacher_id, "day": g.day, "period": p},
                    )
                if others(self._room_slots.get((g.day, p, g.room_id))):
                    raise IllegalManualMove(
                        f"Room {g.room_id} is already booked on {g.day} period {p}",
                        details={"room_id": g.room_id, "day": g.day, "period": p},
                    )
            if others(self._subject_days.get((g.branch_id, g.day, g.subject_id))):
                raise IllegalManualMove(
                    f"Subject {g.subject_id} already runs on {g.day} for branch {g.branch_id}",
                    details={"subject_id": g.subject_id, "day": g.day},
                )
