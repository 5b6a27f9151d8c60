"""Genetic algorithm (GA) engine.

A reusable, problem-agnostic optimizer. The caller supplies four functions:

- `create(rng)`: build one random individual
- `crossover(a, b, rng)`: recombine two parents into a child
- `mutate(child, rate, rng)`: perturb a child, returning a new individual
- `fitness(individual)`: score to MINIMIZE

Loop
----
1. Build `population_size` random individuals, sort ascending by fitness and
   record the best.
2. Each generation, produce `population_size` children. A child comes from two
   parents sampled uniformly *with replacement* from the current population,
   crossed over and then mutated.
3. Sort the children; they replace the population. The tracked best is updated
   only when the new generation's best is strictly better.

There is no elitist carry-over inside the population. Elitism lives in the
external best tracker, so the returned best never gets worse as the run goes on.

Reproducibility
---------------
All randomness comes from one `random.Random(config.seed)`. Before producing a
child the master generator hands out a sub-seed, so the result is the same
whether children are built sequentially or on a thread pool (`workers > 1`).

Budget
------
The loop always runs the full generation budget unless `time_limit_seconds`
is set. The limit is checked between generations; on expiry the last fully
evaluated best is returned.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from time import perf_counter
from typing import Callable, Generic, List, Optional, Protocol, Sequence, Tuple, TypeVar

import logging
import random


logger = logging.getLogger(__name__)

TIndividual = TypeVar("TIndividual")


class CreateFn(Protocol[TIndividual]):
    def __call__(self, rng: random.Random) -> TIndividual:  # pragma: no cover
        """Return a new random individual."""


class CrossoverFn(Protocol[TIndividual]):
    def __call__(self, a: TIndividual, b: TIndividual, rng: random.Random) -> TIndividual:  # pragma: no cover
        """Return a child built from two parents."""


class MutateFn(Protocol[TIndividual]):
    def __call__(self, individual: TIndividual, rate: float, rng: random.Random) -> TIndividual:  # pragma: no cover
        """Return a perturbed copy of `individual`."""


class CallbackFn(Protocol[TIndividual]):
    def __call__(
        self,
        generation: int,
        population: Sequence[TIndividual],
        best: TIndividual,
        best_fitness: float,
    ) -> None:  # pragma: no cover
        """Optional progress callback called after each generation."""


@dataclass(frozen=True)
class GAConfig:
    """Search budget and operator settings.

    Attributes:
        population_size: Individuals per generation.
        generations: Number of generations after the initial population
            (0 returns the best random individual).
        mutation_rate: Per-gene mutation probability in [0, 1].
        seed: RNG seed for reproducibility (None => nondeterministic).
        time_limit_seconds: Optional wall-clock budget, checked between
            generations.
        workers: Threads used to produce the children of one generation.
    """

    population_size: int = 30
    generations: int = 100
    mutation_rate: float = 0.1
    seed: Optional[int] = 42
    time_limit_seconds: Optional[float] = None
    workers: int = 1

    def __post_init__(self) -> None:
        if int(self.population_size) < 1:
            raise ValueError("population_size must be >= 1")
        if int(self.generations) < 0:
            raise ValueError("generations must be >= 0")
        if not 0.0 <= float(self.mutation_rate) <= 1.0:
            raise ValueError("mutation_rate must be between 0 and 1")
        if int(self.workers) < 1:
            raise ValueError("workers must be >= 1")
        if self.time_limit_seconds is not None and float(self.time_limit_seconds) <= 0:
            raise ValueError("time_limit_seconds must be > 0")


@dataclass
class GAResult(Generic[TIndividual]):
    best: TIndividual
    best_fitness: float
    best_generation: int
    generations_run: int
    stopped_early: bool = False
    # best fitness after the initial population (index 0) and after each generation
    history: List[float] = field(default_factory=list)


def evolve(
    create: CreateFn[TIndividual],
    crossover: CrossoverFn[TIndividual],
    mutate: MutateFn[TIndividual],
    fitness: Callable[[TIndividual], float],
    config: GAConfig = GAConfig(),
    callback: Optional[CallbackFn[TIndividual]] = None,
) -> GAResult[TIndividual]:
    """Run the genetic algorithm.

    Contract:
    - Minimizes `fitness(individual)`
    - `crossover` and `mutate` must not modify their inputs

    Returns:
        GAResult with the tracked best individual and run metrics.
    """

    rng = random.Random(config.seed)
    size = int(config.population_size)
    started = perf_counter()

    def produce_child(population: Tuple[TIndividual, ...], child_seed: int) -> TIndividual:
        child_rng = random.Random(child_seed)
        parent1 = population[child_rng.randrange(len(population))]
        parent2 = population[child_rng.randrange(len(population))]
        child = crossover(parent1, parent2, child_rng)
        return mutate(child, config.mutation_rate, child_rng)

    def ranked(individuals: List[TIndividual]) -> Tuple[TIndividual, ...]:
        return tuple(sorted(individuals, key=fitness))

    population = ranked([create(random.Random(rng.getrandbits(64))) for _ in range(size)])
    best = population[0]
    best_fitness = fitness(best)
    best_generation = 0
    history = [best_fitness]

    logger.info(
        "GA start: population=%d generations=%d mutation_rate=%.3f initial_best=%s",
        size,
        config.generations,
        config.mutation_rate,
        best_fitness,
    )

    executor = ThreadPoolExecutor(max_workers=int(config.workers)) if config.workers > 1 else None
    generations_run = 0
    stopped_early = False
    try:
        for generation in range(1, int(config.generations) + 1):
            if config.time_limit_seconds is not None and perf_counter() - started >= config.time_limit_seconds:
                stopped_early = True
                logger.warning(
                    "GA time limit of %.2fs reached after %d generations; returning best so far (%s)",
                    config.time_limit_seconds,
                    generations_run,
                    best_fitness,
                )
                break

            child_seeds = [rng.getrandbits(64) for _ in range(size)]
            if executor is None:
                children = [produce_child(population, s) for s in child_seeds]
            else:
                snapshot = population
                children = list(executor.map(lambda s: produce_child(snapshot, s), child_seeds))

            population = ranked(children)
            generations_run = generation

            current = fitness(population[0])
            if current < best_fitness:
                best = population[0]
                best_fitness = current
                best_generation = generation
                logger.debug("generation %d: new best fitness %s", generation, best_fitness)
            history.append(best_fitness)

            if callback is not None:
                callback(
                    generation=generation,
                    population=population,
                    best=best,
                    best_fitness=best_fitness,
                )
    finally:
        if executor is not None:
            executor.shutdown(wait=True)

    logger.info(
        "GA done: generations_run=%d best_fitness=%s best_generation=%d elapsed=%.3fs",
        generations_run,
        best_fitness,
        best_generation,
        perf_counter() - started,
    )

    return GAResult(
        best=best,
        best_fitness=best_fitness,
        best_generation=best_generation,
        generations_run=generations_run,
        stopped_early=stopped_early,
        history=history,
    )
