"""Demo runner: generate branch timetables from sample JSON.

Usage:
    python scripts/run_timetable_demo.py
    python scripts/run_timetable_demo.py --problem data/sample_timetable_problem.json --generations 200 --seed 3

"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
import argparse
import json
import logging
import sys

# Ensure project root is on PYTHONPATH when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from modules.errors import SchedulingError
from modules.timetable_ga import ga_config_from_dict, solve_timetable, timetable_problem_from_dict
from utils.timetable_export import branch_timetable_df, df_to_markdown, timetable_views, views_to_json


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Generate weekly branch timetables with a genetic algorithm.")
    parser.add_argument("--problem", default=str(ROOT / "data" / "sample_timetable_problem.json"))
    parser.add_argument("--generations", type=int, default=None)
    parser.add_argument("--population-size", type=int, default=None)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--views-json", default=None, help="Write branch/teacher/room views to this file")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger = logging.getLogger("timetable_demo")

    with open(args.problem, "r", encoding="utf-8") as f:
        raw = json.load(f)

    problem = timetable_problem_from_dict(raw)
    config = ga_config_from_dict(raw.get("settings") or {})
    overrides = {
        k: v
        for k, v in {
            "generations": args.generations,
            "population_size": args.population_size,
            "seed": args.seed,
        }.items()
        if v is not None
    }
    if overrides:
        config = replace(config, **overrides)

    try:
        best, metrics = solve_timetable(problem, config=config)
    except SchedulingError as exc:
        logger.error("Cannot generate timetable: %s", exc.message)
        return 1

    for b in problem.reference.branches:
        df = branch_timetable_df(problem=problem, individual=best, branch_id=b.branch_id)
        print(f"\n=== Branch: {b.display_name} ===\n")
        print(df_to_markdown(df))

    print("=== Metrics ===")
    for k, v in metrics.items():
        print(f"{k}: {v}")

    if args.views_json:
        Path(args.views_json).write_text(views_to_json(timetable_views(problem, best)), encoding="utf-8")
        logger.info("Wrote views to %s", args.views_json)

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
