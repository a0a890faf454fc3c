"""
Quick-run script for the warehouse fleet planner.

Usage:
    python run_planner.py                                  # default config
    python run_planner.py --config config/default_warehouse.yaml
    python run_planner.py --agents 2 --tasks 3 --seed 7    # overrides
    python run_planner.py --allocate-only                  # phase 1 only
    python run_planner.py --plot-costs costs.png           # save a cost chart

Prints the allocation and per-agent costs; schedules are written under
<output>/schedulers/.
"""

import argparse
import dataclasses
import sys
from pathlib import Path

from loguru import logger

from fleet_planner.analysis.visualizations import plot_agent_costs
from fleet_planner.planning.pipeline import PlanningPipeline
from fleet_planner.warehouse.config import PlannerConfig, load_config


def main():
    """Main function that runs if the file is run directly."""

    parser = argparse.ArgumentParser(description="Plan replenishment tasks for a warehouse fleet")
    parser.add_argument(
        "--config",
        type=str,
        default="config/default_warehouse.yaml",
        help="Path to planner config YAML",
    )
    parser.add_argument("--agents", type=int, default=None, help="Number of agents (overrides config)")
    parser.add_argument("--tasks", type=int, default=None, help="Number of tasks (overrides config)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed (overrides config)")
    parser.add_argument("--output", type=str, default=None, help="Output base directory (overrides config)")
    parser.add_argument("--allocate-only", action="store_true", help="Stop after the coarse allocation")
    parser.add_argument("--plot-costs", type=str, default=None, help="Save a per-agent cost bar chart to this PNG")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "INFO")

    # Load config
    config_path = Path(args.config)
    if config_path.exists():
        config = load_config(config_path)
        print(f"Loaded config from {config_path}")
    else:
        print(f"Config {config_path} not found, using defaults")
        config = PlannerConfig()

    # Apply CLI overrides
    fleet = config.fleet
    if args.agents is not None or args.tasks is not None:
        fleet = dataclasses.replace(
            fleet,
            n_agents=args.agents if args.agents is not None else fleet.n_agents,
            n_tasks=args.tasks if args.tasks is not None else fleet.n_tasks,
        )
    output = config.output
    if args.output is not None:
        output = dataclasses.replace(output, base_dir=args.output)
    config = dataclasses.replace(
        config,
        fleet=fleet,
        output=output,
        random_seed=args.seed if args.seed is not None else config.random_seed,
    )

    pipeline = PlanningPipeline(config)
    pipeline.setup()

    print("\nTasks")
    for task in pipeline.tasks:
        rack = pipeline.info.rack_positions[task.rack]
        feed = pipeline.info.feed_points[task.feed]
        print(f"  task {task.task_id}: rack {rack} → feed {feed}")

    if args.allocate_only:
        allocation = pipeline.allocate()
        print_allocation(allocation)
        return

    result = pipeline.run()
    print_allocation(result.allocation)

    print("\nPer-agent expected cost")
    for a, cost in enumerate(result.agent_costs):
        tasks = ", ".join(str(t) for t in result.agent_tasks[a]) or "-"
        print(f"  agent {a}: {cost:7.1f}   tasks [{tasks}]")
    print(f"\n{len(result.paths)} schedules written to {Path(config.output.base_dir) / 'schedulers'}")

    if args.plot_costs:
        fig = plot_agent_costs(result.agent_costs, result.agent_tasks)
        fig.savefig(args.plot_costs, dpi=150, bbox_inches="tight")
        print(f"📊 Cost chart saved: {args.plot_costs}")


def print_allocation(allocation) -> None:
    """Print the phase-1 outcome."""
    print(f"\nAllocation ({allocation.n_policies} policies synthesized)")
    print(f"  achieved costs        : {[round(c, 2) for c in allocation.achieved.costs]}")
    print(f"  achieved probabilities: {[round(p, 3) for p in allocation.achieved.task_probabilities]}")
    for t, a in sorted(allocation.assignments.items()):
        candidates = sorted(allocation.agents_for(t))
        print(f"  task {t} → agent {a} (policy {allocation.policy_choice[t]}, candidates {candidates})")


if __name__ == "__main__":
    main()
