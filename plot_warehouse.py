"""
Generate warehouse layout and schedule diagrams.

Usage:
    python plot_warehouse.py                              # Default config
    python plot_warehouse.py --config path/to/config.yaml
    python plot_warehouse.py --output my_layout.png
    python plot_warehouse.py --schedule output/schedulers/map_0_3.json --state 2
"""

import argparse
from pathlib import Path

from fleet_planner.analysis.visualizations import plot_schedule, plot_warehouse
from fleet_planner.planning.pipeline import PlanningPipeline
from fleet_planner.schedule.store import load_schedule
from fleet_planner.warehouse.config import PlannerConfig, load_config
from fleet_planner.warehouse.layout import validate_layout


def print_summary(pipeline: PlanningPipeline) -> None:
    """Print layout summary to console."""
    info = pipeline.info
    print(f"\n{info}")
    print(f"  agents : {len(pipeline.starts)} starting at {pipeline.starts}")
    print(f"  tasks  : {len(pipeline.tasks)}")

    issues = validate_layout(
        info,
        starts=pipeline.starts,
        queue_points=pipeline.config.fleet.queue_points[: len(pipeline.starts)],
    )
    if issues:
        print("\n⚠️  Validation warnings:")
        for issue in issues:
            print(f"  - {issue}")
    else:
        print("\n✅ Validation passed")


def main():
    """Main function"""

    parser = argparse.ArgumentParser(description="Generate warehouse layout diagrams")
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to planner YAML config (default: config/default_warehouse.yaml)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        default="warehouse_layout.png",
        help="Output PNG filename (default: warehouse_layout.png)",
    )
    parser.add_argument("--title", "-t", type=str, default=None, help="Custom plot title")
    parser.add_argument("--schedule", type=str, default=None, help="Schedule JSON to draw")
    parser.add_argument("--state", type=int, default=0, help="Automaton state to draw from the schedule")
    parser.add_argument("--carrying", type=int, default=0, choices=(0, 1), help="Payload to draw")
    parser.add_argument("--dpi", type=int, default=150, help="Output image resolution (default: 150)")
    args = parser.parse_args()

    # ── Load config ──────────────────────────────────────────────
    config_path = args.config
    if config_path is None:
        default_path = Path(__file__).parent / "config" / "default_warehouse.yaml"
        if default_path.exists():
            config_path = str(default_path)

    if config_path:
        print(f"Loading config from: {config_path}")
        config = load_config(config_path)
    else:
        print("Using default config (no YAML found)")
        config = PlannerConfig()

    # ── Build warehouse ──────────────────────────────────────────
    pipeline = PlanningPipeline(config)
    info = pipeline.setup()
    print_summary(pipeline)

    title = args.title or f"Warehouse Layout — {info.width}×{info.height}, {len(info.rack_positions)} racks"
    fig = plot_warehouse(
        info,
        starts=pipeline.starts,
        queue_points=list(config.fleet.queue_points[: config.fleet.n_agents]),
        task_racks=[info.rack_positions[t.rack] for t in pipeline.tasks],
        title=title,
    )
    output_path = Path(args.output)
    fig.savefig(output_path, dpi=args.dpi, bbox_inches="tight")
    print(f"\n📊 Layout saved: {output_path}")

    # ── Optional schedule ────────────────────────────────────────
    if args.schedule:
        schedule = load_schedule(args.schedule)
        sched_path = output_path.with_name(output_path.stem + "_schedule" + output_path.suffix)
        fig_sched = plot_schedule(info, schedule, args.state, carrying=args.carrying)
        fig_sched.savefig(sched_path, dpi=args.dpi, bbox_inches="tight")
        print(f"📊 Schedule saved: {sched_path}")

    print("\nDone.")


if __name__ == "__main__":
    main()
