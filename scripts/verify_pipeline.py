"""
Planner diagnostic tool.

Runs a small planning problem with heavy instrumentation to verify every
stage independently: layout → products → allocation → fine synthesis →
schedule persistence.

This is the script you run FIRST when something looks wrong. If check N
fails, the bug is in that stage.

Usage:
    python scripts/verify_pipeline.py
"""

import sys
import tempfile
from pathlib import Path

import numpy as np

from fleet_planner.automata.tasks import coarse_replenishment, fine_replenishment
from fleet_planner.planning.matrices import construct_sparse_and_rewards, proper_pairs
from fleet_planner.planning.pipeline import PlanningPipeline
from fleet_planner.planning.product import build_product
from fleet_planner.schedule.codec import lookup, schedule_size
from fleet_planner.schedule.store import load_schedule, persist_schedules
from fleet_planner.warehouse.coarse import CoarseAction, CoarseWarehouse
from fleet_planner.warehouse.config import FleetConfig, GridConfig, OutputConfig, PlannerConfig
from fleet_planner.warehouse.fine import FineAction, FineState, FineWarehouse
from fleet_planner.warehouse.layout import validate_layout

FAILURES = 0


def section(title: str) -> None:
    """Creates a section in the CLI display"""

    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")


def check(label: str, condition: bool, detail: str = "") -> bool:
    """Checks if a condition is passed."""

    global FAILURES
    status = "✅ PASS" if condition else "❌ FAIL"
    msg = f"  {status}: {label}"
    if detail:
        msg += f" — {detail}"
    print(msg)
    if not condition:
        FAILURES += 1
    return condition


# ─────────────────────────────────────────────────────────────
# STAGE 1: Layout
# ─────────────────────────────────────────────────────────────
def verify_layout(config: PlannerConfig) -> PlanningPipeline:
    """Build the warehouse context and check its fixtures."""

    section("STAGE 1: Layout")

    pipeline = PlanningPipeline(config)
    info = pipeline.setup()

    check("Racks generated", len(info.rack_positions) > 0, f"{len(info.rack_positions)} racks")
    check("Corridors generated", len(info.corridor_positions) > 0, f"{len(info.corridor_positions)} cells")
    check(
        "Racks and corridors disjoint",
        not set(info.rack_positions) & set(info.corridor_positions),
    )
    check("One start per agent", len(pipeline.starts) == config.fleet.n_agents, f"{pipeline.starts}")
    check("Distinct task racks", len({t.rack for t in pipeline.tasks}) == len(pipeline.tasks))
    issues = validate_layout(info, starts=pipeline.starts, queue_points=config.fleet.queue_points)
    check("Layout validation passes", not issues, "; ".join(issues))
    return pipeline


# ─────────────────────────────────────────────────────────────
# STAGE 2: Single products
# ─────────────────────────────────────────────────────────────
def verify_products(pipeline: PlanningPipeline) -> None:
    """Build one coarse and one fine product for the first task."""

    section("STAGE 2: Products")

    info = pipeline.info
    task = pipeline.tasks[0]
    info.select_task(task.rack, task.feed)
    start = pipeline.starts[0]

    coarse = CoarseWarehouse.make(len(CoarseAction), info.coarse_cell(start))
    coarse.build_state_space(info.width, info.height, info.grid_square)
    coarse.transition_map(-1.0, info)
    cp = build_product(coarse, coarse_replenishment(info), 0, 0)
    check("Coarse product built", cp.n_states > 0, f"{cp.n_states} states")
    check("Coarse product reaches acceptance", cp.accepting.any())

    fine = FineWarehouse.make(len(FineAction), FineState(1, start))
    fine.build_state_space(info.corridor_positions)
    fine.transition_map(-1.0, info)
    fp = build_product(fine, fine_replenishment(info), 0, 0)
    check("Fine product built", fp.n_states > 0, f"{fp.n_states} states")
    check("Fine product reaches a goal", fp.goal.any())

    mats = construct_sparse_and_rewards(fp)
    check("One matrix per action", len(mats.transitions) == fp.n_actions, f"{mats.nnz} non-zeros")
    proper = proper_pairs(fp)
    check("Initial state has a proper action", proper[fp.init_index].any())


# ─────────────────────────────────────────────────────────────
# STAGE 3: Allocation
# ─────────────────────────────────────────────────────────────
def verify_allocation(pipeline: PlanningPipeline):
    """Run phase 1 and check the allocation tables agree."""

    section("STAGE 3: Allocation")

    allocation = pipeline.allocate()
    nt = pipeline.n_tasks

    check("Policies synthesized", allocation.n_policies > 0, f"{allocation.n_policies}")
    check("Every task assigned", sorted(allocation.assignments) == list(range(nt)))
    for t in range(nt):
        w = allocation.witness[t]
        check(f"Task {t}: witness weights sum to 1", abs(w.sum() - 1.0) < 1e-6, f"{np.round(w, 3)}")
        k = allocation.policy_choice[t]
        check(
            f"Task {t}: sampled policy allocates the assigned agent",
            allocation.allocation.get((t, k)) == allocation.assignments[t],
            f"policy {k} → agent {allocation.assignments[t]}",
        )
    check(
        "Achieved probabilities within [0, 1]",
        all(0.0 <= p <= 1.0 + 1e-9 for p in allocation.achieved.task_probabilities),
    )
    return allocation


# ─────────────────────────────────────────────────────────────
# STAGE 4: Fine synthesis and persistence
# ─────────────────────────────────────────────────────────────
def verify_synthesis(pipeline: PlanningPipeline, allocation) -> None:
    """Run phase 2, persist, and read the schedules back."""

    section("STAGE 4: Synthesis & Persistence")

    result = pipeline.synthesize(allocation)
    check("One schedule per task", len(result.task_schedules) == pipeline.n_tasks)
    check("One regeneration schedule per agent", len(result.regen_schedules) == pipeline.n_agents)
    check("Agent costs non-negative", bool((result.agent_costs >= 0).all()), f"{np.round(result.agent_costs, 1)}")

    for (a, t), schedule in result.task_schedules.items():
        record = lookup(schedule, FineState(1, pipeline.starts[a]), 0)
        check(f"map_{a}_{t}: start state scheduled", record is not None, f"action {record.action}")

    paths = persist_schedules(result.task_schedules, result.regen_schedules, pipeline.config.output.base_dir, 4)
    check("All schedules written", len(paths) == pipeline.n_tasks + pipeline.n_agents)
    for path in paths:
        loaded = load_schedule(path)
        check(f"{path.name} reloads", schedule_size(loaded) > 0, f"{schedule_size(loaded)} records")


# ─────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    print("Warehouse Fleet Planner — Pipeline Verification")
    print("=" * 60)

    with tempfile.TemporaryDirectory() as tmp:
        config = PlannerConfig(
            grid=GridConfig(width=8, height=6, feed_points=((0, 2),)),
            fleet=FleetConfig(n_agents=2, n_tasks=3, queue_points=((7, 5), (0, 5))),
            output=OutputConfig(base_dir=str(Path(tmp))),
            random_seed=42,
        )
        pipeline = verify_layout(config)
        verify_products(pipeline)
        allocation = verify_allocation(pipeline)
        verify_synthesis(pipeline, allocation)

    section("VERIFICATION COMPLETE")
    if FAILURES:
        print(f"  {FAILURES} check(s) failed; the stage label tells you where to look.")
        sys.exit(1)
    print("  All checks passed, the planner works end-to-end.")
