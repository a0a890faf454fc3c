"""
Planner configuration dataclasses and YAML loader.

All planning parameters live here as typed, validated dataclasses.
Load from YAML with `load_config()` or construct directly for tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from fleet_planner.errors import ConfigurationError

Point = tuple[int, int]


@dataclass(frozen=True)
class GridConfig:
    """Physical grid dimensions and fixed fixtures.

    Racks and corridors are generated from the dimensions when not given
    explicitly (see `WarehouseInfo.set_racks` / `set_corridors`).
    """

    width: int = 12
    height: int = 12
    grid_square: int = 1  # Fine cells per coarse cell along each axis
    feed_points: tuple[Point, ...] = ((0, 5),)
    rack_positions: tuple[Point, ...] | None = None
    corridor_positions: tuple[Point, ...] | None = None


@dataclass(frozen=True)
class FleetConfig:
    """Agents, tasks and per-agent queue points."""

    n_agents: int = 4
    n_tasks: int = 9
    queue_points: tuple[Point, ...] = ((11, 11), (0, 11), (3, 11), (9, 0))
    start_positions: tuple[Point, ...] | None = None


@dataclass(frozen=True)
class SolverConfig:
    """Objective targets and numerical tolerances.

    Allocation (phase 1)
    ────────────────────
    cost_ceiling          : upper bound on each agent's expected cost
    task_probability      : lower bound on each task's success probability
    allocation_eps        : convergence tolerance of the coarse solvers
    pareto_iterations     : max weight vectors explored by the synthesizer
    separation_tolerance  : target counts as reached below this LP margin

    Synthesis (phase 2)
    ───────────────────
    synthesis_eps         : value-iteration convergence tolerance
    max_sweeps            : hard cap on Bellman sweeps per solve
    """

    step_reward: float = -1.0
    allocation_eps: float = 1e-4
    synthesis_eps: float = 1e-5
    cost_ceiling: float = 15.0
    task_probability: float = 0.99
    pareto_iterations: int = 10
    separation_tolerance: float = 1e-3
    max_sweeps: int = 10_000


@dataclass(frozen=True)
class ConcurrencyConfig:
    """Worker pool ceilings; the effective size is min(cpu_count, ceiling)."""

    load_threads: int = 10  # Construction-heavy work
    save_threads: int = 30  # Write-heavy work

    def workers(self, ceiling: int) -> int:
        """Return the pool size for a given ceiling."""

        return max(1, min(os.cpu_count() or 1, ceiling))


@dataclass(frozen=True)
class OutputConfig:
    """Where schedules are written."""

    base_dir: str = "output"


@dataclass(frozen=True)
class PlannerConfig:
    """Top-level configuration aggregating all sub-configs."""

    grid: GridConfig = field(default_factory=GridConfig)
    fleet: FleetConfig = field(default_factory=FleetConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    concurrency: ConcurrencyConfig = field(default_factory=ConcurrencyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    random_seed: int = 1234

    def __post_init__(self) -> None:
        if self.fleet.n_agents < 1 or self.fleet.n_tasks < 1:
            raise ConfigurationError(
                f"need at least one agent and one task, got "
                f"{self.fleet.n_agents} agents / {self.fleet.n_tasks} tasks"
            )
        if len(self.fleet.queue_points) < self.fleet.n_agents:
            raise ConfigurationError(
                f"{self.fleet.n_agents} agents but only "
                f"{len(self.fleet.queue_points)} queue points"
            )
        if self.grid.grid_square < 1:
            raise ConfigurationError(f"grid_square must be >= 1, got {self.grid.grid_square}")


def _points(raw) -> tuple[Point, ...] | None:
    """YAML gives lists of lists; the dataclasses want tuples of tuples."""
    if raw is None:
        return None
    return tuple((int(p[0]), int(p[1])) for p in raw)


def load_config(path: str | Path) -> PlannerConfig:
    """Load a PlannerConfig from a YAML file.

    Args:
        path: Path to a YAML config file.

    Returns:
        Fully constructed PlannerConfig with all sub-configs.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    grid_raw = dict(raw.get("grid", {}))
    for key in ("feed_points", "rack_positions", "corridor_positions"):
        if key in grid_raw:
            grid_raw[key] = _points(grid_raw[key])

    fleet_raw = dict(raw.get("fleet", {}))
    for key in ("queue_points", "start_positions"):
        if key in fleet_raw:
            fleet_raw[key] = _points(fleet_raw[key])

    return PlannerConfig(
        grid=GridConfig(**grid_raw),
        fleet=FleetConfig(**fleet_raw),
        solver=SolverConfig(**raw.get("solver", {})),
        concurrency=ConcurrencyConfig(**raw.get("concurrency", {})),
        output=OutputConfig(**raw.get("output", {})),
        random_seed=raw.get("random_seed", 1234),
    )
