"""
Replenishment task generation and agent placement.

A replenishment task names one rack to fetch, one feed point to bring it
to, and implies returning the rack to its slot. Tasks are drawn from a
seeded generator so planning runs are reproducible.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from fleet_planner.errors import ConfigurationError, GeometryError
from fleet_planner.warehouse.context import Point, WarehouseInfo


@dataclass(frozen=True)
class ReplenishmentTask:
    """A single borrow-and-return rack task."""

    task_id: int
    rack: int  # Index into WarehouseInfo.rack_positions
    feed: int  # Index into WarehouseInfo.feed_points


def generate_tasks(info: WarehouseInfo, n_tasks: int, rng: np.random.Generator) -> list[ReplenishmentTask]:
    """Draw `n_tasks` distinct racks and a feed point for each.

    Raises:
        ConfigurationError: If there are fewer racks than tasks.
    """
    n_racks = len(info.rack_positions)
    if n_tasks > n_racks:
        raise ConfigurationError(f"{n_tasks} tasks requested but only {n_racks} racks exist")
    racks = rng.choice(n_racks, size=n_tasks, replace=False)
    feeds = rng.integers(0, len(info.feed_points), size=n_tasks)
    return [
        ReplenishmentTask(task_id=t, rack=int(racks[t]), feed=int(feeds[t]))
        for t in range(n_tasks)
    ]


def default_start_positions(width: int, height: int, n_agents: int) -> list[Point]:
    """Line agents up along the top and bottom rows, starting at column 2."""
    starts: list[Point] = []
    for x in range(2, width):
        if len(starts) >= n_agents:
            break
        starts.append((x, 0))
        starts.append((x, height - 1))
    if len(starts) < n_agents:
        raise GeometryError(f"grid {width}x{height} has room for {len(starts)} start positions, need {n_agents}")
    return starts[:n_agents]

