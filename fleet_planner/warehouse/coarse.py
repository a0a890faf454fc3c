"""Coarse (low-fidelity) warehouse model.

The agent occupies one coarse cell and has four directional moves. There is
no heading and no payload. Passing vertically through the odd columns inside
the rack block is blocked, which approximates "cannot cut through racks" at
this resolution.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum

from fleet_planner.warehouse.context import Point, WarehouseInfo
from fleet_planner.warehouse.grid import GridWorld


class CoarseAction(IntEnum):
    """Coarse moves"""

    LEFT = 0
    RIGHT = 1
    UP = 2  # +y
    DOWN = 3  # -y


@dataclass(frozen=True)
class CoarseWord:
    """Observation emitted by a coarse transition."""

    position: Point


class CoarseWarehouse(GridWorld[Point, CoarseWord]):
    """Deterministic coarse grid world."""

    def __init__(self, n_actions: int = len(CoarseAction), initial_state: Point = (0, 0), reward: float = -1.0) -> None:
        super().__init__(n_actions, initial_state, reward)
        self.width = 0
        self.height = 0
        self.grid_square = 1

    def build_state_space(self, width: int, height: int, grid_square: int = 1) -> tuple[int, int]:
        """Enumerate every coarse cell.

        Args:
            width: Fine grid width.
            height: Fine grid height.
            grid_square: Fine cells per coarse cell along each axis.

        Returns:
            The coarse grid size (width, height).
        """
        self.grid_square = grid_square
        self.width = math.ceil(width / grid_square)
        self.height = math.ceil(height / grid_square)
        for x in range(self.width):
            for y in range(self.height):
                self._add_state((x, y), CoarseWord((x, y)))
        return self.width, self.height

    def _rack_block(self, info: WarehouseInfo) -> tuple[int, int, int]:
        _, min_y, max_x, max_y = info.rack_bounds()
        gs = self.grid_square
        return max_x // gs, min_y // gs, max_y // gs

    def step(self, state: Point, action: int, info: WarehouseInfo) -> tuple[Point, CoarseWord]:
        px, py = state
        max_x, min_y, max_y = self._rack_block(info)
        # odd columns inside the rack block only open at the endpoint rows
        blocked = px <= max_x - 2 and min_y <= py <= max_y and px % 2 != 0

        if action == CoarseAction.LEFT:
            nxt = (px - 1, py) if px > 0 else state
        elif action == CoarseAction.RIGHT:
            nxt = (px + 1, py) if px < self.width - 1 else state
        elif action == CoarseAction.UP:
            nxt = state if blocked or py >= self.height - 1 else (px, py + 1)
        elif action == CoarseAction.DOWN:
            nxt = state if blocked or py <= 0 else (px, py - 1)
        else:
            raise ValueError(f"unknown coarse action {action}")
        return nxt, CoarseWord(nxt)
