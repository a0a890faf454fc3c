"""Fine (high-fidelity) warehouse model.

The agent has a heading, may carry one rack, and may leave a rack on the
floor. Five actions: rotate left/right, move forward, pickup, drop.

State space: for every corridor cell the agent may stand on and every
heading, three payload situations are enumerated:
    • not carrying, a rack dropped on another corridor cell
    • not carrying, nothing on the floor
    • carrying, nothing on the floor
"Carrying while a rack lies on the floor" is never produced by the dynamics
and is therefore not enumerated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum, auto

from fleet_planner.errors import GeometryError
from fleet_planner.warehouse.context import NO_POSITION, Point, WarehouseInfo
from fleet_planner.warehouse.grid import GridWorld


class FineAction(IntEnum):
    """Fine actions"""

    ROTATE_LEFT = 0
    ROTATE_RIGHT = 1
    MOVE_FORWARD = 2
    PICKUP = 3
    DROP = 4


class CellType(Enum):
    """What the agent is facing."""

    OUT_OF_BOUNDS = auto()
    FREE = auto()
    PACK = auto()  # A rack dropped on the floor
    RACK = auto()
    FEED = auto()
    BLOCKED = auto()  # In bounds but not a corridor


@dataclass(frozen=True)
class FineState:
    """Full agent configuration.

    `pack_position` is NO_POSITION whenever `pack_available` is 0.
    """

    direction: int
    position: Point
    carrying: int = 0
    pack_available: int = 0
    pack_position: Point = NO_POSITION


@dataclass(frozen=True)
class FineWord:
    """Observation emitted by a fine transition."""

    position: Point
    direction: int
    carrying: int
    pack_position: Point | None = None


def front_cell(
    position: Point,
    direction: int,
    rotation_mapping: dict[int, Point],
    width: int,
    height: int,
) -> Point | None:
    """Cell directly ahead of the agent, or None when it lies off the grid.

    Raises:
        GeometryError: If `direction` has no rotation mapping entry.
    """
    try:
        rx, ry = rotation_mapping[direction]
    except KeyError:
        raise GeometryError(f"direction {direction} has no rotation mapping entry") from None
    x, y = position[0] + rx, position[1] + ry
    if 0 <= x < width and 0 <= y < height:
        return x, y
    return None


def classify_cell(
    cell: Point | None,
    pack_available: int,
    pack_position: Point,
    info: WarehouseInfo,
) -> CellType:
    """Classify a cell: racks first, then a floor pack, then feeds.

    Remaining cells are FREE only when they are corridors; anything else is
    BLOCKED and behaves like the grid edge.
    """
    if cell is None:
        return CellType.OUT_OF_BOUNDS
    if info.is_rack(cell):
        return CellType.RACK
    if pack_available == 1 and pack_position == cell:
        return CellType.PACK
    if info.is_feed(cell):
        return CellType.FEED
    if not info.is_corridor(cell):
        return CellType.BLOCKED
    return CellType.FREE


def word_for(state: FineState) -> FineWord:
    """Word emitted on entering `state`."""
    return FineWord(
        position=state.position,
        direction=state.direction,
        carrying=state.carrying,
        pack_position=state.pack_position if state.pack_available == 1 else None,
    )


class FineWarehouse(GridWorld[FineState, FineWord]):
    """Deterministic fine grid world."""

    def __init__(
        self,
        n_actions: int = len(FineAction),
        initial_state: FineState | None = None,
        reward: float = -1.0,
    ) -> None:
        super().__init__(n_actions, initial_state or FineState(direction=0, position=(1, 0)), reward)

    def build_state_space(self, corridor_positions: tuple[Point, ...] | list[Point]) -> int:
        """Enumerate every state the dynamics can produce.

        Returns:
            Number of states.
        """
        for p in corridor_positions:
            for direction in range(4):
                for p2 in corridor_positions:
                    if p2 == p:
                        continue
                    self._add_fine(FineState(direction, p, 0, 1, p2))
                self._add_fine(FineState(direction, p, 0, 0, NO_POSITION))
                self._add_fine(FineState(direction, p, 1, 0, NO_POSITION))
        return self.n_states

    def _add_fine(self, state: FineState) -> None:
        self._add_state(state, word_for(state))

    def step(self, state: FineState, action: int, info: WarehouseInfo) -> tuple[FineState, FineWord]:
        direction = state.direction
        position = state.position
        carrying = state.carrying
        pack_available = state.pack_available
        pack_position = state.pack_position

        ahead = front_cell(position, direction, info.rotation_mapping, info.width, info.height)
        cell = classify_cell(ahead, pack_available, pack_position, info)

        if action == FineAction.ROTATE_LEFT:
            direction = (direction - 1) % 4
        elif action == FineAction.ROTATE_RIGHT:
            direction = (direction + 1) % 4
        elif action == FineAction.MOVE_FORWARD:
            if cell is CellType.FREE:
                position = ahead
        elif action == FineAction.PICKUP:
            if carrying == 0:
                if cell in (CellType.FEED, CellType.RACK):
                    # a second rack cannot leave storage while one is on the floor
                    if pack_available == 0:
                        carrying = 1
                elif cell is CellType.PACK:
                    carrying = 1
                    pack_available = 0
                    pack_position = NO_POSITION
        elif action == FineAction.DROP:
            if carrying == 1:
                if cell in (CellType.RACK, CellType.FEED):
                    carrying = 0
                    pack_available = 0
                    pack_position = NO_POSITION
                elif cell is CellType.FREE:
                    carrying = 0
                    pack_available = 1
                    pack_position = ahead
        else:
            raise ValueError(f"unknown fine action {action}")

        nxt = FineState(direction, position, carrying, pack_available, pack_position)
        return nxt, word_for(nxt)
