"""Shared static warehouse context.

`WarehouseInfo` holds the fixtures every model and automaton reads: racks,
corridors, feed points, the rotation mapping and the grid size. Three fields
select the task currently being planned (`lookup_rack`, `feed_option`,
`queue_point`); only the orchestrating pipeline writes them, between tasks.

Coordinate system:
    x → east (column), y → south (row, 0 = top row)
    direction 0 = right, 1 = down, 2 = left, 3 = up
"""

from __future__ import annotations

from itertools import product

from fleet_planner.errors import ConfigurationError, GeometryError
from fleet_planner.warehouse.config import GridConfig

Point = tuple[int, int]

NO_POSITION: Point = (-1, -1)

DEFAULT_ROTATION_MAPPING: dict[int, Point] = {
    0: (1, 0),  # right
    1: (0, 1),  # down
    2: (-1, 0),  # left
    3: (0, -1),  # up
}


class WarehouseInfo:
    """Static configuration for one planning context.

    Args:
        width: Grid width in fine cells.
        height: Grid height in fine cells.
        feed_points: Feed point positions.
    """

    def __init__(self, width: int, height: int, feed_points: tuple[Point, ...] | list[Point]) -> None:
        if width < 1 or height < 1:
            raise GeometryError(f"grid must be at least 1x1, got {width}x{height}")
        self.width = width
        self.height = height
        self.feed_points: tuple[Point, ...] = tuple(feed_points)
        self.grid_square = 1
        self.rack_positions: tuple[Point, ...] = ()
        self.corridor_positions: tuple[Point, ...] = ()
        self.rotation_mapping: dict[int, Point] = {}

        # current-task selectors
        self.lookup_rack: int = 0
        self.feed_option: int = 0
        self.queue_point: Point = NO_POSITION

        self._rack_set: frozenset[Point] = frozenset()
        self._corridor_set: frozenset[Point] = frozenset()
        self._feed_set: frozenset[Point] = frozenset(self.feed_points)

    @classmethod
    def from_config(cls, grid: GridConfig) -> WarehouseInfo:
        """Build a fully initialised context from a GridConfig."""
        info = cls(grid.width, grid.height, grid.feed_points)
        info.grid_square = grid.grid_square
        info.set_racks(grid.rack_positions)
        info.set_corridors(grid.corridor_positions)
        info.set_rotation_mapping()
        return info

    # ── Layout ───────────────────────────────────────────────────────

    def set_racks(self, racks: tuple[Point, ...] | list[Point] | None = None) -> None:
        """Place racks explicitly, or generate the default double-column layout.

        The default layout fits `(width - 2) // 3` rack bands; each band is
        two columns wide and spans rows 1..height-2.

        Raises:
            GeometryError: If the grid is too narrow to fit a single band.
        """
        if racks is not None:
            self.rack_positions = tuple(racks)
        else:
            cells = (self.width - 2) // 3
            if cells < 1:
                raise GeometryError(
                    f"warehouse width {self.width} is too narrow to fit any racks; "
                    "make the width larger or supply rack positions explicitly"
                )
            positions = []
            for c in range(cells):
                for y in range(1, self.height - 1):
                    for ii in range(2):
                        positions.append((c * 3 + 2 + ii, y))
            self.rack_positions = tuple(positions)
        if not self.rack_positions:
            raise GeometryError("layout has no rack positions")
        self._rack_set = frozenset(self.rack_positions)

    def set_corridors(self, corridors: tuple[Point, ...] | list[Point] | None = None) -> None:
        """Set corridor cells, by default every cell that is neither rack nor feed."""
        if corridors is not None:
            self.corridor_positions = tuple(corridors)
        else:
            self.corridor_positions = tuple(
                (x, y)
                for x, y in product(range(self.width), range(self.height))
                if (x, y) not in self._rack_set and (x, y) not in self._feed_set
            )
        self._corridor_set = frozenset(self.corridor_positions)

    def set_rotation_mapping(self, mapping: dict[int, Point] | None = None) -> None:
        """Install the direction → unit vector mapping (defaults to 4-way).

        Raises:
            GeometryError: If any of directions 0..3 has no entry.
        """
        rotation = dict(mapping if mapping is not None else DEFAULT_ROTATION_MAPPING)
        missing = [d for d in range(4) if d not in rotation]
        if missing:
            raise GeometryError(f"rotation mapping has no entry for direction(s) {missing}")
        self.rotation_mapping = rotation

    # ── Task selection ───────────────────────────────────────────────

    def select_task(self, rack: int, feed: int) -> None:
        """Point the context at the rack and feed of the task being planned."""
        if not 0 <= rack < len(self.rack_positions):
            raise ConfigurationError(f"rack index {rack} out of range ({len(self.rack_positions)} racks)")
        if not 0 <= feed < len(self.feed_points):
            raise ConfigurationError(f"feed index {feed} out of range ({len(self.feed_points)} feeds)")
        self.lookup_rack = rack
        self.feed_option = feed

    @property
    def target_rack(self) -> Point:
        return self.rack_positions[self.lookup_rack]

    @property
    def target_feed(self) -> Point:
        return self.feed_points[self.feed_option]

    # ── Queries ──────────────────────────────────────────────────────

    def is_rack(self, p: Point) -> bool:
        return p in self._rack_set

    def is_feed(self, p: Point) -> bool:
        return p in self._feed_set

    def is_corridor(self, p: Point) -> bool:
        return p in self._corridor_set

    def in_bounds(self, p: Point) -> bool:
        return 0 <= p[0] < self.width and 0 <= p[1] < self.height

    def rack_bounds(self) -> tuple[int, int, int, int]:
        """Return (min_x, min_y, max_x, max_y) over all rack cells."""
        xs = [p[0] for p in self.rack_positions]
        ys = [p[1] for p in self.rack_positions]
        return min(xs), min(ys), max(xs), max(ys)

    def coarse_cell(self, p: Point) -> Point:
        """Coarse cell containing a fine position."""
        return p[0] // self.grid_square, p[1] // self.grid_square

    def direction_vector(self, direction: int) -> Point:
        """Unit vector for a direction.

        Raises:
            GeometryError: If the direction has no rotation mapping entry.
        """
        try:
            return self.rotation_mapping[direction]
        except KeyError:
            raise GeometryError(f"direction {direction} has no rotation mapping entry") from None

    def __repr__(self) -> str:
        return (
            f"WarehouseInfo({self.width}x{self.height}, racks={len(self.rack_positions)}, "
            f"corridors={len(self.corridor_positions)}, feeds={list(self.feed_points)})"
        )
