"""Warehouse layout graph and sanity checks.

The fine grid is modelled as an undirected NetworkX graph:
- Nodes are grid cells, typed as corridor, rack or feed
- Edges join 4-neighbours where at least one end is a corridor cell

Agents only ever stand on corridor cells and interact with racks and feeds
from an adjacent corridor cell, so the checks below are necessary for every
task to be completable.
"""

from __future__ import annotations

from enum import Enum, auto

import networkx as nx

from fleet_planner.errors import GeometryError
from fleet_planner.warehouse.context import DEFAULT_ROTATION_MAPPING, Point, WarehouseInfo


class CellKind(Enum):
    """What occupies a grid cell."""

    CORRIDOR = auto()
    RACK = auto()
    FEED = auto()
    BLOCKED = auto()  # Neither corridor nor fixture


def cell_kind(info: WarehouseInfo, p: Point, corridors: frozenset[Point]) -> CellKind:
    if info.is_rack(p):
        return CellKind.RACK
    if info.is_feed(p):
        return CellKind.FEED
    if p in corridors:
        return CellKind.CORRIDOR
    return CellKind.BLOCKED


def layout_graph(info: WarehouseInfo) -> nx.Graph:
    """Build the cell adjacency graph of a warehouse.

    Returns:
        Graph whose nodes carry a `kind` attribute.
    """
    corridors = frozenset(info.corridor_positions)
    graph = nx.Graph()
    for x in range(info.width):
        for y in range(info.height):
            graph.add_node((x, y), kind=cell_kind(info, (x, y), corridors))

    for x, y in corridors:
        for dx, dy in DEFAULT_ROTATION_MAPPING.values():
            q = (x + dx, y + dy)
            if info.in_bounds(q) and graph.nodes[q]["kind"] is not CellKind.BLOCKED:
                graph.add_edge((x, y), q)
    return graph


def corridor_graph(graph: nx.Graph) -> nx.Graph:
    """Subgraph induced by corridor cells."""
    return graph.subgraph(n for n, d in graph.nodes(data=True) if d["kind"] is CellKind.CORRIDOR)


def validate_layout(
    info: WarehouseInfo,
    racks: list[Point] | None = None,
    starts: list[Point] | tuple[Point, ...] = (),
    queue_points: list[Point] | tuple[Point, ...] = (),
) -> list[str]:
    """Run basic sanity checks on a warehouse layout.

    Args:
        info: Warehouse context with racks and corridors placed.
        racks: Racks that tasks will use (all racks when None).
        starts: Agent start positions.
        queue_points: Agent queue points.

    Returns:
        List of problems (empty = all good).
    """
    issues = []
    graph = layout_graph(info)
    corridors = corridor_graph(graph)

    if corridors.number_of_nodes() == 0:
        return ["Layout has no corridor cells"]

    if not nx.is_connected(corridors):
        components = list(nx.connected_components(corridors))
        issues.append(
            f"Corridors are not connected: {len(components)} components "
            f"(sizes: {sorted(len(c) for c in components)})"
        )

    for what, points in (("start position", starts), ("queue point", queue_points)):
        for p in points:
            if not info.in_bounds(p) or graph.nodes[p]["kind"] is not CellKind.CORRIDOR:
                issues.append(f"{what} {p} is not a corridor cell")

    fixtures = list(info.feed_points) + list(racks if racks is not None else info.rack_positions)
    for p in fixtures:
        if not info.in_bounds(p):
            issues.append(f"fixture {p} lies outside the {info.width}x{info.height} grid")
        elif graph.degree(p) == 0:
            issues.append(f"{graph.nodes[p]['kind'].name.lower()} {p} has no corridor neighbour")

    return issues


def check_layout(
    info: WarehouseInfo,
    racks: list[Point] | None = None,
    starts: list[Point] | tuple[Point, ...] = (),
    queue_points: list[Point] | tuple[Point, ...] = (),
) -> None:
    """Raise on the first batch of layout problems.

    Raises:
        GeometryError: Listing every problem found.
    """
    issues = validate_layout(info, racks, starts, queue_points)
    if issues:
        raise GeometryError("invalid warehouse layout: " + "; ".join(issues))
