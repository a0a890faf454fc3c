"""
Warehouse layout and schedule visualization.

Renders the fine grid as a top-down floor plan with:
- Racks as blue blocks, task racks outlined
- Feed points as orange triangles
- Corridor cells as light tiles with their adjacency graph
- Agent starts and queue points as labelled markers
- A decoded schedule as one arrow per (position, heading)

Usage:
    from fleet_planner.warehouse.config import load_config
    from fleet_planner.planning.pipeline import PlanningPipeline
    from fleet_planner.analysis.visualizations import plot_warehouse

    pipeline = PlanningPipeline(load_config("config/default_warehouse.yaml"))
    info = pipeline.setup()
    fig = plot_warehouse(info, starts=pipeline.starts)
    fig.savefig("warehouse_layout.png", dpi=150, bbox_inches="tight")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import matplotlib.patches as mpatches
import matplotlib.pyplot as plt
import numpy as np

from fleet_planner.warehouse.context import Point, WarehouseInfo
from fleet_planner.warehouse.fine import FineAction
from fleet_planner.warehouse.layout import CellKind, corridor_graph, layout_graph
from fleet_planner.schedule.codec import Schedule, iter_records

if TYPE_CHECKING:
    from matplotlib.axes import Axes
    from matplotlib.figure import Figure


# ── Styling constants ────────────────────────────────────────────

RACK_COLOR = "#6baed6"
TASK_RACK_EDGE = "#08306b"
FEED_COLOR = "#e6550d"
CORRIDOR_COLOR = "#f0f0f0"
EDGE_COLOR = "#bdbdbd"
START_COLOR = "#31a354"
QUEUE_COLOR = "#756bb1"
ARROW_COLOR = "#252525"

ACTION_MARKERS: dict[int, tuple[str, str]] = {
    FineAction.PICKUP: ("P", "#e41a1c"),
    FineAction.DROP: ("X", "#ff7f00"),
}


def plot_warehouse(
    info: WarehouseInfo,
    starts: list[Point] | None = None,
    queue_points: list[Point] | None = None,
    task_racks: list[Point] | None = None,
    title: str = "Warehouse Layout",
    figsize: tuple[float, float] | None = None,
    show_graph: bool = True,
) -> Figure:
    """Render the warehouse grid as a top-down floor plan.

    Args:
        info: Warehouse context with racks and corridors placed.
        starts: Agent start positions.
        queue_points: Agent queue points.
        task_racks: Racks used by tasks, drawn outlined.
        title: Plot title.
        figsize: Figure size in inches. Auto-calculated if None.
        show_graph: Draw corridor adjacency edges.

    Returns:
        matplotlib Figure object.
    """
    if figsize is None:
        aspect = info.width / max(info.height, 1)
        fig_width = min(16, max(6, aspect * 8))
        figsize = (fig_width, fig_width / max(aspect, 0.4))

    fig, ax = plt.subplots(1, 1, figsize=figsize)
    ax.set_facecolor("#fdfdfd")
    fig.patch.set_facecolor("white")

    _draw_cells(ax, info, set(task_racks or ()))
    if show_graph:
        _draw_corridor_edges(ax, info)
    _draw_agents(ax, starts or [], START_COLOR, "o", "A")
    _draw_agents(ax, queue_points or [], QUEUE_COLOR, "s", "Q")
    _add_legend(ax, bool(starts), bool(queue_points))
    _format_axes(ax, info, title)
    fig.tight_layout()
    return fig


def plot_schedule(
    info: WarehouseInfo,
    schedule: Schedule,
    automaton_state: int,
    carrying: int = 0,
    pack_available: int = 0,
    title: str | None = None,
) -> Figure:
    """Draw the action chosen in every cell for one automaton state.

    Forward moves are arrows along the heading, rotations are short arcs
    drawn as heading ticks, pickups and drops get their own markers.
    """
    fig, ax = plt.subplots(1, 1, figsize=(8, 8 * info.height / max(info.width, 1)))
    _draw_cells(ax, info, {info.target_rack} if info.rack_positions else set())

    xs, ys, us, vs = [], [], [], []
    for record in iter_records(schedule):
        if (
            record.automaton_state != automaton_state
            or record.carrying != carrying
            or record.pack_available != pack_available
        ):
            continue
        dx, dy = info.direction_vector(record.direction)
        x, y = record.position
        if record.action == FineAction.MOVE_FORWARD:
            xs.append(x)
            ys.append(y)
            us.append(dx)
            vs.append(dy)
        elif record.action in ACTION_MARKERS:
            marker, color = ACTION_MARKERS[record.action]
            ax.scatter(x + 0.25 * dx, y + 0.25 * dy, marker=marker, c=color, s=60, zorder=6)
        else:
            ax.plot([x, x + 0.2 * dx], [y, y + 0.2 * dy], color="#969696", linewidth=1, zorder=4)

    if xs:
        # y grows downwards after axis inversion, so flip the v component
        ax.quiver(
            np.array(xs), np.array(ys), np.array(us), -np.array(vs),
            color=ARROW_COLOR, scale=1, scale_units="xy", width=0.004, zorder=5,
        )
    _format_axes(ax, info, title or f"Schedule, automaton state {automaton_state}")
    fig.tight_layout()
    return fig


def plot_agent_costs(costs: np.ndarray, agent_tasks: dict[int, list[int]] | None = None) -> Figure:
    """Bar chart of per-agent accumulated expected cost."""
    fig, ax = plt.subplots(1, 1, figsize=(6, 4))
    agents = np.arange(len(costs))
    bars = ax.bar(agents, costs, color=RACK_COLOR, edgecolor=TASK_RACK_EDGE)
    if agent_tasks:
        for a, bar in zip(agents, bars):
            ax.annotate(
                ",".join(str(t) for t in agent_tasks.get(int(a), [])) or "-",
                (bar.get_x() + bar.get_width() / 2, bar.get_height()),
                textcoords="offset points",
                xytext=(0, 3),
                ha="center",
                fontsize=8,
            )
    ax.set_xticks(agents)
    ax.set_xlabel("Agent")
    ax.set_ylabel("Expected cost (steps)")
    ax.set_title("Per-agent cost", fontweight="bold")
    ax.grid(True, axis="y", alpha=0.2, linestyle="--")
    fig.tight_layout()
    return fig


# ── Drawing helpers ──────────────────────────────────────────────


def _draw_cells(ax: Axes, info: WarehouseInfo, task_racks: set[Point]) -> None:
    graph = layout_graph(info)
    for (x, y), data in graph.nodes(data=True):
        kind = data["kind"]
        if kind is CellKind.RACK:
            edge = TASK_RACK_EDGE if (x, y) in task_racks else "white"
            ax.add_patch(
                mpatches.Rectangle(
                    (x - 0.45, y - 0.45), 0.9, 0.9, facecolor=RACK_COLOR, edgecolor=edge, linewidth=1.5
                )
            )
        elif kind is CellKind.CORRIDOR:
            ax.add_patch(mpatches.Rectangle((x - 0.5, y - 0.5), 1, 1, facecolor=CORRIDOR_COLOR, edgecolor="white"))
        elif kind is CellKind.FEED:
            ax.scatter(x, y, marker="^", c=FEED_COLOR, s=160, zorder=3, edgecolors="white")


def _draw_corridor_edges(ax: Axes, info: WarehouseInfo) -> None:
    for (x0, y0), (x1, y1) in corridor_graph(layout_graph(info)).edges():
        ax.plot([x0, x1], [y0, y1], color=EDGE_COLOR, linewidth=0.6, alpha=0.6, zorder=1)


def _draw_agents(ax: Axes, points: list[Point], color: str, marker: str, prefix: str) -> None:
    for i, (x, y) in enumerate(points):
        ax.scatter(x, y, c=color, marker=marker, s=110, zorder=7, edgecolors="white", linewidths=1)
        ax.annotate(f"{prefix}{i}", (x, y), textcoords="offset points", xytext=(5, 5), fontsize=8, zorder=8)


def _add_legend(ax: Axes, has_starts: bool, has_queues: bool) -> None:
    handles = [
        mpatches.Patch(color=RACK_COLOR, label="Rack"),
        mpatches.Patch(color=CORRIDOR_COLOR, label="Corridor"),
        ax.scatter([], [], c=FEED_COLOR, marker="^", s=80, label="Feed point"),
    ]
    if has_starts:
        handles.append(ax.scatter([], [], c=START_COLOR, marker="o", s=60, label="Agent start"))
    if has_queues:
        handles.append(ax.scatter([], [], c=QUEUE_COLOR, marker="s", s=60, label="Queue point"))
    ax.legend(handles=handles, loc="upper left", bbox_to_anchor=(1.01, 1), fontsize=8.5, title="Legend")


def _format_axes(ax: Axes, info: WarehouseInfo, title: str) -> None:
    ax.set_title(title, fontsize=13, fontweight="bold", pad=10)
    ax.set_xlim(-0.5, info.width - 0.5)
    ax.set_ylim(info.height - 0.5, -0.5)
    ax.set_aspect("equal")
    ax.set_xticks(range(info.width))
    ax.set_yticks(range(info.height))
    ax.set_xlabel("x")
    ax.set_ylabel("y")
