"""Tests for the warehouse context and the coarse/fine grid worlds.

Run with: pytest tests/test_grid.py -v
"""

import numpy as np
import pytest

from fleet_planner.errors import ConfigurationError, GeometryError, MissingEntryError
from fleet_planner.warehouse.coarse import CoarseAction, CoarseWarehouse, CoarseWord
from fleet_planner.warehouse.config import GridConfig
from fleet_planner.warehouse.context import NO_POSITION, WarehouseInfo
from fleet_planner.warehouse.fine import CellType, FineAction, FineState, FineWarehouse, classify_cell, front_cell
from fleet_planner.warehouse.layout import CellKind, layout_graph, validate_layout
from fleet_planner.warehouse.orders import default_start_positions, generate_tasks


@pytest.fixture
def default_info() -> WarehouseInfo:
    """The 12x12 default warehouse."""
    return WarehouseInfo.from_config(GridConfig())


@pytest.fixture
def small_info() -> WarehouseInfo:
    """5x4 grid: racks at (2,1) (3,1) (2,2) (3,2), feed at (0,1)."""
    return WarehouseInfo.from_config(GridConfig(width=5, height=4, feed_points=((0, 1),)))


@pytest.fixture
def coarse(default_info) -> CoarseWarehouse:
    env = CoarseWarehouse.make(len(CoarseAction), (0, 0), -1.0)
    env.build_state_space(default_info.width, default_info.height)
    return env


@pytest.fixture
def small_fine(small_info) -> FineWarehouse:
    env = FineWarehouse.make(len(FineAction), FineState(1, (2, 0)), -1.0)
    env.build_state_space(small_info.corridor_positions)
    env.transition_map(-1.0, small_info)
    return env


class TestWarehouseInfo:
    """Layout generation and queries on the shared context."""

    def test_default_rack_layout(self, default_info):
        assert len(default_info.rack_positions) == 60
        assert (2, 1) in default_info.rack_positions
        assert (3, 10) in default_info.rack_positions
        assert (4, 5) not in default_info.rack_positions
        assert default_info.rack_bounds() == (2, 1, 9, 10)

    def test_corridors_exclude_racks_and_feeds(self, default_info):
        corridors = set(default_info.corridor_positions)
        assert len(corridors) == 144 - 60 - 1
        assert not corridors & set(default_info.rack_positions)
        assert (0, 5) not in corridors

    def test_too_narrow_raises(self):
        info = WarehouseInfo(4, 6, [(0, 1)])
        with pytest.raises(GeometryError, match="too narrow"):
            info.set_racks()

    def test_explicit_racks(self):
        info = WarehouseInfo(3, 3, [(0, 0)])
        info.set_racks([(1, 1)])
        info.set_corridors()
        assert info.rack_positions == ((1, 1),)
        assert len(info.corridor_positions) == 7

    def test_select_task_bounds(self, small_info):
        small_info.select_task(3, 0)
        assert small_info.target_rack == (3, 2)
        assert small_info.target_feed == (0, 1)
        with pytest.raises(ConfigurationError):
            small_info.select_task(4, 0)
        with pytest.raises(ConfigurationError):
            small_info.select_task(0, 1)

    def test_unknown_direction_raises(self, small_info):
        with pytest.raises(GeometryError):
            small_info.direction_vector(4)
        with pytest.raises(GeometryError):
            front_cell((1, 1), 9, small_info.rotation_mapping, 5, 4)

    def test_partial_rotation_mapping_raises(self, small_info):
        with pytest.raises(GeometryError, match=r"\[1, 3\]"):
            small_info.set_rotation_mapping({0: (1, 0), 2: (-1, 0)})
        # the previous mapping survives a rejected one
        assert set(small_info.rotation_mapping) == {0, 1, 2, 3}

    def test_rotation_mapping_extra_entries_allowed(self, small_info):
        mapping = {0: (1, 0), 1: (0, 1), 2: (-1, 0), 3: (0, -1), 4: (1, 1)}
        small_info.set_rotation_mapping(mapping)
        assert small_info.rotation_mapping == mapping

    def test_coarse_cell_scaling(self):
        info = WarehouseInfo.from_config(GridConfig(grid_square=2))
        assert info.coarse_cell((5, 3)) == (2, 1)


class TestLayout:
    """Corridor graph checks."""

    def test_layout_graph_kinds(self, small_info):
        g = layout_graph(small_info)
        assert g.number_of_nodes() == 20
        assert g.nodes[(2, 1)]["kind"] is CellKind.RACK
        assert g.nodes[(0, 1)]["kind"] is CellKind.FEED
        assert g.nodes[(0, 0)]["kind"] is CellKind.CORRIDOR
        # racks only connect to corridors
        assert not g.has_edge((2, 1), (3, 1))
        assert g.has_edge((1, 1), (2, 1))

    def test_default_layout_is_valid(self, default_info):
        starts = default_start_positions(12, 12, 4)
        assert validate_layout(default_info, starts=starts, queue_points=[(11, 11), (0, 11)]) == []

    def test_start_on_rack_reported(self, small_info):
        issues = validate_layout(small_info, starts=[(2, 1)])
        assert any("start position (2, 1)" in issue for issue in issues)

    def test_disconnected_corridors_reported(self):
        info = WarehouseInfo(3, 3, [(0, 0)])
        info.set_racks([(1, 0), (1, 1), (1, 2)])
        info.set_corridors()
        issues = validate_layout(info)
        assert any("not connected" in issue for issue in issues)


class TestOrders:
    """Task generation and agent placement."""

    def test_tasks_use_distinct_racks(self, default_info):
        tasks = generate_tasks(default_info, 9, np.random.default_rng(1234))
        assert len({t.rack for t in tasks}) == 9
        assert all(t.feed == 0 for t in tasks)

    def test_tasks_are_reproducible(self, default_info):
        a = generate_tasks(default_info, 5, np.random.default_rng(7))
        b = generate_tasks(default_info, 5, np.random.default_rng(7))
        assert a == b

    def test_more_tasks_than_racks(self, small_info):
        with pytest.raises(ConfigurationError):
            generate_tasks(small_info, 5, np.random.default_rng(0))

    def test_default_starts(self):
        assert default_start_positions(12, 12, 4) == [(2, 0), (2, 11), (3, 0), (3, 11)]
        with pytest.raises(GeometryError):
            default_start_positions(3, 3, 4)


class TestCoarseWarehouse:
    """Coarse grid dynamics."""

    def test_state_space(self, coarse):
        assert coarse.n_states == 144
        assert coarse.index_of((0, 0)) == 0
        assert coarse.reverse_state_mapping[coarse.index_of((4, 7))] == (4, 7)

    def test_grid_square_scaling(self):
        env = CoarseWarehouse.make(4, (0, 0))
        assert env.build_state_space(12, 12, grid_square=5) == (3, 3)
        assert env.n_states == 9

    def test_missing_state_raises(self, coarse):
        with pytest.raises(MissingEntryError, match="environment state mapping"):
            coarse.index_of((20, 20))

    def test_deterministic(self, coarse, default_info):
        for state in coarse.states:
            for a in range(coarse.n_actions):
                assert coarse.transition(state, a, default_info) == coarse.transition(state, a, default_info)

    def test_boundaries(self, coarse, default_info):
        assert coarse.transition((0, 0), CoarseAction.LEFT, default_info)[0] == (0, 0)
        assert coarse.transition((0, 0), CoarseAction.DOWN, default_info)[0] == (0, 0)
        assert coarse.transition((11, 11), CoarseAction.RIGHT, default_info)[0] == (11, 11)
        assert coarse.transition((11, 11), CoarseAction.UP, default_info)[0] == (11, 11)

    def test_odd_rack_columns_block_vertical_moves(self, coarse, default_info):
        assert coarse.transition((3, 5), CoarseAction.UP, default_info)[0] == (3, 5)
        assert coarse.transition((3, 5), CoarseAction.DOWN, default_info)[0] == (3, 5)
        assert coarse.transition((3, 0), CoarseAction.UP, default_info)[0] == (3, 1)
        assert coarse.transition((4, 5), CoarseAction.UP, default_info)[0] == (4, 6)
        # past max_x - 2 the parity rule no longer applies
        assert coarse.transition((9, 5), CoarseAction.UP, default_info)[0] == (9, 6)

    def test_transition_reward_and_word(self, coarse, default_info):
        nxt, reward, word = coarse.transition((4, 4), CoarseAction.RIGHT, default_info)
        assert nxt == (5, 4)
        assert reward == -1.0
        assert word == CoarseWord((5, 4))

    def test_invalid_action(self, coarse, default_info):
        with pytest.raises(ValueError):
            coarse.transition((0, 0), 4, default_info)

    def test_transition_map(self, coarse, default_info):
        coarse.transition_map(-1.0, default_info)
        assert coarse.successors.shape == (144, 4)
        idx = coarse.index_of((4, 4))
        nxt, reward, word = coarse.successor(idx, CoarseAction.UP)
        assert coarse.states[nxt] == (4, 5)
        assert word == CoarseWord((4, 5))


class TestFineWarehouse:
    """Fine grid dynamics."""

    def test_state_count(self, small_fine, small_info):
        n_corridors = len(small_info.corridor_positions)
        assert n_corridors == 15
        assert small_fine.n_states == n_corridors * 4 * (n_corridors - 1 + 2)

    def test_carrying_invariant(self, small_fine):
        for state in small_fine.states:
            if state.pack_available == 0:
                assert state.pack_position == NO_POSITION
            if state.carrying == 1:
                assert state.pack_available == 0

    def test_deterministic_and_closed(self, small_fine, small_info):
        for state in small_fine.states:
            for a in range(small_fine.n_actions):
                first = small_fine.transition(state, a, small_info)
                assert first == small_fine.transition(state, a, small_info)
                assert first[0] in small_fine.state_mapping

    @pytest.mark.parametrize("direction", [2, 3])
    def test_boundary_no_op(self, small_info, small_fine, direction):
        state = FineState(direction, (0, 0))
        nxt, _, _ = small_fine.transition(state, FineAction.MOVE_FORWARD, small_info)
        assert nxt.position == (0, 0)

    def test_rotation_cycles(self, small_info, small_fine):
        state = FineState(0, (0, 0))
        assert small_fine.transition(state, FineAction.ROTATE_LEFT, small_info)[0].direction == 3
        assert small_fine.transition(state, FineAction.ROTATE_RIGHT, small_info)[0].direction == 1

    def test_classify_cell_priority(self, small_info):
        assert classify_cell(None, 0, NO_POSITION, small_info) is CellType.OUT_OF_BOUNDS
        assert classify_cell((2, 1), 1, (2, 1), small_info) is CellType.RACK
        assert classify_cell((1, 0), 1, (1, 0), small_info) is CellType.PACK
        assert classify_cell((0, 1), 0, NO_POSITION, small_info) is CellType.FEED
        assert classify_cell((1, 0), 0, NO_POSITION, small_info) is CellType.FREE

    def test_rack_blocks_movement(self, small_info, small_fine):
        state = FineState(0, (1, 1))
        assert small_fine.transition(state, FineAction.MOVE_FORWARD, small_info)[0] == state

    def test_pickup_from_rack_and_feed(self, small_info, small_fine):
        at_rack = small_fine.transition(FineState(0, (1, 1)), FineAction.PICKUP, small_info)[0]
        assert at_rack.carrying == 1
        at_feed = small_fine.transition(FineState(2, (1, 1)), FineAction.PICKUP, small_info)[0]
        assert at_feed.carrying == 1

    def test_no_rack_pickup_while_pack_on_floor(self, small_info, small_fine):
        state = FineState(0, (1, 1), 0, 1, (0, 0))
        assert small_fine.transition(state, FineAction.PICKUP, small_info)[0] == state

    def test_drop_and_pick_up_floor_pack(self, small_info, small_fine):
        carrying = FineState(0, (1, 0), carrying=1)
        dropped = small_fine.transition(carrying, FineAction.DROP, small_info)[0]
        assert dropped == FineState(0, (1, 0), 0, 1, (2, 0))

        # the pack now blocks movement
        assert small_fine.transition(dropped, FineAction.MOVE_FORWARD, small_info)[0] == dropped

        picked = small_fine.transition(dropped, FineAction.PICKUP, small_info)[0]
        assert picked == FineState(0, (1, 0), 1, 0, NO_POSITION)

    def test_drop_onto_rack_clears_payload(self, small_info, small_fine):
        state = FineState(0, (1, 1), carrying=1)
        nxt = small_fine.transition(state, FineAction.DROP, small_info)[0]
        assert (nxt.carrying, nxt.pack_available, nxt.pack_position) == (0, 0, NO_POSITION)

    def test_drop_off_grid_is_no_op(self, small_info, small_fine):
        state = FineState(3, (0, 0), carrying=1)
        assert small_fine.transition(state, FineAction.DROP, small_info)[0] == state

    def test_word_reports_pack(self, small_info, small_fine):
        _, _, word = small_fine.transition(FineState(0, (1, 0), carrying=1), FineAction.DROP, small_info)
        assert word.pack_position == (2, 0)
        assert word.carrying == 0


class TestExplicitCorridors:
    """Cells left out of an explicit corridor list are impassable."""

    @pytest.fixture
    def info(self) -> WarehouseInfo:
        """5x4 grid as `small_info`, with (4, 1) left out of the corridors."""
        taken = {(2, 1), (3, 1), (2, 2), (3, 2), (0, 1), (4, 1)}
        corridors = tuple((x, y) for x in range(5) for y in range(4) if (x, y) not in taken)
        grid = GridConfig(width=5, height=4, feed_points=((0, 1),), corridor_positions=corridors)
        return WarehouseInfo.from_config(grid)

    @pytest.fixture
    def env(self, info) -> FineWarehouse:
        env = FineWarehouse.make(len(FineAction), FineState(1, (2, 0)), -1.0)
        env.build_state_space(info.corridor_positions)
        env.transition_map(-1.0, info)
        return env

    def test_gap_is_blocked(self, info):
        assert not info.is_corridor((4, 1))
        assert classify_cell((4, 1), 0, NO_POSITION, info) is CellType.BLOCKED
        assert layout_graph(info).nodes[(4, 1)]["kind"] is CellKind.BLOCKED

    def test_transition_map_is_closed(self, env, info):
        assert env.n_states == 14 * 4 * (13 + 2)
        for state in env.states:
            for a in range(env.n_actions):
                assert env.transition(state, a, info)[0] in env.state_mapping

    def test_move_into_gap_is_no_op(self, env, info):
        state = FineState(1, (4, 0))
        assert env.transition(state, FineAction.MOVE_FORWARD, info)[0] == state
        state = FineState(3, (4, 2))
        assert env.transition(state, FineAction.MOVE_FORWARD, info)[0] == state

    def test_drop_onto_gap_is_no_op(self, env, info):
        state = FineState(1, (4, 0), carrying=1)
        assert env.transition(state, FineAction.DROP, info)[0] == state


class TestTwoByTwoScenario:
    """Single rack at (1,0), single feed at (0,0), agent at (0,1) facing right."""

    @pytest.fixture
    def tiny(self):
        info = WarehouseInfo(2, 2, [(0, 0)])
        info.set_racks([(1, 0)])
        info.set_corridors()
        info.set_rotation_mapping()
        env = FineWarehouse.make(5, FineState(0, (0, 1)))
        env.build_state_space(info.corridor_positions)
        return info, env

    def test_turning_around_keeps_payload_empty(self, tiny):
        info, env = tiny
        state = FineState(0, (0, 1))
        for action in (FineAction.ROTATE_RIGHT, FineAction.ROTATE_RIGHT, FineAction.MOVE_FORWARD, FineAction.MOVE_FORWARD):
            state = env.transition(state, action, info)[0]
            assert state.carrying == 0
            assert state.pack_available == 0
        # facing left off the grid, so both moves were no-ops
        assert state == FineState(2, (0, 1))

    def test_reach_rack_and_pick_up(self, tiny):
        info, env = tiny
        state = FineState(0, (0, 1))
        state = env.transition(state, FineAction.MOVE_FORWARD, info)[0]
        assert state.position == (1, 1)
        state = env.transition(state, FineAction.ROTATE_LEFT, info)[0]
        assert front_cell(state.position, state.direction, info.rotation_mapping, 2, 2) == (1, 0)
        assert (state.carrying, state.pack_available) == (0, 0)
        state = env.transition(state, FineAction.PICKUP, info)[0]
        assert state.carrying == 1
