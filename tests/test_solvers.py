"""Tests for value iteration, policy synthesis/evaluation and the witness LP.

Run with: pytest tests/test_solvers.py -v
"""

import numpy as np
import pytest

from fleet_planner.assignment.solver import BlockPolicyEvaluator, ParetoSynthesizer, TargetPoint
from fleet_planner.assignment.value_iteration import sparse_value_iteration
from fleet_planner.assignment.witness import WitnessAllocator, sample_policy_index
from fleet_planner.automata.tasks import coarse_replenishment, fine_replenishment, regeneration
from fleet_planner.errors import SolverInfeasibleError
from fleet_planner.planning.incremental import IncrementalModel
from fleet_planner.planning.matrices import (
    available_actions,
    construct_sparse_and_rewards,
    proper_pairs,
    reward_fn,
)
from fleet_planner.planning.product import build_product
from fleet_planner.warehouse.coarse import CoarseAction, CoarseWarehouse
from fleet_planner.warehouse.config import GridConfig
from fleet_planner.warehouse.context import WarehouseInfo
from fleet_planner.warehouse.fine import FineAction, FineState, FineWarehouse


@pytest.fixture
def info() -> WarehouseInfo:
    """5x4 grid, task on rack (2,1) with feed (0,1)."""
    info = WarehouseInfo.from_config(GridConfig(width=5, height=4, feed_points=((0, 1),)))
    info.select_task(0, 0)
    return info


@pytest.fixture
def coarse(info) -> CoarseWarehouse:
    env = CoarseWarehouse.make(len(CoarseAction), (2, 0), -1.0)
    env.build_state_space(info.width, info.height)
    env.transition_map(-1.0, info)
    return env


@pytest.fixture
def fine(info) -> FineWarehouse:
    env = FineWarehouse.make(len(FineAction), FineState(1, (2, 0)), -1.0)
    env.build_state_space(info.corridor_positions)
    env.transition_map(-1.0, info)
    return env


def solve(product, eps=1e-6):
    proper = proper_pairs(product)
    mats = construct_sparse_and_rewards(product)
    return sparse_value_iteration(
        eps,
        product.n_actions,
        product.n_states,
        product.init_index,
        proper,
        available_actions(proper),
        mats.transitions,
        reward_fn(product),
    )


def chain(products: dict, n_agents: int, n_tasks: int) -> IncrementalModel:
    """Chain products the way the pipeline does and attach their matrices."""
    offsets = IncrementalModel.layout(products, n_agents, n_tasks)
    model = IncrementalModel(4, n_agents, n_tasks)
    for t in range(n_tasks):
        for a in range(n_agents):
            own = offsets[(a, t)]
            next_agent = offsets[(a + 1, t)] if a < n_agents - 1 else own
            next_task = offsets[(0, t + 1)] if t < n_tasks - 1 else own
            model.add_block(products[(a, t)], own, next_agent, next_task)
    for (a, t), p in products.items():
        model.attach_matrices(a, t, construct_sparse_and_rewards(p))
    return model


class TestSparseValueIteration:
    """Single-agent fine synthesis."""

    def test_optimal_cost(self, fine, info):
        product = build_product(fine, fine_replenishment(info), 0, 0)
        policy, objvals = solve(product)
        assert policy.shape == (product.n_states,)
        # look at rack, pick up, 7 moves via the feed back to the rack, drop
        assert objvals[0] == pytest.approx(10.0)

    def test_policy_walk_matches_cost(self, fine, info):
        product = build_product(fine, fine_replenishment(info), 0, 0)
        policy, objvals = solve(product)
        s, steps = product.init_index, 0
        while not product.goal[s]:
            s = product.successors[s, policy[s]]
            steps += 1
            assert steps <= product.n_states
        assert steps == pytest.approx(objvals[0])

    def test_regeneration(self, fine, info):
        info.queue_point = (4, 3)
        product = build_product(fine, regeneration(info), 0, -1)
        _, objvals = solve(product)
        # (2,0)→(4,3): 2 east, 3 south, at least one turn in between
        assert 5 < objvals[0] < 10

    def test_unreachable_goal_raises(self, fine, info):
        info.queue_point = (2, 1)  # a rack cell, never stood on
        product = build_product(fine, regeneration(info), 0, -1)
        with pytest.raises(SolverInfeasibleError):
            solve(product)


class TestBlockPolicyEvaluator:
    """Evaluation of synthesized block policies."""

    def test_single_block(self, coarse, info):
        product = build_product(coarse, coarse_replenishment(info), 0, 0)
        model = chain({(0, 0): product}, 1, 1)
        synth = ParetoSynthesizer()
        policy = synth.optimal_policy(model, np.array([0.5, 0.5]), 1e-6)
        cost, prob = BlockPolicyEvaluator(model).evaluate(1e-6, 4, policy, 0, 0)
        # (2,0) → rack (2,1) → feed (0,1) → rack (2,1), then one step into done
        assert cost == pytest.approx(6.0)
        assert prob == pytest.approx(1.0)

    def test_randomised_policy(self, coarse, info):
        product = build_product(coarse, coarse_replenishment(info), 0, 0)
        model = chain({(0, 0): product}, 1, 1)
        synth = ParetoSynthesizer()
        greedy = synth.optimal_policy(model, np.array([0.5, 0.5]), 1e-6)[(0, 0)]
        uniform_live = np.where(greedy.sum(axis=1, keepdims=True) > 0, 0.5 * greedy + 0.5 / 4, 0.0)
        cost, prob = BlockPolicyEvaluator(model, max_sweeps=100_000).evaluate(
            1e-9, 4, {(0, 0): uniform_live}, 0, 0
        )
        assert cost > 6.0
        assert prob == pytest.approx(1.0, abs=1e-4)


class TestParetoSynthesizer:
    """Chained multi-agent synthesis."""

    @pytest.fixture
    def two_agent_model(self, coarse, info):
        products = {}
        for a, start in enumerate([(4, 3), (2, 0)]):
            coarse.initial_state = start
            products[(a, 0)] = build_product(coarse, coarse_replenishment(info), a, 0)
        return chain(products, 2, 1)

    def test_nearer_agent_takes_the_task(self, two_agent_model):
        synth = ParetoSynthesizer()
        policy = synth.optimal_policy(two_agent_model, np.array([1 / 3, 1 / 3, 1 / 3]), 1e-6)
        # agent 0 needs 9 steps, agent 1 needs 6: agent 0 hands over
        assert policy[(0, 0)][0].sum() == 0
        assert policy[(1, 0)][0].sum() == 1

    def test_objective_point_on_fresh_synthesizer(self, two_agent_model):
        synth = ParetoSynthesizer()
        policy = synth.optimal_policy(two_agent_model, np.array([1 / 3, 1 / 3, 1 / 3]), 1e-6)
        point = synth.objective_point(two_agent_model, policy, 1e-6)
        assert point == pytest.approx([0.0, -6.0, 1.0])

    def test_expensive_agent_gets_work_when_cheap_one_is_weighted(self, two_agent_model):
        synth = ParetoSynthesizer()
        policy = synth.optimal_policy(two_agent_model, np.array([0.01, 0.98, 0.01]), 1e-6)
        assert policy[(0, 0)][0].sum() == 1
        point = synth.objective_point(two_agent_model, policy, 1e-6)
        assert point == pytest.approx([-9.0, 0.0, 1.0])

    def test_synthesize_reaches_loose_target(self, two_agent_model):
        result = ParetoSynthesizer().synthesize(two_agent_model, [-15.0, -15.0], [0.99], 1e-6)
        assert result.reached_target
        assert len(result.policies) == len(result.points) == len(result.weights) >= 1
        assert result.mixture.sum() == pytest.approx(1.0)
        assert result.achieved.agent_rewards == pytest.approx((-15.0, -15.0))
        assert result.achieved.task_probabilities == pytest.approx((0.99,))

    def test_tight_target_is_relaxed(self, two_agent_model):
        result = ParetoSynthesizer().synthesize(two_agent_model, [-1.0, -1.0], [0.99], 1e-6)
        assert not result.reached_target
        mixed = np.array(result.points).T @ result.mixture
        assert np.all(result.achieved.as_vector() <= mixed + 1e-9)
        # somebody must walk at least 6 steps
        assert sum(result.achieved.costs) >= 6.0 - 1e-6

    def test_target_length_checked(self, two_agent_model):
        with pytest.raises(ValueError):
            ParetoSynthesizer().synthesize(two_agent_model, [-15.0], [0.99], 1e-6)


class TestWitnessAllocator:
    """Per-task mixing weights over policies."""

    @pytest.fixture
    def tables(self):
        costs = {(0, 0, 0): 5.0, (1, 0, 1): 3.0, (0, 1, 0): 4.0, (1, 1, 1): 6.0}
        probs = {(0, 0): 1.0, (0, 1): 1.0, (1, 0): 1.0, (1, 1): 1.0}
        return costs, probs

    def test_cheapest_mix(self, tables):
        costs, probs = tables
        target = TargetPoint((-10.0, -10.0), (0.9, 0.9))
        weights = WitnessAllocator().allocate(costs, probs, target, 2, 2, 2)
        assert weights[0] == pytest.approx([0.0, 1.0], abs=1e-7)
        assert weights[1] == pytest.approx([1.0, 0.0], abs=1e-7)

    def test_weights_sum_to_one(self, tables):
        costs, probs = tables
        target = TargetPoint((-8.0, -8.0), (0.9, 0.9))
        weights = WitnessAllocator().allocate(costs, probs, target, 2, 2, 2)
        for w in weights.values():
            assert w.sum() == pytest.approx(1.0)

    def test_infeasible_target(self, tables):
        costs, probs = tables
        target = TargetPoint((-1.0, -1.0), (0.9, 0.9))
        with pytest.raises(SolverInfeasibleError):
            WitnessAllocator().allocate(costs, probs, target, 2, 2, 2)

    def test_unallocated_task(self, tables):
        costs, probs = tables
        target = TargetPoint((-10.0, -10.0), (0.9, 0.9, 0.9))
        with pytest.raises(SolverInfeasibleError, match="task 2"):
            WitnessAllocator().allocate(costs, probs, target, 2, 3, 2)

    def test_probability_floor(self):
        costs = {(0, 0, 0): 1.0, (1, 0, 1): 9.0}
        probs = {(0, 0): 0.5, (0, 1): 1.0}
        target = TargetPoint((-20.0, -20.0), (0.9,))
        weights = WitnessAllocator().allocate(costs, probs, target, 2, 1, 2)
        assert 0.5 * weights[0][0] + 1.0 * weights[0][1] >= 0.9 - 1e-6


class TestSampling:
    def test_degenerate_weights(self):
        rng = np.random.default_rng(0)
        assert all(sample_policy_index(np.array([0.0, 1.0, 0.0]), rng) == 1 for _ in range(20))

    def test_zero_weights_raise(self):
        with pytest.raises(SolverInfeasibleError):
            sample_policy_index(np.zeros(3), np.random.default_rng(0))
