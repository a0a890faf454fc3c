"""
Allocation & planning pipeline — the top-level orchestrator.

Wires together the warehouse context, the coarse and fine grid worlds, the
task automata, the product constructor and the solvers.

Usage:
    config = load_config("config/default_warehouse.yaml")
    pipeline = PlanningPipeline(config)
    result = pipeline.run()
    print(result.allocation.assignments)

Phase 1 (coarse allocation)
    One coarse product per (agent, task), chained into a single model and
    handed to the multi-objective synthesizer. The policies found are
    scanned for which agent serves each task, evaluated, mixed by the
    witness LP, and one policy index is sampled per task.

Phase 2 (fine synthesis)
    For each task, a fine product for the assigned agent is solved by
    value iteration and decoded into a schedule; then one regeneration
    schedule per agent. All schedules are written at the end.

`WarehouseInfo` is only touched on the calling thread. Pooled work receives
product models, which hold plain arrays only.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from loguru import logger

from fleet_planner.assignment.solver import (
    BlockPolicyEvaluator,
    ParetoSynthesizer,
    PolicySynthesizer,
    SynthesisResult,
    TargetPoint,
)
from fleet_planner.assignment.value_iteration import sparse_value_iteration
from fleet_planner.assignment.witness import WitnessAllocator, sample_policy_index
from fleet_planner.automata.automaton import TaskAutomaton
from fleet_planner.automata.tasks import coarse_replenishment, fine_replenishment, regeneration
from fleet_planner.errors import ConfigurationError, MissingEntryError
from fleet_planner.planning.incremental import BlockKey, IncrementalModel
from fleet_planner.planning.matrices import (
    available_actions,
    construct_sparse_and_rewards,
    proper_pairs,
    reward_fn,
)
from fleet_planner.planning.product import ProductModel, build_product
from fleet_planner.schedule.codec import Schedule, decode_schedule
from fleet_planner.schedule.store import persist_schedules
from fleet_planner.warehouse.coarse import CoarseAction, CoarseWarehouse
from fleet_planner.warehouse.config import PlannerConfig
from fleet_planner.warehouse.context import Point, WarehouseInfo
from fleet_planner.warehouse.fine import FineAction, FineState, FineWarehouse
from fleet_planner.warehouse.layout import check_layout
from fleet_planner.warehouse.orders import ReplenishmentTask, default_start_positions, generate_tasks

START_DIRECTION = 1
REGEN_TASK = -1  # Task id recorded on regeneration products


@dataclass
class AllocationResult:
    """Outcome of phase 1.

    Attributes:
        assignments: task → agent.
        policy_choice: task → sampled policy index.
        allocation: (task, policy index) → agent serving the task under it.
        costs: (agent, task, policy index) → expected cost.
        probabilities: (task, policy index) → success probability.
        witness: task → weights over policy indices.
        achieved: Target point reported by the synthesizer.
        n_policies: Number of policies synthesized.
        reverse_maps: Coarse product reverse maps per (agent, task).
    """

    assignments: dict[int, int]
    policy_choice: dict[int, int]
    allocation: dict[tuple[int, int], int]
    costs: dict[tuple[int, int, int], float]
    probabilities: dict[tuple[int, int], float]
    witness: dict[int, np.ndarray]
    achieved: TargetPoint
    n_policies: int
    reverse_maps: dict[BlockKey, dict[int, tuple[int, int]]] = field(default_factory=dict, repr=False)

    def agents_for(self, task: int) -> set[int]:
        """Agents that serve `task` under some synthesized policy."""
        return {a for (t, _), a in self.allocation.items() if t == task}


@dataclass
class PlanningResult:
    """Outcome of a full run."""

    tasks: list[ReplenishmentTask]
    allocation: AllocationResult
    agent_costs: np.ndarray
    agent_tasks: dict[int, list[int]]
    task_schedules: dict[BlockKey, Schedule] = field(repr=False)
    regen_schedules: dict[int, Schedule] = field(repr=False)
    regen_costs: np.ndarray | None = None
    paths: list[Path] = field(default_factory=list)


class PlanningPipeline:
    """Two-phase planner for a fleet of warehouse agents.

    Args:
        config: Full planner configuration.
        synthesizer: Multi-objective policy synthesizer (Pareto weight
            method by default).
        witness: Witness allocation LP.
        rng: Generator used to sample one policy per task. Defaults to one
            seeded from `config.random_seed + 1`.
    """

    def __init__(
        self,
        config: PlannerConfig,
        synthesizer: PolicySynthesizer | None = None,
        witness: WitnessAllocator | None = None,
        rng: np.random.Generator | None = None,
    ) -> None:
        self.config = config
        solver = config.solver
        self.synthesizer = synthesizer or ParetoSynthesizer(
            max_iterations=solver.pareto_iterations,
            separation_tolerance=solver.separation_tolerance,
            max_sweeps=solver.max_sweeps,
        )
        self.witness = witness or WitnessAllocator()
        self.rng = rng or np.random.default_rng(config.random_seed + 1)

        self.info: WarehouseInfo | None = None
        self.tasks: list[ReplenishmentTask] = []
        self.starts: list[Point] = []
        self.model: IncrementalModel | None = None
        self.synthesis: SynthesisResult | None = None

    @property
    def n_agents(self) -> int:
        return self.config.fleet.n_agents

    @property
    def n_tasks(self) -> int:
        return self.config.fleet.n_tasks

    # ── Setup ────────────────────────────────────────────────────────

    def setup(self) -> WarehouseInfo:
        """Build the warehouse context, tasks and agent starts, and check the layout.

        Raises:
            GeometryError: If the layout cannot support the run.
            ConfigurationError: If there are more tasks than racks.
        """
        grid, fleet = self.config.grid, self.config.fleet
        info = WarehouseInfo.from_config(grid)
        self.starts = list(fleet.start_positions or default_start_positions(grid.width, grid.height, fleet.n_agents))
        if len(self.starts) < fleet.n_agents:
            raise ConfigurationError(f"{fleet.n_agents} agents but only {len(self.starts)} start positions")
        self.starts = self.starts[: fleet.n_agents]

        rng = np.random.default_rng(self.config.random_seed)
        self.tasks = generate_tasks(info, fleet.n_tasks, rng)
        check_layout(
            info,
            racks=[info.rack_positions[task.rack] for task in self.tasks],
            starts=self.starts,
            queue_points=fleet.queue_points[: fleet.n_agents],
        )
        self.info = info
        logger.info(f"{info}; {fleet.n_agents} agents, {fleet.n_tasks} tasks")
        return info

    def run(self) -> PlanningResult:
        """Run both phases and persist every schedule."""
        if self.info is None:
            self.setup()
        allocation = self.allocate()
        result = self.synthesize(allocation)
        concurrency = self.config.concurrency
        result.paths = persist_schedules(
            result.task_schedules,
            result.regen_schedules,
            self.config.output.base_dir,
            concurrency.workers(concurrency.save_threads),
        )
        return result

    # ── Phase 1: coarse allocation ───────────────────────────────────

    def build_coarse_model(self) -> IncrementalModel:
        """Coarse products for every (agent, task), chained and with matrices attached."""
        info = self._require_info()
        reward = self.config.solver.step_reward
        na, nt = self.n_agents, self.n_tasks

        coarse = CoarseWarehouse.make(len(CoarseAction), info.coarse_cell(self.starts[0]), reward)
        size = coarse.build_state_space(info.width, info.height, info.grid_square)
        coarse.transition_map(reward, info)
        logger.info(f"coarse model: {size[0]}x{size[1]} cells, {coarse.n_states} states")

        products: dict[BlockKey, ProductModel] = {}
        for t, task in enumerate(self.tasks):
            info.select_task(task.rack, task.feed)
            for a in range(na):
                coarse.initial_state = info.coarse_cell(self.starts[a])
                products[(a, t)] = build_product(coarse, coarse_replenishment(info), a, t)

        offsets = IncrementalModel.layout(products, na, nt)

        def init_of(a: int, t: int) -> int:
            return offsets[(a, t)] + products[(a, t)].init_index

        model = IncrementalModel(coarse.n_actions, na, nt)
        for t in range(nt):
            for a in range(na):
                next_agent = init_of(a + 1, t) if a < na - 1 else init_of(a, t)
                next_task = init_of(0, t + 1) if t < nt - 1 else init_of(a, t)
                model.add_block(products[(a, t)], offsets[(a, t)], next_agent, next_task)

        concurrency = self.config.concurrency
        with ThreadPoolExecutor(max_workers=concurrency.workers(concurrency.load_threads)) as executor:
            futures = {key: executor.submit(construct_sparse_and_rewards, p) for key, p in products.items()}
        for (a, t), future in futures.items():
            model.attach_matrices(a, t, future.result())

        logger.info(f"chained model: {model.n_states} states, {model.n_transitions} transitions")
        self.model = model
        return model

    def allocate(self) -> AllocationResult:
        """Phase 1: decide which agent serves each task."""
        solver = self.config.solver
        na, nt = self.n_agents, self.n_tasks
        model = self.build_coarse_model()
        eps = solver.allocation_eps

        target = TargetPoint.uniform(na, nt, -solver.cost_ceiling, solver.task_probability)
        synthesis = self.synthesizer.synthesize(
            model, list(target.agent_rewards), list(target.task_probabilities), eps
        )
        self.synthesis = synthesis
        policies = synthesis.policies
        n_policies = len(policies)

        allocation = self.scan_allocations(model, policies)

        evaluator = BlockPolicyEvaluator(model, solver.max_sweeps)
        costs: dict[tuple[int, int, int], float] = {}
        probabilities: dict[tuple[int, int], float] = {}
        for (t, k), a in sorted(allocation.items()):
            cost, prob = evaluator.evaluate(eps, model.n_actions, policies[k], a, t)
            costs[(a, t, k)] = cost
            probabilities[(t, k)] = prob

        weights = self.witness.allocate(costs, probabilities, synthesis.achieved, n_policies, nt, na)

        assignments: dict[int, int] = {}
        choice: dict[int, int] = {}
        for t in range(nt):
            k = sample_policy_index(weights[t], self.rng)
            try:
                assignments[t] = allocation[(t, k)]
            except KeyError:
                raise MissingEntryError("allocation table", (t, k)) from None
            choice[t] = k
            logger.info(f"task {t}: policy {k} → agent {assignments[t]}")

        return AllocationResult(
            assignments=assignments,
            policy_choice=choice,
            allocation=allocation,
            costs=costs,
            probabilities=probabilities,
            witness=weights,
            achieved=synthesis.achieved,
            n_policies=n_policies,
            reverse_maps=model.reverse_maps(),
        )

    @staticmethod
    def scan_allocations(model: IncrementalModel, policies: list) -> dict[tuple[int, int], int]:
        """Match each (task, policy) to the first agent that acts under it.

        Agents are scanned in index order; a policy index, once matched for
        a task, is not considered again for that task.
        """
        allocation: dict[tuple[int, int], int] = {}
        for t in range(model.n_tasks):
            used = [False] * len(policies)
            for a in range(model.n_agents):
                init = model.block(a, t).product.init_index
                for k, policy in enumerate(policies):
                    if used[k]:
                        continue
                    try:
                        row = policy[(a, t)][init]
                    except KeyError:
                        raise MissingEntryError(f"policy {k}", (a, t)) from None
                    if row.sum() > 0:
                        allocation[(t, k)] = a
                        used[k] = True
        return allocation

    # ── Phase 2: fine synthesis ──────────────────────────────────────

    def build_fine_model(self) -> FineWarehouse:
        info = self._require_info()
        reward = self.config.solver.step_reward
        fine = FineWarehouse.make(len(FineAction), FineState(START_DIRECTION, self.starts[0]), reward)
        fine.build_state_space(info.corridor_positions)
        fine.transition_map(reward, info)
        logger.info(f"fine model: {fine.n_states} states")
        return fine

    def synthesize(self, allocation: AllocationResult) -> PlanningResult:
        """Phase 2: fine schedules for every assignment, then regeneration."""
        info = self._require_info()
        fine = self.build_fine_model()
        na = self.n_agents

        agent_costs = np.zeros(na)
        agent_tasks: dict[int, list[int]] = {a: [] for a in range(na)}
        task_schedules: dict[BlockKey, Schedule] = {}
        for t, task in enumerate(self.tasks):
            try:
                a = allocation.assignments[t]
            except KeyError:
                raise MissingEntryError("assignments", t) from None
            info.select_task(task.rack, task.feed)
            fine.initial_state = FineState(START_DIRECTION, self.starts[a])
            schedule, cost = self._plan(fine, fine_replenishment(info), a, t)
            agent_costs[a] += cost
            agent_tasks[a].append(t)
            task_schedules[(a, t)] = schedule
            logger.info(f"agent {a} task {t}: expected cost {cost:.1f}")

        regen_costs = np.zeros(na)
        regen_schedules: dict[int, Schedule] = {}
        for a in range(na):
            info.queue_point = self.config.fleet.queue_points[a]
            fine.initial_state = FineState(START_DIRECTION, self.starts[a])
            regen_schedules[a], regen_costs[a] = self._plan(fine, regeneration(info), a, REGEN_TASK)

        return PlanningResult(
            tasks=self.tasks,
            allocation=allocation,
            agent_costs=agent_costs,
            agent_tasks=agent_tasks,
            task_schedules=task_schedules,
            regen_schedules=regen_schedules,
            regen_costs=regen_costs,
        )

    def _plan(self, fine: FineWarehouse, automaton: TaskAutomaton, agent: int, task: int) -> tuple[Schedule, float]:
        """Build, solve and decode one fine product."""
        solver = self.config.solver
        product = build_product(fine, automaton, agent, task)
        proper = proper_pairs(product)
        matrices = construct_sparse_and_rewards(product)
        policy, objvals = sparse_value_iteration(
            solver.synthesis_eps,
            product.n_actions,
            product.n_states,
            product.init_index,
            proper,
            available_actions(proper),
            matrices.transitions,
            reward_fn(product),
            solver.max_sweeps,
        )
        schedule = decode_schedule(policy, product.reverse_state_mapping, fine.reverse_state_mapping)
        return schedule, float(objvals[0])

    def _require_info(self) -> WarehouseInfo:
        if self.info is None:
            return self.setup()
        return self.info
