"""
Multi-objective policy synthesis and policy evaluation over the chained model.

Objectives
──────────
The chained model has one objective per agent (accumulated reward, i.e. the
negated expected cost of everything that agent does) and one per task (the
probability the task's automaton reaches acceptance). Both are maximised.
A target point bounds all of them from below:

    agent a  :  reward_a  ≥ target_a       (e.g. -15 → at most 15 steps)
    task  t  :  prob_t    ≥ target_t       (e.g. 0.99)

Method
──────
  1. Pick a weight vector w over the objectives (uniform to start).
  2. Solve the scalarised chained model by backward block value iteration:
     blocks are processed from the last task / last agent to the first;
     a block's terminal states are worth the value of the next task's
     initial state, and a block's initial state may instead hand the task
     to the next agent. The result is a deterministic policy.
  3. Evaluate that policy per objective → one achievable point.
  4. Solve a separating-hyperplane LP between the target and the points
     found so far. A non-positive margin means the target is dominated by a
     mixture of the points and the loop stops; otherwise the LP's normal
     becomes the next weight vector.
  5. The achieved target is the target clipped to the best mixture of the
     points found.

Policies are dicts keyed by (agent, task) holding an (n_states, n_actions)
array of action probabilities. An all-zero row at a block's initial state
means the agent hands the task on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np
from loguru import logger
from scipy.optimize import linprog

from fleet_planner.errors import MissingEntryError, SolverInfeasibleError
from fleet_planner.planning.incremental import BlockKey, IncrementalModel, ModelBlock

Policy = dict[BlockKey, np.ndarray]


# ─────────────────────────────────────────────────────────────────────────────
# Public types
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TargetPoint:
    """Lower bounds on every objective.

    Agent entries are rewards (negated costs), task entries probabilities.
    """

    agent_rewards: tuple[float, ...]
    task_probabilities: tuple[float, ...]

    @property
    def costs(self) -> tuple[float, ...]:
        """Per-agent expected cost bounds (positive)."""
        return tuple(-r for r in self.agent_rewards)

    def as_vector(self) -> np.ndarray:
        return np.array(self.agent_rewards + self.task_probabilities, dtype=np.float64)

    @classmethod
    def from_vector(cls, vector: np.ndarray, n_agents: int) -> TargetPoint:
        values = [float(v) for v in vector]
        return cls(tuple(values[:n_agents]), tuple(values[n_agents:]))

    @classmethod
    def uniform(cls, n_agents: int, n_tasks: int, agent_reward: float, task_probability: float) -> TargetPoint:
        return cls((agent_reward,) * n_agents, (task_probability,) * n_tasks)


@dataclass
class SynthesisResult:
    """Policies found by the synthesizer and the target they achieve.

    Attributes:
        policies: One policy per weight vector explored, in order.
        points: Objective vector of each policy.
        weights: Weight vector that produced each policy.
        mixture: Convex combination of `points` behind `achieved`.
        achieved: Target clipped to what the mixture reaches.
    """

    policies: list[Policy]
    points: list[np.ndarray]
    weights: list[np.ndarray]
    mixture: np.ndarray
    achieved: TargetPoint
    reached_target: bool = False


class PolicyEvaluator(Protocol):
    def evaluate(
        self, eps: float, n_actions: int, policy: Policy, agent: int, task: int
    ) -> tuple[float, float]: ...


class PolicySynthesizer(Protocol):
    def synthesize(
        self,
        model: IncrementalModel,
        agent_targets: list[float],
        task_targets: list[float],
        eps: float,
    ) -> SynthesisResult: ...


# ─────────────────────────────────────────────────────────────────────────────
# Policy evaluation
# ─────────────────────────────────────────────────────────────────────────────


class BlockPolicyEvaluator:
    """Iterative evaluation of one (agent, task) block under a policy.

    Args:
        model: Chained model whose blocks carry their sparse matrices.
        max_sweeps: Hard cap on evaluation sweeps.
    """

    def __init__(self, model: IncrementalModel, max_sweeps: int = 10_000) -> None:
        self.model = model
        self.max_sweeps = max_sweeps

    def evaluate(
        self, eps: float, n_actions: int, policy: Policy, agent: int, task: int
    ) -> tuple[float, float]:
        """Expected cost and success probability from the block's initial state.

        Raises:
            MissingEntryError: If the block, its matrices or its policy
                entry are absent.
        """
        block = self.model.block(agent, task)
        mats = block.matrices
        if mats is None:
            raise MissingEntryError("block matrices", (agent, task))
        try:
            pi = policy[(agent, task)]
        except KeyError:
            raise MissingEntryError("policy", (agent, task)) from None

        n = block.product.n_states
        cost = np.zeros(n)
        prob = np.zeros(n)
        for _ in range(self.max_sweeps):
            new_cost = np.zeros(n)
            new_prob = np.zeros(n)
            for a in range(n_actions):
                p = pi[:, a]
                if not p.any():
                    continue
                new_cost += p * (-mats.rewards[a] + mats.transitions[a] @ cost)
                new_prob += p * (mats.task_rewards[a] + mats.transitions[a] @ prob)
            delta = max(np.max(np.abs(new_cost - cost)), np.max(np.abs(new_prob - prob)))
            cost, prob = new_cost, new_prob
            if delta < eps:
                break
        else:
            logger.warning(f"policy evaluation of ({agent}, {task}) hit the sweep cap")

        init = block.product.init_index
        return float(cost[init]), float(prob[init])


# ─────────────────────────────────────────────────────────────────────────────
# Synthesis
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class ParetoSynthesizer:
    """Weight-vector synthesis of policies toward a target point.

    Attributes:
        max_iterations: Weight vectors explored at most.
        separation_tolerance: Margin below which the target counts as reached.
        weight_floor: Minimum normalised weight per objective.
        max_sweeps: Cap on value-iteration sweeps per block.
    """

    max_iterations: int = 10
    separation_tolerance: float = 1e-3
    weight_floor: float = 1e-3
    max_sweeps: int = 10_000

    def synthesize(
        self,
        model: IncrementalModel,
        agent_targets: list[float],
        task_targets: list[float],
        eps: float,
    ) -> SynthesisResult:
        """Explore weight vectors until the target is dominated or max_iterations is hit."""
        na, nt = model.n_agents, model.n_tasks
        if len(agent_targets) != na or len(task_targets) != nt:
            raise ValueError(
                f"expected {na} agent targets and {nt} task targets, "
                f"got {len(agent_targets)} and {len(task_targets)}"
            )
        target = np.array(list(agent_targets) + list(task_targets), dtype=np.float64)
        scale = np.maximum(np.abs(target), 1.0)

        policies: list[Policy] = []
        points: list[np.ndarray] = []
        weights: list[np.ndarray] = []
        reached = False

        scaled_w = np.full(na + nt, 1.0 / (na + nt))
        for it in range(self.max_iterations):
            w = self._model_weights(scaled_w, scale)
            policy = self.optimal_policy(model, w, eps)
            point = self.objective_point(model, policy, eps)
            policies.append(policy)
            points.append(point)
            weights.append(w)
            logger.debug(f"synthesis iteration {it}: weights={np.round(w, 4)} point={np.round(point, 3)}")

            if scaled_w @ (point / scale) < scaled_w @ (target / scale) - self.separation_tolerance:
                logger.info(f"target not achievable along weight vector {it}; stopping")
                break

            next_w, margin = self._separate(np.array(points) / scale, target / scale)
            if margin <= self.separation_tolerance:
                reached = True
                break
            if any(np.allclose(next_w, prev, atol=1e-6) for prev in self._scaled(weights, scale)):
                logger.debug("separating direction repeats; stopping")
                break
            scaled_w = next_w

        mixture, achieved = self._achievable(np.array(points), target, scale)
        logger.info(
            f"synthesis: {len(policies)} policies, target {'reached' if reached else 'relaxed'}, "
            f"achieved={np.round(achieved, 3)}"
        )
        return SynthesisResult(
            policies=policies,
            points=points,
            weights=weights,
            mixture=mixture,
            achieved=TargetPoint.from_vector(achieved, na),
            reached_target=reached,
        )

    # ── Scalarised solve ─────────────────────────────────────────────

    def optimal_policy(self, model: IncrementalModel, weights: np.ndarray, eps: float) -> Policy:
        """Deterministic policy maximising the weighted objective sum."""
        na, nt = model.n_agents, model.n_tasks
        values: dict[BlockKey, np.ndarray] = {}
        policy: Policy = {}

        def value_at(index: int) -> float:
            key, local = model.locate(index)
            return float(values[key][local])

        for t in reversed(range(nt)):
            for a in reversed(range(na)):
                block = model.block(a, t)
                exit_value = value_at(block.next_task_index) if block.has_next_task else 0.0
                switch_value = value_at(block.next_agent_index) if block.has_next_agent else None
                values[(a, t)], policy[(a, t)] = self._solve_block(
                    block, weights[a], weights[na + t], exit_value, switch_value, eps
                )
        return policy

    def _solve_block(
        self,
        block: ModelBlock,
        w_agent: float,
        w_task: float,
        exit_value: float,
        switch_value: float | None,
        eps: float,
    ) -> tuple[np.ndarray, np.ndarray]:
        product = block.product
        mats = block.matrices
        if mats is None or block.proper is None:
            raise MissingEntryError("block matrices", (product.agent, product.task))

        n, n_actions = product.n_states, product.n_actions
        init = product.init_index
        proper = block.proper
        live = proper.any(axis=1) & ~product.terminal
        if not live[init] and switch_value is None:
            raise SolverInfeasibleError(
                f"agent {product.agent} cannot complete task {product.task} and nobody can take it over"
            )

        rewards = np.stack(
            [w_agent * mats.rewards[a] + w_task * mats.task_rewards[a] for a in range(n_actions)], axis=1
        )
        values = np.zeros(n)
        values[product.terminal] = exit_value
        q = np.empty((n, n_actions))
        for _ in range(self.max_sweeps):
            for a in range(n_actions):
                q[:, a] = rewards[:, a] + mats.transitions[a] @ values
            q[~proper] = -np.inf
            updated = values.copy()
            updated[live] = q[live].max(axis=1)
            if switch_value is not None:
                updated[init] = max(updated[init] if live[init] else -np.inf, switch_value)
            delta = float(np.max(np.abs(updated - values)))
            values = updated
            if delta < eps:
                break
        else:
            logger.warning(f"block ({product.agent}, {product.task}) value iteration hit the sweep cap")

        pi = np.zeros((n, n_actions))
        live_idx = np.flatnonzero(live)
        pi[live_idx, np.argmax(q[live_idx], axis=1)] = 1.0
        if switch_value is not None and (not live[init] or switch_value > q[init].max() + 1e-9):
            pi[init] = 0.0
        return values, pi

    def objective_point(self, model: IncrementalModel, policy: Policy, eps: float) -> np.ndarray:
        """Per-agent reward and per-task probability of a chained policy."""
        na, nt = model.n_agents, model.n_tasks
        evaluator = BlockPolicyEvaluator(model, self.max_sweeps)
        rewards = np.zeros(na)
        probs = np.zeros(nt)
        for t in range(nt):
            for a in range(na):
                block = model.block(a, t)
                acts = policy[(a, t)][block.product.init_index].sum() > 0
                if acts or not block.has_next_agent:
                    cost, prob = evaluator.evaluate(eps, model.n_actions, policy, a, t)
                    rewards[a] -= cost
                    probs[t] = prob
                    break
        return np.concatenate([rewards, probs])

    # ── Weight LPs ───────────────────────────────────────────────────

    @staticmethod
    def _model_weights(scaled_w: np.ndarray, scale: np.ndarray) -> np.ndarray:
        w = scaled_w / scale
        return w / w.sum()

    @staticmethod
    def _scaled(weights: list[np.ndarray], scale: np.ndarray) -> list[np.ndarray]:
        out = []
        for w in weights:
            s = w * scale
            out.append(s / s.sum())
        return out

    def _separate(self, points: np.ndarray, target: np.ndarray) -> tuple[np.ndarray, float]:
        """Weights maximising the margin by which `target` beats every point.

        Variables are (w_1..w_d, margin): maximise margin subject to
        w·x_i + margin ≤ w·target for all points, Σw = 1, w ≥ floor.
        """
        m, d = points.shape
        c = np.zeros(d + 1)
        c[-1] = -1.0
        a_ub = np.hstack([points - target, np.ones((m, 1))])
        b_ub = np.zeros(m)
        a_eq = np.hstack([np.ones((1, d)), np.zeros((1, 1))])
        floor = min(self.weight_floor, 1.0 / d)
        bounds = [(floor, None)] * d + [(None, None)]
        res = linprog(c, A_ub=a_ub, b_ub=b_ub, A_eq=a_eq, b_eq=[1.0], bounds=bounds, method="highs")
        if res.status != 0:
            raise SolverInfeasibleError(f"separating hyperplane LP failed: {res.message}")
        return res.x[:d], float(res.x[-1])

    @staticmethod
    def _achievable(points: np.ndarray, target: np.ndarray, scale: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Convex combination of `points` closest to dominating `target`.

        Minimises the uniform relaxation r (in scaled units) such that
        Σ λ_i x_i ≥ target - r·scale. Returns (λ, achieved) where achieved
        is the target clipped to the mixture.
        """
        m, d = points.shape
        c = np.zeros(m + 1)
        c[-1] = 1.0
        a_ub = np.hstack([-(points / scale).T, -np.ones((d, 1))])
        b_ub = -(target / scale)
        a_eq = np.hstack([np.ones((1, m)), np.zeros((1, 1))])
        bounds = [(0, None)] * m + [(0, None)]
        res = linprog(c, A_ub=a_ub, b_ub=b_ub, A_eq=a_eq, b_eq=[1.0], bounds=bounds, method="highs")
        if res.status != 0:
            raise SolverInfeasibleError(f"target relaxation LP failed: {res.message}")
        mixture = np.clip(res.x[:m], 0.0, None)
        mixture /= mixture.sum()
        return mixture, np.minimum(target, points.T @ mixture)
