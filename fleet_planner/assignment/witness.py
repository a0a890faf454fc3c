"""Witness allocation LP and per-task policy sampling.

Given every (agent, task, policy) triple realised by the synthesized policies,
find per-task mixing weights z[t, k] over policies such that

    Σ_k z[t, k] = 1                                   for each task t
    Σ_{t,k : agent(t,k) = a} z[t, k] · cost[a, t, k] ≤ achieved cost_a + tol
    Σ_k z[t, k] · prob[t, k] ≥ achieved prob_t - tol

Only (t, k) pairs that actually allocate task t under policy k carry a
variable. The objective minimises total expected cost.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger
from scipy.optimize import linprog

from fleet_planner.assignment.solver import TargetPoint
from fleet_planner.errors import SolverInfeasibleError

CostTable = dict[tuple[int, int, int], float]  # (agent, task, k) → expected cost
ProbTable = dict[tuple[int, int], float]  # (task, k) → success probability


@dataclass
class WitnessAllocator:
    """HiGHS-backed witness LP.

    Attributes:
        tolerance: Slack granted on every target bound.
    """

    tolerance: float = 1e-6

    def allocate(
        self,
        costs: CostTable,
        probabilities: ProbTable,
        target: TargetPoint,
        n_policies: int,
        n_tasks: int,
        n_agents: int,
    ) -> dict[int, np.ndarray]:
        """Solve for per-task weights over the policy indices.

        Returns:
            task → array of length `n_policies` (zero where unallocated).

        Raises:
            SolverInfeasibleError: If some task has no allocated policy or
                the LP has no solution.
        """
        pairs = sorted({(t, k) for (_, t, k) in costs})
        column = {pair: i for i, pair in enumerate(pairs)}
        agent_of = {(t, k): a for (a, t, k) in costs}
        for t in range(n_tasks):
            if not any(pt == t for pt, _ in pairs):
                raise SolverInfeasibleError(f"task {t} is not allocated under any policy")

        n_vars = len(pairs)
        c = np.array([costs[(agent_of[p], p[0], p[1])] for p in pairs])

        a_eq = np.zeros((n_tasks, n_vars))
        for (t, k), i in column.items():
            a_eq[t, i] = 1.0
        b_eq = np.ones(n_tasks)

        a_ub = np.zeros((n_agents + n_tasks, n_vars))
        b_ub = np.zeros(n_agents + n_tasks)
        for (t, k), i in column.items():
            a = agent_of[(t, k)]
            a_ub[a, i] = costs[(a, t, k)]
            a_ub[n_agents + t, i] = -probabilities[(t, k)]
        b_ub[:n_agents] = np.array(target.costs) + self.tolerance
        b_ub[n_agents:] = -(np.array(target.task_probabilities) - self.tolerance)

        res = linprog(c, A_ub=a_ub, b_ub=b_ub, A_eq=a_eq, b_eq=b_eq, bounds=[(0, None)] * n_vars, method="highs")
        if res.status != 0:
            raise SolverInfeasibleError(f"witness allocation LP: {res.message}")

        weights = {t: np.zeros(n_policies) for t in range(n_tasks)}
        for (t, k), i in column.items():
            weights[t][k] = max(res.x[i], 0.0)
        logger.debug(f"witness LP solved, total expected cost {res.fun:.3f}")
        return weights


def sample_policy_index(weights: np.ndarray, rng: np.random.Generator) -> int:
    """Draw a policy index in proportion to `weights`."""
    total = weights.sum()
    if total <= 0:
        raise SolverInfeasibleError("witness weights for a task sum to zero")
    return int(rng.choice(len(weights), p=weights / total))
