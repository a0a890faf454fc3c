"""Sparse value iteration for single-agent cost-optimal synthesis.

Maximises accumulated reward (rewards are negative step costs) until a goal
state is reached. States that cannot reach the goal at all are frozen at
value 0 and never chosen by any proper action.
"""

from __future__ import annotations

import numpy as np
from loguru import logger
from scipy.sparse import csr_matrix

from fleet_planner.errors import SolverInfeasibleError


def sparse_value_iteration(
    eps: float,
    n_actions: int,
    n_states: int,
    init_index: int,
    proper: np.ndarray,
    available: list[np.ndarray],
    matrices: list[csr_matrix],
    rewards: np.ndarray,
    max_sweeps: int = 10_000,
) -> tuple[np.ndarray, np.ndarray]:
    """Solve a product MDP by Bellman sweeps.

    Args:
        eps: Stop once no value changes by more than this.
        n_actions: Number of actions.
        n_states: Number of states.
        init_index: Initial state index.
        proper: (n_states, n_actions) proper state/action mask.
        available: Usable actions per state.
        matrices: One (n_states × n_states) transition matrix per action.
        rewards: (n_states, n_actions) rewards, zero in goal states.
        max_sweeps: Hard cap on the number of sweeps.

    Returns:
        Tuple of (policy, objective values). The policy holds one action per
        state; objective value 0 is the expected cost from `init_index`.

    Raises:
        SolverInfeasibleError: If the goal cannot be reached from the
            initial state.
    """
    live = proper.any(axis=1)
    if not live[init_index]:
        raise SolverInfeasibleError(f"goal unreachable from initial state {init_index}")

    allowed = np.zeros((n_states, n_actions), dtype=bool)
    for s, acts in enumerate(available):
        allowed[s, acts] = True
    allowed &= live[:, None]
    # frozen states keep their first action in the returned policy
    allowed[~live, 0] = True

    values = np.zeros(n_states)
    q = np.empty((n_states, n_actions))
    sweeps = 0
    while True:
        for a in range(n_actions):
            q[:, a] = rewards[:, a] + matrices[a] @ values
        q[~allowed] = -np.inf
        updated = np.where(live, q.max(axis=1), 0.0)
        delta = float(np.max(np.abs(updated - values))) if n_states else 0.0
        values = updated
        sweeps += 1
        if delta < eps:
            break
        if sweeps >= max_sweeps:
            logger.warning(f"value iteration stopped after {sweeps} sweeps (delta={delta:.3g})")
            break

    policy = np.argmax(q, axis=1).astype(np.int64)
    logger.debug(f"value iteration: {sweeps} sweeps, value at init {values[init_index]:.3f}")
    return policy, np.array([-values[init_index]])
