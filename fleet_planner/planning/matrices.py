"""Sparse matrices and auxiliary structures for the solvers.

Everything here is a pure function of a `ProductModel`, so it can run in a
worker thread.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import breadth_first_order

from fleet_planner.planning.product import ProductModel


@dataclass
class ProductMatrices:
    """Per-action transition matrices and reward vectors of one product.

    Attributes:
        transitions: One (n_states × n_states) CSR matrix per action.
        rewards: One environment-reward vector per action.
        task_rewards: One vector per action, 1.0 where the transition
            enters an accepting automaton state.
    """

    transitions: list[csr_matrix]
    rewards: list[np.ndarray]
    task_rewards: list[np.ndarray]

    @property
    def nnz(self) -> int:
        return sum(m.nnz for m in self.transitions)


def construct_sparse_and_rewards(product: ProductModel) -> ProductMatrices:
    """Build CSR transition matrices and reward vectors, one per action."""
    n = product.n_states
    rows = np.arange(n)
    ones = np.ones(n, dtype=np.float64)
    accept = product.acceptance_rewards()

    transitions = []
    rewards = []
    task_rewards = []
    for a in range(product.n_actions):
        transitions.append(csr_matrix((ones, (rows, product.successors[:, a])), shape=(n, n)))
        rewards.append(product.rewards[:, a].copy())
        task_rewards.append(accept[:, a].copy())
    return ProductMatrices(transitions, rewards, task_rewards)


def reaches(product: ProductModel, target: np.ndarray) -> np.ndarray:
    """Mask of states from which some state in `target` is reachable.

    Breadth-first search on the reversed transition graph, seeded from a
    virtual sink that points at every target state.
    """
    n = product.n_states
    sink = n
    src = product.successors.ravel()
    dst = np.repeat(np.arange(n), product.n_actions)
    targets = np.flatnonzero(target)
    rev = csr_matrix(
        (
            np.ones(src.size + targets.size, dtype=np.int8),
            (np.concatenate([src, np.full(targets.size, sink)]), np.concatenate([dst, targets])),
        ),
        shape=(n + 1, n + 1),
    )
    order = breadth_first_order(rev, sink, directed=True, return_predecessors=False)
    mask = np.zeros(n + 1, dtype=bool)
    mask[order] = True
    return mask[:n]


def proper_pairs(product: ProductModel, target: np.ndarray | None = None) -> np.ndarray:
    """(n_states, n_actions) mask of proper state/action pairs.

    A pair is proper when its successor can still reach `target` (the goal
    states by default) and the action makes progress, i.e. is not a
    self-loop. Pairs leading only into the fail sink are therefore excluded.
    States already in `target` keep every action.
    """
    if target is None:
        target = product.goal
    can_reach = reaches(product, target)
    succ = product.successors
    proper = can_reach[succ] & (succ != np.arange(product.n_states)[:, None])
    proper[target] = True
    return proper


def available_actions(proper: np.ndarray) -> list[np.ndarray]:
    """Actions usable in each state: the proper ones, or all if none is proper."""
    n_actions = proper.shape[1]
    every = np.arange(n_actions)
    return [np.flatnonzero(row) if row.any() else every for row in proper]


def reward_fn(product: ProductModel) -> np.ndarray:
    """(n_states, n_actions) step cost, zero once the goal has been reached."""
    rewards = product.rewards.copy()
    rewards[product.goal] = 0.0
    return rewards
