"""Environment × task-automaton product construction.

Product states pair an environment state index with an automaton state and
are numbered densely in discovery order, starting from the product initial
state `(env.initial_index, automaton.initial)` which always receives index 0.

The product of two deterministic maps is deterministic: every action from
every reachable product state has exactly one successor. Product states
whose automaton component is done or failed are terminal and absorbing.

The resulting `ProductModel` owns plain arrays only. It holds no reference
to the environment, the automaton or the warehouse context, so it can be
handed to worker threads while the context keeps changing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from loguru import logger

from fleet_planner.automata.automaton import INVALID_STATE, TaskAutomaton
from fleet_planner.errors import MalformedAutomatonStateError, MissingEntryError
from fleet_planner.warehouse.grid import GridWorld

ProductState = tuple[int, int]  # (environment state index, automaton state)


@dataclass
class ProductModel:
    """Deterministic product MDP for one (agent, task) pair.

    Attributes:
        agent: Agent index.
        task: Task index.
        n_actions: Environment action count.
        states: Product states in index order.
        state_mapping: product state → index.
        successors: (n_states, n_actions) successor indices.
        rewards: (n_states, n_actions) environment rewards (0 on terminal self-loops).
        automaton_states: Automaton component per product state.
        accepting: Automaton component is accepting.
        terminal: Automaton component is done or failed.
        goal: Automaton component is accepting or done-after-accepting.
        init_index: Index of the product initial state.
    """

    agent: int
    task: int
    n_actions: int
    states: list[ProductState]
    state_mapping: dict[ProductState, int]
    successors: np.ndarray
    rewards: np.ndarray
    automaton_states: np.ndarray
    accepting: np.ndarray
    terminal: np.ndarray
    goal: np.ndarray
    init_index: int = 0
    _reverse: dict[int, ProductState] | None = field(default=None, repr=False)

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def initial_state(self) -> ProductState:
        return self.states[self.init_index]

    @property
    def reverse_state_mapping(self) -> dict[int, ProductState]:
        """index → (environment state index, automaton state)."""
        if self._reverse is None:
            self._reverse = dict(enumerate(self.states))
        return self._reverse

    def index_of(self, state: ProductState) -> int:
        try:
            return self.state_mapping[state]
        except KeyError:
            raise MissingEntryError(f"product state mapping ({self.agent}, {self.task})", state) from None

    def acceptance_rewards(self) -> np.ndarray:
        """(n_states, n_actions) indicator of transitions that enter acceptance."""
        return (~self.accepting[:, None] & self.accepting[self.successors]).astype(np.float64)


def build_product(
    env: GridWorld,
    automaton: TaskAutomaton,
    agent: int,
    task: int,
) -> ProductModel:
    """Compose an environment with a task automaton, exploring lazily.

    Args:
        env: Environment with its transition map already built.
        automaton: Task automaton bound to the current task's context.
        agent: Agent index recorded on the product.
        task: Task index recorded on the product.

    Raises:
        MalformedAutomatonStateError: If the automaton reports an
            unrecognised state for any reachable pair.
        MissingEntryError: If the environment's initial state is not in
            its state space.
    """
    if env.successors is None:
        raise RuntimeError("environment transition map must be built before the product")

    n_actions = env.n_actions
    init: ProductState = (env.initial_index, automaton.initial)
    states: list[ProductState] = [init]
    mapping: dict[ProductState, int] = {init: 0}
    succ_rows: list[list[int]] = []
    reward_rows: list[list[float]] = []

    i = 0
    while i < len(states):
        s, q = states[i]
        if automaton.is_terminal(q):
            succ_rows.append([i] * n_actions)
            reward_rows.append([0.0] * n_actions)
            i += 1
            continue

        row: list[int] = []
        rrow: list[float] = []
        for a in range(n_actions):
            s2, r, word = env.successor(s, a)
            q2 = automaton.step(q, word)
            if q2 == INVALID_STATE:
                raise MalformedAutomatonStateError(agent, task, q)
            key = (s2, q2)
            idx = mapping.get(key)
            if idx is None:
                idx = len(states)
                mapping[key] = idx
                states.append(key)
            row.append(idx)
            rrow.append(r)
        succ_rows.append(row)
        reward_rows.append(rrow)
        i += 1

    qs = np.fromiter((q for _, q in states), dtype=np.int64, count=len(states))
    accepting = np.isin(qs, list(automaton.accepting))
    terminal = np.isin(qs, list(automaton.done | automaton.fail))
    goal = np.isin(qs, list(automaton.goal_states))

    logger.debug(
        f"product agent={agent} task={task}: {len(states)} states, "
        f"{int(accepting.sum())} accepting, {int(terminal.sum())} terminal"
    )

    return ProductModel(
        agent=agent,
        task=task,
        n_actions=n_actions,
        states=states,
        state_mapping=mapping,
        successors=np.asarray(succ_rows, dtype=np.int64).reshape(len(states), n_actions),
        rewards=np.asarray(reward_rows, dtype=np.float64).reshape(len(states), n_actions),
        automaton_states=qs,
        accepting=accepting,
        terminal=terminal,
        goal=goal,
    )
