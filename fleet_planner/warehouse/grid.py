"""Deterministic grid-world base model.

A grid world owns an enumerated state space with a dense index, the word
observed on entering each state, and a successor table filled by a single
pass over every (state, action) pair. Concrete resolutions subclass it and
implement `step()`.
"""

from __future__ import annotations

from typing import Generic, TypeVar

import numpy as np

from fleet_planner.errors import MissingEntryError
from fleet_planner.warehouse.context import WarehouseInfo

S = TypeVar("S")
W = TypeVar("W")


class GridWorld(Generic[S, W]):
    """Deterministic MDP over an enumerated grid state space.

    Attributes:
        n_actions: Size of the action space (actions are 0..n_actions-1).
        initial_state: State the agent starts planning from.
        reward: Model-wide scalar reward attached to every transition.
        states: Enumerated states in index order.
        state_mapping: state → dense index.
        reverse_state_mapping: dense index → state.
        words: Word emitted on entering each state, by index.
        successors: (n_states, n_actions) successor index table.
        rewards: (n_states, n_actions) reward table.
    """

    def __init__(self, n_actions: int, initial_state: S, reward: float = -1.0) -> None:
        self.n_actions = n_actions
        self.initial_state = initial_state
        self.reward = reward
        self.states: list[S] = []
        self.state_mapping: dict[S, int] = {}
        self.reverse_state_mapping: dict[int, S] = {}
        self.words: list[W] = []
        self.successors: np.ndarray | None = None
        self.rewards: np.ndarray | None = None

    @classmethod
    def make(cls, n_actions: int, initial_state: S, reward: float = -1.0):
        """Create an empty model; call the state-space builder next."""
        return cls(n_actions, initial_state, reward)

    # ── State space ──────────────────────────────────────────────────

    def _add_state(self, state: S, word: W) -> int:
        idx = len(self.states)
        self.states.append(state)
        self.state_mapping[state] = idx
        self.reverse_state_mapping[idx] = state
        self.words.append(word)
        return idx

    @property
    def n_states(self) -> int:
        return len(self.states)

    def index_of(self, state: S) -> int:
        """Dense index of a state.

        Raises:
            MissingEntryError: If the state is not part of the state space.
        """
        try:
            return self.state_mapping[state]
        except KeyError:
            raise MissingEntryError("environment state mapping", state) from None

    @property
    def initial_index(self) -> int:
        return self.index_of(self.initial_state)

    # ── Dynamics ─────────────────────────────────────────────────────

    def step(self, state: S, action: int, info: WarehouseInfo) -> tuple[S, W]:
        """Return the unique successor state and the word it emits."""
        raise NotImplementedError

    def transition(self, state: S, action: int, info: WarehouseInfo) -> tuple[S, float, W]:
        """Apply one action: exactly one (next_state, reward, word), probability 1."""
        if not 0 <= action < self.n_actions:
            raise ValueError(f"action {action} outside action space 0..{self.n_actions - 1}")
        next_state, word = self.step(state, action, info)
        return next_state, self.reward, word

    def transition_map(self, reward: float, info: WarehouseInfo) -> None:
        """Fill the successor and reward tables for every (state, action).

        Single pass, no fixpoint: the dynamics are deterministic so one step
        of lookahead per pair is the complete transition relation.
        """
        self.reward = reward
        n = self.n_states
        successors = np.empty((n, self.n_actions), dtype=np.int64)
        for sidx, state in enumerate(self.states):
            for a in range(self.n_actions):
                next_state, _ = self.step(state, a, info)
                successors[sidx, a] = self.index_of(next_state)
        self.successors = successors
        self.rewards = np.full((n, self.n_actions), reward, dtype=np.float64)

    def successor(self, sidx: int, action: int) -> tuple[int, float, W]:
        """Indexed transition lookup: (next_index, reward, word)."""
        if self.successors is None:
            raise RuntimeError("transition_map() has not been built")
        nxt = int(self.successors[sidx, action])
        return nxt, float(self.rewards[sidx, action]), self.words[nxt]
