"""Task automaton framework.

A task automaton is a deterministic finite automaton driven by the words an
environment emits, plus read access to the shared warehouse context. Its
transition function is pure: `(state, word, info) → next state`.

Unrecognised states never raise inside the transition function; they map
to INVALID_STATE so that the caller decides how to abort.
"""

from __future__ import annotations

from typing import Callable, Generic, Iterable, TypeVar

from fleet_planner.errors import ConfigurationError
from fleet_planner.warehouse.context import WarehouseInfo

W = TypeVar("W")

INVALID_STATE = -1

TransitionFn = Callable[[int, W, WarehouseInfo], int]


class TaskAutomaton(Generic[W]):
    """Deterministic finite automaton over environment words.

    Args:
        initial: Initial automaton state.
        states: Declared finite state set (non-negative integers).
        accepting: States that mark the task as satisfied.
        fail: Absorbing failure states.
        transition: Pure transition function.
        info: Warehouse context borrowed read-only.
        done: Self-looping states after acceptance; product states whose
            automaton component is in `done` or `fail` are terminal.

    Raises:
        ConfigurationError: If the declared sets are inconsistent.
    """

    def __init__(
        self,
        initial: int,
        states: Iterable[int],
        accepting: Iterable[int],
        fail: Iterable[int],
        transition: TransitionFn,
        info: WarehouseInfo,
        done: Iterable[int] = (),
    ) -> None:
        self.states = frozenset(states)
        self.initial = initial
        self.accepting = frozenset(accepting)
        self.fail = frozenset(fail)
        self.done = frozenset(done)
        self.transition = transition
        self.info = info

        if any(q < 0 for q in self.states):
            raise ConfigurationError("automaton states must be non-negative integers")
        if initial not in self.states:
            raise ConfigurationError(f"initial state {initial} is not a declared state")
        for name, subset in (("accepting", self.accepting), ("fail", self.fail), ("done", self.done)):
            if not subset <= self.states:
                raise ConfigurationError(f"{name} states {sorted(subset - self.states)} are not declared")
        if self.accepting & self.fail:
            raise ConfigurationError("a state cannot be both accepting and failing")

    @classmethod
    def init(
        cls,
        initial: int,
        states: Iterable[int],
        accepting: Iterable[int],
        fail: Iterable[int],
        transition: TransitionFn,
        info: WarehouseInfo,
        done: Iterable[int] = (),
    ) -> TaskAutomaton:
        return cls(initial, states, accepting, fail, transition, info, done)

    def step(self, state: int, word: W) -> int:
        """Next state, or INVALID_STATE if either end is undeclared."""
        if state not in self.states:
            return INVALID_STATE
        nxt = self.transition(state, word, self.info)
        if nxt not in self.states:
            return INVALID_STATE
        return nxt

    def run(self, words: Iterable[W], state: int | None = None) -> list[int]:
        """Feed words one at a time; returns the visited states including the start."""
        q = self.initial if state is None else state
        visited = [q]
        for w in words:
            q = self.step(q, w)
            visited.append(q)
            if q == INVALID_STATE:
                break
        return visited

    # ── Classification ───────────────────────────────────────────────

    @property
    def goal_states(self) -> frozenset[int]:
        """Accepting states plus the non-failing states reached after them."""
        return self.accepting | (self.done - self.fail)

    def is_accepting(self, state: int) -> bool:
        return state in self.accepting

    def is_fail(self, state: int) -> bool:
        return state in self.fail

    def is_terminal(self, state: int) -> bool:
        return state in self.done or state in self.fail

    def __repr__(self) -> str:
        return (
            f"TaskAutomaton({getattr(self.transition, '__name__', 'transition')}, "
            f"states={sorted(self.states)}, accepting={sorted(self.accepting)}, "
            f"fail={sorted(self.fail)})"
        )
