"""Planner exception hierarchy.

There is no recoverable tier: every error here stops the run. The split is
between operator mistakes (``ConfigurationError``) and internal
inconsistencies (``InvariantViolation``), plus solver infeasibility.
"""

from __future__ import annotations


class PlannerError(Exception):
    """Base class for all planner failures."""


class ConfigurationError(PlannerError, ValueError):
    """Invalid configuration detected before or during setup."""


class GeometryError(ConfigurationError):
    """The warehouse geometry cannot hold the requested layout."""


class InvariantViolation(PlannerError):
    """Internal consistency check failed."""


class MissingEntryError(InvariantViolation, KeyError):
    """A table entry expected to exist is absent.

    Attributes:
        table: Name of the table that was queried.
        key: The missing key.
    """

    def __init__(self, table: str, key: object) -> None:
        self.table = table
        self.key = key
        super().__init__(f"{table}: missing entry for key {key!r}")

    def __str__(self) -> str:
        return self.args[0]


class MalformedAutomatonStateError(InvariantViolation):
    """A task automaton reported an unrecognized current state."""

    def __init__(self, agent: int, task: int, state: int) -> None:
        self.agent = agent
        self.task = task
        self.state = state
        super().__init__(
            f"automaton state {state} is not recognised "
            f"(agent {agent}, task {task}); aborting product construction"
        )


class SolverInfeasibleError(PlannerError):
    """An external solver reported that its problem has no solution."""
