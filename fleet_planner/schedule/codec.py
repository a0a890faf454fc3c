"""Schedule decoding and lookup.

A schedule is a nested mapping

    "(x, y)" → "direction" → [record, record, ...]

with one record per product state. Several product states collapse onto the
same position and heading (different payloads, floor packs or automaton
progress), so every bucket is a list and consumers filter it with `lookup`.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

import numpy as np

from fleet_planner.errors import MissingEntryError
from fleet_planner.warehouse.context import Point
from fleet_planner.warehouse.fine import FineState

Schedule = dict[str, dict[str, list[dict]]]


@dataclass(frozen=True)
class ScheduleRecord:
    """One product state and the action to take there."""

    direction: int
    position: Point
    carrying: int
    pack_available: int
    pack_position: Point
    action: int
    automaton_state: int

    def to_dict(self) -> dict:
        d = asdict(self)
        d["position"] = list(self.position)
        d["pack_position"] = list(self.pack_position)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> ScheduleRecord:
        return cls(
            direction=int(d["direction"]),
            position=(int(d["position"][0]), int(d["position"][1])),
            carrying=int(d["carrying"]),
            pack_available=int(d["pack_available"]),
            pack_position=(int(d["pack_position"][0]), int(d["pack_position"][1])),
            action=int(d["action"]),
            automaton_state=int(d["automaton_state"]),
        )


def position_key(p: Point) -> str:
    return f"({p[0]}, {p[1]})"


def decode_schedule(
    policy: np.ndarray,
    product_reverse: dict[int, tuple[int, int]],
    env_reverse: dict[int, FineState],
) -> Schedule:
    """Turn an optimal-action vector into a schedule.

    Args:
        policy: One action per product-state index.
        product_reverse: product index → (environment index, automaton state).
        env_reverse: environment index → fine state.

    Raises:
        MissingEntryError: If either reverse map lacks an index.
    """
    schedule: Schedule = {}
    for idx, action in enumerate(policy):
        try:
            env_idx, q = product_reverse[idx]
        except KeyError:
            raise MissingEntryError("product reverse map", idx) from None
        try:
            state = env_reverse[env_idx]
        except KeyError:
            raise MissingEntryError("environment reverse map", env_idx) from None

        record = ScheduleRecord(
            direction=state.direction,
            position=state.position,
            carrying=state.carrying,
            pack_available=state.pack_available,
            pack_position=state.pack_position,
            action=int(action),
            automaton_state=int(q),
        )
        bucket = schedule.setdefault(position_key(state.position), {}).setdefault(str(state.direction), [])
        bucket.append(record.to_dict())
    return schedule


def schedule_size(schedule: Schedule) -> int:
    """Total number of records across all buckets."""
    return sum(len(records) for by_dir in schedule.values() for records in by_dir.values())


def iter_records(schedule: Schedule):
    for by_dir in schedule.values():
        for records in by_dir.values():
            for record in records:
                yield ScheduleRecord.from_dict(record)


def lookup(schedule: Schedule, state: FineState, automaton_state: int) -> ScheduleRecord:
    """Find the record for a fine state and automaton state.

    Raises:
        MissingEntryError: If the schedule has no such record.
    """
    bucket = schedule.get(position_key(state.position), {}).get(str(state.direction), [])
    for raw in bucket:
        record = ScheduleRecord.from_dict(raw)
        if (
            record.carrying == state.carrying
            and record.pack_available == state.pack_available
            and record.pack_position == state.pack_position
            and record.automaton_state == automaton_state
        ):
            return record
    raise MissingEntryError("schedule", (state, automaton_state))
