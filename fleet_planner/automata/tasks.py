"""Concrete warehouse task automata.

coarse replenishment (coarse words, accepting {3})
    0 ─reach rack→ 1 ─reach feed→ 2 ─reach rack→ 3 → 4 (done)

fine replenishment (fine words, accepting {5}, fail {7})
    0 ─face rack, empty→ 1 ─pickup→ 2 ─face feed, carrying→ 3
      ─face rack, carrying→ 4 ─drop→ 5 → 6 (done)
    losing the payload while it is required, or picking one up before
    reaching the rack, falls into 7

regeneration (fine words, accepting {1})
    0 ─reach queue point→ 1 → 2 (done)
"""

from __future__ import annotations

from fleet_planner.automata.automaton import INVALID_STATE, TaskAutomaton
from fleet_planner.warehouse.coarse import CoarseWord
from fleet_planner.warehouse.context import Point, WarehouseInfo
from fleet_planner.warehouse.fine import FineWord, front_cell

FINE_FAIL = 7


# ── Coarse replenishment ─────────────────────────────────────────────


def goto_rack_position(word: CoarseWord, info: WarehouseInfo, reached: int, waiting: int) -> int:
    if word.position == info.coarse_cell(info.target_rack):
        return reached
    return waiting


def goto_feed_position(word: CoarseWord, info: WarehouseInfo) -> int:
    if word.position == info.coarse_cell(info.target_feed):
        return 2
    return 1


def coarse_replenishment_transition(q: int, word: CoarseWord, info: WarehouseInfo) -> int:
    if q == 0:
        return goto_rack_position(word, info, 1, 0)
    if q == 1:
        return goto_feed_position(word, info)
    if q == 2:
        return goto_rack_position(word, info, 3, 2)
    if q in (3, 4):
        return 4
    return INVALID_STATE


def coarse_replenishment(info: WarehouseInfo) -> TaskAutomaton:
    """Rack → feed → rack at coarse resolution, for the selected task."""
    return TaskAutomaton(0, range(5), [3], [], coarse_replenishment_transition, info, done=[4])


# ── Fine replenishment ───────────────────────────────────────────────


def _facing(word: FineWord, info: WarehouseInfo) -> Point | None:
    return front_cell(word.position, word.direction, info.rotation_mapping, info.width, info.height)


def goto_rack(word: FineWord, info: WarehouseInfo) -> int:
    """Approach the target rack empty-handed."""
    if word.carrying != 0:
        return FINE_FAIL
    if _facing(word, info) == info.target_rack:
        return 1
    return 0


def pickup_rack(word: FineWord) -> int:
    return 2 if word.carrying == 1 else 1


def carry_rack_to_feed(word: FineWord, info: WarehouseInfo) -> int:
    if word.carrying != 1:
        return FINE_FAIL
    if _facing(word, info) == info.target_feed:
        return 3
    return 2


def carry_rack_back(word: FineWord, info: WarehouseInfo) -> int:
    if word.carrying != 1:
        return FINE_FAIL
    if _facing(word, info) == info.target_rack:
        return 4
    return 3


def drop_rack(word: FineWord) -> int:
    return 5 if word.carrying == 0 else 4


def fine_replenishment_transition(q: int, word: FineWord, info: WarehouseInfo) -> int:
    if q == 0:
        return goto_rack(word, info)
    if q == 1:
        return pickup_rack(word)
    if q == 2:
        return carry_rack_to_feed(word, info)
    if q == 3:
        return carry_rack_back(word, info)
    if q == 4:
        return drop_rack(word)
    if q in (5, 6):
        return 6
    if q == FINE_FAIL:
        return FINE_FAIL
    return INVALID_STATE


def fine_replenishment(info: WarehouseInfo) -> TaskAutomaton:
    """Borrow the selected rack, show it at the feed, and put it back."""
    return TaskAutomaton(0, range(8), [5], [FINE_FAIL], fine_replenishment_transition, info, done=[6])


# ── Regeneration ─────────────────────────────────────────────────────


def goto_queue_position(word: FineWord, info: WarehouseInfo) -> int:
    return 1 if word.position == info.queue_point else 0


def regeneration_transition(q: int, word: FineWord, info: WarehouseInfo) -> int:
    if q == 0:
        return goto_queue_position(word, info)
    if q in (1, 2):
        return 2
    return INVALID_STATE


def regeneration(info: WarehouseInfo) -> TaskAutomaton:
    """Return to the agent's queue point (set on `info.queue_point`)."""
    return TaskAutomaton(0, range(3), [1], [], regeneration_transition, info, done=[2])
