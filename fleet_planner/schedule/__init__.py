"""Decoded policies in their persisted form."""

from fleet_planner.schedule.codec import (
    Schedule,
    ScheduleRecord,
    decode_schedule,
    lookup,
    schedule_size,
)
from fleet_planner.schedule.store import load_schedule, persist_schedules, write_schedule

__all__ = [
    "Schedule",
    "ScheduleRecord",
    "decode_schedule",
    "lookup",
    "schedule_size",
    "load_schedule",
    "persist_schedules",
    "write_schedule",
]
