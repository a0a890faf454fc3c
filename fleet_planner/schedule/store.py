"""Schedule persistence.

Files live under `<base_dir>/schedulers/`:
    map_{agent}_{task}.json   replenishment schedule
    regen_{agent}.json        regeneration schedule
"""

from __future__ import annotations

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from loguru import logger

from fleet_planner.schedule.codec import Schedule


def schedule_dir(base_dir: str | Path) -> Path:
    return Path(base_dir) / "schedulers"


def task_schedule_name(agent: int, task: int) -> str:
    return f"map_{agent}_{task}.json"


def regen_schedule_name(agent: int) -> str:
    return f"regen_{agent}.json"


def write_schedule(path: str | Path, schedule: Schedule) -> Path:
    """Write one schedule as pretty-printed JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(schedule, f, indent=2)
    return path


def load_schedule(path: str | Path) -> Schedule:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def persist_schedules(
    task_schedules: dict[tuple[int, int], Schedule],
    regen_schedules: dict[int, Schedule],
    base_dir: str | Path,
    workers: int,
) -> list[Path]:
    """Write every schedule on a worker pool and wait for all of them.

    Args:
        task_schedules: (agent, task) → schedule.
        regen_schedules: agent → regeneration schedule.
        base_dir: Output base directory.
        workers: Pool size.

    Returns:
        Paths written, task schedules first.
    """
    out = schedule_dir(base_dir)
    out.mkdir(parents=True, exist_ok=True)
    jobs = [(out / task_schedule_name(a, t), s) for (a, t), s in sorted(task_schedules.items())]
    jobs += [(out / regen_schedule_name(a), s) for a, s in sorted(regen_schedules.items())]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(write_schedule, path, s) for path, s in jobs]
        paths = [f.result() for f in futures]
    logger.info(f"wrote {len(paths)} schedules to {out}")
    return paths
