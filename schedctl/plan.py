"""JSON job plans.

A plan lists shell commands with priorities and ordering constraints::

    {
      "max_concurrent": 2,
      "jobs": [
        {"name": "fetch", "cmd": "curl -sO https://example.com/data.csv", "priority": 5},
        {"name": "load", "cmd": "python load.py", "after": ["fetch"]},
        {"name": "warmup", "cmd": "true", "delay": "2s"},
        {"name": "ping", "cmd": "true", "repeat": {"interval": "1s", "count": 3}}
      ]
    }

``after`` may only name jobs listed earlier in the file.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .commands import ShellCommand
from .errors import PlanError
from .utils import parse_delay_to_seconds

ENTRY_KEYS = {"name", "cmd", "priority", "after", "delay", "repeat", "timeout"}


@dataclass
class PlanEntry:
    name: str
    command: str
    priority: int = 0
    after: Tuple[str, ...] = ()
    delay: Optional[float] = None
    repeat_interval: Optional[float] = None
    repeat_count: Optional[int] = None
    timeout: Optional[float] = None


@dataclass
class Plan:
    entries: List[PlanEntry] = field(default_factory=list)
    max_concurrent: Optional[int] = None
    source: str = "<plan>"


def load_plan(path: str) -> Plan:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise PlanError(f"{path}: invalid JSON ({e})")
    return parse_plan(data, source=str(path))


def _seconds(value, what: str, where: str) -> float:
    try:
        return parse_delay_to_seconds(value)
    except (TypeError, ValueError) as e:
        raise PlanError(f"{where}: invalid {what} ({e})")


def _int(value, what: str, where: str, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise PlanError(f"{where}: {what} must be an integer >= {minimum}")
    return value


def _parse_entry(raw: Any, index: int, seen: Dict[str, int], source: str) -> PlanEntry:
    where = f"{source}: jobs[{index}]"
    if not isinstance(raw, dict):
        raise PlanError(f"{where}: expected an object")
    unknown = set(raw) - ENTRY_KEYS
    if unknown:
        raise PlanError(f"{where}: unknown keys {', '.join(sorted(unknown))}")

    name = raw.get("name")
    if not isinstance(name, str) or not name.strip():
        raise PlanError(f"{where}: 'name' is required")
    if name in seen:
        raise PlanError(f"{where}: duplicate job name '{name}'")
    where = f"{source}: job '{name}'"

    command = raw.get("cmd")
    if not isinstance(command, str) or not command.strip():
        raise PlanError(f"{where}: 'cmd' is required")

    after = raw.get("after", [])
    if isinstance(after, str):
        after = [after]
    if not isinstance(after, list):
        raise PlanError(f"{where}: 'after' must be a list of job names")
    for dep in after:
        if dep not in seen:
            raise PlanError(f"{where}: 'after' references unknown or later job '{dep}'")

    entry = PlanEntry(name=name, command=command, after=tuple(after))
    if "priority" in raw:
        priority = raw["priority"]
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise PlanError(f"{where}: priority must be an integer")
        entry.priority = priority
    if "timeout" in raw:
        entry.timeout = _seconds(raw["timeout"], "timeout", where)
        if entry.timeout <= 0:
            raise PlanError(f"{where}: timeout must be > 0")
    if "delay" in raw and "repeat" in raw:
        raise PlanError(f"{where}: use either 'delay' or 'repeat', not both")
    if "delay" in raw:
        entry.delay = _seconds(raw["delay"], "delay", where)
    if "repeat" in raw:
        repeat = raw["repeat"]
        if not isinstance(repeat, dict) or "interval" not in repeat:
            raise PlanError(f"{where}: 'repeat' needs an 'interval'")
        entry.repeat_interval = _seconds(repeat["interval"], "repeat interval", where)
        if repeat.get("count") is None:
            raise PlanError(f"{where}: plan jobs must repeat a bounded number of times")
        entry.repeat_count = _int(repeat["count"], "repeat count", where, 0)
    return entry


def parse_plan(data: Any, source: str = "<plan>") -> Plan:
    if not isinstance(data, dict) or not isinstance(data.get("jobs"), list):
        raise PlanError(f"{source}: expected an object with a 'jobs' list")
    plan = Plan(source=source)
    if data.get("max_concurrent") is not None:
        plan.max_concurrent = _int(data["max_concurrent"], "max_concurrent", source, 1)

    seen: Dict[str, int] = {}
    for index, raw in enumerate(data["jobs"]):
        entry = _parse_entry(raw, index, seen, source)
        seen[entry.name] = index
        plan.entries.append(entry)
    return plan


def submit_plan(scheduler, plan: Plan, timeout: float = 20) -> Dict[str, int]:
    """Submit every entry as one batch. Returns job ids keyed by name."""
    ids: Dict[str, int] = {}
    with scheduler.paused():
        for entry in plan.entries:
            body = ShellCommand(entry.command, timeout=entry.timeout or timeout)
            deps = [ids[name] for name in entry.after]
            if entry.repeat_interval is not None:
                job_id = scheduler.submit_repeating(
                    body, entry.repeat_interval, entry.repeat_count, entry.priority, deps, name=entry.name
                )
            elif entry.delay is not None:
                job_id = scheduler.submit_delayed(body, entry.delay, entry.priority, deps, name=entry.name)
            else:
                job_id = scheduler.submit(body, entry.priority, deps, name=entry.name)
            ids[entry.name] = job_id
    return ids
