from dataclasses import dataclass, asdict, fields
from typing import Any, Callable, FrozenSet, Optional, Protocol, runtime_checkable

# Job States
PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

ALL_STATES = (PENDING, RUNNING, COMPLETED, FAILED, CANCELLED)
TERMINAL_STATES = frozenset({COMPLETED, FAILED, CANCELLED})

# Running -> Cancelled is advisory: the body keeps executing.
ALLOWED_TRANSITIONS = {
    PENDING: {RUNNING, CANCELLED},
    RUNNING: {COMPLETED, FAILED, CANCELLED},
    COMPLETED: set(),
    FAILED: set(),
    CANCELLED: set(),
}

# Job kinds
JOB = "job"
DELAYED = "delayed"
REPEATING = "repeating"


def can_transition(old: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(old, set())


@runtime_checkable
class Runnable(Protocol):
    """A unit of work. ``run()`` returns a value or raises."""

    def run(self) -> Any:
        ...


@dataclass
class Job:
    id: int
    body: Callable[[], Any]
    priority: int = 0
    dependencies: FrozenSet[int] = frozenset()
    status: str = PENDING
    kind: str = JOB
    name: Optional[str] = None
    created_at: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    result: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def to_dict(self) -> dict:
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "body"}
        data["dependencies"] = sorted(self.dependencies)
        return data


@dataclass
class Statistics:
    queued: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    total: int = 0
    max_concurrent: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
