"""Scheduler error types.

Faults raised inside a job body never show up here: they are captured by
the execution unit and surface as a ``failed`` job with an ``error`` string.
"""

from typing import Iterable, List, Optional


class SchedulerError(Exception):
    """Base class for schedctl errors."""


class CreationFault(SchedulerError):
    """A job could not be submitted."""


class CyclicDependencyError(CreationFault):
    def __init__(self, cycle: Iterable[int]):
        self.cycle: List[int] = list(cycle)
        path = " -> ".join(str(i) for i in self.cycle)
        super().__init__(f"Dependency cycle detected: {path}")


class UnknownDependencyError(CreationFault):
    def __init__(self, missing: Iterable[int]):
        self.missing: List[int] = sorted(missing)
        super().__init__(f"Unknown dependency ids: {', '.join(map(str, self.missing))}")


class InvalidTransition(SchedulerError):
    def __init__(self, job_id: int, old: str, new: str):
        self.job_id = job_id
        self.old = old
        self.new = new
        super().__init__(f"Job {job_id}: invalid state transition {old} -> {new}")


class CommandFailed(SchedulerError):
    def __init__(self, command: str, returncode: int, detail: Optional[str] = None):
        self.command = command
        self.returncode = returncode
        msg = f"exit_code={returncode}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class PlanError(SchedulerError):
    """Malformed plan file."""
