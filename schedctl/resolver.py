"""Dependency checks.

``lookup`` is any ``job_id -> Job | None`` callable; the scheduler passes its
own record table so these helpers stay free of locking concerns.
"""

from typing import Callable, Iterable, List, Optional, Set

from .models import COMPLETED, FAILED, Job

Lookup = Callable[[int], Optional[Job]]

# A dependency is satisfied once it has an outcome, good or bad.
# Cancelled or never-submitted dependencies block their dependents.
SATISFIED_STATES = frozenset({COMPLETED, FAILED})


def eligible(job: Job, lookup: Lookup) -> bool:
    for dep_id in job.dependencies:
        dep = lookup(dep_id)
        if dep is None or dep.status not in SATISFIED_STATES:
            return False
    return True


def missing(dependencies: Iterable[int], lookup: Lookup) -> Set[int]:
    return {dep_id for dep_id in dependencies if lookup(dep_id) is None}


def find_cycle(job_id: int, dependencies: Iterable[int], lookup: Lookup) -> Optional[List[int]]:
    """Return the cycle that adding ``job_id -> dependencies`` would close.

    A cycle can only pass through the new job, since existing jobs may hold
    forward references to ids that were not yet submitted. The path is
    returned as ``[job_id, ..., job_id]``; None when the graph stays acyclic.
    """
    deps = sorted(set(dependencies))
    if job_id in deps:
        return [job_id, job_id]

    visited: Set[int] = set()
    # Each stack entry is (node, path from job_id to node).
    stack = [(dep_id, [job_id, dep_id]) for dep_id in reversed(deps)]
    while stack:
        node, path = stack.pop()
        if node == job_id:
            return path
        if node in visited:
            continue
        visited.add(node)
        record = lookup(node)
        if record is None:
            continue
        for nxt in sorted(record.dependencies, reverse=True):
            if nxt == job_id:
                return path + [job_id]
            if nxt not in visited:
                stack.append((nxt, path + [nxt]))
    return None
