import bisect
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .models import Job


def _order_key(job: Job) -> Tuple[int, int]:
    # Higher priority first; ids are assigned in creation order.
    return (-job.priority, job.id)


class PendingQueue:
    """Jobs waiting for admission, kept in (priority desc, creation asc) order.

    Not thread-safe on its own; the scheduler guards it with its lock.
    """

    def __init__(self):
        self._keys: List[Tuple[int, int]] = []
        self._jobs: Dict[int, Job] = {}

    def push(self, job: Job) -> None:
        if job.id in self._jobs:
            raise ValueError(f"Job {job.id} is already queued")
        bisect.insort(self._keys, _order_key(job))
        self._jobs[job.id] = job

    def remove(self, job_id: int) -> Optional[Job]:
        job = self._jobs.pop(job_id, None)
        if job is None:
            return None
        key = _order_key(job)
        i = bisect.bisect_left(self._keys, key)
        del self._keys[i]
        return job

    def select(self, predicate: Callable[[Job], bool]) -> Optional[Job]:
        """Pop the first job in order for which ``predicate`` holds.

        Blocked jobs are skipped, not waited on: a lower-priority eligible job
        can be selected ahead of a higher-priority blocked one.
        """
        for i, (_, job_id) in enumerate(self._keys):
            job = self._jobs[job_id]
            if predicate(job):
                del self._keys[i]
                del self._jobs[job_id]
                return job
        return None

    def drain(self) -> List[Job]:
        jobs = list(self)
        self._keys.clear()
        self._jobs.clear()
        return jobs

    def snapshot(self) -> List[int]:
        return [job_id for _, job_id in self._keys]

    def __iter__(self) -> Iterator[Job]:
        return (self._jobs[job_id] for _, job_id in list(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, job_id) -> bool:
        return job_id in self._jobs
