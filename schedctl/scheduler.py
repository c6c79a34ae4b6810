"""In-process job scheduler.

Jobs are admitted in (priority desc, submission asc) order once their
dependencies have an outcome and a concurrency slot is free. Each admitted
job runs on its own daemon thread; when it finishes, its outcome is stored,
its callback fires, and admission runs again to fill the freed slot.

Usage::

    scheduler = Scheduler(max_concurrent=2)
    fetch = scheduler.submit(fetch_data, priority=5)
    report = scheduler.submit(build_report, dependencies=[fetch])
    result, error = scheduler.wait(report, timeout=30)
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import CyclicDependencyError, InvalidTransition, UnknownDependencyError
from .models import (
    CANCELLED, COMPLETED, DELAYED, FAILED, JOB, PENDING, REPEATING, RUNNING,
    Job, Runnable, Statistics, can_transition,
)
from .queue import PendingQueue
from .resolver import eligible, find_cycle, missing
from .utils import now_iso

logger = logging.getLogger(__name__)

Callback = Callable[[bool, Any, Optional[str]], None]

CANCELLED_ERROR = "cancelled"

_local = threading.local()


def current_job_id() -> Optional[int]:
    """Id of the job whose body is executing on this thread, if any."""
    return getattr(_local, "job_id", None)


def describe_error(exc: BaseException) -> str:
    msg = str(exc)
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _as_callable(body) -> Callable[[], Any]:
    if isinstance(body, Runnable):
        return body.run
    if callable(body):
        return body
    raise TypeError(f"Job body must be callable or provide run(), got {type(body).__name__}")


def _check_priority(priority) -> int:
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise TypeError(f"priority must be an int, got {priority!r}")
    return priority


def _check_dependencies(dependencies) -> frozenset:
    deps = frozenset(dependencies or ())
    for dep in deps:
        if isinstance(dep, bool) or not isinstance(dep, int):
            raise TypeError(f"dependency ids must be ints, got {dep!r}")
    return deps


def _check_limit(n) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n < 1:
        raise ValueError(f"concurrency limit must be an int >= 1, got {n!r}")
    return n


class Scheduler:
    def __init__(self, max_concurrent: int = 10, strict_dependencies: bool = False,
                 start_paused: bool = False):
        self._max_concurrent = _check_limit(max_concurrent)
        self.strict_dependencies = strict_dependencies

        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)

        self._next_id = 0
        self._jobs: Dict[int, Job] = {}
        self._queue = PendingQueue()
        # Jobs whose bodies are executing; each holds one concurrency slot.
        self._running: Dict[int, Job] = {}
        self._results: Dict[int, Any] = {}
        self._callbacks: Dict[int, Callback] = {}
        self._cancel_events: Dict[int, threading.Event] = {}
        # Final status of forgotten jobs, so later dependents still resolve.
        self._forgotten: Dict[int, str] = {}

        self._paused = start_paused
        self._admitting = False
        self._work_ready = False

    # ---------- Submission ----------
    def submit(self, body, priority: int = 0, dependencies: Iterable[int] = (),
               *, name: Optional[str] = None) -> int:
        """Queue ``body`` and return its job id."""
        return self._submit(_as_callable(body), priority, dependencies, name, JOB)

    def submit_delayed(self, body, delay: float, priority: int = 0,
                       dependencies: Iterable[int] = (), *, name: Optional[str] = None) -> int:
        """Queue ``body`` to run ``delay`` seconds after it is admitted.

        The job holds its concurrency slot while it waits. Cancelling it during
        the delay means the body never runs.
        """
        fn = _as_callable(body)
        delay = float(delay)
        if delay < 0:
            raise ValueError("delay must be >= 0 seconds")

        def delayed():
            if self.sleep(delay):
                return None
            return fn()

        return self._submit(delayed, priority, dependencies, name, DELAYED)

    def submit_repeating(self, body, interval: float, count: Optional[int] = None,
                         priority: int = 0, dependencies: Iterable[int] = (),
                         *, name: Optional[str] = None) -> int:
        """Queue ``body`` to run ``count`` times, ``interval`` seconds apart.

        ``count=None`` repeats until the job is cancelled. The whole run is one
        job in one slot; its result is the number of iterations performed.
        """
        fn = _as_callable(body)
        interval = float(interval)
        if interval < 0:
            raise ValueError("interval must be >= 0 seconds")
        if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count < 0):
            raise ValueError(f"count must be None or an int >= 0, got {count!r}")

        def more(done: int) -> bool:
            return count is None or done < count

        def repeating():
            iterations = 0
            while more(iterations) and not self.is_cancelled():
                fn()
                iterations += 1
                if more(iterations) and self.sleep(interval):
                    break
            return iterations

        return self._submit(repeating, priority, dependencies, name, REPEATING)

    def _submit(self, fn, priority, dependencies, name, kind) -> int:
        priority = _check_priority(priority)
        deps = _check_dependencies(dependencies)

        with self._lock:
            job_id = self._next_id + 1
            if self.strict_dependencies:
                unknown = missing(deps, self._lookup)
                if unknown:
                    raise UnknownDependencyError(unknown)
            cycle = find_cycle(job_id, deps, self._lookup)
            if cycle:
                raise CyclicDependencyError(cycle)

            self._next_id = job_id
            job = Job(id=job_id, body=fn, priority=priority, dependencies=deps,
                      kind=kind, name=name, created_at=now_iso())
            self._jobs[job_id] = job
            self._cancel_events[job_id] = threading.Event()
            self._queue.push(job)

        logger.debug("Submitted job %s (%s, priority=%s, deps=%s)",
                     job_id, kind, priority, sorted(deps))
        self._process_admissions()
        return job_id

    # ---------- Admission ----------
    def _process_admissions(self) -> None:
        """Admit as many eligible jobs as there are free slots.

        Never blocks. Only one thread admits at a time; a caller that finds
        admission already in progress flags more work and returns, and the
        admitting thread loops until no flagged work remains.
        """
        with self._lock:
            self._work_ready = True
            if self._admitting:
                return
            self._admitting = True

        try:
            while True:
                with self._lock:
                    if not self._work_ready or self._paused:
                        self._admitting = False
                        return
                    self._work_ready = False
                    admitted = self._admit_locked()
                for job, cancel_event in admitted:
                    self._launch(job, cancel_event)
        except BaseException:
            with self._lock:
                self._admitting = False
            raise

    def _admit_locked(self) -> List[Tuple[Job, threading.Event]]:
        admitted = []
        while self._queue and self._has_capacity():
            job = self._queue.select(self._is_eligible)
            if job is None:
                break
            self._transition(job, RUNNING)
            job.started_at = now_iso()
            self._running[job.id] = job
            admitted.append((job, self._cancel_events[job.id]))
        return admitted

    def _has_capacity(self) -> bool:
        return len(self._running) < self._max_concurrent

    def _is_eligible(self, job: Job) -> bool:
        return eligible(job, self._lookup)

    def _lookup(self, job_id: int) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None and job_id in self._forgotten:
            # finished and forgotten: a bodiless record with only its final status
            return Job(id=job_id, body=None, status=self._forgotten[job_id])
        return job

    def _transition(self, job: Job, new: str) -> None:
        if not can_transition(job.status, new):
            raise InvalidTransition(job.id, job.status, new)
        job.status = new

    # ---------- Execution ----------
    def _launch(self, job: Job, cancel_event: threading.Event) -> None:
        thread = threading.Thread(
            target=self._execute, args=(job, cancel_event), name=f"job-{job.id}", daemon=True
        )
        try:
            thread.start()
        except RuntimeError as e:
            logger.error("Could not start thread for job %s: %s", job.id, e)
            self._finish(job, False, None, describe_error(e))

    def _execute(self, job: Job, cancel_event: threading.Event) -> None:
        _local.job_id = job.id
        _local.cancel_event = cancel_event
        if cancel_event.is_set():
            # Cancelled between admission and thread start.
            self._finish(job, False, None, CANCELLED_ERROR)
            _local.job_id = _local.cancel_event = None
            return
        logger.info("Executing job %s%s", job.id, f" ({job.name})" if job.name else "")
        try:
            result = job.body()
        except Exception as e:
            logger.warning("Job %s failed: %s", job.id, e, exc_info=logger.isEnabledFor(logging.DEBUG))
            self._finish(job, False, None, describe_error(e))
        except BaseException as e:
            self._finish(job, False, None, describe_error(e))
            raise
        else:
            self._finish(job, True, result, None)
        finally:
            _local.job_id = None
            _local.cancel_event = None

    def _finish(self, job: Job, ok: bool, result: Any, error: Optional[str]) -> None:
        callback = None
        with self._lock:
            self._cancel_events.pop(job.id, None)
            if job.status == RUNNING:
                job.completed_at = now_iso()
                if ok:
                    self._transition(job, COMPLETED)
                    job.result = result
                    self._results[job.id] = result
                    logger.info("Job %s completed", job.id)
                else:
                    self._transition(job, FAILED)
                    job.error = error
                callback = self._callbacks.pop(job.id, None)
            else:
                logger.info("Job %s finished after cancellation; outcome discarded", job.id)
            self._changed.notify_all()

        if callback is not None:
            self._fire(callback, job.id, ok, job.result, job.error)

        with self._lock:
            self._running.pop(job.id, None)
            self._changed.notify_all()
        self._process_admissions()

    def _fire(self, callback: Callback, job_id: int, success: bool, result: Any,
              error: Optional[str]) -> None:
        try:
            callback(success, result, error)
        except Exception:
            logger.exception("Completion callback for job %s raised", job_id)

    # ---------- Control ----------
    def cancel(self, job_id: int) -> bool:
        """Cancel a pending or running job.

        A running job is only marked cancelled: its body keeps going unless it
        checks :meth:`is_cancelled` (or waits in :meth:`sleep`). Returns False
        for unknown or already finished jobs.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            if job.status == PENDING:
                self._queue.remove(job_id)
            callback = self._cancel_locked(job)
            self._changed.notify_all()

        logger.info("Cancelled job %s", job_id)
        if callback is not None:
            self._fire(callback, job_id, False, None, CANCELLED_ERROR)
        return True

    def clear_queue(self) -> int:
        """Cancel every pending job. Returns how many were cancelled."""
        with self._lock:
            jobs = self._queue.drain()
            callbacks = [(job.id, self._cancel_locked(job)) for job in jobs]
            self._changed.notify_all()

        for job_id, callback in callbacks:
            if callback is not None:
                self._fire(callback, job_id, False, None, CANCELLED_ERROR)
        if jobs:
            logger.info("Cleared %d pending job(s)", len(jobs))
        return len(jobs)

    def _cancel_locked(self, job: Job) -> Optional[Callback]:
        self._transition(job, CANCELLED)
        job.completed_at = now_iso()
        event = self._cancel_events.pop(job.id, None)
        if event is not None:
            event.set()
        return self._callbacks.pop(job.id, None)

    def set_concurrency_limit(self, n: int) -> None:
        """Change the slot count. Running jobs are never interrupted."""
        with self._lock:
            self._max_concurrent = _check_limit(n)
        self._process_admissions()

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    def pause(self) -> None:
        """Stop admitting jobs until :meth:`resume`."""
        with self._lock:
            self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False
        self._process_admissions()

    @property
    def is_paused(self) -> bool:
        return self._paused

    @contextmanager
    def paused(self):
        """Submit a batch so it is ordered by priority before anything starts."""
        self.pause()
        try:
            yield self
        finally:
            self.resume()

    def on_complete(self, job_id: int, callback: Callback) -> bool:
        """Register ``callback(success, result, error)`` for ``job_id``.

        Replaces any earlier callback for the job. If the job already finished
        the callback runs right away. Returns False for unknown ids.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if not job.is_terminal:
                self._callbacks[job_id] = callback
                return True
            outcome = self._outcome_locked(job)

        self._fire(callback, job_id, job.status == COMPLETED, *outcome)
        return True

    # ---------- Cancellation helpers for job bodies ----------
    def is_cancelled(self, job_id: Optional[int] = None) -> bool:
        """True once ``job_id`` (default: the job running on this thread) is cancelled."""
        if job_id is None:
            job_id = current_job_id()
        with self._lock:
            job = self._jobs.get(job_id)
            return job is not None and job.status == CANCELLED

    def sleep(self, seconds: float) -> bool:
        """Sleep inside a job body; wakes early and returns True on cancellation."""
        event = getattr(_local, "cancel_event", None)
        if event is None:
            event = threading.Event()
        return event.wait(seconds)

    # ---------- Waiting ----------
    def wait(self, job_id: int, timeout: Optional[float] = None) -> Tuple[Any, Optional[str]]:
        """Block until ``job_id`` finishes or ``timeout`` seconds pass.

        Returns ``(result, None)`` when completed, ``(None, error)`` when failed,
        ``(None, "cancelled")`` when cancelled. On timeout or for unknown ids it
        returns ``(None, None)``, which a job returning None also produces; check
        :meth:`get_job` to tell them apart.
        """
        with self._changed:
            job = self._jobs.get(job_id)
            if job is None:
                return None, None
            self._changed.wait_for(lambda: job.is_terminal, timeout)
            return self._outcome_locked(job)

    def wait_all(self, timeout: Optional[float] = None, ignore_blocked: bool = False) -> bool:
        """Block until the queue and running set are empty.

        With ``ignore_blocked=True`` it also returns once nothing is running and
        every queued job is waiting on a dependency that will never resolve.
        Returns False on timeout.
        """
        def idle() -> bool:
            if self._running:
                return False
            if not self._queue:
                return True
            return ignore_blocked and not any(self._is_eligible(job) for job in self._queue)

        with self._changed:
            return self._changed.wait_for(idle, timeout)

    def _outcome_locked(self, job: Job) -> Tuple[Any, Optional[str]]:
        if job.status == COMPLETED:
            return self._results.get(job.id), None
        if job.status == FAILED:
            return None, job.error
        if job.status == CANCELLED:
            return None, CANCELLED_ERROR
        return None, None

    # ---------- Introspection ----------
    def get_job(self, job_id: int) -> Optional[Job]:
        """A snapshot of the job record, or None if unknown."""
        with self._lock:
            job = self._jobs.get(job_id)
            return replace(job) if job is not None else None

    def get_result(self, job_id: int) -> Any:
        with self._lock:
            return self._results.get(job_id)

    def jobs(self) -> List[Job]:
        with self._lock:
            return [replace(job) for _, job in sorted(self._jobs.items())]

    def queue_size(self) -> int:
        with self._lock:
            return len(self._queue)

    def running_count(self) -> int:
        """Occupied concurrency slots.

        A cancelled job whose body has not returned yet still holds its slot, so
        this can be larger than ``statistics().running``, which counts jobs in
        the running state only.
        """
        with self._lock:
            return len(self._running)

    def statistics(self) -> Statistics:
        with self._lock:
            stats = Statistics(queued=len(self._queue), total=len(self._jobs),
                               max_concurrent=self._max_concurrent)
            for job in self._jobs.values():
                if job.status == RUNNING:
                    stats.running += 1
                elif job.status == COMPLETED:
                    stats.completed += 1
                elif job.status == FAILED:
                    stats.failed += 1
                elif job.status == CANCELLED:
                    stats.cancelled += 1
            return stats

    def forget(self, job_id: int) -> bool:
        """Drop a finished job's record and result.

        Only the final status is kept, so jobs that depend on the forgotten id,
        now or later, resolve exactly as before. Refused (False) while the job
        is unfinished or its body is still running.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.is_terminal or job_id in self._running:
                return False
            self._forgotten[job_id] = job.status
            del self._jobs[job_id]
            self._results.pop(job_id, None)
            self._callbacks.pop(job_id, None)
            return True
