"""In-process, priority and dependency aware job scheduler."""

from .errors import (
    CommandFailed, CreationFault, CyclicDependencyError, PlanError,
    SchedulerError, UnknownDependencyError,
)
from .models import (
    CANCELLED, COMPLETED, FAILED, PENDING, RUNNING, Job, Runnable, Statistics,
)
from .scheduler import CANCELLED_ERROR, Scheduler, current_job_id

__version__ = "0.1.0"
