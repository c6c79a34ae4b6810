import pytest

from schedctl.models import RUNNING
from schedctl.scheduler import Scheduler


@pytest.fixture
def scheduler():
    s = Scheduler(max_concurrent=4)
    yield s
    s.clear_queue()
    for job in s.jobs():
        if job.status == RUNNING:
            s.cancel(job.id)
    s.wait_all(timeout=5, ignore_blocked=True)


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "schedctl.db"
    monkeypatch.setenv("SCHEDCTL_DB", str(path))
    return path
