import json

import pytest

from schedctl.db import connect_db, init_db
from schedctl.models import CANCELLED, COMPLETED, FAILED, Job
from schedctl.repository import (
    clear_history, counts, get_config, list_history, record_run, set_config,
)


@pytest.fixture
def conn(db_path):
    init_db()
    conn = connect_db()
    yield conn
    conn.close()


def finished(job_id, status, **kwargs):
    defaults = dict(
        created_at="2025-01-01T10:00:00.000000Z",
        started_at="2025-01-01T10:00:01.000000Z",
        completed_at="2025-01-01T10:00:03.500000Z",
    )
    defaults.update(kwargs)
    return Job(id=job_id, body=lambda: None, status=status, **defaults)


def test_default_config_is_seeded(conn):
    cfg = get_config(conn)
    assert cfg == {"max_concurrent": "10", "timeout_seconds": "20", "strict_dependencies": "false"}


def test_set_config(conn):
    set_config(conn, "max_concurrent", "4")
    set_config(conn, "strict_dependencies", "YES")
    cfg = get_config(conn)
    assert cfg["max_concurrent"] == "4"
    assert cfg["strict_dependencies"] == "true"


@pytest.mark.parametrize("key, value, message", [
    ("colour", "red", "Allowed keys"),
    ("max_concurrent", "0", "max_concurrent"),
    ("max_concurrent", "two", "max_concurrent"),
    ("timeout_seconds", "-5", "timeout_seconds"),
    ("strict_dependencies", "maybe", "strict_dependencies"),
])
def test_set_config_rejects(conn, key, value, message):
    with pytest.raises(ValueError, match=message):
        set_config(conn, key, value)


def test_record_and_list_history(conn):
    jobs = [
        finished(1, COMPLETED, name="fetch", priority=5),
        finished(2, FAILED, name="load", error="CommandFailed: exit_code=1",
                 dependencies=frozenset({1})),
        finished(3, CANCELLED, started_at=None),
    ]
    assert record_run(conn, "run-a", jobs, {1: "curl x", 2: "load.sh"}) == 3
    record_run(conn, "run-b", [finished(1, COMPLETED)])

    rows = list_history(conn, run_id="run-a")
    assert [r["job_id"] for r in rows] == [1, 2, 3]
    first, second, third = rows
    assert (first["name"], first["command"], first["priority"]) == ("fetch", "curl x", 5)
    assert first["duration_seconds"] == pytest.approx(2.5)
    assert json.loads(second["dependencies"]) == [1]
    assert second["error"] == "CommandFailed: exit_code=1"
    assert third["duration_seconds"] is None
    assert third["command"] is None

    assert len(list_history(conn)) == 4
    assert sorted(r["run_id"] for r in list_history(conn, state=COMPLETED)) == ["run-a", "run-b"]
    assert counts(conn) == {"pending": 0, "running": 0, "completed": 2, "failed": 1, "cancelled": 1}


def test_clear_history(conn):
    record_run(conn, "run-a", [finished(1, COMPLETED)])
    record_run(conn, "run-b", [finished(1, COMPLETED), finished(2, FAILED)])
    assert clear_history(conn, run_id="run-b") == 2
    assert [r["run_id"] for r in list_history(conn)] == ["run-a"]
    assert clear_history(conn) == 1
    assert list_history(conn) == []
