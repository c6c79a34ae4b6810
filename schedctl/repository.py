import json
import sqlite3
from typing import Dict, Iterable, Mapping, Optional

from .config import ALLOWED_CONFIG_KEYS, DEFAULT_CONFIG, validate_config_value
from .models import ALL_STATES, Job
from .utils import seconds_between


# ---------- Config ----------
def get_config(conn) -> Dict[str, str]:
    cur = conn.execute("SELECT key, value FROM config")
    cfg = dict(DEFAULT_CONFIG)
    cfg.update({r["key"]: r["value"] for r in cur.fetchall()})
    return cfg


def set_config(conn, key: str, value: str):
    if key not in ALLOWED_CONFIG_KEYS:
        raise ValueError(f"Allowed keys: {', '.join(sorted(ALLOWED_CONFIG_KEYS))}")
    value = validate_config_value(key, value)
    with conn:
        conn.execute(
            "INSERT INTO config(key,value) VALUES(?,?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )


# ---------- History ----------
def record_run(conn, run_id: str, jobs: Iterable[Job], commands: Optional[Mapping[int, str]] = None) -> int:
    """Store the final state of every job of a run. Returns rows written."""
    commands = commands or {}
    rows = []
    for job in jobs:
        duration = None
        if job.started_at and job.completed_at:
            duration = seconds_between(job.started_at, job.completed_at)
        rows.append((
            run_id, job.id, job.name, commands.get(job.id), job.kind, job.status,
            job.priority, json.dumps(sorted(job.dependencies)), job.created_at,
            job.started_at, job.completed_at, (job.error or "")[:500] or None, duration,
        ))
    try:
        with conn:
            conn.executemany(
                """INSERT INTO history
                   (run_id, job_id, name, command, kind, state, priority, dependencies,
                    created_at, started_at, completed_at, error, duration_seconds)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                rows,
            )
    except sqlite3.Error as e:
        raise RuntimeError(f"DB error while recording run {run_id}: {e}")
    return len(rows)


def list_history(conn, state: Optional[str] = None, run_id: Optional[str] = None) -> Iterable[sqlite3.Row]:
    clauses, params = [], []
    if state:
        clauses.append("state=?")
        params.append(state)
    if run_id:
        clauses.append("run_id=?")
        params.append(run_id)
    where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
    return conn.execute(
        f"SELECT * FROM history {where}ORDER BY created_at ASC, job_id ASC",
        params,
    ).fetchall()


def counts(conn) -> Dict[str, int]:
    out = {}
    # pending/running only appear if a run was interrupted before jobs finished
    for s in ALL_STATES:
        out[s] = conn.execute(
            "SELECT COUNT(1) AS c FROM history WHERE state=?",
            (s,),
        ).fetchone()["c"]
    return out


def clear_history(conn, run_id: Optional[str] = None) -> int:
    with conn:
        if run_id:
            res = conn.execute("DELETE FROM history WHERE run_id=?", (run_id,))
        else:
            res = conn.execute("DELETE FROM history")
    return res.rowcount
