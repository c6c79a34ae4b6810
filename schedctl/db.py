import os
import sqlite3
from typing import Optional

from .config import DEFAULT_CONFIG

DEFAULT_DB_FILE = "schedctl.db"

# Only finished jobs are written here; the pending queue lives in memory.
SCHEMA = """
PRAGMA journal_mode=WAL;
CREATE TABLE IF NOT EXISTS history (
    run_id TEXT NOT NULL,
    job_id INTEGER NOT NULL,
    name TEXT,
    command TEXT,
    kind TEXT NOT NULL,
    state TEXT NOT NULL,
    priority INTEGER DEFAULT 0,
    dependencies TEXT,
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,
    error TEXT,
    duration_seconds REAL,
    PRIMARY KEY (run_id, job_id)
);

CREATE INDEX IF NOT EXISTS idx_history_state ON history(state, completed_at);
CREATE TABLE IF NOT EXISTS config (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


def db_file() -> str:
    return os.environ.get("SCHEDCTL_DB", DEFAULT_DB_FILE)


def connect_db(path: Optional[str] = None):
    conn = sqlite3.connect(path or db_file())
    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA)
    return conn


def init_db(path: Optional[str] = None):
    conn = connect_db(path)
    with conn:
        # seed defaults
        for k, v in DEFAULT_CONFIG.items():
            conn.execute(
                "INSERT OR IGNORE INTO config(key, value) VALUES(?,?)", (k, v)
            )
    conn.close()
