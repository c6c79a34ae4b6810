import json
import logging
import signal
import sys
import threading
import uuid

import click

from .config import as_bool
from .db import init_db, connect_db
from .errors import SchedulerError
from .models import ALL_STATES, CANCELLED, COMPLETED, FAILED, PENDING, RUNNING
from .plan import load_plan, submit_plan
from .repository import (
    record_run, list_history, counts, clear_history,
    get_config, set_config
)
from .scheduler import Scheduler

logger = logging.getLogger("schedctl")

STATE_COLORS = {
    COMPLETED: "green",
    FAILED: "red",
    CANCELLED: "yellow",
    PENDING: "yellow",
    RUNNING: "cyan",
}

_log_handler = None


def setup_logging(verbose: int):
    global _log_handler
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    if _log_handler is None:
        _log_handler = logging.StreamHandler(sys.stderr)
        _log_handler.setFormatter(logging.Formatter("[%(threadName)s] %(message)s"))
        logger.addHandler(_log_handler)
    else:
        _log_handler.setStream(sys.stderr)
    logger.setLevel(level)


def install_signal_handlers(stop: threading.Event):
    """Set ``stop`` on SIGINT/SIGTERM. Returns the previous handlers."""
    def _handler(signum, frame):
        click.secho(f"\nReceived signal {signum}. Cancelling outstanding jobs", fg="yellow", err=True)
        stop.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous[sig] = signal.signal(sig, _handler)
        except ValueError:
            # not on the main thread
            logger.debug("Cannot install handler for signal %s", sig)
    return previous


def restore_signal_handlers(previous):
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def cancel_outstanding(scheduler: Scheduler) -> int:
    cancelled = 0
    for job in scheduler.jobs():
        if job.status in (PENDING, RUNNING) and scheduler.cancel(job.id):
            cancelled += 1
    return cancelled


@click.group(help="schedctl: priority and dependency aware job runner")
@click.option("-v", "--verbose", count=True, help="Log job activity (-vv for debug)")
def cli(verbose):
    # Ensure DB/schema exist before any command runs
    init_db()
    setup_logging(verbose)


# ---------- Run ----------
@cli.command("run", help="Run a JSON job plan to completion")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-concurrent", type=int, default=None,
              help="Concurrency limit (overrides the plan and stored config)")
@click.option("--timeout", type=float, default=None,
              help="Per-command timeout in seconds (defaults to timeout_seconds config)")
@click.option("--strict/--no-strict", default=None,
              help="Reject jobs that depend on unknown job ids")
@click.option("--no-history", is_flag=True, default=False, help="Do not record this run")
@click.option("--json", "as_json", is_flag=True, default=False,
              help="Print jobs and statistics as one JSON document")
def run_cmd(plan_file, max_concurrent, timeout, strict, no_history, as_json):
    conn = connect_db()
    try:
        cfg = get_config(conn)
        plan = load_plan(plan_file)
        limit = max_concurrent
        if limit is None:
            limit = plan.max_concurrent if plan.max_concurrent is not None else int(cfg["max_concurrent"])
        cmd_timeout = timeout if timeout is not None else float(cfg["timeout_seconds"])
        if strict is None:
            strict = as_bool(cfg["strict_dependencies"])

        scheduler = Scheduler(max_concurrent=limit, strict_dependencies=strict)
        run_id = uuid.uuid4().hex[:12]
        click.secho(f"Run {run_id}: {len(plan.entries)} job(s), max_concurrent={limit}", fg="cyan", err=as_json)

        stop = threading.Event()
        previous = install_signal_handlers(stop)
        try:
            ids = submit_plan(scheduler, plan, timeout=cmd_timeout)
            while not scheduler.wait_all(timeout=0.5, ignore_blocked=True):
                if stop.is_set():
                    cancel_outstanding(scheduler)
                    click.secho("Waiting for running commands to exit…", fg="yellow", err=True)
                    stop.clear()
        finally:
            restore_signal_handlers(previous)

        blocked = scheduler.clear_queue()
        if blocked:
            click.secho(f"{blocked} job(s) could never start and were cancelled.", fg="yellow", err=as_json)

        commands = {ids[e.name]: e.command for e in plan.entries if e.name in ids}
        jobs = scheduler.jobs()
        rows = [job.to_dict() for job in jobs]
        if not as_json:
            for row in rows:
                line = f"{row['id']:>4} | {row['name']:<20} | {row['status']:<10} | priority={row['priority']}"
                if row["error"]:
                    line += f" | error={row['error']}"
                click.secho(line, fg=STATE_COLORS.get(row["status"]))

        if not no_history:
            record_run(conn, run_id, jobs, commands)

        stats = scheduler.statistics().to_dict()
        if as_json:
            click.echo(json.dumps({"run_id": run_id, "jobs": rows, "statistics": stats},
                                  indent=2, default=str))
        else:
            click.echo(json.dumps(stats, indent=2))
    except (SchedulerError, ValueError, RuntimeError, OSError) as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    finally:
        conn.close()

    if any(job.status != COMPLETED for job in jobs):
        raise SystemExit(1)


# ---------- History ----------
@cli.group("history", help="Outcomes of past runs")
def history_group():
    pass


@history_group.command("list")
@click.option("--state", type=click.Choice(list(ALL_STATES)), default=None)
@click.option("--run", "run_id", default=None, help="Only show jobs of this run")
def history_list(state, run_id):
    conn = connect_db()
    try:
        rows = list_history(conn, state=state, run_id=run_id)
    finally:
        conn.close()

    if not rows:
        click.echo("No jobs.")
        return

    for r in rows:
        duration = f"{r['duration_seconds']:.2f}s" if r["duration_seconds"] is not None else "-"
        click.echo(
            f"{r['run_id']} | {r['job_id']:>4} | {r['name'] or '-':<20} | {r['state']:<10} "
            f"| priority={r['priority']} | took={duration} | cmd={r['command']} | error={r['error']}"
        )


@history_group.command("clear")
@click.option("--run", "run_id", default=None, help="Only clear this run")
def history_clear(run_id):
    conn = connect_db()
    try:
        removed = clear_history(conn, run_id=run_id)
    finally:
        conn.close()
    click.secho(f"Removed {removed} history row(s).", fg="green")


@cli.command("status")
def status_cmd():
    conn = connect_db()
    try:
        click.echo(json.dumps(counts(conn), indent=2))
    finally:
        conn.close()


# ---------- Config ----------
@cli.group("config", help="Configuration")
def config_group():
    pass


@config_group.command("get")
def config_get():
    conn = connect_db()
    try:
        click.echo(json.dumps(get_config(conn), indent=2))
    finally:
        conn.close()


@config_group.command("set")
@click.argument("key")
@click.argument("value")
def config_set_cmd(key, value):
    conn = connect_db()
    try:
        set_config(conn, key, value)
        click.secho(f"Config updated: {key}={value}", fg="green")
    except ValueError as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    finally:
        conn.close()


def main():
    cli()
