"""
Automated smoke test for schedctl
---------------------------------
Validates:
1. Plan run with priorities and dependencies
2. Failure isolation (a failing command does not stop the others)
3. Run history and status counts
4. Configuration

Run (with schedctl installed):
    python test.py
"""

import json
import os
import subprocess
import sys
import tempfile


def run(cmd: str, expect_ok: bool = True) -> str:
    """Run CLI command and return stdout."""
    print(f"\n$ {cmd}")
    res = subprocess.run(cmd, shell=True, capture_output=True, text=True)
    if expect_ok and res.returncode != 0:
        print(res.stderr)
        raise RuntimeError(f"Command failed: {cmd}")
    print(res.stdout.strip())
    return res.stdout.strip()


def test_basic_flow():
    workdir = tempfile.mkdtemp(prefix="schedctl-")
    os.environ["SCHEDCTL_DB"] = os.path.join(workdir, "schedctl.db")
    out = os.path.join(workdir, "order.txt")
    py = f'"{sys.executable}" -c'

    plan = {
        "max_concurrent": 1,
        "jobs": [
            {"name": "low", "cmd": f"{py} \"open(r'{out}','a').write('L')\"", "priority": 1},
            {"name": "high", "cmd": f"{py} \"open(r'{out}','a').write('H')\"", "priority": 5},
            {"name": "bad", "cmd": f"{py} \"import sys; sys.exit(2)\""},
            {"name": "after-bad", "cmd": f"{py} \"print('still runs')\"", "after": ["bad"]},
        ],
    }
    plan_path = os.path.join(workdir, "plan.json")
    with open(plan_path, "w", encoding="utf-8") as f:
        json.dump(plan, f)

    # Check config
    run("schedctl config get")

    # Run the plan; 'bad' fails so the exit code is non-zero
    run(f'schedctl -v run "{plan_path}"', expect_ok=False)

    with open(out, encoding="utf-8") as f:
        order = f.read()
    print("Order:", order)
    assert order == "HL", order

    # Check statuses
    stats = json.loads(run("schedctl status"))
    print("Stats:", stats)
    assert stats["completed"] == 3
    assert stats["failed"] == 1

    failed = run("schedctl history list --state failed")
    assert "bad" in failed

    #  Verify config set
    run("schedctl config set timeout_seconds 30")

    print("\n All tests executed successfully.")


if __name__ == "__main__":
    test_basic_flow()
