import pytest

from schedctl.commands import NOT_FOUND_EXIT_CODE, TIMEOUT_EXIT_CODE, ShellCommand
from schedctl.errors import CommandFailed
from schedctl.models import COMPLETED, FAILED, Runnable

from helpers import py


def test_successful_command_returns_output():
    out = ShellCommand(py("print(42)")).run()
    assert out["returncode"] == 0
    assert out["stdout"].strip() == "42"


def test_non_zero_exit_raises():
    with pytest.raises(CommandFailed) as exc:
        ShellCommand(py("import sys; sys.exit(3)")).run()
    assert exc.value.returncode == 3
    assert str(exc.value).startswith("exit_code=3")


def test_missing_binary():
    with pytest.raises(CommandFailed) as exc:
        ShellCommand("definitely-not-a-real-binary-schedctl --flag").run()
    assert exc.value.returncode == NOT_FOUND_EXIT_CODE


def test_timeout():
    with pytest.raises(CommandFailed) as exc:
        ShellCommand(py("import time; time.sleep(5)"), timeout=0.2).run()
    assert exc.value.returncode == TIMEOUT_EXIT_CODE


@pytest.mark.parametrize("command, timeout", [("", 1), ("   ", 1), ("true", 0), ("true", -3)])
def test_invalid_arguments(command, timeout):
    with pytest.raises(ValueError):
        ShellCommand(command, timeout=timeout)


def test_runs_as_job_body(scheduler):
    assert isinstance(ShellCommand("true"), Runnable)
    ok = scheduler.submit(ShellCommand(py("print('hi')")))
    bad = scheduler.submit(ShellCommand(py("import sys; sys.exit(2)")))
    assert scheduler.wait_all(timeout=10)
    assert scheduler.get_job(ok).status == COMPLETED
    assert scheduler.get_result(ok)["stdout"].strip() == "hi"
    assert scheduler.get_job(bad).status == FAILED
    assert scheduler.get_job(bad).error.startswith("CommandFailed: exit_code=2")
