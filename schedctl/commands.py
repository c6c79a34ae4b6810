import logging
import os
import shlex
import subprocess
from typing import Any, Dict

from .errors import CommandFailed

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124  # Common exit code for timeout
NOT_FOUND_EXIT_CODE = 127


class ShellCommand:
    """Job body that runs a shell command and fails on a non-zero exit."""

    def __init__(self, command: str, timeout: float = 20):
        if not command or not command.strip():
            raise ValueError("Command cannot be empty.")
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be > 0 seconds")
        self.command = command
        self.timeout = timeout

    def run(self) -> Dict[str, Any]:
        args = shlex.split(self.command, posix=(os.name != "nt"))
        try:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise CommandFailed(self.command, TIMEOUT_EXIT_CODE, f"timed out after {self.timeout}s")
        except FileNotFoundError:
            raise CommandFailed(self.command, NOT_FOUND_EXIT_CODE, "command not found")

        if result.stdout:
            logger.info(result.stdout.strip())
        if result.stderr:
            logger.info(result.stderr.strip())
        if result.returncode != 0:
            detail = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else None
            raise CommandFailed(self.command, result.returncode, detail)

        return {
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }

    def __repr__(self) -> str:
        return f"ShellCommand({self.command!r}, timeout={self.timeout})"
