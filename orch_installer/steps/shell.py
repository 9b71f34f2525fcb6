"""Process invocation used by step phases."""
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

from orch_installer.core.context import RunContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0


class ShellCommandError(RuntimeError):
    """Raised when a command cannot be started, times out or exits non-zero."""

    def __init__(self, message: str, result: Optional["ShellResult"] = None) -> None:
        super().__init__(message)
        self.result = result


@dataclass(slots=True)
class ShellCommand:
    """A command to execute and how to treat its outcome."""

    command: Sequence[str]
    timeout: Optional[float] = DEFAULT_TIMEOUT
    skip_error: bool = False
    run_in_background: bool = False
    cwd: Optional[Path] = None
    env: Dict[str, str] = field(default_factory=dict)
    log_file: Optional[Path] = None

    def display(self) -> str:
        return " ".join(self.command)


@dataclass(slots=True)
class ShellResult:
    """Captured output of a finished command, or the pid of a background one."""

    stdout: str = ""
    stderr: str = ""
    returncode: Optional[int] = None
    pid: Optional[int] = None


class ShellUtility(Protocol):
    """Anything able to run a :class:`ShellCommand`."""

    def run(self, ctx: RunContext, command: ShellCommand) -> ShellResult:
        """Execute *command* and return its result or raise :class:`ShellCommandError`."""


class SubprocessShellUtility:
    """:class:`ShellUtility` backed by :mod:`subprocess`."""

    def run(self, ctx: RunContext, command: ShellCommand) -> ShellResult:
        if error := ctx.check(f"command '{command.display()}'"):
            raise ShellCommandError(error.message)
        env = {**os.environ, **command.env} if command.env else None
        if command.run_in_background:
            return self._spawn(command, env)

        timeout = ctx.timeout_for(command.timeout)
        logger.debug("Running command: %s (timeout=%s)", command.display(), timeout)
        try:
            if command.log_file is not None:
                command.log_file.parent.mkdir(parents=True, exist_ok=True)
                with command.log_file.open("a", encoding="utf-8") as log_handle:
                    completed = subprocess.run(
                        list(command.command),
                        cwd=command.cwd,
                        env=env,
                        stdout=log_handle,
                        stderr=subprocess.PIPE,
                        text=True,
                        timeout=timeout,
                        check=False,
                    )
            else:
                completed = subprocess.run(
                    list(command.command),
                    cwd=command.cwd,
                    env=env,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                    check=False,
                )
        except subprocess.TimeoutExpired as exc:
            raise ShellCommandError(
                f"command '{command.display()}' timed out after {exc.timeout}s"
            ) from exc
        except OSError as exc:
            raise ShellCommandError(f"failed to start '{command.display()}': {exc}") from exc

        result = ShellResult(
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            returncode=completed.returncode,
        )
        if completed.returncode != 0 and not command.skip_error:
            raise ShellCommandError(
                f"command '{command.display()}' exited with {completed.returncode}: "
                f"{result.stderr.strip()}",
                result,
            )
        return result

    def _spawn(self, command: ShellCommand, env: Optional[Dict[str, str]]) -> ShellResult:
        logger.debug("Starting background command: %s", command.display())
        try:
            process = subprocess.Popen(
                list(command.command),
                cwd=command.cwd,
                env=env,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            raise ShellCommandError(f"failed to start '{command.display()}': {exc}") from exc
        return ShellResult(pid=process.pid)


__all__ = [
    "DEFAULT_TIMEOUT",
    "ShellCommand",
    "ShellCommandError",
    "ShellResult",
    "ShellUtility",
    "SubprocessShellUtility",
]
