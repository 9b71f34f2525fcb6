"""Helpers shared by step implementations."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import Step

from .shell import ShellCommand, ShellCommandError, ShellUtility

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)


def command_exists(ctx: RunContext, shell: ShellUtility, command: str) -> bool:
    """Return whether *command* resolves on the PATH of the shell utility."""

    try:
        result = shell.run(
            ctx,
            ShellCommand(command=["bash", "-c", f"command -v {command}"], timeout=10, skip_error=True),
        )
    except ShellCommandError:
        return False
    return result.returncode == 0 and bool(result.stdout.strip())


def go_through_step_functions(
    ctx: RunContext,
    step: Step,
    config: "OrchInstallerConfig",
    state: RuntimeState,
) -> Optional[InstallerError]:
    """Drive a single step through all four phases against *state*.

    Stops at the first failing phase but always calls ``post`` with that
    failure. Returns the final error, if any.
    """

    owner = step.name()
    error: Optional[InstallerError] = None
    for phase in (step.configure, step.pre, step.run):
        candidate, error = phase(ctx, config, state.snapshot())
        if error is None:
            error = state.merge(candidate, owner)
        if error is not None:
            logger.error("Step '%s' failed: %s", owner, error.describe())
            break
    candidate, post_error = step.post(ctx, config, state.snapshot(), error)
    if post_error is not None:
        return post_error.with_cause(error)
    merge_error = state.merge(candidate, owner)
    return merge_error or error


__all__ = ["command_exists", "go_through_step_functions"]
