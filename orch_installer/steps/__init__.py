"""Concrete provisioning steps and the utilities they share."""
from __future__ import annotations

from .shell import ShellCommand, ShellCommandError, ShellResult, ShellUtility, SubprocessShellUtility
from .terraform import TerraformOutput, TerraformUtility
from .utils import go_through_step_functions

__all__ = [
    "ShellCommand",
    "ShellCommandError",
    "ShellResult",
    "ShellUtility",
    "SubprocessShellUtility",
    "TerraformOutput",
    "TerraformUtility",
    "go_through_step_functions",
]
