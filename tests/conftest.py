from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pytest

from orch_installer.config import AWSConfig, GlobalConfig, OrchInstallerConfig
from orch_installer.core.action import Action
from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.settings import Settings
from orch_installer.steps.shell import ShellCommand, ShellCommandError, ShellResult

CallLog = List[Tuple[str, str, Optional[InstallerError]]]


def _assign(state: RuntimeState, path: str, value: object) -> None:
    *parents, leaf = path.split(".")
    target: object = state
    for part in parents:
        target = getattr(target, part)
    setattr(target, leaf, value)


class RecordingStep:
    """Step double that records every phase call and can fail or write state."""

    def __init__(
        self,
        name: str,
        calls: CallLog,
        *,
        labels: Sequence[str] = (),
        fail: Optional[Dict[str, InstallerError]] = None,
        writes: Optional[Dict[str, Dict[str, object]]] = None,
        raises: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self._name = name
        self._labels = tuple(labels)
        self.calls = calls
        self.fail = fail or {}
        self.writes = writes or {}
        self.raises = raises or {}

    def name(self) -> str:
        return self._name

    def labels(self) -> Sequence[str]:
        return self._labels

    def _phase(self, phase: str, state: RuntimeState, prev_error: Optional[InstallerError] = None):
        self.calls.append((self._name, phase, prev_error))
        if phase in self.raises:
            raise self.raises[phase]
        for path, value in self.writes.get(phase, {}).items():
            _assign(state, path, value)
        if phase == "post":
            return state, self.fail.get(phase, prev_error)
        return state, self.fail.get(phase)

    def configure(self, ctx, config, state):
        return self._phase("configure", state)

    def pre(self, ctx, config, state):
        return self._phase("pre", state)

    def run(self, ctx, config, state):
        return self._phase("run", state)

    def post(self, ctx, config, state, prev_error):
        return self._phase("post", state, prev_error)


class FakeShell:
    """Shell utility double recording commands; *handler* decides each result."""

    def __init__(self, handler: Optional[Callable[[ShellCommand], ShellResult]] = None) -> None:
        self.commands: List[ShellCommand] = []
        self.handler = handler

    def run(self, ctx: RunContext, command: ShellCommand) -> ShellResult:
        self.commands.append(command)
        if self.handler is None:
            return ShellResult(returncode=0)
        return self.handler(command)

    def argv(self) -> List[List[str]]:
        return [list(command.command) for command in self.commands]


def terraform_handler(
    outputs: Optional[Dict[str, object]] = None, fail_on: Optional[str] = None
) -> Callable[[ShellCommand], ShellResult]:
    """Answer terraform sub-commands; ``output -json`` returns *outputs*."""

    def handler(command: ShellCommand) -> ShellResult:
        subcommand = command.command[1]
        if subcommand == fail_on:
            raise ShellCommandError(f"terraform {subcommand} exploded")
        if subcommand == "output":
            payload = {
                name: {"sensitive": False, "type": "string", "value": value}
                for name, value in (outputs or {}).items()
            }
            return ShellResult(stdout=json.dumps(payload), returncode=0)
        return ShellResult(returncode=0)

    return handler


@pytest.fixture
def calls() -> CallLog:
    return []


@pytest.fixture
def make_step(calls: CallLog) -> Callable[..., RecordingStep]:
    def factory(name: str, **kwargs: object) -> RecordingStep:
        return RecordingStep(name, calls, **kwargs)  # type: ignore[arg-type]

    return factory


@pytest.fixture
def installer_config() -> OrchInstallerConfig:
    return OrchInstallerConfig(
        action=Action.INSTALL,
        general=GlobalConfig(orch_name="test"),
        aws=AWSConfig(region="us-west-2"),
    )


@pytest.fixture
def runtime_state(tmp_path: Path) -> RuntimeState:
    return RuntimeState.initial(deployment_id="abcd1234", log_dir=str(tmp_path / "logs"))


@pytest.fixture
def run_context() -> RunContext:
    return RunContext()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create temporary installer settings for tests."""

    settings = Settings(
        root_path=tmp_path,
        log_dir=tmp_path / "logs",
        state_file=tmp_path / ".deploy" / "runtime-state.yaml",
        keep_generated_files=False,
        terraform_exec_path="terraform",
        timeout=None,
        log_level="INFO",
    )
    settings.ensure_directories()
    return settings
