"""sshuttle tunnel through the jump host into the private VPC network."""
from __future__ import annotations

import logging
import os
import shlex
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from orch_installer.core.context import RunContext
from orch_installer.core.errors import ErrorCode, InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import PhaseResult
from orch_installer.steps.shell import ShellCommand, ShellCommandError, ShellUtility, SubprocessShellUtility
from orch_installer.steps.utils import command_exists

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)

PYTHON_VENV_PATH = "installer/.venv"
JUMP_HOST_USER = "ubuntu"
START_TIMEOUT = 60.0
PID_WAIT_SECONDS = 5.0

_LABELS = ("common", "sshuttle")


def build_sshuttle_command(
    *,
    venv_path: Path,
    pid_file: Path,
    key_file: Path,
    jump_host_ip: str,
    network_cidr: str,
    socks_proxy: str = "",
) -> str:
    """Return the shell command that starts sshuttle as a daemon."""

    activate = f"source {shlex.quote(str(venv_path / 'bin' / 'activate'))}"
    remote = f"{JUMP_HOST_USER}@{jump_host_ip}"
    if socks_proxy:
        ssh_cmd = (
            f'ssh -o ProxyCommand="nc -x {socks_proxy} %h %p" '
            f"-i {key_file} -o StrictHostKeyChecking=no"
        )
        return (
            f"{activate} && sshuttle --pidfile {pid_file} -D -e {shlex.quote(ssh_cmd)} "
            f"-r {remote} {network_cidr}"
        )
    ssh_cmd = f"ssh -i {key_file} -o StrictHostKeyChecking=no"
    return (
        f"{activate} && sshuttle --pidfile {pid_file} -D -r {remote} "
        f"--ssh-cmd {shlex.quote(ssh_cmd)} {network_cidr}"
    )


def stop_sshuttle(ctx: RunContext, shell: ShellUtility, pid: str) -> Optional[InstallerError]:
    """Terminate the sshuttle process *pid*.

    A pid that is malformed or no longer running is treated as already stopped.
    """

    pid = pid.strip()
    if not pid.isdigit():
        logger.warning("Ignoring malformed sshuttle pid %r", pid)
        return None
    try:
        probe = shell.run(ctx, ShellCommand(command=["ps", "-p", pid], timeout=10, skip_error=True))
    except ShellCommandError as exc:
        return InstallerError.internal(f"failed to check sshuttle process {pid}: {exc}")
    if probe.returncode != 0:
        logger.info("sshuttle process %s is not running; nothing to stop", pid)
        return None
    try:
        shell.run(ctx, ShellCommand(command=["sudo", "kill", pid], timeout=10))
    except ShellCommandError as exc:
        return InstallerError.internal(f"failed to stop sshuttle process {pid}: {exc}")
    logger.info("Stopped sshuttle process %s", pid)
    return None


def _write_private_key(private_key: str) -> Path:
    fd, name = tempfile.mkstemp(prefix="jumphost-key-", suffix=".pem")
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(private_key)
    os.chmod(name, 0o400)
    return Path(name)


def _remove(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to remove temporary file %s: %s", path, exc)


class SshuttleStep:
    """Starts sshuttle so later steps can reach private endpoints."""

    def __init__(
        self,
        root_path: Path,
        shell: Optional[ShellUtility] = None,
        *,
        pid_wait_seconds: float = PID_WAIT_SECONDS,
    ) -> None:
        self.root_path = Path(root_path)
        self.shell = shell or SubprocessShellUtility()
        self.pid_wait_seconds = pid_wait_seconds

    def name(self) -> str:
        return "SshuttleStep"

    def labels(self) -> Sequence[str]:
        return _LABELS

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        return state, None

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        for command in ("sudo", "nc"):
            if not command_exists(ctx, self.shell, command):
                return state, InstallerError.internal(
                    f"{command} command is not available. Please install {command}."
                )
        try:
            pgrep = self.shell.run(
                ctx,
                ShellCommand(command=["pgrep", "-x", "sshuttle"], timeout=10, skip_error=True),
            )
        except ShellCommandError as exc:
            return state, InstallerError.internal(f"failed to look for running sshuttle: {exc}")
        for stale_pid in pgrep.stdout.split():
            if error := stop_sshuttle(ctx, self.shell, stale_pid):
                return state, error
        if not state.aws.jump_host_ssh_key_private_key:
            return state, InstallerError(
                ErrorCode.PRECONDITION_FAILED,
                "jump host SSH private key is not set in the runtime state",
            )
        if not state.aws.jump_host_ip:
            return state, InstallerError(
                ErrorCode.PRECONDITION_FAILED,
                "jump host IP is not set in the runtime state",
            )
        return state, None

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if error := ctx.check("starting sshuttle"):
            return state, error
        key_file: Optional[Path] = None
        pid_file: Optional[Path] = None
        try:
            key_file = _write_private_key(state.aws.jump_host_ssh_key_private_key)
            fd, pid_name = tempfile.mkstemp(prefix="sshuttle-pid-", suffix=".txt")
            os.close(fd)
            pid_file = Path(pid_name)
            # sshuttle refuses to start when its pid file already exists.
            pid_file.unlink()

            command = build_sshuttle_command(
                venv_path=self.root_path / PYTHON_VENV_PATH,
                pid_file=pid_file,
                key_file=key_file,
                jump_host_ip=state.aws.jump_host_ip,
                network_cidr=config.aws.network_cidr,
                socks_proxy=config.proxy.socks_proxy,
            )
            logger.info("Starting sshuttle to %s", state.aws.jump_host_ip)
            self.shell.run(ctx, ShellCommand(command=["bash", "-c", command], timeout=START_TIMEOUT))
            pid = self._wait_for_pid(pid_file)
        except OSError as exc:
            return state, InstallerError.internal(f"failed to prepare sshuttle files: {exc}")
        except ShellCommandError as exc:
            return state, InstallerError.internal(f"failed to start sshuttle: {exc}")
        finally:
            _remove(key_file)
            _remove(pid_file)

        if not pid:
            return state, InstallerError.internal("sshuttle started but did not write its pid file")
        logger.info("sshuttle is running with PID %s", pid)
        state.sshuttle_pid = pid
        return state, None

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        if prev_error is None or not state.sshuttle_pid:
            return state, prev_error
        if error := stop_sshuttle(ctx, self.shell, state.sshuttle_pid):
            return state, error
        state.sshuttle_pid = ""
        return state, prev_error

    def _wait_for_pid(self, pid_file: Path) -> str:
        deadline = time.monotonic() + self.pid_wait_seconds
        while True:
            if pid_file.exists():
                pid = pid_file.read_text(encoding="utf-8").strip()
                if pid:
                    return pid
            if time.monotonic() >= deadline:
                return ""
            time.sleep(0.5)


class StopSshuttleStep:
    """Tears down the tunnel recorded in the runtime state at the end of a run."""

    def __init__(self, shell: Optional[ShellUtility] = None) -> None:
        self.shell = shell or SubprocessShellUtility()

    def name(self) -> str:
        return "StopSshuttleStep"

    def labels(self) -> Sequence[str]:
        return _LABELS

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        return state, None

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        return state, None

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if not state.sshuttle_pid:
            return state, None
        return state, stop_sshuttle(ctx, self.shell, state.sshuttle_pid)

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        return state, prev_error


__all__ = ["SshuttleStep", "StopSshuttleStep", "build_sshuttle_command", "stop_sshuttle"]
