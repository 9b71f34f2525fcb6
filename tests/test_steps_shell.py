from __future__ import annotations

import time

import pytest

from orch_installer.core.context import RunContext
from orch_installer.steps.shell import ShellCommand, ShellCommandError, SubprocessShellUtility


def test_captures_output(run_context):
    result = SubprocessShellUtility().run(run_context, ShellCommand(command=["sh", "-c", "echo hello"]))

    assert result.returncode == 0
    assert result.stdout.strip() == "hello"


def test_non_zero_exit_raises_with_result(run_context):
    with pytest.raises(ShellCommandError) as excinfo:
        SubprocessShellUtility().run(run_context, ShellCommand(command=["sh", "-c", "echo nope >&2; exit 3"]))

    assert excinfo.value.result.returncode == 3
    assert "nope" in str(excinfo.value)


def test_skip_error_returns_result(run_context):
    result = SubprocessShellUtility().run(
        run_context, ShellCommand(command=["sh", "-c", "exit 1"], skip_error=True)
    )

    assert result.returncode == 1


def test_missing_binary_raises(run_context):
    with pytest.raises(ShellCommandError):
        SubprocessShellUtility().run(run_context, ShellCommand(command=["definitely-not-a-binary-xyz"]))


def test_stdout_goes_to_log_file(tmp_path, run_context):
    log_file = tmp_path / "logs" / "tool.log"

    SubprocessShellUtility().run(
        run_context, ShellCommand(command=["sh", "-c", "echo logged"], log_file=log_file)
    )

    assert log_file.read_text(encoding="utf-8").strip() == "logged"


def test_cancelled_context_does_not_start(run_context):
    run_context.cancel()

    with pytest.raises(ShellCommandError):
        SubprocessShellUtility().run(run_context, ShellCommand(command=["sh", "-c", "echo hi"]))


def test_env_overrides_are_applied(run_context):
    result = SubprocessShellUtility().run(
        run_context, ShellCommand(command=["sh", "-c", "echo $ORCH_TEST_VALUE"], env={"ORCH_TEST_VALUE": "42"})
    )

    assert result.stdout.strip() == "42"


def test_timeout_raises(run_context):
    with pytest.raises(ShellCommandError) as excinfo:
        SubprocessShellUtility().run(run_context, ShellCommand(command=["sleep", "5"], timeout=0.1))

    assert "timed out" in str(excinfo.value)


def test_timeout_is_clamped_to_run_deadline():
    ctx = RunContext.with_timeout(0.2)

    with pytest.raises(ShellCommandError):
        SubprocessShellUtility().run(ctx, ShellCommand(command=["sleep", "5"], timeout=60))


def test_background_command_returns_pid(tmp_path, run_context):
    marker = tmp_path / "done"

    result = SubprocessShellUtility().run(
        run_context,
        ShellCommand(command=["sh", "-c", f"touch {marker}"], run_in_background=True),
    )

    assert result.pid is not None and result.pid > 0
    assert result.returncode is None
    deadline = time.monotonic() + 5
    while not marker.exists() and time.monotonic() < deadline:
        time.sleep(0.05)
    assert marker.exists()
