from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest

from orch_installer.core.state import load_runtime_state

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "installer.py"


@pytest.fixture
def cli(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ORCH_INSTALLER_ROOT_PATH", str(tmp_path))
    spec = importlib.util.spec_from_file_location("installer_cli", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _config(tmp_path: Path, action: str = "install") -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(f"action: {action}\nglobal:\n  orch_name: demo\n", encoding="utf-8")
    return path


def test_targets_lists_builtin_targets(cli, capsys) -> None:
    assert cli.main(["targets"]) == 0

    out = capsys.readouterr().out
    assert "- aws:" in out
    assert "- on-prem:" in out


def test_stages_lists_uninstall_order(cli, capsys) -> None:
    assert cli.main(["stages", "--target", "aws", "--action", "uninstall"]) == 0

    lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith("- ")]
    assert [line.split(":")[0] for line in lines] == [
        "- Tunnel",
        "- Cluster",
        "- Cleanup",
        "- Infra",
        "- PreInfra",
    ]


def test_missing_config_is_bad_input(cli, tmp_path, capsys) -> None:
    assert cli.main(["install", "--config", str(tmp_path / "absent.yaml")]) == 2
    assert "Error:" in capsys.readouterr().out


def test_unknown_stage_is_bad_input(cli, tmp_path) -> None:
    assert cli.main(["install", "--config", str(_config(tmp_path)), "--target", "on-prem", "Bogus"]) == 2


def test_on_prem_install_persists_state(cli, tmp_path, capsys) -> None:
    state_file = tmp_path / "state.yaml"

    code = cli.main(
        ["install", "--config", str(_config(tmp_path)), "--target", "on-prem", "--state-file", str(state_file)]
    )

    assert code == 0
    assert "install completed successfully." in capsys.readouterr().out
    state = load_runtime_state(state_file)
    assert len(state.deployment_id) == 8
    assert state.owner_of("deployment_id") == "operator"
