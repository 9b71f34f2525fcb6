from __future__ import annotations

from pathlib import Path

import pytest

from orch_installer.config import DEFAULT_NETWORK_CIDR, load_config, parse_config
from orch_installer.core.action import Action


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_reads_all_sections(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
action: install
global:
  orch_name: demo
  enabled_labels: [aws, infra]
aws:
  region: us-west-2
  customer_tag: acme
  jump_host_whitelist:
    - 203.0.113.0/24
  availability_zones: us-west-2a, us-west-2b, us-west-2c
  eks_desired_size: 5
proxy:
  socks_proxy: proxy.example.com:1080
""",
    )

    config = load_config(path)

    assert config.action is Action.INSTALL
    assert config.general.orch_name == "demo"
    assert config.general.enabled_labels == ("aws", "infra")
    assert config.aws.region == "us-west-2"
    assert config.aws.jump_host_whitelist == ("203.0.113.0/24",)
    assert config.aws.availability_zones == ("us-west-2a", "us-west-2b", "us-west-2c")
    assert config.aws.network_cidr == DEFAULT_NETWORK_CIDR
    assert config.aws.eks_desired_size == 5
    assert config.proxy.socks_proxy == "proxy.example.com:1080"


def test_action_argument_overrides_file(tmp_path: Path) -> None:
    path = _write(tmp_path, "action: install\nglobal:\n  orch_name: demo\n")

    assert load_config(path, Action.UNINSTALL).action is Action.UNINSTALL


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_orch_name_is_required() -> None:
    with pytest.raises(ValueError):
        parse_config({"action": "install", "global": {}})


def test_unknown_action_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_config({"action": "explode", "global": {"orch_name": "demo"}})


def test_sections_must_be_mappings() -> None:
    with pytest.raises(ValueError):
        parse_config({"action": "install", "global": {"orch_name": "demo"}, "aws": ["us-west-2"]})


def test_with_action_returns_new_config() -> None:
    config = parse_config({"action": "install", "global": {"orch_name": "demo"}})

    upgraded = config.with_action("upgrade")

    assert upgraded.action is Action.UPGRADE
    assert config.action is Action.INSTALL
