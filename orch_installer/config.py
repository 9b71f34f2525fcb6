"""Helpers to load and validate the operator's installer configuration file."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import yaml

from orch_installer.core.action import Action

DEFAULT_NETWORK_CIDR = "10.250.0.0/16"


@dataclass(slots=True, frozen=True)
class GlobalConfig:
    """Settings shared by every target."""

    orch_name: str
    enabled_labels: Tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class AWSConfig:
    """AWS account and network settings."""

    region: str = ""
    customer_tag: str = ""
    jump_host_whitelist: Tuple[str, ...] = ()
    network_cidr: str = DEFAULT_NETWORK_CIDR
    availability_zones: Tuple[str, ...] = ()
    eks_cluster_version: str = "1.32"
    eks_node_instance_type: str = "t3.2xlarge"
    eks_desired_size: int = 3


@dataclass(slots=True, frozen=True)
class ProxyConfig:
    """Proxies used when reaching the cloud or the jump host."""

    http_proxy: str = ""
    https_proxy: str = ""
    no_proxy: str = ""
    socks_proxy: str = ""


@dataclass(slots=True, frozen=True)
class OrchInstallerConfig:
    """Fully resolved, immutable operator input for one installer run."""

    action: Action
    general: GlobalConfig
    aws: AWSConfig = field(default_factory=AWSConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    def with_action(self, action: Action | str) -> "OrchInstallerConfig":
        return replace(self, action=Action.parse(action))


def _string_tuple(raw: Any, key: str) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        return tuple(item.strip() for item in raw.split(",") if item.strip())
    if not isinstance(raw, (list, tuple)):
        raise ValueError(f"'{key}' must be a list of strings")
    return tuple(str(item) for item in raw)


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, Mapping):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def _load_global(raw: Mapping[str, Any]) -> GlobalConfig:
    orch_name = str(raw.get("orch_name") or "").strip()
    if not orch_name:
        raise ValueError("'global.orch_name' is required")
    return GlobalConfig(
        orch_name=orch_name,
        enabled_labels=_string_tuple(raw.get("enabled_labels"), "global.enabled_labels"),
    )


def _load_aws(raw: Mapping[str, Any]) -> AWSConfig:
    defaults = AWSConfig()
    return AWSConfig(
        region=str(raw.get("region") or ""),
        customer_tag=str(raw.get("customer_tag") or ""),
        jump_host_whitelist=_string_tuple(raw.get("jump_host_whitelist"), "aws.jump_host_whitelist"),
        network_cidr=str(raw.get("network_cidr") or defaults.network_cidr),
        availability_zones=_string_tuple(raw.get("availability_zones"), "aws.availability_zones"),
        eks_cluster_version=str(raw.get("eks_cluster_version") or defaults.eks_cluster_version),
        eks_node_instance_type=str(
            raw.get("eks_node_instance_type") or defaults.eks_node_instance_type
        ),
        eks_desired_size=int(raw.get("eks_desired_size", defaults.eks_desired_size)),
    )


def _load_proxy(raw: Mapping[str, Any]) -> ProxyConfig:
    return ProxyConfig(
        http_proxy=str(raw.get("http_proxy") or ""),
        https_proxy=str(raw.get("https_proxy") or ""),
        no_proxy=str(raw.get("no_proxy") or ""),
        socks_proxy=str(raw.get("socks_proxy") or ""),
    )


def parse_config(payload: Mapping[str, Any], action: Optional[Action | str] = None) -> OrchInstallerConfig:
    """Build a config from an already parsed mapping.

    *action* overrides the ``action`` key of the payload.
    """

    raw_action = action if action is not None else payload.get("action")
    if raw_action is None:
        raise ValueError("'action' is required")
    return OrchInstallerConfig(
        action=Action.parse(raw_action),
        general=_load_global(_section(payload, "global")),
        aws=_load_aws(_section(payload, "aws")),
        proxy=_load_proxy(_section(payload, "proxy")),
    )


def load_config(path: Path, action: Optional[Action | str] = None) -> OrchInstallerConfig:
    """Load the installer configuration from *path*."""

    if not path.exists():
        raise FileNotFoundError(f"Installer configuration not found at {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Failed to parse installer configuration {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise ValueError(f"Installer configuration {path} must be a mapping")
    return parse_config(payload, action)


__all__ = [
    "AWSConfig",
    "DEFAULT_NETWORK_CIDR",
    "GlobalConfig",
    "OrchInstallerConfig",
    "ProxyConfig",
    "load_config",
    "parse_config",
]
