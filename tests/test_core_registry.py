from __future__ import annotations

import pytest

from orch_installer import bootstrap
from orch_installer.core.action import Action
from orch_installer.core.registry import TargetRegistry, registry
from orch_installer.core.runner import PipelineDriver
from orch_installer.core.stage import StepStage


def _dummy_target(settings, action):  # pragma: no cover - simple stub
    del settings, action
    return []


def test_registry_prevents_duplicate_registration() -> None:
    targets = TargetRegistry()
    targets.register("demo", _dummy_target)
    with pytest.raises(ValueError):
        targets.register("demo", _dummy_target)


def test_registry_rejects_unknown_target() -> None:
    with pytest.raises(KeyError):
        TargetRegistry().get("missing")


def test_driver_resolve_keeps_pipeline_order() -> None:
    driver = PipelineDriver([StepStage("one", []), StepStage("two", [])])

    assert driver.resolve(["two", "one", "two"]) == ["one", "two"]
    assert driver.resolve(None) == ["one", "two"]

    with pytest.raises(ValueError):
        driver.resolve(["missing"])


def test_bootstrap_registers_builtin_targets() -> None:
    bootstrap()

    assert {"aws", "on-prem"} <= set(registry.names())


def test_aws_install_and_uninstall_stage_order(settings) -> None:
    bootstrap()

    install = [stage.name() for stage in registry.build("aws", settings, Action.INSTALL)]
    uninstall = [stage.name() for stage in registry.build("aws", settings, Action.UNINSTALL)]

    assert install == ["PreInfra", "Infra", "Tunnel", "Cluster", "Cleanup"]
    assert uninstall == ["Tunnel", "Cluster", "Cleanup", "Infra", "PreInfra"]


def test_on_prem_target_builds_network_stage(settings) -> None:
    bootstrap()

    stages = registry.build("on-prem", settings, Action.INSTALL)

    assert [stage.name() for stage in stages] == ["Network"]
