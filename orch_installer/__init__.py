"""orch-installer - stage/step orchestration for edge platform infrastructure."""
from __future__ import annotations

import uuid
from importlib import metadata
from pathlib import Path
from typing import Optional

from orch_installer.config import OrchInstallerConfig, load_config
from orch_installer.core import (
    PipelineDriver,
    RunContext,
    RuntimeState,
    load_runtime_state,
    registry,
)
from orch_installer.settings import Settings

__all__ = [
    "__version__",
    "OrchInstallerConfig",
    "PipelineDriver",
    "RunContext",
    "RuntimeState",
    "Settings",
    "bootstrap",
    "create_default_context",
    "create_default_state",
    "load_config",
    "registry",
]


def __getattr__(name: str):  # pragma: no cover - passthrough to package metadata
    if name == "__version__":
        try:
            return metadata.version("orch-installer")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


def bootstrap() -> None:
    """Import target modules to ensure registration has occurred."""

    from orch_installer import targets  # noqa: F401


def create_default_context(settings: Settings | None = None) -> RunContext:
    """Construct a :class:`RunContext` bounded by the configured timeout."""

    settings = settings or Settings.load()
    return RunContext.with_timeout(settings.timeout)


def create_default_state(settings: Settings, state_file: Optional[Path] = None) -> RuntimeState:
    """Restore the runtime state of a previous run or start a new deployment."""

    path = state_file or settings.state_file
    if path.exists():
        return load_runtime_state(path)
    return RuntimeState.initial(
        deployment_id=uuid.uuid4().hex[:8],
        log_dir=str(settings.log_dir),
    )
