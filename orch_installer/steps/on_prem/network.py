"""Network preparation for on-prem virtual machine deployments."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import PhaseResult

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig


class OnPremNetworkStep:
    """Placeholder step for on-prem networking; every phase passes the state through."""

    def name(self) -> str:
        return "OnPremNetworkStep"

    def labels(self) -> Sequence[str]:
        return ("on-prem", "vm")

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
        return state, None

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        return state, prev_error


__all__ = ["OnPremNetworkStep"]
