"""Step contract and label based selection."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, FrozenSet, Iterable, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .context import RunContext
from .errors import InstallerError
from .state import RuntimeState

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

PhaseResult = Tuple[RuntimeState, Optional[InstallerError]]


@runtime_checkable
class Step(Protocol):
    """Atomic unit of provisioning work.

    Every phase receives a snapshot of the runtime state and returns the
    candidate state plus an optional error. Phases report failures by value;
    they must not raise for recoverable conditions.
    """

    def name(self) -> str:
        """Return a stable name used for logging and state ownership."""

    def labels(self) -> Sequence[str]:
        """Return the tags used to select the step for a run."""

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        """Derive private parameters. No external side effects."""

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        """Run idempotent pre-flight checks and preparation."""

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        """Perform the provisioning action."""

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        """Clean up. Always called, with the error from the triggering pass."""


@dataclass(slots=True, frozen=True)
class LabelSelector:
    """Decides which steps execute for a run.

    An empty ``include`` selects everything. A step is selected when any of
    its labels (or its stage's labels) is included and none is excluded.
    """

    include: FrozenSet[str] = field(default_factory=frozenset)
    exclude: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_labels(
        cls, include: Optional[Iterable[str]] = None, exclude: Optional[Iterable[str]] = None
    ) -> "LabelSelector":
        return cls(
            include=frozenset(label.strip() for label in include or () if label.strip()),
            exclude=frozenset(label.strip() for label in exclude or () if label.strip()),
        )

    def selects(self, labels: Iterable[str]) -> bool:
        tags = set(labels)
        if tags & self.exclude:
            return False
        if not self.include:
            return True
        return bool(tags & self.include)


ALL_STEPS = LabelSelector()


__all__ = ["ALL_STEPS", "LabelSelector", "PhaseResult", "Step"]
