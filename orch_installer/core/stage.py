"""Stage contract and the pass loops that drive a stage's steps."""
from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .context import RunContext
from .errors import InstallerError, StageError, build_stage_error
from .state import RuntimeState
from .step import ALL_STEPS, LabelSelector, PhaseResult, Step

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)

PREPARE = "prepare"
RUN = "run"
FINALIZE = "finalize"

StepCall = Callable[[Step, RuntimeState, int], PhaseResult]


@runtime_checkable
class Stage(Protocol):
    """Ordered group of steps executed as one pipeline unit.

    Each pass visits every step and returns ``None`` when no step failed.
    Whether to continue after a failed pass is up to the caller.
    """

    def name(self) -> str:
        """Return the stage name."""

    def prepare(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        """Configure then pre-check every step."""

    def run(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        """Run every step."""

    def finalize(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[StageError],
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        """Call every step's post phase with its slot from *prev_error*."""


class StepStage:
    """Default :class:`Stage` implementation over a fixed list of steps."""

    def __init__(self, name: str, steps: Sequence[Step], labels: Sequence[str] = ()) -> None:
        self._name = name
        self._steps: Tuple[Step, ...] = tuple(steps)
        self._labels: Tuple[str, ...] = tuple(labels)

    def name(self) -> str:
        return self._name

    @property
    def steps(self) -> Tuple[Step, ...]:
        return self._steps

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    def step_names(self) -> List[str]:
        return [step.name() for step in self._steps]

    def prepare(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        started = time.perf_counter()
        errors = self._pass(
            "configure",
            state,
            selector,
            lambda step, snapshot, _: step.configure(ctx, config, snapshot),
        )
        # Pre sees the state committed by every Configure above.
        errors = self._pass(
            "pre",
            state,
            selector,
            lambda step, snapshot, _: step.pre(ctx, config, snapshot),
            errors,
        )
        return self._finish(PREPARE, errors, started)

    def run(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        started = time.perf_counter()
        errors = self._pass(
            "run",
            state,
            selector,
            lambda step, snapshot, _: step.run(ctx, config, snapshot),
        )
        return self._finish(RUN, errors, started)

    def finalize(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[StageError],
        selector: LabelSelector = ALL_STEPS,
    ) -> Optional[StageError]:
        started = time.perf_counter()

        def call_post(step: Step, snapshot: RuntimeState, index: int) -> PhaseResult:
            previous = prev_error.error_for(index) if prev_error is not None else None
            candidate, error = step.post(ctx, config, snapshot, previous)
            if error is not None and previous is not None and error != previous:
                logger.error(
                    "Step '%s' in stage '%s' failed during post (%s) after earlier failure (%s)",
                    step.name(),
                    self._name,
                    error.describe(),
                    previous.describe(),
                )
                error = error.with_cause(previous)
            return candidate, error

        errors = self._pass("post", state, selector, call_post)
        return self._finish(FINALIZE, errors, started)

    def _selected(self, step: Step, selector: LabelSelector) -> bool:
        return selector.selects((*step.labels(), *self._labels))

    def _pass(
        self,
        phase: str,
        state: RuntimeState,
        selector: LabelSelector,
        call: StepCall,
        errors: Optional[List[Optional[InstallerError]]] = None,
    ) -> List[Optional[InstallerError]]:
        slots: List[Optional[InstallerError]] = (
            list(errors) if errors is not None else [None] * len(self._steps)
        )
        for index, step in enumerate(self._steps):
            if not self._selected(step, selector):
                logger.debug("Skipping unselected step '%s' (%s)", step.name(), phase)
                continue
            error = self._invoke(step, phase, state, index, call)
            if error is not None:
                slots[index] = error
                logger.error(
                    "Step '%s' in stage '%s' failed during %s: %s",
                    step.name(),
                    self._name,
                    phase,
                    error.describe(),
                )
        return slots

    def _invoke(
        self,
        step: Step,
        phase: str,
        state: RuntimeState,
        index: int,
        call: StepCall,
    ) -> Optional[InstallerError]:
        name = step.name()
        logger.debug("Running %s for step '%s' in stage '%s'", phase, name, self._name)
        try:
            candidate, error = call(step, state.snapshot(), index)
        except Exception as exc:
            logger.exception("Step '%s' raised during %s", name, phase)
            return InstallerError.internal(f"{name} raised during {phase}: {exc}")
        if error is not None:
            return error
        return state.merge(candidate, name)

    def _finish(
        self, phase: str, errors: List[Optional[InstallerError]], started: float
    ) -> Optional[StageError]:
        result = build_stage_error(self._name, phase, errors, self.step_names())
        elapsed = time.perf_counter() - started
        if result is None:
            logger.info("Stage '%s' %s pass completed in %.2fs", self._name, phase, elapsed)
        else:
            logger.warning(
                "Stage '%s' %s pass finished with %d failed step(s) in %.2fs",
                self._name,
                phase,
                result.failed_count,
                elapsed,
            )
        return result


__all__ = ["FINALIZE", "PREPARE", "RUN", "Stage", "StepStage"]
