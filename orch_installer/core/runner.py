"""Pipeline driver that chains stages and applies the continuation policy."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, List, Optional, Sequence

from .action import Action
from .context import RunContext
from .errors import InstallerError, StageError, build_stage_error
from .stage import Stage
from .state import RuntimeState
from .step import ALL_STEPS, LabelSelector

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ContinuationPolicy:
    """What the driver does after a pass reports failures."""

    run_after_failed_prepare: bool = False
    continue_after_failed_stage: bool = False

    @classmethod
    def for_action(cls, action: Action | str) -> "ContinuationPolicy":
        """Halt early when creating resources; keep tearing down on uninstall."""

        try:
            parsed = Action.parse(action)
        except ValueError:
            return cls()
        if parsed is Action.UNINSTALL:
            return cls(run_after_failed_prepare=True, continue_after_failed_stage=True)
        return cls()


@dataclass(slots=True)
class StageReport:
    """Outcome of one stage."""

    stage: str
    prepare: Optional[StageError] = None
    run: Optional[StageError] = None
    finalize: Optional[StageError] = None
    ran: bool = False
    skipped: bool = False

    @property
    def failed(self) -> bool:
        return any(error is not None for error in (self.prepare, self.run, self.finalize))

    def errors(self) -> List[StageError]:
        return [error for error in (self.prepare, self.run, self.finalize) if error is not None]


@dataclass(slots=True)
class PipelineReport:
    """Outcome of a pipeline run.

    ``error`` is set when the run was rejected before any stage started.
    """

    action: Action | str
    started_at: datetime
    completed_at: Optional[datetime] = None
    stages: List[StageReport] = field(default_factory=list)
    cancelled: bool = False
    error: Optional[InstallerError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.cancelled and not any(
            report.failed or report.skipped for report in self.stages
        )

    def format_failures(self) -> List[str]:
        """Return per-step failure lines in stage then step order."""

        lines: List[str] = []
        if self.error is not None:
            lines.append(self.error.describe())
        for report in self.stages:
            if report.skipped:
                lines.append(f"{report.stage}: skipped")
            for error in report.errors():
                lines.extend(error.lines())
        return lines


class PipelineDriver:
    """Execute stages sequentially, deciding after each pass whether to go on."""

    def __init__(
        self,
        stages: Sequence[Stage],
        *,
        selector: LabelSelector = ALL_STEPS,
        policy: Optional[ContinuationPolicy] = None,
    ) -> None:
        self._stages = list(stages)
        self._selector = selector
        self._policy = policy

    def available(self) -> List[str]:
        """Return stage names in execution order."""

        return [stage.name() for stage in self._stages]

    def resolve(self, requested: Iterable[str] | None) -> List[str]:
        """Return a validated list of stage names based on *requested*."""

        available = self.available()
        if not requested:
            return available
        missing = [name for name in requested if name not in available]
        if missing:
            raise ValueError(f"Unknown stages requested: {', '.join(missing)}")
        # Keep pipeline order regardless of the order requested.
        wanted = set(requested)
        return [name for name in available if name in wanted]

    def policy_for(self, action: Action | str) -> ContinuationPolicy:
        return self._policy or ContinuationPolicy.for_action(action)

    def run(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        stages: Iterable[str] | None = None,
    ) -> PipelineReport:
        """Run the selected stages against *state*, which is updated in place."""

        started_at = datetime.now(timezone.utc)
        try:
            action = Action.parse(config.action)
        except ValueError as exc:
            logger.error("Rejecting run: %s", exc)
            return PipelineReport(
                action=str(config.action),
                started_at=started_at,
                completed_at=datetime.now(timezone.utc),
                error=InstallerError.invalid_argument(str(exc)),
            )
        policy = self.policy_for(action)
        names = set(self.resolve(None if stages is None else list(stages)))
        report = PipelineReport(action=action, started_at=started_at)
        halted = False

        for stage in self._stages:
            name = stage.name()
            if name not in names:
                continue
            if halted:
                logger.warning("Skipping stage '%s' after an earlier failure", name)
                report.stages.append(StageReport(stage=name, skipped=True))
                continue
            if ctx.cancelled or ctx.expired:
                logger.warning("Run cancelled; stage '%s' and later stages not started", name)
                report.cancelled = True
                break

            stage_report = self._run_stage(ctx, config, state, stage, policy)
            report.stages.append(stage_report)
            if stage_report.failed and not policy.continue_after_failed_stage:
                logger.error("Stage '%s' failed; halting %s", name, action)
                halted = True

        report.completed_at = datetime.now(timezone.utc)
        duration = report.completed_at - report.started_at
        if report.succeeded:
            logger.info("%s completed in %.2fs", action, duration.total_seconds())
        else:
            logger.error(
                "%s finished with failures in %.2fs", action, duration.total_seconds()
            )
        return report

    def _run_stage(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        stage: Stage,
        policy: ContinuationPolicy,
    ) -> StageReport:
        name = stage.name()
        logger.info("Starting stage '%s' (action=%s)", name, config.action)
        stage_report = StageReport(stage=name)

        stage_report.prepare = stage.prepare(ctx, config, state, self._selector)
        triggering = stage_report.prepare
        if stage_report.prepare is None or policy.run_after_failed_prepare:
            stage_report.run = stage.run(ctx, config, state, self._selector)
            stage_report.ran = True
            # A step that failed Prepare keeps that error unless Run reported a newer one.
            triggering = _overlay(stage_report.run, stage_report.prepare)
        else:
            logger.error("Stage '%s' prepare failed; not running it", name)

        stage_report.finalize = stage.finalize(ctx, config, state, triggering, self._selector)
        logger.info(
            "Completed stage '%s' with status %s",
            name,
            "failed" if stage_report.failed else "success",
        )
        return stage_report


def _overlay(primary: Optional[StageError], fallback: Optional[StageError]) -> Optional[StageError]:
    """Combine two pass aggregates slot by slot, preferring *primary*."""

    if primary is None:
        return fallback
    if fallback is None:
        return primary
    size = max(len(primary), len(fallback))
    return build_stage_error(
        primary.stage,
        primary.phase,
        [primary.error_for(index) or fallback.error_for(index) for index in range(size)],
        primary.step_names or fallback.step_names,
    )


__all__ = ["ContinuationPolicy", "PipelineDriver", "PipelineReport", "StageReport"]
