"""Structured errors returned by step phases and aggregated by stages."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple


class ErrorCode(str, Enum):
    """Kinds of failure a step phase can report."""

    INVALID_ARGUMENT = "InvalidArgument"
    INTERNAL = "Internal"
    TERRAFORM = "Terraform"
    PRECONDITION_FAILED = "PreconditionFailed"
    STATE_CONFLICT = "StateConflict"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True, frozen=True)
class InstallerError:
    """A single typed failure produced by one phase of one step."""

    code: ErrorCode
    message: str
    cause: Optional["InstallerError"] = field(default=None, compare=False)

    @classmethod
    def internal(cls, message: str) -> "InstallerError":
        return cls(ErrorCode.INTERNAL, message)

    @classmethod
    def invalid_argument(cls, message: str) -> "InstallerError":
        return cls(ErrorCode.INVALID_ARGUMENT, message)

    @classmethod
    def terraform(cls, message: str) -> "InstallerError":
        return cls(ErrorCode.TERRAFORM, message)

    def with_cause(self, cause: Optional["InstallerError"]) -> "InstallerError":
        """Return a copy of this error that records *cause* as the earlier failure.

        *cause* is appended after any causes this error already carries.
        """

        if cause is None or any(error == cause for error in self.chain()):
            return self
        rebuilt = cause
        for error in reversed(list(self.chain())):
            rebuilt = InstallerError(error.code, error.message, rebuilt)
        return rebuilt

    def chain(self) -> Iterator["InstallerError"]:
        current: Optional[InstallerError] = self
        while current is not None:
            yield current
            current = current.cause

    def describe(self) -> str:
        """Render the error and every recorded cause as one line."""

        return ": caused by ".join(f"[{err.code}] {err.message}" for err in self.chain())

    def __str__(self) -> str:
        return self.describe()


@dataclass(slots=True)
class StageError:
    """Positional collection of per-step errors for one pass of a stage.

    Slot *i* belongs to the step at index *i* of the stage; ``None`` means
    that step succeeded (or was not selected) for the pass.
    """

    stage: str
    phase: str
    step_errors: List[Optional[InstallerError]]
    step_names: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.step_errors)

    def __getitem__(self, index: int) -> Optional[InstallerError]:
        return self.step_errors[index]

    def error_for(self, index: int) -> Optional[InstallerError]:
        """Return the slot for *index*, tolerating a shorter slot list."""

        if 0 <= index < len(self.step_errors):
            return self.step_errors[index]
        return None

    def failures(self) -> Iterator[Tuple[int, InstallerError]]:
        for index, error in enumerate(self.step_errors):
            if error is not None:
                yield index, error

    @property
    def failed_count(self) -> int:
        return sum(1 for _ in self.failures())

    def step_name(self, index: int) -> str:
        if index < len(self.step_names):
            return self.step_names[index]
        return f"step[{index}]"

    def lines(self) -> List[str]:
        """Return one human readable line per failed step, in step order."""

        return [
            f"{self.stage}/{self.step_name(index)} ({self.phase}): {error.describe()}"
            for index, error in self.failures()
        ]

    def __str__(self) -> str:
        return "; ".join(self.lines()) or f"{self.stage} ({self.phase}): no failures"


def build_stage_error(
    stage: str,
    phase: str,
    step_errors: Sequence[Optional[InstallerError]],
    step_names: Sequence[str] = (),
) -> Optional[StageError]:
    """Return a :class:`StageError` for *step_errors* or ``None`` when every slot is empty."""

    if all(error is None for error in step_errors):
        return None
    return StageError(
        stage=stage,
        phase=phase,
        step_errors=list(step_errors),
        step_names=tuple(step_names),
    )


__all__ = ["ErrorCode", "InstallerError", "StageError", "build_stage_error"]
