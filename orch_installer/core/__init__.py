"""Stage/step execution engine for the installer."""
from __future__ import annotations

from .action import Action, ToolAction, resolve_tool_action
from .context import RunContext
from .errors import ErrorCode, InstallerError, StageError
from .registry import TargetRegistry, register_target, registry
from .runner import ContinuationPolicy, PipelineDriver, PipelineReport, StageReport
from .stage import Stage, StepStage
from .state import RuntimeState, load_runtime_state, save_runtime_state
from .step import ALL_STEPS, LabelSelector, PhaseResult, Step

__all__ = [
    "ALL_STEPS",
    "Action",
    "ContinuationPolicy",
    "ErrorCode",
    "InstallerError",
    "LabelSelector",
    "PhaseResult",
    "PipelineDriver",
    "PipelineReport",
    "RunContext",
    "RuntimeState",
    "Stage",
    "StageError",
    "StageReport",
    "Step",
    "StepStage",
    "TargetRegistry",
    "ToolAction",
    "load_runtime_state",
    "register_target",
    "registry",
    "resolve_tool_action",
    "save_runtime_state",
]
