"""Terraform invocation shared by provisioning steps."""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from orch_installer.core.action import ToolAction, resolve_tool_action
from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError

from .shell import ShellCommand, ShellCommandError, ShellUtility, SubprocessShellUtility

logger = logging.getLogger(__name__)

TERRAFORM_VERSION = "1.9.5"
ENVIRONMENTS_DIR = "environments"
BACKEND_FILE = "backend.tfvars.json"
VARIABLES_FILE = "variables.tfvars.json"
INIT_TIMEOUT = 600.0
APPLY_TIMEOUT = 3600.0
OUTPUT_TIMEOUT = 120.0


@dataclass(slots=True)
class TerraformAWSBucketBackendConfig:
    """S3 backend settings for modules whose state lives in the state bucket."""

    region: str
    bucket: str
    key: str


@dataclass(slots=True)
class TerraformLocalBackendConfig:
    """Local backend used by the module that creates the state bucket itself."""

    path: str


@dataclass(slots=True)
class TerraformOutputMeta:
    """One ``terraform output -json`` entry."""

    sensitive: bool
    type: Any
    value: Any

    @property
    def raw(self) -> bytes:
        """JSON encoding of the value, for structured and collection outputs."""

        return json.dumps(self.value, sort_keys=True).encode("utf-8")

    def as_string(self) -> str:
        if isinstance(self.value, str):
            return self.value
        return json.dumps(self.value)


@dataclass(slots=True)
class TerraformOutput:
    """Outputs of a module keyed by output name."""

    outputs: Dict[str, TerraformOutputMeta] = field(default_factory=dict)

    def __contains__(self, name: str) -> bool:
        return name in self.outputs

    def get(self, name: str) -> Optional[TerraformOutputMeta]:
        return self.outputs.get(name)


def marshal_variables(data: Any) -> bytes:
    """Serialize a dataclass or mapping into Terraform's JSON variable format."""

    if is_dataclass(data) and not isinstance(data, type):
        payload = asdict(data)
    elif isinstance(data, Mapping):
        payload = dict(data)
    else:
        raise TypeError(f"cannot marshal {type(data).__name__} into terraform variables")
    return json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")


def parse_outputs(document: str) -> TerraformOutput:
    """Parse the JSON printed by ``terraform output -json``."""

    payload = json.loads(document or "{}")
    if not isinstance(payload, dict):
        raise ValueError("terraform output is not a JSON object")
    outputs: Dict[str, TerraformOutputMeta] = {}
    for name, meta in payload.items():
        if not isinstance(meta, dict) or "value" not in meta:
            raise ValueError(f"terraform output '{name}' has no value")
        outputs[name] = TerraformOutputMeta(
            sensitive=bool(meta.get("sensitive", False)),
            type=meta.get("type"),
            value=meta["value"],
        )
    return TerraformOutput(outputs=outputs)


@dataclass(slots=True)
class TerraformUtility:
    """Initialize, apply or destroy a Terraform module and read its outputs."""

    action: str
    module_path: Path
    variables: Any
    backend_config: Any
    log_file: Path
    exec_path: str = "terraform"
    keep_generated_files: bool = False
    shell: ShellUtility = field(default_factory=SubprocessShellUtility)

    @property
    def backend_config_path(self) -> Path:
        return self.module_path / ENVIRONMENTS_DIR / BACKEND_FILE

    @property
    def variables_path(self) -> Path:
        return self.module_path / ENVIRONMENTS_DIR / VARIABLES_FILE

    def run(self, ctx: RunContext) -> Tuple[Optional[TerraformOutput], Optional[InstallerError]]:
        """Run the module for ``action`` and return its outputs."""

        tool_action, error = resolve_tool_action(self.action)
        if error is not None:
            return None, error
        if error := ctx.check(f"terraform {tool_action.value} of {self.module_path}"):
            return None, error

        if error := self._write_generated_files():
            return None, error

        try:
            self._terraform(
                ctx,
                ["init", "-upgrade", "-input=false", "-no-color",
                 f"-backend-config={self.backend_config_path}"],
                INIT_TIMEOUT,
            )
            logger.debug("Terraform backend initialized for %s", self.module_path)
            if tool_action is ToolAction.APPLY:
                logger.debug("Applying Terraform with variables file %s", self.variables_path)
                self._terraform(
                    ctx,
                    ["apply", "-auto-approve", "-input=false", "-json",
                     f"-var-file={self.variables_path}"],
                    APPLY_TIMEOUT,
                    log=True,
                )
            else:
                logger.debug("Destroying Terraform with variables file %s", self.variables_path)
                self._terraform(
                    ctx,
                    ["destroy", "-auto-approve", "-input=false", "-json", "-refresh=false",
                     f"-var-file={self.variables_path}"],
                    APPLY_TIMEOUT,
                    log=True,
                )
            result = self._terraform(ctx, ["output", "-json"], OUTPUT_TIMEOUT)
        except ShellCommandError as exc:
            return None, InstallerError.terraform(
                f"failed to {tool_action.value} terraform module {self.module_path}: {exc}"
            )

        try:
            output = parse_outputs(result.stdout)
        except ValueError as exc:
            return None, InstallerError.terraform(f"failed to retrieve terraform output: {exc}")

        if not self.keep_generated_files:
            self._remove_generated_files()
        return output, None

    def _terraform(self, ctx: RunContext, args: list, timeout: float, log: bool = False):
        return self.shell.run(
            ctx,
            ShellCommand(
                command=[self.exec_path, *args],
                timeout=timeout,
                cwd=self.module_path,
                log_file=self.log_file if log else None,
            ),
        )

    def _write_generated_files(self) -> Optional[InstallerError]:
        try:
            variables = marshal_variables(self.variables)
            backend = marshal_variables(self.backend_config)
        except (TypeError, ValueError) as exc:
            return InstallerError.internal(f"failed to marshal terraform inputs: {exc}")
        try:
            self.variables_path.parent.mkdir(parents=True, exist_ok=True)
            self.variables_path.write_bytes(variables)
            self.backend_config_path.write_bytes(backend)
        except OSError as exc:
            return InstallerError.internal(f"failed to write terraform inputs: {exc}")
        logger.debug("Backend and variables files created in %s", self.variables_path.parent)
        return None

    def _remove_generated_files(self) -> None:
        for path in (self.backend_config_path, self.variables_path):
            if not path.exists():
                continue
            logger.debug("Deleting generated file %s", path)
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("Failed to delete generated file %s: %s", path, exc)


__all__ = [
    "TERRAFORM_VERSION",
    "TerraformAWSBucketBackendConfig",
    "TerraformLocalBackendConfig",
    "TerraformOutput",
    "TerraformOutputMeta",
    "TerraformUtility",
    "marshal_variables",
    "parse_outputs",
]
