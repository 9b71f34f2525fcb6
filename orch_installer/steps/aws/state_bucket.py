"""S3 bucket holding the Terraform state of every other AWS module."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from orch_installer.core.action import Action
from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import PhaseResult
from orch_installer.steps.shell import ShellUtility, SubprocessShellUtility
from orch_installer.steps.terraform import TerraformLocalBackendConfig, TerraformUtility

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)

STATE_BUCKET_MODULE_PATH = "installer/targets/aws/iac/state_bucket"
LOCAL_STATE_FILE = "state_bucket.tfstate"


@dataclass(slots=True)
class AWSStateBucketVariables:
    region: str
    orch_name: str
    bucket: str


class CreateAWSStateBucket:
    """Creates the bucket ``<orch_name>-<deployment_id>``.

    The bucket cannot store its own state, so this module uses a local backend
    kept next to the module.
    """

    def __init__(
        self,
        root_path: Path,
        *,
        keep_generated_files: bool = False,
        terraform_exec_path: str = "terraform",
        shell: Optional[ShellUtility] = None,
    ) -> None:
        self.root_path = Path(root_path)
        self.keep_generated_files = keep_generated_files
        self.terraform_exec_path = terraform_exec_path
        self.shell = shell or SubprocessShellUtility()
        self._variables: Optional[AWSStateBucketVariables] = None

    def name(self) -> str:
        return "CreateAWSStateBucket"

    def labels(self) -> Sequence[str]:
        return ("aws", "pre-infra", "state-bucket")

    @property
    def module_path(self) -> Path:
        return self.root_path / STATE_BUCKET_MODULE_PATH

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if not config.aws.region:
            return state, InstallerError.invalid_argument("aws.region is required for the state bucket")
        if not state.deployment_id:
            return state, InstallerError.invalid_argument(
                "deployment id is required to name the state bucket"
            )
        self._variables = AWSStateBucketVariables(
            region=config.aws.region,
            orch_name=config.general.orch_name,
            bucket=f"{config.general.orch_name}-{state.deployment_id}",
        )
        return state, None

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        return state, None

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if self._variables is None:
            return state, InstallerError.internal("CreateAWSStateBucket ran before it was configured")
        utility = TerraformUtility(
            action=config.action,
            module_path=self.module_path,
            variables=self._variables,
            backend_config=TerraformLocalBackendConfig(path=str(self.module_path / LOCAL_STATE_FILE)),
            log_file=Path(state.log_dir or ".") / "aws_state_bucket.log",
            exec_path=self.terraform_exec_path,
            keep_generated_files=self.keep_generated_files,
            shell=self.shell,
        )
        _, error = utility.run(ctx)
        if error is not None:
            return state, error
        if config.action == Action.UNINSTALL:
            state.aws.state_bucket_name = ""
        else:
            state.aws.state_bucket_name = self._variables.bucket
            logger.info("Terraform state bucket %s is ready", self._variables.bucket)
        return state, None

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        return state, prev_error


__all__ = ["AWSStateBucketVariables", "CreateAWSStateBucket", "STATE_BUCKET_MODULE_PATH"]
