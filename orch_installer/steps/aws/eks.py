"""Managed Kubernetes (EKS) cluster inside the provisioned VPC."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence

from orch_installer.core.action import Action
from orch_installer.core.context import RunContext
from orch_installer.core.errors import ErrorCode, InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import PhaseResult
from orch_installer.steps.shell import ShellUtility, SubprocessShellUtility
from orch_installer.steps.terraform import TerraformAWSBucketBackendConfig, TerraformUtility

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)

EKS_MODULE_PATH = "installer/targets/aws/iac/eks"
DEFAULT_TERRAFORM_BACKEND_BUCKET_KEY = "eks.tfstate"


@dataclass(slots=True)
class AWSEKSVariables:
    name: str
    region: str
    vpc_id: str
    subnet_ids: List[str]
    eks_version: str
    node_instance_type: str
    desired_size: int
    ip_allow_list: List[str] = field(default_factory=list)
    customer_tag: str = ""


class AWSEKSStep:
    """Creates the EKS cluster once the VPC and its private subnets exist."""

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
        self._backend_config: Optional[TerraformAWSBucketBackendConfig] = None

    def name(self) -> str:
        return "AWSEKSStep"

    def labels(self) -> Sequence[str]:
        return ("aws", "infra", "eks")

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if not config.aws.region:
            return state, InstallerError.invalid_argument("aws.region is required for EKS")
        if config.aws.eks_desired_size < 1:
            return state, InstallerError.invalid_argument("aws.eks_desired_size must be at least 1")
        self._backend_config = TerraformAWSBucketBackendConfig(
            region=config.aws.region,
            bucket=f"{config.general.orch_name}-{state.deployment_id}",
            key=DEFAULT_TERRAFORM_BACKEND_BUCKET_KEY,
        )
        return state, None

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        missing = []
        if not state.aws.vpc_id:
            missing.append("aws.vpc_id")
        if not state.aws.private_subnet_ids:
            missing.append("aws.private_subnet_ids")
        if missing:
            return state, InstallerError(
                ErrorCode.PRECONDITION_FAILED,
                f"EKS requires runtime state fields that are not set: {', '.join(missing)}",
            )
        return state, None

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if self._backend_config is None:
            return state, InstallerError.internal("AWSEKSStep ran before it was configured")
        variables = AWSEKSVariables(
            name=config.general.orch_name,
            region=config.aws.region,
            vpc_id=state.aws.vpc_id,
            subnet_ids=list(state.aws.private_subnet_ids),
            eks_version=config.aws.eks_cluster_version,
            node_instance_type=config.aws.eks_node_instance_type,
            desired_size=config.aws.eks_desired_size,
            ip_allow_list=list(config.aws.jump_host_whitelist),
            customer_tag=config.aws.customer_tag,
        )
        utility = TerraformUtility(
            action=config.action,
            module_path=self.root_path / EKS_MODULE_PATH,
            variables=variables,
            backend_config=self._backend_config,
            log_file=Path(state.log_dir or ".") / "aws_eks.log",
            exec_path=self.terraform_exec_path,
            keep_generated_files=self.keep_generated_files,
            shell=self.shell,
        )
        output, error = utility.run(ctx)
        if error is not None:
            return state, error
        if config.action == Action.UNINSTALL:
            state.aws.eks_cluster_name = ""
            state.aws.eks_cluster_endpoint = ""
            return state, None

        endpoint = output.get("cluster_endpoint") if output is not None else None
        if endpoint is None:
            return state, InstallerError.terraform("cluster_endpoint does not exist in terraform output")
        cluster_name = output.get("cluster_name")
        state.aws.eks_cluster_name = cluster_name.as_string() if cluster_name is not None else variables.name
        state.aws.eks_cluster_endpoint = endpoint.as_string()
        logger.info(
            "EKS cluster %s available at %s", state.aws.eks_cluster_name, state.aws.eks_cluster_endpoint
        )
        return state, None

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        return state, prev_error


__all__ = ["AWSEKSStep", "AWSEKSVariables", "EKS_MODULE_PATH"]
