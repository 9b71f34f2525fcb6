"""AWS deployment target."""
from __future__ import annotations

from typing import List

from orch_installer.core import register_target
from orch_installer.core.action import Action
from orch_installer.core.stage import Stage, StepStage
from orch_installer.settings import Settings
from orch_installer.steps.aws import AWSEKSStep, AWSVPCStep, CreateAWSStateBucket
from orch_installer.steps.common import SshuttleStep, StopSshuttleStep
from orch_installer.steps.shell import SubprocessShellUtility


@register_target("aws", "Provision the edge platform on AWS (state bucket, VPC, tunnel, EKS).")
def create_aws_stages(settings: Settings, action: Action) -> List[Stage]:
    """Build the AWS stages in execution order for *action*.

    Uninstall tears resources down in reverse creation order, but still
    opens the tunnel first so private endpoints stay reachable.
    """

    shell = SubprocessShellUtility()
    terraform = {
        "keep_generated_files": settings.keep_generated_files,
        "terraform_exec_path": settings.terraform_exec_path,
        "shell": shell,
    }
    pre_infra = StepStage("PreInfra", [CreateAWSStateBucket(settings.root_path, **terraform)], ["pre-infra"])
    infra = StepStage("Infra", [AWSVPCStep(settings.root_path, **terraform)], ["infra"])
    tunnel = StepStage("Tunnel", [SshuttleStep(settings.root_path, shell)], ["tunnel"])
    cluster = StepStage("Cluster", [AWSEKSStep(settings.root_path, **terraform)], ["cluster"])
    cleanup = StepStage("Cleanup", [StopSshuttleStep(shell)], ["cleanup"])

    if Action.parse(action) is Action.UNINSTALL:
        return [tunnel, cluster, cleanup, infra, pre_infra]
    return [pre_infra, infra, tunnel, cluster, cleanup]
