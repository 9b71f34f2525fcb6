from __future__ import annotations

import json

from conftest import FakeShell, terraform_handler

from orch_installer.core.errors import ErrorCode
from orch_installer.steps.aws import AWSEKSStep, CreateAWSStateBucket
from orch_installer.steps.aws.eks import EKS_MODULE_PATH
from orch_installer.steps.on_prem import OnPremNetworkStep
from orch_installer.steps.shell import ShellResult
from orch_installer.steps.utils import command_exists, go_through_step_functions


def _with_network(state):
    state.aws.vpc_id = "vpc-0123"
    state.aws.private_subnet_ids = ["subnet-priv-a", "subnet-priv-b", "subnet-priv-c"]
    return state


def test_eks_requires_network_in_state(run_context, installer_config, runtime_state):
    step = AWSEKSStep("/opt/orch", shell=FakeShell())

    _, error = step.pre(run_context, installer_config, runtime_state)

    assert error.code is ErrorCode.PRECONDITION_FAILED
    assert "aws.vpc_id" in error.message
    assert "aws.private_subnet_ids" in error.message


def test_eks_records_cluster_endpoint(tmp_path, run_context, installer_config, runtime_state):
    shell = FakeShell(terraform_handler({"cluster_endpoint": "https://eks.example", "cluster_name": "test"}))
    step = AWSEKSStep(tmp_path, shell=shell, keep_generated_files=True)
    state = _with_network(runtime_state)

    error = go_through_step_functions(run_context, step, installer_config, state)

    assert error is None
    assert state.aws.eks_cluster_endpoint == "https://eks.example"
    assert state.aws.eks_cluster_name == "test"
    variables = json.loads((tmp_path / EKS_MODULE_PATH / "environments" / "variables.tfvars.json").read_text())
    assert variables["subnet_ids"] == ["subnet-priv-a", "subnet-priv-b", "subnet-priv-c"]
    assert variables["vpc_id"] == "vpc-0123"


def test_eks_without_endpoint_output_fails(tmp_path, run_context, installer_config, runtime_state):
    step = AWSEKSStep(tmp_path, shell=FakeShell(terraform_handler({"cluster_name": "test"})))

    error = go_through_step_functions(run_context, step, installer_config, _with_network(runtime_state))

    assert error.code is ErrorCode.TERRAFORM
    assert runtime_state.aws.eks_cluster_endpoint == ""


def test_state_bucket_named_after_deployment(tmp_path, run_context, installer_config, runtime_state):
    shell = FakeShell(terraform_handler())
    step = CreateAWSStateBucket(tmp_path, shell=shell)

    error = go_through_step_functions(run_context, step, installer_config, runtime_state)

    assert error is None
    assert runtime_state.aws.state_bucket_name == "test-abcd1234"
    assert runtime_state.owner_of("aws.state_bucket_name") == "CreateAWSStateBucket"
    assert [command[1] for command in shell.argv()] == ["init", "apply", "output"]


def test_state_bucket_uninstall_clears_name(tmp_path, run_context, installer_config, runtime_state):
    step = CreateAWSStateBucket(tmp_path, shell=FakeShell(terraform_handler()))
    assert go_through_step_functions(run_context, step, installer_config, runtime_state) is None

    error = go_through_step_functions(
        run_context, step, installer_config.with_action("uninstall"), runtime_state
    )

    assert error is None
    assert runtime_state.aws.state_bucket_name == ""


def test_on_prem_network_passes_state_through(run_context, installer_config, runtime_state):
    before = runtime_state.flatten()

    assert go_through_step_functions(run_context, OnPremNetworkStep(), installer_config, runtime_state) is None
    assert runtime_state.flatten() == before


def test_command_exists_checks_output(run_context):
    found = FakeShell(lambda command: ShellResult(stdout="/usr/bin/nc\n", returncode=0))
    missing = FakeShell(lambda command: ShellResult(returncode=1))

    assert command_exists(run_context, found, "nc")
    assert not command_exists(run_context, missing, "nc")
    assert found.argv() == [["bash", "-c", "command -v nc"]]
