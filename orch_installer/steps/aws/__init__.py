"""AWS provisioning steps."""
from __future__ import annotations

from .eks import AWSEKSStep
from .state_bucket import CreateAWSStateBucket
from .vpc import AWSVPCStep, compute_subnet_layout, generate_ssh_key_pair

__all__ = [
    "AWSEKSStep",
    "AWSVPCStep",
    "CreateAWSStateBucket",
    "compute_subnet_layout",
    "generate_ssh_key_pair",
]
