"""VPC, subnets and jump host provisioning on AWS."""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from orch_installer.core.action import Action
from orch_installer.core.context import RunContext
from orch_installer.core.errors import InstallerError
from orch_installer.core.state import RuntimeState
from orch_installer.core.step import PhaseResult
from orch_installer.steps.shell import ShellUtility, SubprocessShellUtility
from orch_installer.steps.terraform import (
    TerraformAWSBucketBackendConfig,
    TerraformOutput,
    TerraformUtility,
)

from .zones import default_availability_zones

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.config import OrchInstallerConfig

logger = logging.getLogger(__name__)

VPC_MODULE_PATH = "installer/targets/aws/iac/vpc"
JUMP_HOST_AMI_ID = "ami-0026a04369a3093cc"
SSH_KEY_SIZE = 4096
MINIMUM_VPC_CIDR_MASK_SIZE = 16
REQUIRED_AVAILABILITY_ZONES = 3
PRIVATE_SUBNET_MASK_SIZE = 20
PUBLIC_SUBNET_MASK_SIZE = 24
DEFAULT_TERRAFORM_BACKEND_BUCKET_KEY = "vpc.tfstate"

_LABELS = ("aws", "infra", "vpc")


@dataclass(slots=True)
class AWSVPCSubnet:
    az: str
    cidr_block: str


@dataclass(slots=True)
class AWSVPCJumphostSubnet:
    name: str = ""
    az: str = ""
    cidr_block: str = ""


@dataclass(slots=True)
class AWSVPCVariables:
    """Input variables of the VPC module, with its declared defaults."""

    region: str = ""
    vpc_name: str = ""
    vpc_cidr_block: str = ""
    vpc_additional_cidr_blocks: List[str] = field(default_factory=list)
    vpc_enable_dns_hostnames: bool = True
    vpc_enable_dns_support: bool = True
    private_subnets: Dict[str, AWSVPCSubnet] = field(default_factory=dict)
    public_subnets: Dict[str, AWSVPCSubnet] = field(default_factory=dict)
    endpoint_sg_name: str = ""
    jumphost_ip_allow_list: List[str] = field(default_factory=list)
    jumphost_ami_id: str = JUMP_HOST_AMI_ID
    jumphost_instance_type: str = "t3.medium"
    jumphost_instance_ssh_key_pub: str = ""
    jumphost_subnet: AWSVPCJumphostSubnet = field(default_factory=AWSVPCJumphostSubnet)
    production: bool = True
    customer_tag: str = ""


def compute_subnet_layout(
    cidr_block: str,
    zones: Sequence[str],
    *,
    private_mask: int = PRIVATE_SUBNET_MASK_SIZE,
    public_mask: int = PUBLIC_SUBNET_MASK_SIZE,
    minimum_mask: int = MINIMUM_VPC_CIDR_MASK_SIZE,
) -> Tuple[Dict[str, AWSVPCSubnet], Dict[str, AWSVPCSubnet]]:
    """Carve one private and one public subnet per zone out of *cidr_block*.

    Private subnets are packed from the start of the block; public subnets
    follow immediately after the last private subnet. Raises
    :class:`ValueError` when the block is malformed or too small.
    """

    network = ipaddress.ip_network(cidr_block, strict=True)
    if network.version != 4:
        raise ValueError(f"VPC CIDR block must be IPv4: {cidr_block}")
    if network.prefixlen > minimum_mask:
        raise ValueError(
            f"VPC CIDR block is too small: {cidr_block}, minimum is /{minimum_mask}"
        )
    private_size = 1 << (32 - private_mask)
    public_size = 1 << (32 - public_mask)
    required = len(zones) * (private_size + public_size)
    if required > network.num_addresses:
        raise ValueError(
            f"VPC CIDR block {cidr_block} cannot hold {len(zones)} private /{private_mask} "
            f"and public /{public_mask} subnets"
        )

    base = int(network.network_address)
    private: Dict[str, AWSVPCSubnet] = {}
    for index, zone in enumerate(zones):
        subnet = ipaddress.ip_network((base + index * private_size, private_mask))
        private[f"subnet-{zone}"] = AWSVPCSubnet(az=zone, cidr_block=str(subnet))
    base += len(zones) * private_size
    public: Dict[str, AWSVPCSubnet] = {}
    for index, zone in enumerate(zones):
        subnet = ipaddress.ip_network((base + index * public_size, public_mask))
        public[f"subnet-{zone}-pub"] = AWSVPCSubnet(az=zone, cidr_block=str(subnet))
    return private, public


def generate_ssh_key_pair(key_size: int = SSH_KEY_SIZE) -> Tuple[str, str]:
    """Return a PEM private key and an OpenSSH authorized_keys public key."""

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_openssh = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")
    return private_pem, public_openssh + "\n"


def _subnet_ids(output: TerraformOutput, key: str, names: Sequence[str]) -> List[str]:
    meta = output.get(key)
    if meta is None:
        raise ValueError(f"{key} does not exist in terraform output")
    if not isinstance(meta.value, dict):
        raise ValueError(f"{key} output is not a map of subnets")
    ids: List[str] = []
    for name in names:
        subnet = meta.value.get(name)
        subnet_id = subnet.get("id") if isinstance(subnet, dict) else None
        if not subnet_id:
            raise ValueError(f"subnet id for {name} does not exist in terraform output")
        ids.append(str(subnet_id))
    return ids


class AWSVPCStep:
    """Creates the VPC, its subnets, endpoints and the jump host."""

    def __init__(
        self,
        root_path: Path,
        *,
        keep_generated_files: bool = False,
        terraform_exec_path: str = "terraform",
        shell: Optional[ShellUtility] = None,
        zone_lookup: Callable[[str], List[str]] = default_availability_zones,
    ) -> None:
        self.root_path = Path(root_path)
        self.keep_generated_files = keep_generated_files
        self.terraform_exec_path = terraform_exec_path
        self.shell = shell or SubprocessShellUtility()
        self.zone_lookup = zone_lookup
        self._variables: Optional[AWSVPCVariables] = None
        self._backend_config: Optional[TerraformAWSBucketBackendConfig] = None

    def name(self) -> str:
        return "AWSVPCStep"

    def labels(self) -> Sequence[str]:
        return _LABELS

    @property
    def variables(self) -> Optional[AWSVPCVariables]:
        return self._variables

    def configure(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        region = config.aws.region
        if not region:
            return state, InstallerError.invalid_argument("aws.region is required for the VPC")
        zones = list(config.aws.availability_zones) or self.zone_lookup(region)
        if len(zones) < REQUIRED_AVAILABILITY_ZONES:
            return state, InstallerError.invalid_argument(
                f"region {region} provides {len(zones)} availability zone(s), "
                f"{REQUIRED_AVAILABILITY_ZONES} are required"
            )
        zones = zones[:REQUIRED_AVAILABILITY_ZONES]
        try:
            private, public = compute_subnet_layout(config.aws.network_cidr, zones)
        except ValueError as exc:
            return state, InstallerError.invalid_argument(f"invalid VPC CIDR block: {exc}")

        orch_name = config.general.orch_name
        variables = AWSVPCVariables(
            region=region,
            vpc_name=orch_name,
            vpc_cidr_block=config.aws.network_cidr,
            private_subnets=private,
            public_subnets=public,
            endpoint_sg_name=f"{orch_name}-vpc-ep",
            jumphost_ip_allow_list=list(config.aws.jump_host_whitelist),
            jumphost_subnet=AWSVPCJumphostSubnet(
                name=f"{orch_name}-subnet-{zones[0]}-pub",
                az=zones[0],
                cidr_block=public[f"subnet-{zones[0]}-pub"].cidr_block,
            ),
            customer_tag=config.aws.customer_tag,
        )

        if not state.aws.jump_host_ssh_key_private_key or not state.aws.jump_host_ssh_key_public_key:
            try:
                private_key, public_key = generate_ssh_key_pair()
            except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
                return state, InstallerError.internal(f"failed to generate SSH key pair: {exc}")
            state.aws.jump_host_ssh_key_private_key = private_key
            state.aws.jump_host_ssh_key_public_key = public_key
        variables.jumphost_instance_ssh_key_pub = state.aws.jump_host_ssh_key_public_key

        self._variables = variables
        self._backend_config = TerraformAWSBucketBackendConfig(
            region=region,
            bucket=f"{orch_name}-{state.deployment_id}",
            key=DEFAULT_TERRAFORM_BACKEND_BUCKET_KEY,
        )
        return state, None

    def pre(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        return state, None

    def run(
        self, ctx: RunContext, config: "OrchInstallerConfig", state: RuntimeState
    ) -> PhaseResult:
        if self._variables is None or self._backend_config is None:
            return state, InstallerError.internal("AWSVPCStep ran before it was configured")
        utility = TerraformUtility(
            action=config.action,
            module_path=self.root_path / VPC_MODULE_PATH,
            variables=self._variables,
            backend_config=self._backend_config,
            log_file=Path(state.log_dir or ".") / "aws_vpc.log",
            exec_path=self.terraform_exec_path,
            keep_generated_files=self.keep_generated_files,
            shell=self.shell,
        )
        output, error = utility.run(ctx)
        if error is not None:
            return state, error
        if config.action == Action.UNINSTALL:
            state.aws.vpc_id = ""
            state.aws.public_subnet_ids = []
            state.aws.private_subnet_ids = []
            state.aws.jump_host_ip = ""
            return state, None
        if output is None or not output.outputs:
            return state, InstallerError.terraform("cannot find any output from VPC module")

        try:
            vpc_id = output.get("vpc_id")
            if vpc_id is None:
                raise ValueError("vpc_id does not exist in terraform output")
            public_ids = _subnet_ids(output, "public_subnets", list(self._variables.public_subnets))
            private_ids = _subnet_ids(output, "private_subnets", list(self._variables.private_subnets))
        except ValueError as exc:
            return state, InstallerError.terraform(str(exc))

        state.aws.vpc_id = vpc_id.as_string()
        state.aws.public_subnet_ids = public_ids
        state.aws.private_subnet_ids = private_ids
        jumphost_ip = output.get("jumphost_ip")
        if jumphost_ip is not None:
            state.aws.jump_host_ip = jumphost_ip.as_string()
        logger.info("VPC %s ready with %d private subnet(s)", state.aws.vpc_id, len(private_ids))
        return state, None

    def post(
        self,
        ctx: RunContext,
        config: "OrchInstallerConfig",
        state: RuntimeState,
        prev_error: Optional[InstallerError],
    ) -> PhaseResult:
        return state, prev_error


__all__ = [
    "AWSVPCStep",
    "AWSVPCSubnet",
    "AWSVPCVariables",
    "MINIMUM_VPC_CIDR_MASK_SIZE",
    "PRIVATE_SUBNET_MASK_SIZE",
    "PUBLIC_SUBNET_MASK_SIZE",
    "REQUIRED_AVAILABILITY_ZONES",
    "compute_subnet_layout",
    "generate_ssh_key_pair",
]
