"""On-prem provisioning steps."""
from __future__ import annotations

from .network import OnPremNetworkStep

__all__ = ["OnPremNetworkStep"]
