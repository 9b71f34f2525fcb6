"""Steps shared by every target."""
from __future__ import annotations

from .sshuttle import SshuttleStep, StopSshuttleStep

__all__ = ["SshuttleStep", "StopSshuttleStep"]
