"""Miscellaneous helpers for the installer runtime."""
from __future__ import annotations

from importlib import metadata

__all__ = ["installer_version"]


def installer_version() -> str:
    """Return the installed orch-installer version or a sensible default."""

    try:
        return metadata.version("orch-installer")
    except metadata.PackageNotFoundError:  # pragma: no cover - fallback path
        return "0.0.0"
