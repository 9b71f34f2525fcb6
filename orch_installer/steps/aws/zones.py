"""Availability zone naming for AWS regions."""
from __future__ import annotations

from typing import List

ZONE_SUFFIXES = ("a", "b", "c")


def default_availability_zones(region: str) -> List[str]:
    """Return the conventional first zones of *region* (``us-west-2a`` ...).

    Configure must not call AWS, so zones are derived locally. Operators can
    pin zones explicitly with ``aws.availability_zones`` in the config file.
    """

    if not region:
        return []
    return [f"{region}{suffix}" for suffix in ZONE_SUFFIXES]


__all__ = ["ZONE_SUFFIXES", "default_availability_zones"]
