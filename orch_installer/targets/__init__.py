"""Deployment targets. Importing this package registers them."""
from __future__ import annotations

from . import aws, on_prem  # noqa: F401
