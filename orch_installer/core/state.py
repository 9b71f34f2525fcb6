"""Runtime state threaded through every step phase.

Steps never mutate the canonical :class:`RuntimeState`. Each phase receives a
:meth:`RuntimeState.snapshot` and hands back a candidate; the stage commits the
candidate with :meth:`RuntimeState.merge`, which is the only mutation point.

Every field is owned by a single writer. The first writer that changes a field
claims it and any later change from a different writer is rejected as a
conflict. Fields seeded by the operator are owned by :data:`OPERATOR_OWNER`.
"""
from __future__ import annotations

import copy
import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .errors import ErrorCode, InstallerError

logger = logging.getLogger(__name__)

OPERATOR_OWNER = "operator"
_BOOKKEEPING_FIELDS = frozenset({"owners", "origin"})


class StateFileError(RuntimeError):
    """Raised when a persisted runtime state cannot be read or written."""


@dataclass(slots=True)
class AWSRuntimeState:
    """Values discovered or generated while provisioning on AWS."""

    jump_host_ssh_key_private_key: str = ""
    jump_host_ssh_key_public_key: str = ""
    jump_host_ip: str = ""
    state_bucket_name: str = ""
    vpc_id: str = ""
    public_subnet_ids: List[str] = field(default_factory=list)
    private_subnet_ids: List[str] = field(default_factory=list)
    eks_cluster_name: str = ""
    eks_cluster_endpoint: str = ""


@dataclass(slots=True)
class RuntimeState:
    """Mutable aggregate of everything produced during an installer run."""

    deployment_id: str = ""
    log_dir: str = ""
    sshuttle_pid: str = ""
    aws: AWSRuntimeState = field(default_factory=AWSRuntimeState)
    owners: Dict[str, str] = field(default_factory=dict, compare=False, repr=False)
    origin: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def initial(cls, *, deployment_id: str = "", log_dir: str = "") -> "RuntimeState":
        """Create an empty state with operator-supplied, write-once fields."""

        state = cls(deployment_id=deployment_id, log_dir=log_dir)
        for path in ("deployment_id", "log_dir"):
            if state.get(path):
                state.owners[path] = OPERATOR_OWNER
        return state

    def snapshot(self) -> "RuntimeState":
        """Return an independent copy for a step phase to work on.

        The copy remembers the values it started from so :meth:`merge` only
        commits the fields the phase actually changed.
        """

        snapshot = copy.deepcopy(self)
        snapshot.origin = self.flatten()
        return snapshot

    def flatten(self) -> Dict[str, Any]:
        """Return every field keyed by its dotted path."""

        return _flatten(self, "")

    def get(self, path: str) -> Any:
        target: Any = self
        for part in path.split("."):
            target = getattr(target, part)
        return target

    def _set(self, path: str, value: Any) -> None:
        *parents, leaf = path.split(".")
        target: Any = self
        for part in parents:
            target = getattr(target, part)
        setattr(target, leaf, value)

    def owner_of(self, path: str) -> Optional[str]:
        return self.owners.get(path)

    def merge(self, candidate: "RuntimeState", owner: str) -> Optional[InstallerError]:
        """Commit *candidate* into this canonical copy on behalf of *owner*.

        The merge is all-or-nothing: on a serialisation failure or an ownership
        conflict nothing is written and the error is returned.
        """

        if not isinstance(candidate, RuntimeState):
            return InstallerError.internal(
                f"{owner} returned {type(candidate).__name__} instead of a runtime state"
            )
        try:
            proposed = candidate.flatten()
            yaml.safe_dump(proposed)
        except (yaml.YAMLError, TypeError, ValueError) as exc:
            return InstallerError.internal(
                f"failed to serialize runtime state from {owner}: {exc}"
            )

        current = self.flatten()
        # Candidates without a recorded origin are compared against the canonical copy.
        base = candidate.origin or current
        changed = {path: value for path, value in proposed.items() if base.get(path) != value}
        conflicts: Dict[str, str] = {}
        for path, value in changed.items():
            holder = self.owners.get(path, owner)
            if holder != owner:
                conflicts[path] = f"owned by {holder}"
            elif current.get(path) != base.get(path) and current.get(path) != value:
                conflicts[path] = "changed since snapshot"
        if conflicts:
            details = ", ".join(f"{path} ({reason})" for path, reason in sorted(conflicts.items()))
            return InstallerError(
                ErrorCode.STATE_CONFLICT,
                f"{owner} attempted to overwrite runtime state fields: {details}",
            )

        for path, value in changed.items():
            self._set(path, copy.deepcopy(value))
            self.owners[path] = owner
        if changed:
            logger.debug("Merged runtime state fields %s from %s", sorted(changed), owner)
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload.pop("owners", None)
        payload.pop("origin", None)
        return payload

    @classmethod
    def from_dict(
        cls, payload: Mapping[str, Any], owners: Optional[Mapping[str, str]] = None
    ) -> "RuntimeState":
        state = cls()
        known = set(state.flatten())
        for path, value in _flatten_mapping(payload, "").items():
            if path not in known:
                logger.warning("Ignoring unknown runtime state field %s", path)
                continue
            state._set(path, list(value) if isinstance(value, (list, tuple)) else value)
        state.owners.update({key: str(value) for key, value in (owners or {}).items()})
        return state


def _flatten(value: Any, prefix: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for item in fields(value):
        if item.name in _BOOKKEEPING_FIELDS:
            continue
        path = f"{prefix}{item.name}"
        attr = getattr(value, item.name)
        if is_dataclass(attr):
            result.update(_flatten(attr, f"{path}."))
        else:
            result[path] = copy.deepcopy(attr)
    return result


def _flatten_mapping(payload: Mapping[str, Any], prefix: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        path = f"{prefix}{key}"
        if isinstance(value, Mapping):
            result.update(_flatten_mapping(value, f"{path}."))
        else:
            result[path] = value
    return result


def load_runtime_state(path: Path) -> RuntimeState:
    """Restore a runtime state persisted by :func:`save_runtime_state`."""

    if not path.exists():
        raise FileNotFoundError(f"Runtime state file not found at {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise StateFileError(f"Failed to parse runtime state {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise StateFileError(f"Runtime state {path} must be a mapping")
    return RuntimeState.from_dict(payload.get("state") or {}, payload.get("owners") or {})


def save_runtime_state(path: Path, state: RuntimeState) -> None:
    """Write *state* and its field ownership to *path*, readable by the owner only."""

    path.parent.mkdir(parents=True, exist_ok=True)
    document = {"state": state.to_dict(), "owners": dict(state.owners)}
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            yaml.safe_dump(document, handle, sort_keys=True)
    except (OSError, yaml.YAMLError) as exc:
        raise StateFileError(f"Failed to write runtime state {path}: {exc}") from exc


__all__ = [
    "AWSRuntimeState",
    "OPERATOR_OWNER",
    "RuntimeState",
    "StateFileError",
    "load_runtime_state",
    "save_runtime_state",
]
