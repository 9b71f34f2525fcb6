"""Top-level lifecycle actions and their mapping onto apply/destroy."""
from __future__ import annotations

from enum import Enum
from typing import Tuple, Union

from .errors import InstallerError


class Action(str, Enum):
    """Lifecycle selected once per installer run."""

    INSTALL = "install"
    UPGRADE = "upgrade"
    UNINSTALL = "uninstall"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "Action"]) -> "Action":
        """Return the :class:`Action` for *value* or raise :class:`ValueError`."""

        if isinstance(value, Action):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(action.value for action in cls)
            raise ValueError(f"unsupported action '{value}' (expected one of {choices})") from exc


class ToolAction(str, Enum):
    """What a delegated infrastructure-as-code invocation should do."""

    APPLY = "apply"
    DESTROY = "destroy"


def resolve_tool_action(action: object) -> Tuple[ToolAction | None, InstallerError | None]:
    """Map *action* to the apply or destroy path.

    Install and upgrade apply, uninstall destroys. Anything else is reported
    as ``InvalidArgument`` so callers can bail out before touching anything.
    """

    try:
        parsed = Action.parse(action)  # type: ignore[arg-type]
    except ValueError as exc:
        return None, InstallerError.invalid_argument(str(exc))
    if parsed is Action.UNINSTALL:
        return ToolAction.DESTROY, None
    return ToolAction.APPLY, None


__all__ = ["Action", "ToolAction", "resolve_tool_action"]
