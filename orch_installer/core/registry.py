"""Registry of deployment targets and the stage factories that build them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Iterator, List, Protocol

from .action import Action
from .stage import Stage

if TYPE_CHECKING:  # pragma: no cover - typing only
    from orch_installer.settings import Settings


class StageFactory(Protocol):
    """Callable protocol that builds a target's stages for one action."""

    def __call__(self, settings: "Settings", action: Action) -> List[Stage]:
        """Return the ordered stages to run."""


@dataclass(slots=True, frozen=True)
class TargetDefinition:
    """Metadata about a registered deployment target."""

    name: str
    factory: StageFactory
    description: str
    module: str


class TargetRegistry:
    """Keeps track of the available deployment targets."""

    def __init__(self) -> None:
        self._targets: Dict[str, TargetDefinition] = {}

    def register(self, name: str, factory: StageFactory, description: str = "") -> StageFactory:
        """Register a new target and return the factory for decorator usage."""

        if name in self._targets:
            raise ValueError(f"Target '{name}' is already registered")
        self._targets[name] = TargetDefinition(
            name=name,
            factory=factory,
            description=description,
            module=factory.__module__,
        )
        return factory

    def get(self, name: str) -> TargetDefinition:
        """Return the target definition for *name*."""

        try:
            return self._targets[name]
        except KeyError as exc:
            raise KeyError(f"Target '{name}' is not registered") from exc

    def build(self, name: str, settings: "Settings", action: Action) -> List[Stage]:
        """Build the stages of target *name* for *action*."""

        return list(self.get(name).factory(settings, action))

    def __contains__(self, name: str) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[TargetDefinition]:
        return iter(self._targets.values())

    def names(self) -> List[str]:
        """Return registered target names preserving insertion order."""

        return list(self._targets.keys())

    def items(self) -> Iterable[TargetDefinition]:
        return list(self._targets.values())

    def clear(self) -> None:
        self._targets.clear()


registry = TargetRegistry()


def register_target(name: str, description: str = "") -> Callable[[StageFactory], StageFactory]:
    """Decorator to register a target when defining its stage factory."""

    def decorator(factory: StageFactory) -> StageFactory:
        return registry.register(name, factory, description=description)

    return decorator


__all__ = [
    "StageFactory",
    "TargetDefinition",
    "TargetRegistry",
    "register_target",
    "registry",
]
