"""
Package manager registry and selection.

Managers become available in the order their package_manager nodes are
resolved. A package installs with the FIRST available manager (in that order)
that its ``managers`` restriction allows, never an arbitrary one.

Each registered manager keeps the variable scope it was declared in, so its
install/has/uninstall templates render later against the bindings that were
visible at the declaration plus the package-specific ``package.alias``.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass

from .actions import BootstrapManager
from .schema import PackageManagerNode, PackageNode
from .variables import Scope, VariableStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredManager:
    """An available package manager and the scope it was declared in."""

    declaration: PackageManagerNode
    scope: Scope
    location: str
    bootstrap: BootstrapManager

    @property
    def name(self) -> str:
        return self.declaration.name

    def bindings(self) -> dict[str, str]:
        """Variables visible where the manager was declared."""
        return VariableStore.from_scope(self.scope).visible()

    def same_as(self, other: "RegisteredManager") -> bool:
        """Same declaration, rendered bootstrap and captured bindings."""
        return (
            self.declaration == other.declaration
            and self.bootstrap == other.bootstrap
            and self.bindings() == other.bindings()
        )


class ManagerRegistry:
    """
    Ordered set of available package managers.

    Insertion order is declaration order. Re-declaring a manager with an
    identical declaration, in an identical scope, is a no-op. Anything else
    (e.g. the same declaration in the next matrix row) replaces the earlier
    one in place, keeping its position.
    """

    def __init__(self) -> None:
        self._managers: dict[str, RegisteredManager] = {}

    def __len__(self) -> int:
        return len(self._managers)

    def __contains__(self, name: object) -> bool:
        return name in self._managers

    def __iter__(self) -> Iterator[RegisteredManager]:
        return iter(self._managers.values())

    def names(self) -> list[str]:
        return list(self._managers)

    def get(self, name: str) -> RegisteredManager | None:
        return self._managers.get(name)

    def register(self, manager: RegisteredManager) -> bool:
        """
        Make a manager available.

        Returns:
            True if the manager is new or its declaration changed, False if an
            identical declaration was already registered
        """
        existing = self._managers.get(manager.name)
        if existing is not None and existing.same_as(manager):
            logger.debug(f"Package manager '{manager.name}' already available")
            return False
        if existing is not None:
            logger.info(
                f"Package manager '{manager.name}' redeclared at {manager.location} "
                f"(previously {existing.location})"
            )
        self._managers[manager.name] = manager
        return True

    def candidates(self, package: PackageNode) -> list[RegisteredManager]:
        """
        Available managers allowed by the package's restriction, in declaration order.

        A missing or empty ``managers`` list places no restriction.
        """
        if not package.managers:
            return list(self._managers.values())
        allowed = set(package.managers)
        return [manager for manager in self._managers.values() if manager.name in allowed]

    def select(self, package: PackageNode) -> RegisteredManager | None:
        """First eligible manager, or None when no available manager qualifies."""
        candidates = self.candidates(package)
        return candidates[0] if candidates else None


def alias_for(package: PackageNode, manager_name: str) -> str:
    """Raw (unrendered) package name for a manager: its alias, else the base name."""
    return package.aliases.get(manager_name, package.name)


__all__ = ["ManagerRegistry", "RegisteredManager", "alias_for"]
