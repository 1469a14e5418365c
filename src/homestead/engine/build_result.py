"""
Result of a successful resolution: the ordered action sequence plus the
non-fatal warnings collected on the way.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from .actions import ACTION_KINDS, Action, RequireRepository, RunHook


class WarningKind(str, Enum):
    """Non-fatal events recorded during resolution."""

    NO_ELIGIBLE_MANAGER = "no_eligible_manager"


class ResolutionWarning(BaseModel):
    """
    A skipped step that did not abort resolution.

    Attributes:
        kind: What happened
        location: Node location (e.g. ``build[4]``)
        message: Human readable explanation
        subject: The thing that was skipped (e.g. the package name)
    """

    model_config = {"extra": "forbid", "frozen": True}

    kind: WarningKind
    location: str
    message: str
    subject: str | None = None


def _check_kinds(kinds: Iterable[str]) -> set[str]:
    selected = set(kinds)
    unknown = selected - set(ACTION_KINDS)
    if unknown:
        raise ValueError(f"Unknown action kind(s) {sorted(unknown)}; expected {list(ACTION_KINDS)}")
    return selected


class ResolvedBuild(BaseModel):
    """
    Ordered, fully resolved build plan.

    Actions appear in pre-order, left-to-right traversal of the selected
    subtree. An executor must run them sequentially in this order.

    Attributes:
        version: Document version, carried through untouched
        actions: Action sequence
        warnings: Non-fatal events, in the order they occurred
        managers: Available package managers at the end of the walk, in order
        repository: Last bound repository, if any
    """

    model_config = {"frozen": True}

    version: str | None = None
    actions: tuple[Action, ...] = Field(default_factory=tuple)
    warnings: tuple[ResolutionWarning, ...] = Field(default_factory=tuple)
    managers: tuple[str, ...] = Field(default_factory=tuple)
    repository: RequireRepository | None = None

    def filter(
        self, include: Iterable[str] | None = None, exclude: Iterable[str] | None = None
    ) -> "ResolvedBuild":
        """
        Keep only actions of the given kinds.

        Args:
            include: Kinds to keep (all when None)
            exclude: Kinds to drop

        Raises:
            ValueError: If a kind is not a known action kind
        """
        included = _check_kinds(include) if include is not None else set(ACTION_KINDS)
        excluded = _check_kinds(exclude) if exclude is not None else set()
        kept = tuple(a for a in self.actions if a.kind in included and a.kind not in excluded)
        return self.model_copy(update={"actions": kept})

    def for_lifecycle(self, lifecycle: str) -> list[RunHook]:
        """Hooks that run on the given lifecycle action, in order."""
        return [a for a in self.actions if isinstance(a, RunHook) and a.applies_to(lifecycle)]

    def of_kind(self, kind: str) -> list[Any]:
        _check_kinds([kind])
        return [a for a in self.actions if a.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation."""
        return self.model_dump(mode="json")


__all__ = ["ResolutionWarning", "ResolvedBuild", "WarningKind"]
