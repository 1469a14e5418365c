"""
Variable scoping and placeholder substitution for build resolution.

This module provides:
1. VariableStore: A chain of immutable lexical scopes
2. TemplateEngine: Resolves ${{ namespace.name }} placeholders in strings

Variable Scoping:
- Namespace and Matrix nodes push a new scope for their children
- Lookup climbs from the innermost scope outward
- A child binding shadows an ancestor binding; the ancestor is never mutated
- Scopes are released by the ``scoped()`` context manager on every exit path

Placeholder Syntax:
- ${{ vars.editor }}       - Namespace binding
- ${{ matrix.file }}       - Matrix row binding
- ${{ repo.path }}         - Built-in, bound once a repo node is resolved
- ${{ dotfiles.path }}     - Built-in, keyed by the repository's directory name
- ${{ package.alias }}     - Built-in, only inside package manager commands
- ${{ env.HOME }}          - Environment snapshot of the local machine
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from types import MappingProxyType

from .exceptions import InvalidPlaceholderError, ScopeError, UnresolvedVariableError

logger = logging.getLogger(__name__)

# Namespace that falls back to the environment snapshot
ENV_NAMESPACE = "env"


def qualify(namespace: str, values: Mapping[str, str]) -> dict[str, str]:
    """
    Prefix binding names with their namespace.

    Example:
        >>> qualify("matrix", {"file": ".zshrc"})
        {"matrix.file": ".zshrc"}
    """
    return {f"{namespace}.{key}": value for key, value in values.items()}


@dataclass(frozen=True)
class Scope:
    """One layer of the variable chain."""

    bindings: Mapping[str, str]
    parent: Scope | None = None
    depth: int = 0

    def find(self, name: str) -> str | None:
        scope: Scope | None = self
        while scope is not None:
            if name in scope.bindings:
                return scope.bindings[name]
            scope = scope.parent
        return None


class VariableStore:
    """
    Chain of lexical scopes mapping qualified names to string values.

    Example:
        store = VariableStore()
        with store.scoped({"vars.x": "0"}):
            with store.scoped({"vars.x": "1"}):
                store.lookup("vars.x")  # "1"
            store.lookup("vars.x")  # "0"
    """

    def __init__(self, bindings: Mapping[str, str] | None = None, head: Scope | None = None):
        if head is not None and bindings:
            raise ValueError("Pass either bindings or an existing head scope, not both")
        self._head = head or Scope(MappingProxyType(dict(bindings or {})))

    @classmethod
    def from_scope(cls, scope: Scope) -> VariableStore:
        """Store continuing from a previously captured chain."""
        return cls(head=scope)

    @property
    def head(self) -> Scope:
        """Innermost scope."""
        return self._head

    @property
    def depth(self) -> int:
        return self._head.depth

    def push_scope(self, bindings: Mapping[str, str]) -> Scope:
        """
        Layer a new scope over the current chain.

        Returns:
            Handle that must be passed to pop_scope() when the block ends
        """
        self._head = Scope(
            MappingProxyType(dict(bindings)),
            parent=self._head,
            depth=self._head.depth + 1,
        )
        logger.debug(f"Pushed scope depth={self._head.depth}: {sorted(bindings)}")
        return self._head

    def pop_scope(self, handle: Scope) -> None:
        """
        Release the scope returned by push_scope().

        Raises:
            ScopeError: If the handle is not the innermost scope
        """
        if handle is not self._head or handle.parent is None:
            raise ScopeError(
                f"Cannot pop scope at depth {handle.depth}: innermost scope is at depth "
                f"{self._head.depth}"
            )
        self._head = handle.parent
        logger.debug(f"Popped scope, depth now {self._head.depth}")

    @contextmanager
    def scoped(self, bindings: Mapping[str, str]) -> Iterator[Scope]:
        """Push a scope for the duration of a with-block, releasing it on any exit."""
        handle = self.push_scope(bindings)
        try:
            yield handle
        finally:
            self.pop_scope(handle)

    def get(self, name: str) -> str | None:
        """Return the innermost binding for name, or None."""
        return self._head.find(name)

    def lookup(self, name: str) -> str:
        """
        Return the innermost binding for name.

        Raises:
            UnresolvedVariableError: If no scope binds the name
        """
        value = self._head.find(name)
        if value is None:
            raise UnresolvedVariableError(name, available=sorted(self.visible()))
        return value

    def visible(self) -> dict[str, str]:
        """Flatten the chain into the bindings currently visible."""
        chain: list[Scope] = []
        scope: Scope | None = self._head
        while scope is not None:
            chain.append(scope)
            scope = scope.parent

        flattened: dict[str, str] = {}
        for scope in reversed(chain):
            flattened.update(scope.bindings)
        return flattened


class TemplateEngine:
    """
    Resolves ${{ namespace.name }} placeholders.

    Resolution order for each placeholder:
    1. Built-in scopes currently bound (repo, <repo name>, package)
    2. The variable store
    3. The ``env`` namespace, served from the environment snapshot

    Rendering is all-or-nothing: one unresolvable placeholder fails the whole
    string. A string without placeholders is returned unchanged.
    """

    # Pattern: "${{ anything without braces }}"
    PLACEHOLDER_PATTERN = re.compile(r"\$\{\{(?P<inner>[^{}]*)\}\}")
    # Pattern: "namespace.name" with optional surrounding whitespace
    REFERENCE_PATTERN = re.compile(
        r"^\s*(?P<namespace>[a-zA-Z_][a-zA-Z0-9_-]*)\.(?P<name>[a-zA-Z_][a-zA-Z0-9_]*)\s*$"
    )

    @classmethod
    def has_placeholders(cls, raw: str) -> bool:
        return bool(cls.PLACEHOLDER_PATTERN.search(raw))

    @classmethod
    def parse_reference(cls, inner: str) -> tuple[str, str] | None:
        """
        Split placeholder text into (namespace, name).

        Examples:
            >>> TemplateEngine.parse_reference(" repo.path ")
            ("repo", "path")
            >>> TemplateEngine.parse_reference("a.b.c") is None
            True
        """
        match = cls.REFERENCE_PATTERN.match(inner)
        if not match:
            return None
        return match.group("namespace"), match.group("name")

    def render(
        self,
        raw: str,
        variables: VariableStore,
        builtins: Mapping[str, Mapping[str, str]] | None = None,
        environment: Mapping[str, str] | None = None,
        location: str = "",
        field: str | None = None,
    ) -> str:
        """
        Substitute every placeholder in raw.

        Args:
            raw: String that may contain placeholders
            variables: Variable store for namespace and matrix bindings
            builtins: Built-in scopes, keyed by namespace
            environment: Environment snapshot for the ``env`` namespace
            location: Node location for error messages
            field: Node field for error messages

        Returns:
            Fully substituted string

        Raises:
            InvalidPlaceholderError: If placeholder text is not namespace.name
            UnresolvedVariableError: If a reference cannot be resolved
        """
        if "${{" not in raw:
            return raw

        builtins = builtins or {}

        def replace_placeholder(match: re.Match[str]) -> str:
            reference = self.parse_reference(match.group("inner"))
            if reference is None:
                raise InvalidPlaceholderError(match.group(0), location=location, field=field)
            namespace, name = reference
            qualified = f"{namespace}.{name}"

            if namespace in builtins:
                scope = builtins[namespace]
                if name not in scope:
                    raise UnresolvedVariableError(
                        qualified,
                        available=sorted(f"{namespace}.{key}" for key in scope),
                        location=location,
                        field=field,
                    )
                return scope[name]

            value = variables.get(qualified)
            if value is not None:
                return value

            if namespace == ENV_NAMESPACE and environment is not None and name in environment:
                return environment[name]

            available = sorted(variables.visible()) + sorted(
                f"{ns}.{key}" for ns, scope in builtins.items() for key in scope
            )
            raise UnresolvedVariableError(
                qualified, available=available, location=location, field=field
            )

        rendered = self.PLACEHOLDER_PATTERN.sub(replace_placeholder, raw)
        logger.debug(f"Rendered '{raw}' → '{rendered}'")
        return rendered


__all__ = ["ENV_NAMESPACE", "Scope", "TemplateEngine", "VariableStore", "qualify"]
