"""Build resolution exceptions.

Every fatal resolution failure is a BuildResolutionError. The resolver raises
the first one it meets and discards all partial output, so the caller sees
either a complete action sequence or exactly one of these.

Each error carries the location of the offending node (e.g.
``build[2].case[0].include[1]``) and, where it applies, the field being
rendered, so the message points straight at the YAML that needs fixing.
"""

from __future__ import annotations


class BuildResolutionError(Exception):
    """
    Base class for fatal build resolution errors.

    Attributes:
        location: Path of the node being resolved when the error occurred
        field: Name of the node field being processed (if any)
    """

    def __init__(self, message: str, location: str = "", field: str | None = None):
        self.location = location
        self.field = field
        self.message = message

        where = location or "<build>"
        if field:
            where = f"{where}.{field}"
        super().__init__(f"{where}: {message}")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(location={self.location!r}, "
            f"field={self.field!r}, message={self.message!r})"
        )


class UnresolvedVariableError(BuildResolutionError):
    """
    A placeholder or variable lookup found no binding.

    Raised when ``${{ namespace.name }}`` names a variable that is not bound in
    any visible scope, in any bound built-in, or in the environment snapshot.

    Attributes:
        variable: Qualified variable name that failed to resolve
        available: Sorted list of names visible at the failure point
    """

    def __init__(
        self,
        variable: str,
        available: list[str] | None = None,
        location: str = "",
        field: str | None = None,
        message: str | None = None,
    ):
        self.variable = variable
        self.available = available or []

        if message is None:
            message = f"Variable '{variable}' is undefined"
            if self.available:
                message += f". Available: {self.available}"
        super().__init__(message, location=location, field=field)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(variable={self.variable!r}, location={self.location!r})"


class InvalidPlaceholderError(UnresolvedVariableError):
    """
    Placeholder text does not name a ``namespace.name`` variable.

    Examples of rejected placeholders: ``${{ a.b.c }}``, ``${{ .b }}``, ``${{}}``.

    Attributes:
        placeholder: The full placeholder text as written
    """

    def __init__(self, placeholder: str, location: str = "", field: str | None = None):
        self.placeholder = placeholder
        super().__init__(
            placeholder,
            location=location,
            field=field,
            message=f"Invalid substitution '{placeholder}'; expected '${{{{ namespace.name }}}}'",
        )


class NoMatchingBranchError(BuildResolutionError):
    """
    A case node had no matching branch and no fallback branch.

    Attributes:
        branch_count: Number of branches that were evaluated
    """

    def __init__(self, branch_count: int, location: str = ""):
        self.branch_count = branch_count
        if branch_count == 0:
            message = "Case has no branches"
        else:
            message = (
                f"None of {branch_count} case branch(es) matched and no 'default' "
                f"fallback branch is declared"
            )
        super().__init__(message, location=location, field="case")


class MalformedConditionError(BuildResolutionError):
    """
    A condition references fields the local environment does not describe,
    or uses ``default`` somewhere other than a case fallback.

    Attributes:
        fields: Offending field names (empty for a misplaced ``default``)
    """

    def __init__(self, message: str, fields: list[str] | None = None, location: str = ""):
        self.fields = fields or []
        super().__init__(message, location=location, field="condition")


class ScopeError(RuntimeError):
    """Raised when a variable scope is released out of order."""

    pass


__all__ = [
    "BuildResolutionError",
    "UnresolvedVariableError",
    "InvalidPlaceholderError",
    "NoMatchingBranchError",
    "MalformedConditionError",
    "ScopeError",
]
