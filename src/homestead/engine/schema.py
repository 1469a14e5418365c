"""
YAML build document schema with Pydantic v2 models.

This module defines the typed tree the resolver walks:
- Conditions (locale, default, bool, all, any, not)
- Build nodes (repo, namespace, matrix, case, link, hook, package, package_manager)
- The BuildDocument root (version, default shell, build list)

Two YAML spellings are accepted for every node and normalized here:

    build:
      - link: { source: ~/.zshrc, target: "${{ repo.path }}/.zshrc" }
      - kind: link
        source: ~/.vimrc
        target: "${{ repo.path }}/.vimrc"

The loader turns tag form (``- !link {...}``) into the first spelling before
validation, so the models only ever see mappings.

The schema validates:
- Required fields and unknown keys (extra="forbid")
- Case fallback placement (``default`` last, at most once)
- Matrix column lengths
- Condition fields against the locale fields the local environment describes
"""

import re
from collections.abc import Iterator, Sequence
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .environment import LOCALE_FIELDS
from .load_result import LoadResult

# Node kinds whose list value expands into sibling nodes
EXPANDABLE_KINDS = frozenset({"link", "package", "package_manager"})

NODE_KINDS = frozenset(
    {"repo", "namespace", "matrix", "case", "link", "hook", "package", "package_manager"}
)


# Names usable on either side of the dot in ${{ namespace.name }}
BINDING_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _check_binding_names(names: Sequence[str]) -> None:
    invalid = sorted({name for name in names if not BINDING_NAME_PATTERN.match(name)})
    if invalid:
        raise ValueError(
            f"Invalid binding name(s) {invalid}: names must match "
            f"{BINDING_NAME_PATTERN.pattern} to be usable in placeholders"
        )


def _to_str(value: Any) -> str:
    """YAML scalars to the string values templates work with."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# ============================================================================
# Conditions
# ============================================================================


def normalize_condition(value: Any) -> Any:
    """
    Normalize a condition to its tagged mapping form.

    Accepts:
    - "default" → {"kind": "default"}
    - true / false → {"kind": "bool", "value": ...}
    - {"platform": "linux"} → {"kind": "locale", "platform": "linux"}
    - {"locale": {...}}, {"bool": ...}, {"all": [...]}, {"any": [...]}, {"not": ...}
    - Mappings already carrying "kind", and condition model instances, unchanged

    Nested conditions are normalized recursively.
    """
    if value is None or isinstance(value, BaseModel):
        return value
    if isinstance(value, bool):
        return {"kind": "bool", "value": value}
    if isinstance(value, str):
        if value == "default":
            return {"kind": "default"}
        raise ValueError(f"Unknown condition '{value}'; expected a mapping or 'default'")
    if not isinstance(value, dict):
        raise ValueError(f"Condition must be a mapping, got {type(value).__name__}")

    if "kind" in value:
        kind = value["kind"]
        normalized = dict(value)
        if kind in ("all", "any"):
            normalized["conditions"] = [normalize_condition(c) for c in value.get("conditions", [])]
        elif kind == "not":
            normalized["condition"] = normalize_condition(value.get("condition"))
        return normalized

    if len(value) == 1:
        key, body = next(iter(value.items()))
        if key in ("all", "any"):
            if not isinstance(body, list):
                raise ValueError(f"'{key}' condition takes a list of conditions")
            return {"kind": key, "conditions": [normalize_condition(c) for c in body]}
        if key == "not":
            return {"kind": "not", "condition": normalize_condition(body)}
        if key == "bool":
            return {"kind": "bool", "value": body}
        if key == "default":
            return {"kind": "default"}
        if key == "locale":
            return {"kind": "locale", **(body or {})}

    # Bare mapping of locale fields
    return {"kind": "locale", **value}


class LocaleCondition(BaseModel):
    """
    Field-equality match against the local environment.

    Absent fields are wildcards. Extra fields are kept rather than rejected so
    that the document validator and the resolver can both report them as a
    malformed condition with a location.
    """

    model_config = {"extra": "allow", "frozen": True}

    kind: Literal["locale"] = "locale"
    platform: str | None = Field(default=None, description="Platform family (linux, macos, ...)")
    distro: str | None = Field(default=None, description="Linux distribution id")
    hostname: str | None = Field(default=None, description="Machine hostname")
    arch: str | None = Field(default=None, description="Machine architecture")
    user: str | None = Field(default=None, description="Login name")

    def unknown_fields(self) -> list[str]:
        return sorted(self.model_extra or {})

    def specified(self) -> dict[str, str]:
        """Locale fields this condition constrains."""
        return {
            name: getattr(self, name) for name in LOCALE_FIELDS if getattr(self, name) is not None
        }


class DefaultCondition(BaseModel):
    """Always matches; only valid as the last branch of a case."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["default"] = "default"


class BoolCondition(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["bool"] = "bool"
    value: bool


class AllCondition(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["all"] = "all"
    conditions: list["Condition"] = Field(default_factory=list)


class AnyCondition(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["any"] = "any"
    conditions: list["Condition"] = Field(default_factory=list)


class NotCondition(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["not"] = "not"
    condition: "Condition"


Condition = Annotated[
    LocaleCondition | DefaultCondition | BoolCondition | AllCondition | AnyCondition | NotCondition,
    Field(discriminator="kind"),
]


# ============================================================================
# Shell commands
# ============================================================================


class ShellCommand(BaseModel):
    """
    A command with an optional interpreter.

    YAML accepts either a plain string or ``{shell, command}``.
    """

    model_config = {"extra": "forbid", "frozen": True}

    shell: str | None = Field(default=None, description="Interpreter override")
    command: str = Field(description="Command text (templated)", min_length=1)

    @model_validator(mode="before")
    @classmethod
    def from_string(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"command": data}
        return data


# ============================================================================
# Build nodes
# ============================================================================


def normalize_node_list(value: Any) -> Any:
    """
    Normalize a list of build nodes to tagged mappings.

    Accepts per item:
    - {"kind": "link", ...} or a node model instance → unchanged
    - {"link": {...}} → {"kind": "link", ...}
    - {"link": [{...}, {...}]} → two sibling link nodes (also package, package_manager)
    - {"package": "bat"} / {"package": ["bat", "fd"]} → package nodes by name
    - {"case": [branch, ...]} → {"kind": "case", "branches": [...]}

    Anything else is passed through for the discriminated union to reject.
    """
    if value is None:
        return []
    if not isinstance(value, list):
        return value

    normalized: list[Any] = []
    for item in value:
        if not isinstance(item, dict) or "kind" in item or len(item) != 1:
            normalized.append(item)
            continue

        kind, body = next(iter(item.items()))
        if kind not in NODE_KINDS:
            normalized.append(item)
        elif kind == "case" and isinstance(body, list):
            normalized.append({"kind": "case", "branches": body})
        elif kind in EXPANDABLE_KINDS and isinstance(body, list):
            normalized.extend(_tag_node(kind, element) for element in body)
        else:
            normalized.append(_tag_node(kind, body))
    return normalized


def _tag_node(kind: str, body: Any) -> Any:
    if kind == "package" and isinstance(body, str):
        return {"kind": "package", "name": body}
    if isinstance(body, dict):
        return {"kind": kind, **body}
    return {"kind": kind, "value": body}


class RepoNode(BaseModel):
    """
    Companion dotfile repository.

    Resolving binds ``repo.path``/``repo.url`` and ``<name>.path``/``<name>.url``
    where ``<name>`` is the last segment of the rendered path.
    """

    model_config = {"extra": "forbid"}

    kind: Literal["repo"] = "repo"
    path: str = Field(description="Local checkout path (templated, ~ expanded)", min_length=1)
    url: str | None = Field(default=None, description="Remote URL (templated)")


class NamespaceNode(BaseModel):
    """Bindings visible to ``include`` and all of its descendants."""

    model_config = {"extra": "forbid"}

    kind: Literal["namespace"] = "namespace"
    name: str = Field(default="vars", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")
    values: dict[str, str] = Field(default_factory=dict)
    include: list["BuildNode"] = Field(default_factory=list)

    @field_validator("values", mode="before")
    @classmethod
    def stringify_values(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {str(key): _to_str(val) for key, val in v.items()}
        return v

    @field_validator("values")
    @classmethod
    def check_value_names(cls, v: dict[str, str]) -> dict[str, str]:
        _check_binding_names(list(v))
        return v

    @field_validator("include", mode="before")
    @classmethod
    def normalize_include(cls, v: Any) -> Any:
        return normalize_node_list(v)


class MatrixNode(BaseModel):
    """
    Repeats ``include`` once per row.

    Rows are given as a list of mappings (``rows``) or column-wise
    (``values: {key: [v1, v2]}``); columns must all have the same length.
    """

    model_config = {"extra": "forbid"}

    kind: Literal["matrix"] = "matrix"
    name: str = Field(default="matrix", pattern=r"^[a-zA-Z_][a-zA-Z0-9_]*$")
    rows: list[dict[str, str]] = Field(default_factory=list)
    values: dict[str, list[str]] | None = Field(default=None, description="Column-wise rows")
    include: list["BuildNode"] = Field(default_factory=list)

    @field_validator("rows", mode="before")
    @classmethod
    def stringify_rows(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [
                {str(key): _to_str(val) for key, val in row.items()}
                if isinstance(row, dict)
                else row
                for row in v
            ]
        return v

    @field_validator("values", mode="before")
    @classmethod
    def stringify_columns(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return {
                str(key): [_to_str(val) for val in col] if isinstance(col, list) else col
                for key, col in v.items()
            }
        return v

    @field_validator("rows")
    @classmethod
    def check_row_names(cls, v: list[dict[str, str]]) -> list[dict[str, str]]:
        _check_binding_names([key for row in v for key in row])
        return v

    @field_validator("values")
    @classmethod
    def check_column_names(cls, v: dict[str, list[str]] | None) -> dict[str, list[str]] | None:
        if v is not None:
            _check_binding_names(list(v))
        return v

    @field_validator("include", mode="before")
    @classmethod
    def normalize_include(cls, v: Any) -> Any:
        return normalize_node_list(v)

    @model_validator(mode="after")
    def validate_columns(self) -> "MatrixNode":
        if self.values is None:
            return self
        if self.rows:
            raise ValueError("Matrix takes either 'rows' or 'values', not both")
        lengths = {key: len(column) for key, column in self.values.items()}
        if len(set(lengths.values())) > 1:
            raise ValueError(f"Matrix columns have different lengths: {lengths}")
        return self

    def expanded_rows(self) -> list[dict[str, str]]:
        """Rows in declaration order, transposing column-wise values."""
        if self.values is None:
            return list(self.rows)
        if not self.values:
            return []
        count = len(next(iter(self.values.values())))
        return [{key: column[i] for key, column in self.values.items()} for i in range(count)]


class CaseBranch(BaseModel):
    """
    One branch of a case.

    The branch matches when ``condition`` evaluates to ``when``. A branch whose
    condition is absent or ``default`` is the fallback.
    """

    model_config = {"extra": "forbid"}

    condition: Condition | None = None
    when: bool = True
    include: list["BuildNode"] = Field(default_factory=list)

    @field_validator("condition", mode="before")
    @classmethod
    def normalize_condition_field(cls, v: Any) -> Any:
        return normalize_condition(v)

    @field_validator("include", mode="before")
    @classmethod
    def normalize_include(cls, v: Any) -> Any:
        return normalize_node_list(v)

    @property
    def is_fallback(self) -> bool:
        return self.condition is None or isinstance(self.condition, DefaultCondition)

    @model_validator(mode="after")
    def validate_fallback_when(self) -> "CaseBranch":
        if self.is_fallback and not self.when:
            raise ValueError("A 'default' branch cannot use 'when: false'")
        return self


class CaseNode(BaseModel):
    """Ordered branches; only the first matching branch is walked."""

    model_config = {"extra": "forbid"}

    kind: Literal["case"] = "case"
    branches: list[CaseBranch] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_fallback_position(self) -> "CaseNode":
        fallbacks = [i for i, branch in enumerate(self.branches) if branch.is_fallback]
        if len(fallbacks) > 1:
            raise ValueError(f"Case declares {len(fallbacks)} 'default' branches; at most one")
        if fallbacks and fallbacks[0] != len(self.branches) - 1:
            raise ValueError(
                f"'default' branch must be the last branch (found at index {fallbacks[0]})"
            )
        return self


class LinkNode(BaseModel):
    """Symlink declaration; both paths are templated and ~ expanded."""

    model_config = {"extra": "forbid"}

    kind: Literal["link"] = "link"
    source: str = Field(description="Path of the link to create", min_length=1)
    target: str = Field(description="Path the link points at", min_length=1)


class HookNode(BaseModel):
    """Shell command bound to lifecycle actions (install, uninstall, custom)."""

    model_config = {"extra": "forbid"}

    kind: Literal["hook"] = "hook"
    on: list[str] = Field(min_length=1, description="Lifecycle actions the hook runs on")
    exec: ShellCommand

    @field_validator("on", mode="before")
    @classmethod
    def normalize_on(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class PackageNode(BaseModel):
    model_config = {"extra": "forbid"}

    kind: Literal["package"] = "package"
    name: str = Field(min_length=1, description="Package name (templated)")
    managers: list[str] | None = Field(
        default=None, description="Restrict installation to these managers (empty means any)"
    )
    aliases: dict[str, str] = Field(
        default_factory=dict, description="Per-manager package name (templated)"
    )


class PackageManagerNode(BaseModel):
    """
    Package manager declaration.

    Command templates may use ``${{ package.alias }}``. The ``shell_`` prefixed
    spellings (``shell_install`` etc.) are accepted.
    """

    model_config = {"extra": "forbid"}

    kind: Literal["package_manager"] = "package_manager"
    name: str = Field(min_length=1, pattern=r"^[a-zA-Z0-9_.-]+$")
    bootstrap: ShellCommand | None = None
    has: ShellCommand | None = None
    install: ShellCommand | None = None
    uninstall: ShellCommand | None = None

    @model_validator(mode="before")
    @classmethod
    def strip_shell_prefix(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        normalized: dict[str, Any] = {}
        for key, value in data.items():
            name = key.removeprefix("shell_") if isinstance(key, str) else key
            if name in normalized:
                raise ValueError(f"'{key}' given twice (with and without 'shell_' prefix)")
            normalized[name] = value
        return normalized


BuildNode = Annotated[
    RepoNode
    | NamespaceNode
    | MatrixNode
    | CaseNode
    | LinkNode
    | HookNode
    | PackageNode
    | PackageManagerNode,
    Field(discriminator="kind"),
]


# ============================================================================
# Tree helpers
# ============================================================================


def iter_nodes(nodes: Sequence[Any], prefix: str = "build") -> Iterator[tuple[str, Any]]:
    """
    Yield (location, node) pairs in pre-order over every branch.

    Unlike resolution this visits all case branches, so it is suitable for
    static checks of the whole document.
    """
    for index, node in enumerate(nodes):
        location = f"{prefix}[{index}]"
        yield location, node
        if isinstance(node, (NamespaceNode, MatrixNode)):
            yield from iter_nodes(node.include, f"{location}.include")
        elif isinstance(node, CaseNode):
            for branch_index, branch in enumerate(node.branches):
                yield from iter_nodes(branch.include, f"{location}.case[{branch_index}].include")


def condition_problems(condition: Any, nested: bool = False) -> list[str]:
    """Describe what is malformed about a condition, empty if nothing."""
    problems: list[str] = []
    match condition:
        case LocaleCondition():
            unknown = condition.unknown_fields()
            if unknown:
                problems.append(
                    f"unknown locale field(s) {unknown}; supported: {list(LOCALE_FIELDS)}"
                )
        case DefaultCondition():
            if nested:
                problems.append("'default' is only valid as a case fallback branch")
        case AllCondition() | AnyCondition():
            for inner in condition.conditions:
                problems.extend(condition_problems(inner, nested=True))
        case NotCondition():
            problems.extend(condition_problems(condition.condition, nested=True))
    return problems


# ============================================================================
# Document root
# ============================================================================


class BuildDocument(BaseModel):
    """
    Root of a build file.

    Attributes:
        version: Document version string, carried through untouched
        shell: Default interpreter for hooks without their own
        build: Top-level build nodes in document order
    """

    model_config = {"extra": "forbid"}

    version: str | None = Field(default=None, description="Document version (not checked)")
    shell: str | None = Field(default=None, description="Default hook interpreter")
    build: list[BuildNode] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def stringify_version(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("build", mode="before")
    @classmethod
    def normalize_build(cls, v: Any) -> Any:
        return normalize_node_list(v)

    @model_validator(mode="after")
    def validate_conditions(self) -> "BuildDocument":
        """Reject conditions the local environment cannot answer."""
        errors: list[str] = []
        for location, node in iter_nodes(self.build):
            if not isinstance(node, CaseNode):
                continue
            for index, branch in enumerate(node.branches):
                for problem in condition_problems(branch.condition):
                    errors.append(f"{location}.case[{index}].condition: {problem}")
        if errors:
            raise ValueError("Malformed condition(s):\n  " + "\n  ".join(errors))
        return self

    @staticmethod
    def validate_yaml_dict(data: Any) -> LoadResult["BuildDocument"]:
        """
        Validate a parsed YAML mapping against the schema.

        Args:
            data: Object produced by the YAML loader

        Returns:
            LoadResult.success(BuildDocument) if valid
            LoadResult.failure(error_message) with the validation errors
        """
        if data is None:
            return LoadResult.failure("Build document is empty")
        if not isinstance(data, dict):
            return LoadResult.failure(
                f"Build document must be a mapping, got {type(data).__name__}"
            )
        try:
            return LoadResult.success(BuildDocument(**data))
        except Exception as e:
            error_msg = str(e)
            if "validation error" in error_msg.lower():
                return LoadResult.failure(f"Build validation failed:\n{error_msg}")
            return LoadResult.failure(f"Build validation failed: {error_msg}")


for _model in (
    AllCondition,
    AnyCondition,
    NotCondition,
    CaseBranch,
    CaseNode,
    NamespaceNode,
    MatrixNode,
):
    _model.model_rebuild()
BuildDocument.model_rebuild()


__all__ = [
    "AllCondition",
    "AnyCondition",
    "BoolCondition",
    "BuildDocument",
    "BuildNode",
    "CaseBranch",
    "CaseNode",
    "Condition",
    "DefaultCondition",
    "HookNode",
    "LinkNode",
    "LocaleCondition",
    "MatrixNode",
    "NamespaceNode",
    "NotCondition",
    "PackageManagerNode",
    "PackageNode",
    "RepoNode",
    "ShellCommand",
    "condition_problems",
    "iter_nodes",
    "normalize_condition",
    "normalize_node_list",
]
