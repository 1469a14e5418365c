"""Output formatting for resolved builds.

Three formats are supported by the ``show`` command:
- yaml: The action list as YAML, the same shape the build file uses
- json: Machine-readable structured data for programmatic access
- markdown: Human-readable plan with numbered steps
"""

import json
from typing import Any

import yaml

from .engine.actions import (
    BootstrapManager,
    CreateLink,
    InstallPackage,
    RequireRepository,
    RunHook,
)
from .engine.build_result import ResolutionWarning, ResolvedBuild

OUTPUT_FORMATS = ("yaml", "json", "markdown")


# =============================================================================
# Structured formats
# =============================================================================


def build_to_data(result: ResolvedBuild) -> dict[str, Any]:
    """JSON-safe mapping of a resolved build, with unset fields omitted from actions."""
    data = result.to_dict()
    data["actions"] = [
        action.model_dump(mode="json", exclude_none=True) for action in result.actions
    ]
    return data


def format_build_json(result: ResolvedBuild) -> str:
    return json.dumps(build_to_data(result), indent=2)


def format_build_yaml(result: ResolvedBuild) -> str:
    return yaml.safe_dump(build_to_data(result), sort_keys=False, default_flow_style=False)


# =============================================================================
# Markdown
# =============================================================================


def describe_action(action: Any) -> str:
    """One-line summary of an action."""
    match action:
        case RequireRepository():
            suffix = f" from {action.url}" if action.url else ""
            return f"Require repository `{action.path}`{suffix}"
        case BootstrapManager():
            if action.command:
                return f"Bootstrap **{action.name}**: `{action.command}`"
            return f"Enable **{action.name}**"
        case InstallPackage():
            alias = (
                f" as `{action.resolved_alias}`" if action.resolved_alias != action.name else ""
            )
            return f"Install **{action.name}**{alias} with {action.manager}"
        case CreateLink():
            return f"Link `{action.source}` → `{action.target}`"
        case RunHook():
            shell = f" ({action.shell})" if action.shell else ""
            return f"Hook on {', '.join(action.lifecycle_actions)}{shell}: `{action.command}`"
    return str(action)


def format_warnings_markdown(warnings: tuple[ResolutionWarning, ...]) -> str:
    lines = [f"## Warnings ({len(warnings)})", ""]
    lines.extend(f"- `{w.location}`: {w.message}" for w in warnings)
    return "\n".join(lines)


def format_build_markdown(result: ResolvedBuild) -> str:
    """Format a resolved build as markdown.

    Args:
        result: Resolved build

    Returns:
        Markdown with a numbered step list, the available package managers
        and any warnings
    """
    lines = ["# Build plan"]
    if result.version:
        lines.append(f"**Version**: {result.version}")
    lines.append("")

    if result.actions:
        lines.append(f"## Steps ({len(result.actions)})")
        lines.append("")
        for index, action in enumerate(result.actions, start=1):
            lines.append(f"{index}. {describe_action(action)}")
    else:
        lines.append("No actions for this machine")

    if result.managers:
        lines.append("")
        lines.append(f"**Package managers**: {', '.join(result.managers)}")

    if result.warnings:
        lines.append("")
        lines.append(format_warnings_markdown(result.warnings))

    return "\n".join(lines)


def format_build(result: ResolvedBuild, format_type: str = "yaml") -> str:
    """Dispatch on the output format name.

    Raises:
        ValueError: If the format is not one of OUTPUT_FORMATS
    """
    if format_type == "json":
        return format_build_json(result)
    if format_type == "yaml":
        return format_build_yaml(result)
    if format_type == "markdown":
        return format_build_markdown(result)
    raise ValueError(f"Unknown format '{format_type}'; expected one of {list(OUTPUT_FORMATS)}")


def format_context_markdown(
    environment: dict[str, str | None], managers: list[str], repository: str | None
) -> str:
    """Format the local environment and resolution context as markdown."""
    lines = ["# Local environment", ""]
    for name, value in environment.items():
        lines.append(f"- **{name}**: {value if value is not None else '-'}")
    lines.append("")
    lines.append("## Resolution context")
    lines.append(f"- **Package managers**: {', '.join(managers) if managers else '-'}")
    lines.append(f"- **Repository**: {repository or '-'}")
    return "\n".join(lines)


__all__ = [
    "OUTPUT_FORMATS",
    "build_to_data",
    "describe_action",
    "format_build",
    "format_build_json",
    "format_build_markdown",
    "format_build_yaml",
    "format_context_markdown",
    "format_warnings_markdown",
]
