"""
Resolved actions.

Actions are the flat output of resolution and the only thing an executor
needs: every condition has been decided and every template rendered. They are
frozen so a resolved plan cannot be edited after the fact.
"""

from typing import Annotated, Literal

from pydantic import BaseModel, Field

ACTION_KINDS: tuple[str, ...] = (
    "require_repository",
    "bootstrap_manager",
    "install_package",
    "create_link",
    "run_hook",
)


class RequireRepository(BaseModel):
    """The dotfile repository must exist at ``path`` (cloned from ``url``)."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["require_repository"] = "require_repository"
    path: str
    url: str | None = None


class BootstrapManager(BaseModel):
    """Make a package manager available; ``command`` is None when nothing needs running."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["bootstrap_manager"] = "bootstrap_manager"
    name: str
    shell: str | None = None
    command: str | None = None


class InstallPackage(BaseModel):
    """
    Install one package with one manager.

    Attributes:
        name: Package name as declared (rendered)
        manager: Selected package manager
        resolved_alias: Name the manager knows the package by
        shell: Interpreter for the manager's install command
        command: Rendered install command, None if the manager declares none
        check_command: Rendered "has" command
        uninstall_command: Rendered uninstall command
    """

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["install_package"] = "install_package"
    name: str
    manager: str
    resolved_alias: str
    shell: str | None = None
    command: str | None = None
    check_command: str | None = None
    uninstall_command: str | None = None


class CreateLink(BaseModel):
    """Symlink ``source`` pointing at ``target``."""

    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["create_link"] = "create_link"
    source: str
    target: str


class RunHook(BaseModel):
    model_config = {"extra": "forbid", "frozen": True}

    kind: Literal["run_hook"] = "run_hook"
    shell: str | None = None
    command: str
    lifecycle_actions: tuple[str, ...] = Field(min_length=1)

    def applies_to(self, lifecycle: str) -> bool:
        return lifecycle in self.lifecycle_actions


Action = Annotated[
    RequireRepository | BootstrapManager | InstallPackage | CreateLink | RunHook,
    Field(discriminator="kind"),
]


__all__ = [
    "ACTION_KINDS",
    "Action",
    "BootstrapManager",
    "CreateLink",
    "InstallPackage",
    "RequireRepository",
    "RunHook",
]
