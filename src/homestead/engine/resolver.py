"""
Build-step resolver.

Walks a BuildDocument against a LocalEnvironment and produces the flat,
ordered action sequence:

1. Case nodes select the FIRST branch whose condition matches (or the
   ``default`` fallback); later branches are never evaluated
2. Namespace and Matrix nodes push a variable scope for their children and
   release it on every exit path
3. Terminal nodes render their templates and append actions
4. The first fatal error aborts the walk; no partial sequence is returned

Resolution is pure: no shell, filesystem or network access happens here.

Example:
    env = detect_local_environment()
    document = load_build_from_file("build.yaml").unwrap()
    result = resolve_build(document, env)
    for action in result.actions:
        print(action.kind)
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import assert_never

from .actions import (
    Action,
    BootstrapManager,
    CreateLink,
    InstallPackage,
    RequireRepository,
    RunHook,
)
from .build_result import ResolutionWarning, ResolvedBuild, WarningKind
from .conditions import ConditionEvaluator
from .environment import LocalEnvironment
from .exceptions import NoMatchingBranchError
from .managers import ManagerRegistry, RegisteredManager, alias_for
from .schema import (
    BuildDocument,
    BuildNode,
    CaseNode,
    HookNode,
    LinkNode,
    MatrixNode,
    NamespaceNode,
    PackageManagerNode,
    PackageNode,
    RepoNode,
    ShellCommand,
)
from .variables import ENV_NAMESPACE, TemplateEngine, VariableStore, qualify

logger = logging.getLogger(__name__)

REPO_NAMESPACE = "repo"
PACKAGE_NAMESPACE = "package"

# Repository directory names usable as a built-in namespace
_REPO_NAME_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")
_RESERVED_NAMESPACES = frozenset({REPO_NAMESPACE, PACKAGE_NAMESPACE, ENV_NAMESPACE})


def expand_home(path: str, home: str | None) -> str:
    """Replace a leading ``~`` with the home directory, if one is known."""
    if home is None:
        return path
    if path == "~":
        return home
    if path.startswith(("~/", "~\\")):
        return home.rstrip("/\\") + path[1:]
    return path


def repository_name(path: str) -> str | None:
    """
    Built-in namespace for a repository path: its last path segment.

    Returns None when the segment cannot be used as a namespace
    (e.g. ``~/.dotfiles``) or collides with a reserved namespace.

    Examples:
        >>> repository_name("/home/user/dotfiles")
        "dotfiles"
        >>> repository_name("~/.dotfiles") is None
        True
    """
    segment = path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    if not _REPO_NAME_PATTERN.match(segment) or segment in _RESERVED_NAMESPACES:
        return None
    return segment


@dataclass
class ResolverState:
    """
    Mutable state threaded through one resolution run.

    Created once per run and never shared between runs.

    Attributes:
        environment: Local environment snapshot conditions are matched against
        default_shell: Interpreter for commands that do not name one
        variables: Variable scope chain
        managers: Available package managers, in declaration order
        repository: Currently bound repository, if any
        actions: Action sequence built so far
        warnings: Non-fatal events recorded so far
    """

    environment: LocalEnvironment
    default_shell: str | None = None
    variables: VariableStore = field(default_factory=VariableStore)
    managers: ManagerRegistry = field(default_factory=ManagerRegistry)
    repository: RequireRepository | None = None
    actions: list[Action] = field(default_factory=list)
    warnings: list[ResolutionWarning] = field(default_factory=list)

    def builtins(self, package: dict[str, str] | None = None) -> dict[str, dict[str, str]]:
        """Built-in scopes currently bound, keyed by namespace."""
        scopes: dict[str, dict[str, str]] = {}
        if self.repository is not None:
            values = {"path": self.repository.path}
            if self.repository.url is not None:
                values["url"] = self.repository.url
            scopes[REPO_NAMESPACE] = values
            name = repository_name(self.repository.path)
            if name is not None:
                scopes[name] = values
        if package is not None:
            scopes[PACKAGE_NAMESPACE] = package
        return scopes


class StepResolver:
    """
    Recursive walk over the build tree.

    Example:
        resolver = StepResolver(LocalEnvironment(platform="macos"))
        result = resolver.resolve(document)
    """

    def __init__(
        self,
        environment: LocalEnvironment,
        evaluator: ConditionEvaluator | None = None,
        templates: TemplateEngine | None = None,
    ):
        self.environment = environment
        self.evaluator = evaluator or ConditionEvaluator()
        self.templates = templates or TemplateEngine()

    def new_state(self, default_shell: str | None = None) -> ResolverState:
        """Fresh state for one resolution run."""
        return ResolverState(environment=self.environment, default_shell=default_shell)

    def resolve(self, build: BuildDocument | Sequence[BuildNode]) -> ResolvedBuild:
        """
        Resolve a document (or a bare node list) into a ResolvedBuild.

        Args:
            build: Typed build document or list of nodes

        Returns:
            ResolvedBuild with actions, warnings, managers and repository

        Raises:
            BuildResolutionError: On the first fatal error
        """
        if isinstance(build, BuildDocument):
            nodes: Sequence[BuildNode] = build.build
            version, shell = build.version, build.shell
        else:
            nodes, version, shell = build, None, None

        state = self.new_state(shell)

        self._resolve_nodes(nodes, state, "build")

        logger.info(
            f"Resolved {len(state.actions)} action(s) with {len(state.warnings)} warning(s)"
        )
        return ResolvedBuild(
            version=version,
            actions=tuple(state.actions),
            warnings=tuple(state.warnings),
            managers=tuple(state.managers.names()),
            repository=state.repository,
        )

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _resolve_nodes(self, nodes: Sequence[BuildNode], state: ResolverState, prefix: str) -> None:
        for index, node in enumerate(nodes):
            self._resolve_node(node, state, f"{prefix}[{index}]")

    def _resolve_node(self, node: BuildNode, state: ResolverState, location: str) -> None:
        logger.debug(f"{location}: {node.kind}")
        match node:
            case RepoNode():
                self._resolve_repo(node, state, location)
            case NamespaceNode():
                self._resolve_namespace(node, state, location)
            case MatrixNode():
                self._resolve_matrix(node, state, location)
            case CaseNode():
                self._resolve_case(node, state, location)
            case LinkNode():
                self._resolve_link(node, state, location)
            case HookNode():
                self._resolve_hook(node, state, location)
            case PackageNode():
                self._resolve_package(node, state, location)
            case PackageManagerNode():
                self._resolve_package_manager(node, state, location)
            case _:
                assert_never(node)

    def _render(
        self,
        raw: str,
        state: ResolverState,
        location: str,
        field: str,
        package: dict[str, str] | None = None,
        variables: VariableStore | None = None,
    ) -> str:
        return self.templates.render(
            raw,
            variables if variables is not None else state.variables,
            builtins=state.builtins(package),
            environment=state.environment.environment,
            location=location,
            field=field,
        )

    # ------------------------------------------------------------------
    # Containers
    # ------------------------------------------------------------------

    def _resolve_namespace(self, node: NamespaceNode, state: ResolverState, location: str) -> None:
        values = {
            key: self._render(value, state, location, f"values.{key}")
            for key, value in node.values.items()
        }
        with state.variables.scoped(qualify(node.name, values)):
            self._resolve_nodes(node.include, state, f"{location}.include")

    def _resolve_matrix(self, node: MatrixNode, state: ResolverState, location: str) -> None:
        rows = node.expanded_rows()
        if not rows:
            logger.debug(f"{location}: matrix has no rows")
        for index, row in enumerate(rows):
            row_location = f"{location}.matrix[{index}]"
            values = {
                key: self._render(value, state, row_location, key) for key, value in row.items()
            }
            with state.variables.scoped(qualify(node.name, values)):
                self._resolve_nodes(node.include, state, f"{row_location}.include")

    def _resolve_case(self, node: CaseNode, state: ResolverState, location: str) -> None:
        if not node.branches:
            raise NoMatchingBranchError(0, location=location)

        for index, branch in enumerate(node.branches):
            branch_location = f"{location}.case[{index}]"
            if self.evaluator.branch_matches(branch, state.environment, branch_location):
                logger.debug(f"{location}: selected branch {index}")
                self._resolve_nodes(branch.include, state, f"{branch_location}.include")
                return

        raise NoMatchingBranchError(len(node.branches), location=location)

    # ------------------------------------------------------------------
    # Terminals
    # ------------------------------------------------------------------

    def _resolve_repo(self, node: RepoNode, state: ResolverState, location: str) -> None:
        home = state.environment.home
        path = expand_home(self._render(node.path, state, location, "path"), home)
        url = self._render(node.url, state, location, "url") if node.url is not None else None
        action = RequireRepository(path=path, url=url)

        if state.repository == action:
            logger.debug(f"{location}: repository {path} already bound")
            return
        if state.repository is not None:
            logger.info(f"{location}: rebinding repository {state.repository.path} → {path}")
        state.repository = action
        state.actions.append(action)

    def _resolve_link(self, node: LinkNode, state: ResolverState, location: str) -> None:
        home = state.environment.home
        state.actions.append(
            CreateLink(
                source=expand_home(self._render(node.source, state, location, "source"), home),
                target=expand_home(self._render(node.target, state, location, "target"), home),
            )
        )

    def _resolve_hook(self, node: HookNode, state: ResolverState, location: str) -> None:
        state.actions.append(
            RunHook(
                shell=self._shell_for(node.exec, state, location, "exec.shell"),
                command=self._render(node.exec.command, state, location, "exec.command"),
                lifecycle_actions=tuple(node.on),
            )
        )

    def _resolve_package_manager(
        self, node: PackageManagerNode, state: ResolverState, location: str
    ) -> None:
        shell = command = None
        if node.bootstrap is not None:
            shell = self._shell_for(node.bootstrap, state, location, "bootstrap.shell")
            command = self._render(node.bootstrap.command, state, location, "bootstrap.command")
        bootstrap = BootstrapManager(name=node.name, shell=shell, command=command)

        registered = RegisteredManager(
            declaration=node, scope=state.variables.head, location=location, bootstrap=bootstrap
        )
        if state.managers.register(registered):
            state.actions.append(bootstrap)

    def _resolve_package(self, node: PackageNode, state: ResolverState, location: str) -> None:
        name = self._render(node.name, state, location, "name")
        manager = state.managers.select(node)

        if manager is None:
            self._skip_package(node, name, state, location)
            return

        alias_field = f"aliases.{manager.name}" if manager.name in node.aliases else "name"
        alias = self._render(alias_for(node, manager.name), state, location, alias_field)

        # Manager templates see the scope the manager was declared in
        declared = VariableStore.from_scope(manager.scope)
        package = {"alias": alias, "name": name}

        def render_command(command: ShellCommand | None, verb: str) -> str | None:
            if command is None:
                return None
            return self._render(
                command.command,
                state,
                location,
                f"{manager.name}.{verb}",
                package=package,
                variables=declared,
            )

        install = manager.declaration.install
        state.actions.append(
            InstallPackage(
                name=name,
                manager=manager.name,
                resolved_alias=alias,
                shell=self._shell_for(install, state, location, f"{manager.name}.install.shell"),
                command=render_command(install, "install"),
                check_command=render_command(manager.declaration.has, "has"),
                uninstall_command=render_command(manager.declaration.uninstall, "uninstall"),
            )
        )

    def _skip_package(
        self, node: PackageNode, name: str, state: ResolverState, location: str
    ) -> None:
        available = state.managers.names()
        if node.managers:
            message = (
                f"No eligible package manager for '{name}': restricted to {node.managers}, "
                f"available {available}"
            )
        else:
            message = f"No package manager available for '{name}'"
        warning = ResolutionWarning(
            kind=WarningKind.NO_ELIGIBLE_MANAGER,
            location=location,
            message=message,
            subject=name,
        )
        state.warnings.append(warning)
        logger.warning(f"{location}: {message}; skipping")

    def _shell_for(
        self, command: ShellCommand | None, state: ResolverState, location: str, field: str
    ) -> str | None:
        if command is not None and command.shell is not None:
            return self._render(command.shell, state, location, field)
        return state.default_shell


def resolve_build(
    build: BuildDocument | Sequence[BuildNode], environment: LocalEnvironment
) -> ResolvedBuild:
    """
    Resolve a build against a local environment.

    Args:
        build: Typed build document or list of nodes
        environment: Local environment snapshot

    Returns:
        ResolvedBuild

    Raises:
        BuildResolutionError: On the first fatal error
    """
    return StepResolver(environment).resolve(build)


__all__ = [
    "ResolverState",
    "StepResolver",
    "expand_home",
    "repository_name",
    "resolve_build",
]
