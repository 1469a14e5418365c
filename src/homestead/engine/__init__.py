"""Build resolution engine.

Turns a declarative YAML build document into a flat, ordered list of actions
for the machine it runs on.

Key Components:

- LocalEnvironment: Immutable facts about the machine (platform, distro, ...)
- BuildDocument: Pydantic v2 schema for the build YAML
- VariableStore: Chain of lexical scopes for namespace and matrix bindings
- TemplateEngine: ${{ namespace.name }} placeholder substitution
- ConditionEvaluator: Case branch matching against the local environment
- ManagerRegistry: Available package managers in declaration order
- StepResolver: Recursive walk producing a ResolvedBuild
- LoadResult: Error monad for the loader layer

Resolution performs no I/O. Loading (files, URLs) and detection of the local
environment are separate collaborators that feed the resolver.
"""

from .actions import (
    ACTION_KINDS,
    Action,
    BootstrapManager,
    CreateLink,
    InstallPackage,
    RequireRepository,
    RunHook,
)
from .build_result import ResolutionWarning, ResolvedBuild, WarningKind
from .conditions import ConditionEvaluator
from .environment import LOCALE_FIELDS, LocalEnvironment, detect_local_environment
from .exceptions import (
    BuildResolutionError,
    InvalidPlaceholderError,
    MalformedConditionError,
    NoMatchingBranchError,
    ScopeError,
    UnresolvedVariableError,
)
from .load_result import LoadResult, LoadStatus
from .loader import load_build_from_file, load_build_from_url, load_build_from_yaml
from .managers import ManagerRegistry
from .resolver import ResolverState, StepResolver, resolve_build
from .schema import BuildDocument, BuildNode
from .variables import TemplateEngine, VariableStore

__all__ = [
    # Actions
    "ACTION_KINDS",
    "Action",
    "BootstrapManager",
    "CreateLink",
    "InstallPackage",
    "RequireRepository",
    "RunHook",
    # Results
    "ResolutionWarning",
    "ResolvedBuild",
    "WarningKind",
    # Environment
    "LOCALE_FIELDS",
    "LocalEnvironment",
    "detect_local_environment",
    # Errors
    "BuildResolutionError",
    "InvalidPlaceholderError",
    "MalformedConditionError",
    "NoMatchingBranchError",
    "ScopeError",
    "UnresolvedVariableError",
    # Loading
    "LoadResult",
    "LoadStatus",
    "load_build_from_file",
    "load_build_from_url",
    "load_build_from_yaml",
    # Resolution
    "BuildDocument",
    "BuildNode",
    "ConditionEvaluator",
    "ManagerRegistry",
    "ResolverState",
    "StepResolver",
    "TemplateEngine",
    "VariableStore",
    "resolve_build",
]
