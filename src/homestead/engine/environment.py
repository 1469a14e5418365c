"""
Local environment descriptor and detection.

LocalEnvironment is the immutable snapshot of facts about the running machine
that case conditions are matched against. It is built once, before resolution
starts, and never mutated afterwards.

Detection (platform family, distro, hostname, architecture, user, home
directory and an environment-variable snapshot) lives here rather than in the
resolver so that the resolver itself never touches the operating system.
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
import socket
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType

logger = logging.getLogger(__name__)

# Condition fields that can be matched against a LocalEnvironment
LOCALE_FIELDS: tuple[str, ...] = ("platform", "distro", "hostname", "arch", "user")

_PLATFORM_FAMILIES = {
    "linux": "linux",
    "darwin": "macos",
    "win32": "windows",
    "cygwin": "windows",
    "freebsd": "bsd",
    "openbsd": "bsd",
    "netbsd": "bsd",
}


@dataclass(frozen=True)
class LocalEnvironment:
    """
    Immutable facts about the machine a build is resolved for.

    Attributes:
        platform: Platform family ("linux", "macos", "windows", ...)
        distro: Lowercase distribution id (Linux only, e.g. "ubuntu")
        hostname: Machine hostname
        arch: Machine architecture (e.g. "x86_64", "arm64")
        user: Login name of the current user
        home: Home directory used to expand a leading "~" in paths
        environment: Environment variable snapshot backing ``${{ env.NAME }}``
    """

    platform: str
    distro: str | None = None
    hostname: str | None = None
    arch: str | None = None
    user: str | None = None
    home: str | None = None
    environment: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        # Freeze the snapshot so later os.environ changes cannot leak in
        object.__setattr__(self, "environment", MappingProxyType(dict(self.environment)))

    def locale_value(self, name: str) -> str | None:
        """Return the value of a matchable locale field."""
        if name not in LOCALE_FIELDS:
            raise KeyError(name)
        return getattr(self, name)

    def with_overrides(self, **overrides: str | None) -> LocalEnvironment:
        """Return a copy with the given non-None fields replaced."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown environment fields: {sorted(unknown)}")
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    def describe(self) -> dict[str, str | None]:
        """Matchable fields plus home, for display."""
        info: dict[str, str | None] = {name: getattr(self, name) for name in LOCALE_FIELDS}
        info["home"] = self.home
        return info


def detect_platform_family() -> str:
    """Map sys.platform onto the platform family names used in conditions."""
    for prefix, family in _PLATFORM_FAMILIES.items():
        if sys.platform.startswith(prefix):
            return family
    return sys.platform.lower()


def detect_distro(os_release: Path = Path("/etc/os-release")) -> str | None:
    """
    Read the distribution id from os-release.

    Returns the lowercase ``ID`` value (e.g. "ubuntu", "fedora", "arch"),
    or None when the file is missing or has no ID line.
    """
    try:
        with open(os_release, encoding="utf-8") as f:
            for line in f:
                if line.startswith("ID="):
                    return line.split("=", 1)[1].strip().strip('"').lower() or None
    except OSError as e:
        logger.debug(f"Cannot read {os_release}: {e}")
    return None


def _detect_user() -> str | None:
    try:
        return getpass.getuser()
    except (KeyError, OSError) as e:
        logger.debug(f"Cannot determine current user: {e}")
        return None


def detect_local_environment() -> LocalEnvironment:
    """
    Build a LocalEnvironment for the running machine.

    Returns:
        Snapshot of platform, distro, hostname, architecture, user, home
        directory and environment variables
    """
    family = detect_platform_family()
    env = LocalEnvironment(
        platform=family,
        distro=detect_distro() if family == "linux" else None,
        hostname=socket.gethostname() or None,
        arch=platform.machine().lower() or None,
        user=_detect_user(),
        home=str(Path.home()),
        environment=dict(os.environ),
    )
    logger.debug(f"Detected local environment: {env.describe()}")
    return env


__all__ = [
    "LOCALE_FIELDS",
    "LocalEnvironment",
    "detect_distro",
    "detect_local_environment",
    "detect_platform_family",
]
