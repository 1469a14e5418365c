"""homestead: declarative machine provisioning plans.

A build document describes package managers, packages, symlinks and hooks,
with platform-specific branches. homestead resolves it for the current
machine into an ordered action list.
"""

__version__ = "0.1.0"
