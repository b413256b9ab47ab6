"""Error taxonomy for the mcs convergence engine.

Component-level failures are never raised: installers and removers return
``bool`` or result dataclasses so the per-component loops keep going. Only
the conditions below propagate and abort a sync.
"""

from __future__ import annotations


class MCSError(RuntimeError):
    """Base class for errors that abort an mcs command."""


class ConfigurationError(MCSError):
    """Raised before any mutation for an invalid selection or catalog.

    Covers unmet peer dependencies, dependency cycles, unknown component
    references and malformed settings files.
    """


class StateWriteError(MCSError):
    """Raised when the final state checkpoint cannot be persisted."""

    def __init__(self, path: str, reason: str, sync_hint: str = "mcs sync") -> None:
        self.path = path
        self.reason = reason
        self.sync_hint = sync_hint
        super().__init__(
            f"Could not write state file {path}: {reason}. "
            f"State may be inconsistent. Re-run '{sync_hint}' to recover."
        )


class ManifestError(MCSError):
    """Raised when a pack manifest cannot be loaded or fails validation."""


class LockHeldError(MCSError):
    """Raised when another mcs process holds the advisory lock."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Another mcs process is running. Lock file: {path}")


class PathContainmentError(MCSError):
    """Raised by path helpers when a path escapes its base directory."""

    def __init__(self, path: str, base: str) -> None:
        self.path = path
        self.base = base
        super().__init__(f"Path '{path}' escapes expected directory '{base}'")


__all__ = [
    "ConfigurationError",
    "LockHeldError",
    "MCSError",
    "ManifestError",
    "PathContainmentError",
    "StateWriteError",
]
