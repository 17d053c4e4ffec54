"""Errors raised by rotguard.

Everything fatal derives from RotguardError so the CLI can turn it into a
single diagnostic line and a non-zero exit status.
"""

from dataclasses import dataclass


class RotguardError(Exception):
    """Base class for fatal rotguard errors."""


class PathError(RotguardError):
    """Scan target is missing, unreadable, or not a directory."""


class AgeFormatError(RotguardError):
    """An age string like '7d' could not be parsed."""


class ManifestIOError(RotguardError):
    """A manifest generation could not be read or written."""


class LockIOError(RotguardError):
    """The lock file could not be created, read, refreshed or removed."""


class LockContentionError(RotguardError):
    """Another process holds a lock whose heartbeat is still fresh."""

    def __init__(self, lock_path, grace_seconds: float, owner_pid=None):
        self.lock_path = lock_path
        self.grace_seconds = grace_seconds
        self.owner_pid = owner_pid
        holder = f" by pid {owner_pid}" if owner_pid else ""
        super().__init__(
            f"Lock {lock_path} is held{holder}; it can be reclaimed once "
            f"its heartbeat is older than {grace_seconds:g}s"
        )


@dataclass
class FileReadWarning:
    """A file skipped during the walk because it could not be read."""
    path: str
    reason: str
