"""Exceptions raised while migrating system data."""

from __future__ import annotations


class MigrationError(RuntimeError):
    """Base class for failures raised by the migration engine."""


class RuleError(MigrationError):
    """Raised when a transform rule meets legacy data it cannot interpret."""

    def __init__(self, rule: str, message: str) -> None:
        self.rule = rule
        super().__init__(f"{rule}: {message}")


class PatchError(MigrationError):
    """Raised when a patch cannot be applied to a document."""


class PatchConflictError(PatchError):
    """Raised when two patches write overlapping field paths."""

    def __init__(self, path: str, other: str) -> None:
        self.path = path
        self.other = other
        super().__init__(f"Patch paths overlap: {path!r} and {other!r}")


class MissingMigrationError(MigrationError):
    pass


__all__ = [
    "MigrationError",
    "MissingMigrationError",
    "PatchConflictError",
    "PatchError",
    "RuleError",
]
