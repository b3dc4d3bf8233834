"""Exception hierarchy for metamirror.

Every operation-level entry point raises one of these, wrapping the first
underlying failure with added context.

Hierarchy::

    MetaMirrorError
    ├── InvalidProjectError
    │   └── ProjectExistsError
    ├── ConfigCorruptError
    ├── SecretError
    ├── PackageParseError
    ├── UnknownMetadataTypeError
    ├── PathScopeError
    ├── SyncTraversalError
    └── RemoteOperationError
"""

from __future__ import annotations


class MetaMirrorError(Exception):
    """Base exception for all metamirror errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class InvalidProjectError(MetaMirrorError):
    """The directory is not a project, or the project could not be initialized."""


class ProjectExistsError(InvalidProjectError):
    """A new project would overwrite an existing directory."""


class ConfigCorruptError(MetaMirrorError):
    """A persisted config file exists but cannot be parsed."""


class SecretError(MetaMirrorError):
    """The secret store could not store or return the project password."""


class PackageParseError(MetaMirrorError):
    """A package descriptor could not be parsed."""


class UnknownMetadataTypeError(MetaMirrorError):
    """A local path does not map to any known metadata type."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Could not determine metadata type for: {path}")
        self.path = path


class PathScopeError(MetaMirrorError):
    """A referenced file lies outside the project root."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Referenced file is not a part of this project: {path}")
        self.path = path


class SyncTraversalError(MetaMirrorError):
    """Retrieved metadata could not be applied to the live source tree."""


class RemoteOperationError(MetaMirrorError):
    """A call to the remote client (or another remote collaborator) failed.

    Args:
        operation: Name of the remote step that failed, e.g. ``"retrieve"``.
        cause: The underlying exception.
    """

    def __init__(self, operation: str, cause: BaseException | str) -> None:
        super().__init__(f"Remote {operation} failed: {cause}")
        self.operation = operation
        self.cause = cause
