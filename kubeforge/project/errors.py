"""Typed errors raised by the project configuration model and its store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from kubeforge.project.resource import GVK
    from kubeforge.project.version import ProjectVersion


class ProjectConfigError(Exception):
    """Base class for every project-configuration error."""


class UnsupportedFieldError(ProjectConfigError):
    """The project version does not support the requested field or operation.

    Callers may treat this as "skip" rather than "fail".
    """

    def __init__(self, version: "ProjectVersion", field: str) -> None:
        self.version = version
        self.field = field
        super().__init__(f"version {version} does not support the {field} field")


class PluginKeyNotFoundError(ProjectConfigError):
    """No plugin configuration blob is stored under the requested key."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"plugin key {key!r} not found")


class ResourceNotFoundError(ProjectConfigError):
    """The requested resource is not tracked by the project."""

    def __init__(self, gvk: "GVK") -> None:
        self.gvk = gvk
        super().__init__(f"resource {gvk} could not be found")


class DuplicateResourceError(ProjectConfigError):
    """The resource is already tracked and may not be created again."""

    def __init__(self, gvk: "GVK", reason: str = "already exists") -> None:
        self.gvk = gvk
        super().__init__(f"resource {gvk} {reason}")


class InvalidResourceError(ProjectConfigError):
    """A resource is malformed or conflicts with the project-wide invariants."""


class DecodeError(ProjectConfigError):
    """The persisted document is malformed or of an unknown version."""

    def __init__(self, message: str, cause: Any = None) -> None:
        self.cause = cause
        super().__init__(message)


class UnknownVersionError(DecodeError):
    """No schema implementation is registered for the document's version."""

    def __init__(self, version: Any) -> None:
        self.version = version
        super().__init__(f"unknown project version {version!r}")


class EncodeError(ProjectConfigError):
    """A configuration object could not be serialised."""


class StoreError(ProjectConfigError):
    """Base class for store load/save failures."""


class LoadError(StoreError):
    """The configuration file could not be read."""


class SaveError(StoreError):
    """The configuration could not be persisted."""
