"""Versioned ``PROJECT`` configuration model.

Importing this package registers every supported schema version.
"""

from kubeforge.project import v2, v3  # noqa: F401  (schema registration)
from kubeforge.project.config import ProjectConfig, new_config, register, registered_versions
from kubeforge.project.errors import (
    DecodeError,
    DuplicateResourceError,
    InvalidResourceError,
    LoadError,
    PluginKeyNotFoundError,
    ProjectConfigError,
    ResourceNotFoundError,
    SaveError,
    UnknownVersionError,
    UnsupportedFieldError,
)
from kubeforge.project.resource import API, GVK, Resource, Webhooks, regular_plural
from kubeforge.project.store import YamlStore, read_from
from kubeforge.project.version import PluginVersion, ProjectVersion

__all__ = [
    "API",
    "GVK",
    "DecodeError",
    "DuplicateResourceError",
    "InvalidResourceError",
    "LoadError",
    "PluginKeyNotFoundError",
    "PluginVersion",
    "ProjectConfig",
    "ProjectConfigError",
    "ProjectVersion",
    "Resource",
    "ResourceNotFoundError",
    "SaveError",
    "UnknownVersionError",
    "UnsupportedFieldError",
    "Webhooks",
    "YamlStore",
    "new_config",
    "read_from",
    "register",
    "registered_versions",
    "regular_plural",
]
