"""Versioned ``PROJECT`` configuration interface and schema registry.

Every schema version implements :class:`ProjectConfig`. Operations a schema
cannot honour raise :class:`~kubeforge.project.errors.UnsupportedFieldError`
so callers can decide to skip instead of fail.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, TypeVar

from pydantic import BaseModel, ValidationError

from kubeforge.project.errors import (
    DecodeError,
    EncodeError,
    PluginKeyNotFoundError,
    UnknownVersionError,
    UnsupportedFieldError,
)
from kubeforge.project.resource import GVK, Resource
from kubeforge.project.version import ProjectVersion

ModelT = TypeVar("ModelT", bound=BaseModel)


class ProjectConfig(ABC):
    """Strategy interface shared by every ``PROJECT`` schema version."""

    VERSION: ClassVar[ProjectVersion]

    def __init__(self) -> None:
        self._doc: BaseModel = self._empty_document()

    @abstractmethod
    def _empty_document(self) -> BaseModel:
        ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ProjectConfig):
            return NotImplemented
        return type(self) is type(other) and self._doc == other._doc

    def __repr__(self) -> str:
        return f"{type(self).__name__}(version={self.version()!s})"

    # ------------------------------------------------------------------
    # Scalar fields
    # ------------------------------------------------------------------

    def version(self) -> ProjectVersion:
        return self.VERSION

    @abstractmethod
    def get_domain(self) -> str: ...

    @abstractmethod
    def set_domain(self, domain: str) -> None: ...

    @abstractmethod
    def get_repository(self) -> str: ...

    @abstractmethod
    def set_repository(self, repository: str) -> None: ...

    @abstractmethod
    def get_project_name(self) -> str: ...

    @abstractmethod
    def set_project_name(self, name: str) -> None: ...

    @abstractmethod
    def get_cli_version(self) -> str: ...

    @abstractmethod
    def set_cli_version(self, version: str) -> None: ...

    @abstractmethod
    def get_plugin_chain(self) -> list[str]: ...

    @abstractmethod
    def set_plugin_chain(self, chain: list[str]) -> None: ...

    @abstractmethod
    def is_multigroup(self) -> bool: ...

    @abstractmethod
    def set_multigroup(self) -> None: ...

    @abstractmethod
    def clear_multigroup(self) -> None: ...

    @abstractmethod
    def is_component_config(self) -> bool: ...

    @abstractmethod
    def set_component_config(self) -> None: ...

    @abstractmethod
    def clear_component_config(self) -> None: ...

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    @abstractmethod
    def resources_length(self) -> int: ...

    @abstractmethod
    def has_resource(self, gvk: GVK) -> bool: ...

    @abstractmethod
    def get_resource(self, gvk: GVK) -> Resource:
        """Return a copy of the tracked resource.

        Raises:
            ResourceNotFoundError: If *gvk* is not tracked.
        """

    @abstractmethod
    def get_resources(self) -> list[Resource]: ...

    @abstractmethod
    def add_resource(self, resource: Resource) -> None:
        """Track *resource*; a no-op if its GVK is already tracked."""

    @abstractmethod
    def update_resource(self, resource: Resource) -> None:
        """Merge *resource* into the tracked one, or track it if new."""

    @abstractmethod
    def remove_resource(self, gvk: GVK) -> None:
        """Stop tracking *gvk*.

        Raises:
            ResourceNotFoundError: If *gvk* is not tracked.
        """

    @abstractmethod
    def has_group(self, group: str) -> bool: ...

    @abstractmethod
    def list_crd_versions(self) -> list[str]: ...

    @abstractmethod
    def list_webhook_versions(self) -> list[str]: ...

    # ------------------------------------------------------------------
    # Plugin configuration blobs
    # ------------------------------------------------------------------

    def _plugins(self) -> dict[str, Any]:
        raise UnsupportedFieldError(self.VERSION, "plugins")

    def plugin_config_keys(self) -> list[str]:
        return list(self._plugins())

    def decode_plugin_config(self, key: str, into: type[ModelT] | None = None) -> Any:
        """Return the blob stored under *key*, optionally validated into *into*.

        Raises:
            UnsupportedFieldError: If the schema has no plugin configuration.
            PluginKeyNotFoundError: If nothing is stored under *key*.
            DecodeError: If the blob does not match *into*.
        """
        plugins = self._plugins()
        if key not in plugins:
            raise PluginKeyNotFoundError(key)
        blob = copy.deepcopy(plugins[key])
        if into is None:
            return blob
        try:
            return into.model_validate(blob or {})
        except ValidationError as exc:
            raise DecodeError(f"invalid configuration for plugin {key!r}: {exc}", exc) from exc

    def encode_plugin_config(self, key: str, obj: BaseModel | dict[str, Any]) -> None:
        """Store *obj* under *key*, replacing any previous blob."""
        plugins = self._plugins()
        if isinstance(obj, BaseModel):
            blob = obj.model_dump(mode="json", by_alias=True, exclude_none=True)
        elif isinstance(obj, dict):
            blob = copy.deepcopy(obj)
        else:
            raise EncodeError(f"cannot encode {type(obj).__name__} as plugin configuration")
        plugins[key] = blob

    def remove_plugin_config(self, key: str) -> None:
        plugins = self._plugins()
        if key not in plugins:
            raise PluginKeyNotFoundError(key)
        del plugins[key]

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    @abstractmethod
    def marshal_yaml(self) -> str: ...

    @abstractmethod
    def unmarshal_yaml(self, text: str | bytes) -> None:
        """Strictly decode *text* into this object.

        Raises:
            DecodeError: On malformed YAML, unknown fields or a version mismatch.
        """


# ---------------------------------------------------------------------------
# Version registry
# ---------------------------------------------------------------------------

_REGISTRY: dict[ProjectVersion, Callable[[], ProjectConfig]] = {}


def register(version: ProjectVersion, constructor: Callable[[], ProjectConfig]) -> None:
    """Register *constructor* as the schema for *version*."""
    _REGISTRY[version] = constructor


def registered_versions() -> list[ProjectVersion]:
    return sorted(_REGISTRY)


def is_registered(version: ProjectVersion) -> bool:
    return version in _REGISTRY


def new_config(version: ProjectVersion | str | int) -> ProjectConfig:
    """Instantiate an empty configuration for *version*.

    Raises:
        UnknownVersionError: If the version is malformed or unregistered.
    """
    if not isinstance(version, ProjectVersion):
        try:
            version = ProjectVersion.parse(version)
        except ValueError:
            raise UnknownVersionError(version) from None
    constructor = _REGISTRY.get(version)
    if constructor is None:
        raise UnknownVersionError(str(version))
    return constructor()
