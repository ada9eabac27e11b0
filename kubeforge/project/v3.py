"""Schema version 3 of the ``PROJECT`` document.

Adds the project name, the generator CLI version, the plugin chain
(``layout``), component config, full resource records and the per-plugin
configuration map (``plugins``).

Plural names are stored only when irregular; getters always return them
filled in.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kubeforge.project.config import ProjectConfig, register
from kubeforge.project.errors import DecodeError, ResourceNotFoundError
from kubeforge.project.resource import GVK, Resource, regular_plural
from kubeforge.project.version import ProjectVersion
from kubeforge.project.yamlutil import dump_yaml, load_mapping, omit_empty

VERSION = ProjectVersion(3)


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, validate_assignment=True)

    version: str = str(VERSION)
    domain: str = ""
    repo: str = ""
    project_name: str = Field(default="", alias="projectName")
    cli_version: str = Field(default="", alias="cliVersion")
    layout: list[str] = Field(default_factory=list)
    multigroup: bool = False
    component_config: bool = Field(default=False, alias="componentConfig")
    resources: list[Resource] = Field(default_factory=list)
    plugins: dict[str, Any] = Field(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("layout", mode="before")
    @classmethod
    def _layout_as_list(cls, value: Any) -> Any:
        # Older files store a single plugin key as a plain string.
        if isinstance(value, str):
            return [value] if value else []
        return value

    @field_validator("plugins", mode="before")
    @classmethod
    def _plugins_mapping(cls, value: Any) -> Any:
        return {} if value is None else value


def _stored(resource: Resource) -> Resource:
    """Return the copy of *resource* kept in the document."""
    stored = resource.model_copy(deep=True)
    if stored.plural == regular_plural(stored.kind):
        stored.plural = ""
    return stored


def _returned(resource: Resource) -> Resource:
    """Return the copy of a tracked resource handed to callers."""
    returned = resource.model_copy(deep=True)
    if not returned.plural:
        returned.plural = regular_plural(returned.kind)
    return returned


class ConfigV3(ProjectConfig):
    VERSION = VERSION

    def _empty_document(self) -> _Document:
        return _Document()

    # -- Scalars -----------------------------------------------------------

    def get_domain(self) -> str:
        return self._doc.domain

    def set_domain(self, domain: str) -> None:
        self._doc.domain = domain

    def get_repository(self) -> str:
        return self._doc.repo

    def set_repository(self, repository: str) -> None:
        self._doc.repo = repository

    def get_project_name(self) -> str:
        return self._doc.project_name

    def set_project_name(self, name: str) -> None:
        self._doc.project_name = name

    def get_cli_version(self) -> str:
        return self._doc.cli_version

    def set_cli_version(self, version: str) -> None:
        self._doc.cli_version = version

    def get_plugin_chain(self) -> list[str]:
        return list(self._doc.layout)

    def set_plugin_chain(self, chain: list[str]) -> None:
        self._doc.layout = list(chain)

    def is_multigroup(self) -> bool:
        return self._doc.multigroup

    def set_multigroup(self) -> None:
        self._doc.multigroup = True

    def clear_multigroup(self) -> None:
        self._doc.multigroup = False

    def is_component_config(self) -> bool:
        return self._doc.component_config

    def set_component_config(self) -> None:
        self._doc.component_config = True

    def clear_component_config(self) -> None:
        self._doc.component_config = False

    # -- Resources ---------------------------------------------------------

    def resources_length(self) -> int:
        return len(self._doc.resources)

    def _find(self, gvk: GVK) -> int:
        for index, tracked in enumerate(self._doc.resources):
            if gvk.is_equal_to(tracked.gvk):
                return index
        return -1

    def has_resource(self, gvk: GVK) -> bool:
        return self._find(gvk) >= 0

    def get_resource(self, gvk: GVK) -> Resource:
        index = self._find(gvk)
        if index < 0:
            raise ResourceNotFoundError(gvk)
        return _returned(self._doc.resources[index])

    def get_resources(self) -> list[Resource]:
        return [_returned(resource) for resource in self._doc.resources]

    def add_resource(self, resource: Resource) -> None:
        if not self.has_resource(resource.gvk):
            self._doc.resources = [*self._doc.resources, _stored(resource)]

    def update_resource(self, resource: Resource) -> None:
        stored = _stored(resource)
        index = self._find(stored.gvk)
        if index < 0:
            self._doc.resources = [*self._doc.resources, stored]
            return
        # Merge into a copy so a rejected update leaves the record untouched.
        merged = self._doc.resources[index].model_copy(deep=True)
        merged.update(stored)
        resources = list(self._doc.resources)
        resources[index] = merged
        self._doc.resources = resources

    def remove_resource(self, gvk: GVK) -> None:
        index = self._find(gvk)
        if index < 0:
            raise ResourceNotFoundError(gvk)
        resources = list(self._doc.resources)
        del resources[index]
        self._doc.resources = resources

    def has_group(self, group: str) -> bool:
        return any(group.lower() == resource.group.lower() for resource in self._doc.resources)

    def list_crd_versions(self) -> list[str]:
        versions = {
            resource.api.crd_version
            for resource in self._doc.resources
            if resource.api is not None and resource.api.crd_version
        }
        return sorted(versions)

    def list_webhook_versions(self) -> list[str]:
        versions = {
            resource.webhooks.webhook_version
            for resource in self._doc.resources
            if resource.webhooks is not None and resource.webhooks.webhook_version
        }
        return sorted(versions)

    # -- Plugin configuration ----------------------------------------------

    def _plugins(self) -> dict[str, Any]:
        return self._doc.plugins

    # -- Serialisation -----------------------------------------------------

    def marshal_yaml(self) -> str:
        document = omit_empty(
            {
                "version": self._doc.version,
                "domain": self._doc.domain,
                "repo": self._doc.repo,
                "projectName": self._doc.project_name,
                "cliVersion": self._doc.cli_version,
                "layout": list(self._doc.layout),
                "multigroup": self._doc.multigroup,
                "componentConfig": self._doc.component_config,
                "resources": [resource.to_document() for resource in self._doc.resources],
            }
        )
        # Plugin blobs are opaque: their falsy values are kept verbatim.
        if self._doc.plugins:
            document["plugins"] = self._doc.plugins
        return dump_yaml(document)

    def unmarshal_yaml(self, text: str | bytes) -> None:
        raw = load_mapping(text)
        try:
            document = _Document.model_validate(raw)
        except ValidationError as exc:
            raise DecodeError(f"invalid version {VERSION} project document: {exc}", exc) from exc
        if document.version != str(VERSION):
            raise DecodeError(f"expected version {VERSION}, found {document.version!r}")
        document.resources = [_stored(resource) for resource in document.resources]
        self._doc = document


register(VERSION, ConfigV3)
