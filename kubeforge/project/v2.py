"""Schema version 2 of the ``PROJECT`` document (legacy).

Only the domain, repository, multigroup flag and a bare list of GVKs are
stored. Resources carry no domain, the plugin chain is fixed, and every
newer field is reported as unsupported.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kubeforge.project.config import ProjectConfig, register
from kubeforge.project.errors import DecodeError, ResourceNotFoundError, UnsupportedFieldError
from kubeforge.project.resource import GVK, Resource
from kubeforge.project.version import ProjectVersion
from kubeforge.project.yamlutil import dump_yaml, load_mapping, omit_empty

VERSION = ProjectVersion(2)
PLUGIN_CHAIN = ["go.kubebuilder.io/v2"]


class _Document(BaseModel):
    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    version: str = str(VERSION)
    domain: str = ""
    repo: str = ""
    multigroup: bool = False
    resources: list[GVK] = Field(default_factory=list)

    @field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class ConfigV2(ProjectConfig):
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
        return ""

    def set_project_name(self, name: str) -> None:
        raise UnsupportedFieldError(VERSION, "project name")

    def get_cli_version(self) -> str:
        return ""

    def set_cli_version(self, version: str) -> None:
        raise UnsupportedFieldError(VERSION, "cli version")

    def get_plugin_chain(self) -> list[str]:
        return list(PLUGIN_CHAIN)

    def set_plugin_chain(self, chain: list[str]) -> None:
        raise UnsupportedFieldError(VERSION, "plugin chain")

    def is_multigroup(self) -> bool:
        return self._doc.multigroup

    def set_multigroup(self) -> None:
        self._doc.multigroup = True

    def clear_multigroup(self) -> None:
        self._doc.multigroup = False

    def is_component_config(self) -> bool:
        return False

    def set_component_config(self) -> None:
        raise UnsupportedFieldError(VERSION, "component config")

    def clear_component_config(self) -> None:
        raise UnsupportedFieldError(VERSION, "component config")

    # -- Resources (domain is never stored per resource) -------------------

    def resources_length(self) -> int:
        return len(self._doc.resources)

    def _find(self, gvk: GVK) -> int:
        gvk = gvk.normalized()
        for index, tracked in enumerate(self._doc.resources):
            if gvk.is_equal_to(tracked):
                return index
        return -1

    def has_resource(self, gvk: GVK) -> bool:
        return self._find(gvk) >= 0

    def get_resource(self, gvk: GVK) -> Resource:
        index = self._find(gvk)
        if index < 0:
            raise ResourceNotFoundError(gvk.normalized())
        return Resource.from_gvk(self._doc.resources[index])

    def get_resources(self) -> list[Resource]:
        return [Resource.from_gvk(gvk) for gvk in self._doc.resources]

    def add_resource(self, resource: Resource) -> None:
        gvk = resource.gvk.normalized()
        if not self.has_resource(gvk):
            self._doc.resources = [*self._doc.resources, gvk]

    def update_resource(self, resource: Resource) -> None:
        self.add_resource(resource)

    def remove_resource(self, gvk: GVK) -> None:
        index = self._find(gvk)
        if index < 0:
            raise ResourceNotFoundError(gvk.normalized())
        resources = list(self._doc.resources)
        del resources[index]
        self._doc.resources = resources

    def has_group(self, group: str) -> bool:
        return any(group.lower() == gvk.group.lower() for gvk in self._doc.resources)

    def list_crd_versions(self) -> list[str]:
        return []

    def list_webhook_versions(self) -> list[str]:
        return []

    # -- Serialisation -----------------------------------------------------

    def marshal_yaml(self) -> str:
        document = {
            "version": self._doc.version,
            "domain": self._doc.domain,
            "repo": self._doc.repo,
            "multigroup": self._doc.multigroup,
            "resources": [gvk.to_document() for gvk in self._doc.resources],
        }
        return dump_yaml(omit_empty(document))

    def unmarshal_yaml(self, text: str | bytes) -> None:
        raw = load_mapping(text)
        try:
            document = _Document.model_validate(raw)
        except ValidationError as exc:
            raise DecodeError(f"invalid version {VERSION} project document: {exc}", exc) from exc
        if document.version != str(VERSION):
            raise DecodeError(f"expected version {VERSION}, found {document.version!r}")
        self._doc = document


register(VERSION, ConfigV2)
