"""Pydantic v2 models for the API resources tracked in a project.

A resource is identified by its Group/Version/Kind (plus the domain that,
together with the group, forms the fully-qualified API group) and carries
capability flags describing what has been scaffolded for it: the API type
(with its CRD version), a controller, and webhooks.
"""

from __future__ import annotations

import posixpath
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kubeforge.project.errors import InvalidResourceError
from kubeforge.project.yamlutil import omit_empty

_DNS1123_SUBDOMAIN_RE = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)
_API_VERSION_RE = re.compile(r"^v\d+(?:(?:alpha|beta)\d+)?$")
_DNS1035_LABEL_RE = re.compile(r"^[a-z]([-a-z0-9]*[a-z0-9])?$")

_SUPPORTED_CRD_VERSIONS = ("v1",)
_SUPPORTED_WEBHOOK_VERSIONS = ("v1",)


def regular_plural(kind: str) -> str:
    """Return the lower-cased regular English plural of *kind*.

    Examples::

        regular_plural("CronJob") -> "cronjobs"
        regular_plural("Policy")  -> "policies"
        regular_plural("Index")   -> "indexes"
    """
    word = kind.lower()
    if not word:
        return word
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    return word + "s"


def api_package_path(repo: str, group: str, version: str, multigroup: bool) -> str:
    """Return the import path of the package holding the API types."""
    if multigroup and group:
        return posixpath.join(repo, "api", group, version)
    return posixpath.join(repo, "api", version)


def _model_config() -> ConfigDict:
    return ConfigDict(extra="forbid", populate_by_name=True, validate_assignment=True)


# ---------------------------------------------------------------------------
# GVK
# ---------------------------------------------------------------------------


class GVK(BaseModel):
    """Group/Version/Kind triple plus the project domain."""

    model_config = _model_config()

    group: str = Field(default="", description="API group, without the domain")
    domain: str = Field(default="", description="Domain appended to the group")
    version: str = Field(..., description="API version, e.g. 'v1' or 'v1beta1'")
    kind: str = Field(..., description="Kind in CamelCase")

    @property
    def qualified_group(self) -> str:
        """Return ``<group>.<domain>``, or whichever part is non-empty."""
        if not self.group:
            return self.domain
        if not self.domain:
            return self.group
        return f"{self.group}.{self.domain}"

    def is_equal_to(self, other: "GVK") -> bool:
        return (
            self.qualified_group == other.qualified_group
            and self.version == other.version
            and self.kind == other.kind
        )

    def normalized(self) -> "GVK":
        """Return a copy with the domain stripped (legacy schemas key on G/V/K only)."""
        return self.model_copy(update={"domain": ""})

    def validate_fields(self) -> None:
        """Check the group, version and kind are well-formed.

        Raises:
            InvalidResourceError: On the first malformed field.
        """
        if not self.qualified_group:
            raise InvalidResourceError("either group or domain must be set")
        if not _DNS1123_SUBDOMAIN_RE.match(self.qualified_group):
            raise InvalidResourceError(f"invalid group {self.qualified_group!r}")
        if not _API_VERSION_RE.match(self.version):
            raise InvalidResourceError(
                f"invalid version {self.version!r}: expected v<N>, v<N>alpha<M> or v<N>beta<M>"
            )
        if not self.kind or not self.kind[0].isupper():
            raise InvalidResourceError(f"invalid kind {self.kind!r}: must start with an uppercase letter")
        if not _DNS1035_LABEL_RE.match(self.kind.lower()):
            raise InvalidResourceError(f"invalid kind {self.kind!r}")

    def to_document(self) -> dict[str, Any]:
        return omit_empty(self.model_dump())

    def __str__(self) -> str:
        return f"{self.qualified_group}/{self.version}, Kind={self.kind}"


# ---------------------------------------------------------------------------
# Capability sections
# ---------------------------------------------------------------------------


class API(BaseModel):
    """The API type scaffolded for a resource."""

    model_config = _model_config()

    crd_version: str = Field(default="", alias="crdVersion")
    namespaced: bool = Field(default=False)

    def is_empty(self) -> bool:
        return not self.crd_version and not self.namespaced

    def validate_fields(self) -> None:
        if self.crd_version not in _SUPPORTED_CRD_VERSIONS:
            raise InvalidResourceError(
                f"unsupported CRD version {self.crd_version!r}, "
                f"expected one of {', '.join(_SUPPORTED_CRD_VERSIONS)}"
            )

    def update(self, other: "API | None") -> None:
        """Merge *other* into this section.

        The CRD version can only be set once; conflicting values are rejected.
        """
        if other is None:
            return
        if not self.crd_version:
            self.crd_version = other.crd_version
        elif other.crd_version and self.crd_version != other.crd_version:
            raise InvalidResourceError(
                f"CRD versions do not match: {self.crd_version!r} != {other.crd_version!r}"
            )
        self.namespaced = self.namespaced or other.namespaced


class Webhooks(BaseModel):
    """The webhooks scaffolded for a resource."""

    model_config = _model_config()

    webhook_version: str = Field(default="", alias="webhookVersion")
    defaulting: bool = False
    validation: bool = False
    conversion: bool = False
    spoke: list[str] = Field(default_factory=list, description="Spoke versions of a conversion hub")

    def is_empty(self) -> bool:
        return (
            not self.webhook_version
            and not self.defaulting
            and not self.validation
            and not self.conversion
            and not self.spoke
        )

    def validate_fields(self) -> None:
        if self.webhook_version not in _SUPPORTED_WEBHOOK_VERSIONS:
            raise InvalidResourceError(
                f"unsupported webhook version {self.webhook_version!r}, "
                f"expected one of {', '.join(_SUPPORTED_WEBHOOK_VERSIONS)}"
            )

    def update(self, other: "Webhooks | None") -> None:
        if other is None:
            return
        if not self.webhook_version:
            self.webhook_version = other.webhook_version
        elif other.webhook_version and self.webhook_version != other.webhook_version:
            raise InvalidResourceError(
                f"webhook versions do not match: {self.webhook_version!r} != {other.webhook_version!r}"
            )
        self.defaulting = self.defaulting or other.defaulting
        self.validation = self.validation or other.validation
        self.conversion = self.conversion or other.conversion
        self.spoke = self.spoke + [s for s in other.spoke if s not in self.spoke]


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


class Resource(BaseModel):
    """One tracked API type and what has been scaffolded for it."""

    model_config = _model_config()

    group: str = ""
    domain: str = ""
    version: str
    kind: str
    plural: str = Field(default="", description="Only stored when irregular")
    path: str = Field(default="", description="Import path of the API package")
    api: API | None = None
    controller: bool = False
    webhooks: Webhooks | None = None
    external: bool = Field(default=False, description="Type is defined outside this project")
    core: bool = Field(default=False, description="Type is a Kubernetes core type")

    @classmethod
    def from_gvk(cls, gvk: GVK, **fields: Any) -> "Resource":
        return cls(group=gvk.group, domain=gvk.domain, version=gvk.version, kind=gvk.kind, **fields)

    @property
    def gvk(self) -> GVK:
        return GVK(group=self.group, domain=self.domain, version=self.version, kind=self.kind)

    @property
    def qualified_group(self) -> str:
        return self.gvk.qualified_group

    # -- Capability checks -------------------------------------------------

    def has_api(self) -> bool:
        return self.api is not None and bool(self.api.crd_version)

    def has_controller(self) -> bool:
        return self.controller

    def has_defaulting_webhook(self) -> bool:
        return self.webhooks is not None and self.webhooks.defaulting

    def has_validation_webhook(self) -> bool:
        return self.webhooks is not None and self.webhooks.validation

    def has_conversion_webhook(self) -> bool:
        return self.webhooks is not None and self.webhooks.conversion

    def has_webhooks(self) -> bool:
        return (
            self.has_defaulting_webhook()
            or self.has_validation_webhook()
            or self.has_conversion_webhook()
        )

    def is_external(self) -> bool:
        return self.external

    def is_regular_plural(self) -> bool:
        return not self.plural or self.plural == regular_plural(self.kind)

    # -- Compound names ----------------------------------------------------

    def package_name(self) -> str:
        """Go package name: the group, or the domain with dots removed."""
        if self.group:
            return self.group.replace("-", "").replace(".", "")
        return self.domain.replace(".", "").replace("-", "")

    def import_alias(self) -> str:
        return self.package_name() + self.version

    def replacer(self) -> "Replacer":
        return Replacer(
            {
                "%[group]": self.group,
                "%[version]": self.version,
                "%[kind]": self.kind.lower(),
                "%[plural]": self.plural or regular_plural(self.kind),
                "%[package-name]": self.package_name(),
            }
        )

    # -- Validation / mutation ---------------------------------------------

    def validate_fields(self) -> None:
        """Validate identity and every populated capability section."""
        self.gvk.validate_fields()
        if self.plural and not _DNS1123_SUBDOMAIN_RE.match(self.plural):
            raise InvalidResourceError(f"invalid plural {self.plural!r}")
        if self.api is not None and not self.api.is_empty():
            self.api.validate_fields()
        if self.webhooks is not None and not self.webhooks.is_empty():
            self.webhooks.validate_fields()

    def update(self, other: "Resource") -> None:
        """Merge the capabilities of *other* (same GVK) into this resource.

        Flags are OR-ed, versions can only be set once, and conversion spokes
        are merged without duplicates.

        Raises:
            InvalidResourceError: If the GVKs differ or versions conflict.
        """
        if not self.gvk.is_equal_to(other.gvk):
            raise InvalidResourceError(f"unable to update {self.gvk} with another GVK {other.gvk}")

        if not self.plural:
            self.plural = other.plural
        if not self.path:
            self.path = other.path
        self.external = self.external or other.external
        self.core = self.core or other.core

        if other.api is not None:
            api = self.api.model_copy(deep=True) if self.api is not None else API()
            api.update(other.api)
            self.api = api

        self.controller = self.controller or other.controller

        if other.webhooks is not None:
            webhooks = (
                self.webhooks.model_copy(deep=True) if self.webhooks is not None else Webhooks()
            )
            webhooks.update(other.webhooks)
            self.webhooks = webhooks

    def to_document(self) -> dict[str, Any]:
        """Return the ``PROJECT`` representation, omitting empty sections."""
        return omit_empty(self.model_dump(by_alias=True, exclude_none=True))


class Replacer:
    """Substitutes ``%[group]``-style placeholders in file-path patterns."""

    def __init__(self, mapping: dict[str, str]) -> None:
        self.mapping = mapping

    def replace(self, pattern: str) -> str:
        for placeholder, value in self.mapping.items():
            pattern = pattern.replace(placeholder, value)
        return pattern
