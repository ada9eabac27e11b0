"""Plugin keys and resolution of the key a plugin's configuration lives under.

A plugin key is ``<name>/<version>`` where the name is a DNS-1123 subdomain
whose first label is the plugin's *base name*::

    deploy-image.go.kubebuilder.io/v1-alpha
    ^^^^^^^^^^^^ base name         ^^^^^^^^ version
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable

from kubeforge.project.version import PluginVersion

if TYPE_CHECKING:
    from kubeforge.plugin.base import Plugin

_DNS1123_SUBDOMAIN_RE = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)


class InvalidPluginKeyError(ValueError):
    """A plugin key or name is malformed."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"invalid plugin key {key!r}: {reason}")


def key_for(plugin: "Plugin") -> str:
    """Return the canonical key ``<name>/<version>`` of *plugin*."""
    return f"{plugin.name}/{plugin.version}"


def split_key(key: str) -> tuple[str, str]:
    """Split *key* into ``(name, version)``; the version may be empty."""
    if "/" not in key:
        return key, ""
    name, version = key.split("/", 1)
    return name, version


def short_name(name: str) -> str:
    """Return the base name (first DNS label) of a plugin name."""
    return name.split(".", 1)[0]


def validate_name(name: str) -> None:
    if len(name) > 253 or not _DNS1123_SUBDOMAIN_RE.match(name):
        raise InvalidPluginKeyError(name, "name must be a DNS-1123 subdomain")


def validate_key(key: str) -> None:
    """Check *key* is ``<name>[/<version>]`` with a valid name and version.

    Raises:
        InvalidPluginKeyError: If either part is malformed.
    """
    name, version = split_key(key)
    validate_name(name)
    if version:
        try:
            PluginVersion.parse(version)
        except ValueError as exc:
            raise InvalidPluginKeyError(key, str(exc)) from None


def resolve_config_key(chain: Iterable[str], plugin: "Plugin") -> str:
    """Return the key *plugin* should read and write its configuration under.

    Precedence, first match wins:

    1. The plugin's canonical key appears verbatim in *chain*.
    2. A key in *chain* with the same base name and version under any
       domain, i.e. the plugin re-hosted by a bundle.
    3. The canonical key.
    """
    chain = list(chain)
    canonical = key_for(plugin)
    if canonical in chain:
        return canonical

    base = short_name(plugin.name)
    version = str(plugin.version)
    for key in chain:
        name, key_version = split_key(key)
        if key_version == version and short_name(name) == base:
            return key

    return canonical


def matches(plugin: "Plugin", query: str) -> bool:
    """True if *query* (a full or short key, version optional) selects *plugin*.

    ``go/v4``, ``go.kubebuilder.io/v4`` and ``go`` all select the Go v4 plugin.
    """
    name, version = split_key(query)
    if version and version != str(plugin.version):
        return False
    return name == plugin.name or name == short_name(plugin.name)
