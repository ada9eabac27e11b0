"""Bundled plugins and lookup by (possibly short) key."""

from __future__ import annotations

from typing import Iterable

from kubeforge.plugin.base import Plugin, PluginError
from kubeforge.plugin.keys import key_for, matches, validate_key
from kubeforge.plugins.deploy_image import DeployImagePlugin
from kubeforge.plugins.go_v4 import GoV4Plugin
from kubeforge.utils import print_warning

DEFAULT_LAYOUT = "go.kubebuilder.io/v4"

# Layouts no longer shipped, and the layout that replaces them.
DEPRECATED_LAYOUTS: dict[str, str] = {
    "go.kubebuilder.io/v2": DEFAULT_LAYOUT,
    "go.kubebuilder.io/v3": DEFAULT_LAYOUT,
}


def available_plugins(extra: Iterable[Plugin] = ()) -> list[Plugin]:
    """Return every bundled plugin followed by *extra* (e.g. bundles)."""
    return [GoV4Plugin(), DeployImagePlugin(), *extra]


def find_plugin(query: str, plugins: list[Plugin] | None = None) -> Plugin:
    """Return the single plugin selected by *query*.

    Raises:
        PluginError: If the key is malformed, unknown or ambiguous.
    """
    try:
        validate_key(query)
    except ValueError as exc:
        raise PluginError(query, str(exc)) from None
    plugins = available_plugins() if plugins is None else plugins
    found = [plugin for plugin in plugins if matches(plugin, query)]
    if not found:
        raise PluginError(query, "no plugin found for this key")
    if len(found) > 1:
        # An unversioned short name matching several versions is ambiguous.
        keys = ", ".join(key_for(p) for p in found)
        raise PluginError(query, f"ambiguous plugin key, matches {keys}")
    return found[0]


def upgrade_layout(key: str) -> str:
    """Map a deprecated layout key to the one replacing it."""
    replacement = DEPRECATED_LAYOUTS.get(key)
    if replacement is None:
        return key
    print_warning(f"Layout {key} is no longer supported, using {replacement} instead")
    return replacement


def resolve_chain(keys: Iterable[str], plugins: list[Plugin] | None = None) -> list[Plugin]:
    """Resolve a recorded or user-supplied plugin chain into plugins."""
    plugins = available_plugins() if plugins is None else plugins
    resolved: list[Plugin] = []
    for key in keys:
        plugin = find_plugin(upgrade_layout(key), plugins)
        if plugin not in resolved:
            resolved.append(plugin)
    return resolved


__all__ = [
    "DEFAULT_LAYOUT",
    "DEPRECATED_LAYOUTS",
    "DeployImagePlugin",
    "GoV4Plugin",
    "available_plugins",
    "find_plugin",
    "resolve_chain",
    "upgrade_layout",
]
