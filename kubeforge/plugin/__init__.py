"""Plugin interface and plugin-key resolution."""

from kubeforge.plugin.base import (
    Bundle,
    Plugin,
    PluginError,
    SubcommandContext,
    config_key,
    load_plugin_config,
    save_plugin_config,
)
from kubeforge.plugin.keys import (
    InvalidPluginKeyError,
    key_for,
    resolve_config_key,
    short_name,
    split_key,
    validate_key,
)

__all__ = [
    "Bundle",
    "InvalidPluginKeyError",
    "Plugin",
    "PluginError",
    "SubcommandContext",
    "config_key",
    "key_for",
    "load_plugin_config",
    "resolve_config_key",
    "save_plugin_config",
    "short_name",
    "split_key",
    "validate_key",
]
