"""YAML helpers producing the canonical ``PROJECT`` document layout.

Keys are sorted alphabetically, block style is used throughout, and any
string that a YAML reader would otherwise resolve to a non-string (``"3"``,
``"true"``, ``""``) is emitted double-quoted.
"""

from __future__ import annotations

from typing import Any

import yaml

from kubeforge.project.errors import DecodeError

_STR_TAG = "tag:yaml.org,2002:str"


class _ProjectDumper(yaml.SafeDumper):
    """SafeDumper that double-quotes ambiguous strings."""


def _represent_str(dumper: yaml.SafeDumper, data: str) -> yaml.ScalarNode:
    style = None
    if dumper.resolve(yaml.ScalarNode, data, (True, False)) != _STR_TAG:
        style = '"'
    return dumper.represent_scalar(_STR_TAG, data, style=style)


_ProjectDumper.add_representer(str, _represent_str)


def dump_yaml(data: dict[str, Any]) -> str:
    """Serialise *data* to the canonical YAML text."""
    return yaml.dump(
        data,
        Dumper=_ProjectDumper,
        sort_keys=True,
        default_flow_style=False,
        allow_unicode=True,
        width=4096,
    )


def omit_empty(value: Any) -> Any:
    """Recursively drop ``None``, ``False``, empty strings and empty containers.

    Mirrors ``omitempty`` semantics for model-owned fields. Never apply it to
    opaque plugin blobs, whose falsy values are meaningful.
    """
    if isinstance(value, dict):
        cleaned = {}
        for key, item in value.items():
            item = omit_empty(item)
            if item is None or item is False or item == "" or item == [] or item == {}:
                continue
            cleaned[key] = item
        return cleaned
    if isinstance(value, list):
        return [omit_empty(item) for item in value]
    return value


def load_mapping(text: str | bytes) -> dict[str, Any]:
    """Parse a YAML document that must be a mapping.

    Raises:
        DecodeError: If the text is not valid YAML or not a mapping.
    """
    try:
        raw = yaml.safe_load(text)
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        raise DecodeError(f"invalid YAML: {exc}", exc) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise DecodeError(f"expected a YAML mapping, got {type(raw).__name__}")
    return raw
