"""Resource registry: CRUD over tracked resources with project-wide invariants.

Invariants enforced before a resource is registered:

* No two resources share the same (domain-normalised) GVK with an API.
* Unless the project is multigroup, every resource shares the group of the
  first one. Resources living under a different domain are exempt.
* All APIs agree on one CRD version and all webhooks on one webhook version.
"""

from __future__ import annotations

from typing import Any

from kubeforge.project.config import ProjectConfig
from kubeforge.project.errors import (
    DuplicateResourceError,
    InvalidResourceError,
    ResourceNotFoundError,
    UnsupportedFieldError,
)
from kubeforge.project.resource import GVK, Resource

MULTIGROUP_HINT = "to enable multi-group run 'kubeforge edit --multigroup'"


def _differs(tracked: list[str], candidate: str) -> bool:
    """True only if *tracked* is non-empty and not exactly ``{candidate}``."""
    versions = set(tracked)
    return bool(versions) and versions != {candidate}


def has_different_crd_version(config: ProjectConfig, candidate: str) -> bool:
    return _differs(config.list_crd_versions(), candidate)


def has_different_webhook_version(config: ProjectConfig, candidate: str) -> bool:
    return _differs(config.list_webhook_versions(), candidate)


def validate_new_resource(config: ProjectConfig, resource: Resource) -> None:
    """Check *resource* can be registered without breaking any invariant.

    Raises:
        InvalidResourceError: If the resource is malformed, introduces a
            second group in a single-group project, or a second CRD or
            webhook version.
        DuplicateResourceError: If its API has already been scaffolded.
    """
    resource.validate_fields()

    if resource.has_api():
        if config.has_resource(resource.gvk) and config.get_resource(resource.gvk).has_api():
            raise DuplicateResourceError(resource.gvk, reason="API already exists")
        if (
            not config.is_multigroup()
            and config.resources_length() != 0
            and not config.has_group(resource.group)
            and resource.domain in ("", config.get_domain())
        ):
            raise InvalidResourceError(
                f"multiple groups are not allowed by default, {MULTIGROUP_HINT}"
            )
        if has_different_crd_version(config, resource.api.crd_version):
            raise InvalidResourceError(
                f"only one CRD version can be used for all resources, "
                f"cannot add {resource.api.crd_version!r}"
            )

    if resource.webhooks is not None and resource.webhooks.webhook_version:
        if has_different_webhook_version(config, resource.webhooks.webhook_version):
            raise InvalidResourceError(
                f"only one webhook version can be used for all resources, "
                f"cannot add {resource.webhooks.webhook_version!r}"
            )


def add(config: ProjectConfig, resource: Resource) -> None:
    """Validate and track a new resource (no-op when already tracked)."""
    validate_new_resource(config, resource)
    config.add_resource(resource)


def update(config: ProjectConfig, resource: Resource) -> None:
    """Validate and merge *resource* into the tracked set."""
    resource.validate_fields()
    if resource.has_api() and has_different_crd_version(config, resource.api.crd_version):
        raise InvalidResourceError(
            f"only one CRD version can be used for all resources, "
            f"cannot add {resource.api.crd_version!r}"
        )
    if resource.webhooks is not None and resource.webhooks.webhook_version:
        if has_different_webhook_version(config, resource.webhooks.webhook_version):
            raise InvalidResourceError(
                f"only one webhook version can be used for all resources, "
                f"cannot add {resource.webhooks.webhook_version!r}"
            )
    config.update_resource(resource)


def replace(config: ProjectConfig, resource: Resource) -> None:
    """Swap the tracked record of *resource* for *resource*, keeping its position.

    Unlike :func:`update`, which merges flags, this can clear them.

    Raises:
        ResourceNotFoundError: If the resource is not tracked.
    """
    resources = config.get_resources()
    for index, tracked in enumerate(resources):
        if tracked.gvk.is_equal_to(resource.gvk):
            resources[index] = resource
            break
    else:
        raise ResourceNotFoundError(resource.gvk)
    for tracked in config.get_resources():
        config.remove_resource(tracked.gvk)
    for tracked in resources:
        config.add_resource(tracked)


def get(config: ProjectConfig, gvk: GVK) -> Resource:
    return config.get_resource(gvk)


def has_group(config: ProjectConfig, group: str) -> bool:
    return config.has_group(group)


def _matches(entry: Any, gvk: GVK) -> bool:
    if not isinstance(entry, dict):
        return False
    return (
        entry.get("kind") == gvk.kind
        and entry.get("version") == gvk.version
        and (entry.get("group") or "") == gvk.group
        and (not entry.get("domain") or not gvk.domain or entry.get("domain") == gvk.domain)
    )


def delete(config: ProjectConfig, gvk: GVK) -> list[str]:
    """Stop tracking *gvk* and drop it from every plugin blob that lists it.

    A plugin blob tracks resources when it holds a ``resources`` list of
    GVK-like mappings. Blobs left without resources are removed entirely.

    Returns:
        The plugin keys whose blobs were pruned.

    Raises:
        ResourceNotFoundError: If *gvk* is not tracked.
    """
    config.remove_resource(gvk)

    try:
        keys = config.plugin_config_keys()
    except UnsupportedFieldError:
        return []

    pruned: list[str] = []
    for key in keys:
        blob = config.decode_plugin_config(key)
        if not isinstance(blob, dict) or not isinstance(blob.get("resources"), list):
            continue
        remaining = [entry for entry in blob["resources"] if not _matches(entry, gvk)]
        if len(remaining) == len(blob["resources"]):
            continue
        pruned.append(key)
        if remaining:
            blob["resources"] = remaining
            config.encode_plugin_config(key, blob)
        elif len(blob) == 1:
            config.remove_plugin_config(key)
        else:
            blob.pop("resources")
            config.encode_plugin_config(key, blob)
    return pruned
