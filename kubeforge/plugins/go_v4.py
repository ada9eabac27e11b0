"""The ``go.kubebuilder.io/v4`` layout plugin.

Scaffolds the project skeleton on ``init`` and the API types, controllers
and webhooks of individual resources, and keeps the resource records of the
``PROJECT`` file in sync.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

from kubeforge.plugin.base import Plugin, PluginError, SubcommandContext
from kubeforge.project import registry
from kubeforge.project.config import ProjectConfig
from kubeforge.project.errors import UnsupportedFieldError
from kubeforge.project.resource import Resource, api_package_path
from kubeforge.project.version import PluginVersion, ProjectVersion
from kubeforge.scaffolder import IfExists, TemplateFile, TemplateScaffolder
from kubeforge.utils import print_success, print_warning

DEFAULT_DOMAIN = "my.domain"

# Kubernetes core groups and the package their types live in.
CORE_GROUPS: dict[str, str] = {
    "admission": "k8s.io/api/admission",
    "admissionregistration": "k8s.io/api/admissionregistration",
    "apps": "k8s.io/api/apps",
    "authentication": "k8s.io/api/authentication",
    "authorization": "k8s.io/api/authorization",
    "autoscaling": "k8s.io/api/autoscaling",
    "batch": "k8s.io/api/batch",
    "certificates": "k8s.io/api/certificates",
    "coordination": "k8s.io/api/coordination",
    "core": "k8s.io/api/core",
    "events": "k8s.io/api/events",
    "networking": "k8s.io/api/networking",
    "policy": "k8s.io/api/policy",
    "rbac": "k8s.io/api/rbac",
    "scheduling": "k8s.io/api/scheduling",
    "storage": "k8s.io/api/storage",
}

INIT_FILES = [
    TemplateFile("go/init/boilerplate.go.txt.j2", "hack/boilerplate.go.txt", IfExists.OVERWRITE),
    TemplateFile("go/init/go.mod.j2", "go.mod", IfExists.SKIP),
    TemplateFile("go/init/Makefile.j2", "Makefile", IfExists.ERROR),
    TemplateFile("go/init/main.go.j2", "cmd/main.go", IfExists.ERROR),
    TemplateFile("go/init/Dockerfile.j2", "Dockerfile", IfExists.SKIP),
    TemplateFile("go/init/gitignore.j2", ".gitignore", IfExists.SKIP),
    TemplateFile("go/init/README.md.j2", "README.md", IfExists.SKIP),
]

API_FILES = [
    TemplateFile(
        "go/api/types.go.j2",
        "api/%[version]/%[kind]_types.go",
        IfExists.ERROR,
        force_overwrite=True,
        multigroup_path="api/%[group]/%[version]/%[kind]_types.go",
    ),
    TemplateFile(
        "go/api/groupversion_info.go.j2",
        "api/%[version]/groupversion_info.go",
        IfExists.SKIP,
        multigroup_path="api/%[group]/%[version]/groupversion_info.go",
    ),
    TemplateFile(
        "go/api/sample.yaml.j2",
        "config/samples/%[group]_%[version]_%[kind].yaml",
        IfExists.SKIP,
        force_overwrite=True,
    ),
]

CONTROLLER_FILES = [
    TemplateFile(
        "go/controller/controller.go.j2",
        "internal/controller/%[kind]_controller.go",
        IfExists.ERROR,
        force_overwrite=True,
        multigroup_path="internal/controller/%[group]/%[kind]_controller.go",
    ),
]

# Rendered from the merged resource, so re-running with more webhook types
# regenerates the file with all of them.
WEBHOOK_FILES = [
    TemplateFile(
        "go/webhook/webhook.go.j2",
        "internal/webhook/%[version]/%[kind]_webhook.go",
        IfExists.OVERWRITE,
        multigroup_path="internal/webhook/%[group]/%[version]/%[kind]_webhook.go",
    ),
]

_MODULE_RE = re.compile(r"^module\s+(\S+)", re.MULTILINE)


def repo_from_go_mod(root: Path) -> str:
    """Return the module path declared in ``go.mod`` under *root*, or ``""``."""
    go_mod = root / "go.mod"
    if not go_mod.is_file():
        return ""
    match = _MODULE_RE.search(go_mod.read_text(encoding="utf-8"))
    return match.group(1) if match else ""


def complete_resource(ctx: SubcommandContext, resource: Resource) -> Resource:
    """Fill the derived fields of a resource about to be registered.

    Sets the domain, marks Kubernetes core types, and derives the import
    path for APIs scaffolded in the project.
    """
    config = ctx.config
    resource = resource.model_copy(deep=True)
    external_path = ctx.options.get("external_api_path") or ""
    external_domain = ctx.options.get("external_api_domain") or ""

    if external_path:
        resource.external = True
        resource.path = external_path
        resource.domain = external_domain or resource.domain
    elif not resource.has_api() and resource.group in CORE_GROUPS and not resource.domain:
        resource.core = True
        resource.domain = "k8s.io"
        resource.path = f"{CORE_GROUPS[resource.group]}/{resource.version}"
    else:
        if not resource.domain:
            resource.domain = config.get_domain()
        if resource.has_api() and not resource.path:
            resource.path = api_package_path(
                config.get_repository(), resource.group, resource.version, config.is_multigroup()
            )
    return resource


def register_api(ctx: SubcommandContext, resource: Resource) -> Resource:
    """Validate *resource* and record it; return the tracked, merged copy."""
    config = ctx.config
    if ctx.force and config.has_resource(resource.gvk):
        registry.update(config, resource)
    elif config.has_resource(resource.gvk):
        registry.validate_new_resource(config, resource)
        registry.update(config, resource)
    else:
        registry.add(config, resource)
    return config.get_resource(resource.gvk)


def find_tracked(config: ProjectConfig, resource: Resource) -> Resource | None:
    """Return the tracked resource a domain-less request refers to, if any."""
    for domain in dict.fromkeys([resource.domain, config.get_domain(), "k8s.io"]):
        gvk = resource.gvk.model_copy(update={"domain": domain})
        if config.has_resource(gvk):
            return config.get_resource(gvk)
    return None


async def scaffold_api(
    ctx: SubcommandContext, resource: Resource, extra: dict[str, Any] | None = None
) -> list[Path]:
    """Write the API and controller files *resource* asks for."""
    files: list[TemplateFile] = []
    if resource.has_api():
        files.extend(API_FILES)
    if resource.has_controller():
        files.extend(CONTROLLER_FILES)
    if not files:
        return []
    scaffolder = TemplateScaffolder(ctx.root, files, force=ctx.force, extra=extra)
    return await scaffolder.scaffold(ctx.config, resource)


class GoV4Plugin(Plugin):
    """Default Go layout."""

    name = "go.kubebuilder.io"
    version = PluginVersion(4)
    supported_project_versions = (ProjectVersion(3),)
    description = "Go operator layout"

    async def init(self, ctx: SubcommandContext) -> None:
        config = ctx.config
        config.set_domain(ctx.options.get("domain") or DEFAULT_DOMAIN)

        repo = ctx.options.get("repo") or repo_from_go_mod(ctx.root)
        if not repo:
            raise PluginError(self.key, "--repo is required when no go.mod exists")
        config.set_repository(repo)

        project_name = ctx.options.get("project_name") or ctx.root.resolve().name
        try:
            config.set_project_name(project_name.lower())
        except UnsupportedFieldError:
            print_warning(f"project version {config.version()} does not record a project name")

        extra = {"owner": ctx.options["owner"]} if ctx.options.get("owner") else None
        await TemplateScaffolder(ctx.root, INIT_FILES, force=ctx.force, extra=extra).scaffold(config)
        print_success(f"Initialised {config.get_project_name() or project_name} for {repo}")

    async def edit(self, ctx: SubcommandContext) -> None:
        multigroup = ctx.options.get("multigroup")
        if multigroup is True:
            ctx.config.set_multigroup()
        elif multigroup is False:
            ctx.config.clear_multigroup()

    async def create_api(self, ctx: SubcommandContext) -> None:
        if ctx.resource is None:
            raise PluginError(self.key, "create api needs a resource")
        if ctx.resource.has_api() and ctx.options.get("external_api_path"):
            raise PluginError(
                self.key,
                "cannot use --external-api-path when creating an API in the project, "
                "use --resource=false to reference an external API",
            )

        resource = complete_resource(ctx, ctx.resource)
        if not resource.has_api() and not resource.has_controller():
            print_warning("Neither --resource nor --controller was requested; nothing to scaffold")
            return
        tracked = register_api(ctx, resource)
        await scaffold_api(ctx, tracked)
        ctx.resource = tracked

    async def create_webhook(self, ctx: SubcommandContext) -> None:
        if ctx.resource is None or ctx.resource.webhooks is None:
            raise PluginError(self.key, "create webhook needs a resource with webhook options")
        config = ctx.config
        resource = ctx.resource

        tracked = find_tracked(config, resource)
        if tracked is not None:
            resource = resource.model_copy(update={"domain": tracked.domain, "path": tracked.path})
            self._check_duplicate_webhooks(ctx, tracked, resource)
        else:
            resource = complete_resource(ctx, resource)
            if not resource.core and not resource.external:
                raise PluginError(
                    self.key,
                    f"resource {resource.gvk} does not exist, run 'create api' first "
                    "or reference an external API with --external-api-path",
                )
        if not resource.has_webhooks():
            raise PluginError(
                self.key,
                "at least one of --defaulting, --programmatic-validation or --conversion is required",
            )
        registry.update(config, resource)
        tracked = config.get_resource(resource.gvk)
        await TemplateScaffolder(ctx.root, WEBHOOK_FILES, force=ctx.force).scaffold(config, tracked)
        ctx.resource = tracked

    def _check_duplicate_webhooks(
        self, ctx: SubcommandContext, tracked: Resource, requested: Resource
    ) -> None:
        if ctx.force:
            return
        for kind, has_tracked, has_requested in (
            ("defaulting", tracked.has_defaulting_webhook(), requested.has_defaulting_webhook()),
            ("validation", tracked.has_validation_webhook(), requested.has_validation_webhook()),
            ("conversion", tracked.has_conversion_webhook(), requested.has_conversion_webhook()),
        ):
            if has_tracked and has_requested:
                raise PluginError(
                    self.key, f"{kind} webhook for {tracked.gvk} already exists, use --force"
                )

    async def delete_api(self, ctx: SubcommandContext) -> None:
        if ctx.resource is None:
            raise PluginError(self.key, "delete api needs a resource")
        config = ctx.config
        tracked = config.get_resource(ctx.resource.gvk)
        files = [*API_FILES, *CONTROLLER_FILES, *WEBHOOK_FILES]
        # groupversion_info.go is shared by every kind of the group version.
        siblings = [
            other
            for other in config.get_resources()
            if other.group == tracked.group
            and other.version == tracked.version
            and other.kind != tracked.kind
            and other.has_api()
        ]
        if siblings:
            files = [f for f in files if not f.template.endswith("groupversion_info.go.j2")]
        await TemplateScaffolder(ctx.root, files).remove(config, tracked)

        pruned = registry.delete(config, tracked.gvk)
        for key in pruned:
            print_warning(f"Removed {tracked.kind} from the configuration of plugin {key}")
        print_success(f"Deleted API {tracked.gvk}")

    async def delete_webhook(self, ctx: SubcommandContext) -> None:
        """Drop the requested webhook types, or all of them when none is requested.

        The webhook file is re-rendered for the types left and removed with
        the last one. A resource left with no API, controller or webhook is
        no longer tracked.
        """
        if ctx.resource is None:
            raise PluginError(self.key, "delete webhook needs a resource")
        config = ctx.config
        tracked = config.get_resource(ctx.resource.gvk)
        if not tracked.has_webhooks():
            raise PluginError(self.key, f"resource {tracked.gvk} has no webhooks")

        present = {
            "defaulting": tracked.has_defaulting_webhook(),
            "validation": tracked.has_validation_webhook(),
            "conversion": tracked.has_conversion_webhook(),
        }
        requested = [kind for kind in present if ctx.options.get(kind)]
        if not requested:
            requested = [kind for kind, found in present.items() if found]
        for kind in requested:
            if not present[kind]:
                raise PluginError(self.key, f"resource {tracked.gvk} has no {kind} webhook")

        webhooks = tracked.webhooks.model_copy(update={kind: False for kind in requested})
        if "conversion" in requested:
            webhooks.spoke = []
        scaffolder = TemplateScaffolder(ctx.root, WEBHOOK_FILES)
        if webhooks.defaulting or webhooks.validation or webhooks.conversion:
            updated = tracked.model_copy(update={"webhooks": webhooks})
            registry.replace(config, updated)
            await scaffolder.scaffold(config, updated)
        else:
            await scaffolder.remove(config, tracked)
            updated = tracked.model_copy(update={"webhooks": None})
            if updated.has_api() or updated.has_controller():
                registry.replace(config, updated)
            else:
                registry.delete(config, tracked.gvk)
        ctx.resource = updated
        print_success(f"Deleted {', '.join(requested)} webhook for {tracked.gvk}")
