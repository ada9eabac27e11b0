"""The ``deploy-image.go.kubebuilder.io/v1-alpha`` plugin.

Scaffolds an API whose controller runs a given container image, and records
the image options of every such resource in its own configuration blob so
the project can be regenerated later.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from kubeforge.plugin.base import (
    Plugin,
    PluginError,
    SubcommandContext,
    load_plugin_config,
    save_plugin_config,
)
from kubeforge.plugins.go_v4 import complete_resource, register_api, scaffold_api
from kubeforge.project.resource import API, GVK, Resource
from kubeforge.project.version import PluginVersion, ProjectVersion, Stage
from kubeforge.utils import print_success


class ImageOptions(BaseModel):
    """Container options of one deploy-image resource."""

    model_config = ConfigDict(populate_by_name=True)

    image: str
    container_command: str | None = Field(default=None, alias="containerCommand")
    container_port: str | None = Field(default=None, alias="containerPort")
    run_as_user: str | None = Field(default=None, alias="runAsUser")


class ImageResource(BaseModel):
    """A resource tracked by the plugin, with its image options."""

    group: str = ""
    domain: str = ""
    version: str
    kind: str
    options: ImageOptions

    @property
    def gvk(self) -> GVK:
        return GVK(group=self.group, domain=self.domain, version=self.version, kind=self.kind)


class DeployImageConfig(BaseModel):
    """Blob stored under the plugin's key in ``PROJECT``."""

    resources: list[ImageResource] = Field(default_factory=list)


class DeployImagePlugin(Plugin):
    name = "deploy-image.go.kubebuilder.io"
    version = PluginVersion(1, Stage.ALPHA)
    supported_project_versions = (ProjectVersion(3),)
    description = "Scaffold an API whose controller deploys a container image"

    async def create_api(self, ctx: SubcommandContext) -> None:
        if ctx.resource is None:
            raise PluginError(self.key, "create api needs a resource")
        image = ctx.options.get("image")
        if not image:
            raise PluginError(self.key, "--image is required")

        options = ImageOptions(
            image=image,
            container_command=ctx.options.get("image_container_command") or None,
            container_port=ctx.options.get("image_container_port") or None,
            run_as_user=ctx.options.get("run_as_user") or None,
        )

        # The image controller always needs its own namespaced API type.
        requested = ctx.resource.model_copy(
            update={
                "api": ctx.resource.api or API(crd_version="v1", namespaced=True),
                "controller": True,
            }
        )
        resource = complete_resource(ctx, requested)
        tracked = register_api(ctx, resource)
        await scaffold_api(
            ctx,
            tracked,
            extra={
                "image": options.image,
                "container_command": options.container_command or "",
                "container_port": options.container_port or "",
                "run_as_user": options.run_as_user or "",
            },
        )
        ctx.resource = tracked

        blob = load_plugin_config(ctx.config, self, DeployImageConfig)
        if blob is None:
            return
        blob.resources = [r for r in blob.resources if not r.gvk.is_equal_to(tracked.gvk)]
        blob.resources.append(
            ImageResource(
                group=tracked.group,
                domain=tracked.domain,
                version=tracked.version,
                kind=tracked.kind,
                options=options,
            )
        )
        key = save_plugin_config(ctx.config, self, blob)
        print_success(f"Recorded image {options.image} for {tracked.kind} under {key}")


def image_resources(blob: DeployImageConfig | None) -> list[tuple[Resource, ImageOptions]]:
    """Return the resources of a decoded blob paired with their image options."""
    if blob is None:
        return []
    return [(Resource.from_gvk(entry.gvk), entry.options) for entry in blob.resources]
