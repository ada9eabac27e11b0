"""Plugin base class, bundles and per-plugin configuration access."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Sequence, TypeVar

from pydantic import BaseModel

from kubeforge.plugin.keys import key_for, resolve_config_key
from kubeforge.project.config import ProjectConfig
from kubeforge.project.errors import PluginKeyNotFoundError, UnsupportedFieldError
from kubeforge.project.resource import Resource
from kubeforge.project.version import PluginVersion, ProjectVersion

ModelT = TypeVar("ModelT", bound=BaseModel)


class PluginError(Exception):
    """A plugin hook failed.

    Attributes:
        key: Key of the plugin that failed.
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"{key}: {message}")


@dataclass
class SubcommandContext:
    """State handed to every plugin hook of one CLI subcommand.

    Attributes:
        config: The project configuration being mutated.
        root: Directory files are scaffolded into.
        resource: The resource the subcommand targets, if any.
        options: Subcommand flags not modelled on the resource itself.
        force: Overwrite files whose policy allows it.
    """

    config: ProjectConfig
    root: Path
    resource: Resource | None = None
    options: dict[str, Any] = field(default_factory=dict)
    force: bool = False


class Plugin:
    """Base class for plugins.

    Subclasses set :attr:`name`, :attr:`version` and
    :attr:`supported_project_versions` and override the hooks they
    implement. Hooks that are not overridden do nothing.
    """

    name: ClassVar[str] = ""
    version: ClassVar[PluginVersion] = PluginVersion(1)
    supported_project_versions: ClassVar[tuple[ProjectVersion, ...]] = (ProjectVersion(3),)
    description: ClassVar[str] = ""

    @property
    def key(self) -> str:
        return key_for(self)

    def supports(self, project_version: ProjectVersion) -> bool:
        return project_version in self.supported_project_versions

    async def init(self, ctx: SubcommandContext) -> None:
        pass

    async def edit(self, ctx: SubcommandContext) -> None:
        pass

    async def create_api(self, ctx: SubcommandContext) -> None:
        pass

    async def create_webhook(self, ctx: SubcommandContext) -> None:
        pass

    async def delete_api(self, ctx: SubcommandContext) -> None:
        pass

    async def delete_webhook(self, ctx: SubcommandContext) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"


class Bundle(Plugin):
    """Re-hosts a sequence of plugins under another name.

    The bundle's key is recorded in the plugin chain; the wrapped plugins
    find their configuration under it through :func:`resolve_config_key`.
    """

    def __init__(self, name: str, version: PluginVersion, plugins: Sequence[Plugin]) -> None:
        if not plugins:
            raise ValueError(f"bundle {name!r} must wrap at least one plugin")
        self.name = name  # type: ignore[misc]
        self.version = version  # type: ignore[misc]
        self.plugins = list(plugins)
        supported = set(plugins[0].supported_project_versions)
        for plugin in plugins[1:]:
            supported &= set(plugin.supported_project_versions)
        self.supported_project_versions = tuple(sorted(supported))  # type: ignore[misc]

    async def init(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.init(ctx)

    async def edit(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.edit(ctx)

    async def create_api(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.create_api(ctx)

    async def create_webhook(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.create_webhook(ctx)

    async def delete_api(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.delete_api(ctx)

    async def delete_webhook(self, ctx: SubcommandContext) -> None:
        for plugin in self.plugins:
            await plugin.delete_webhook(ctx)


# ---------------------------------------------------------------------------
# Per-plugin configuration blobs
# ---------------------------------------------------------------------------


def config_key(config: ProjectConfig, plugin: Plugin) -> str:
    """Key *plugin* reads and writes its blob under in *config*."""
    return resolve_config_key(config.get_plugin_chain(), plugin)


def load_plugin_config(
    config: ProjectConfig, plugin: Plugin, model: type[ModelT]
) -> ModelT | None:
    """Decode the configuration blob of *plugin* into *model*.

    The resolved key is tried first, then the canonical key. A project
    schema without plugin configuration yields ``None`` (skip); a blob that
    does not exist yet yields an empty *model*.

    Raises:
        DecodeError: If the stored blob does not match *model*.
    """
    resolved = config_key(config, plugin)
    candidates = [resolved]
    if resolved != key_for(plugin):
        candidates.append(key_for(plugin))

    for key in candidates:
        try:
            return config.decode_plugin_config(key, model)
        except UnsupportedFieldError:
            return None
        except PluginKeyNotFoundError:
            continue
    return model()


def save_plugin_config(config: ProjectConfig, plugin: Plugin, blob: BaseModel | dict[str, Any]) -> str:
    """Store *blob* under the resolved key of *plugin* and return the key.

    Raises:
        UnsupportedFieldError: If the project schema has no plugin configuration.
    """
    key = config_key(config, plugin)
    config.encode_plugin_config(key, blob)
    return key
