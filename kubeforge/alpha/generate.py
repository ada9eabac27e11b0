"""Regenerate a project from scratch out of its ``PROJECT`` file.

The configuration is read into memory, the output directory is emptied
(keeping ``.git``), and the CLI is re-invoked as a subprocess to replay
``init``, ``edit``, ``create api`` and ``create webhook`` for everything the
file records. The upgrade orchestrator runs this with both the old and the
new generator binary.
"""

from __future__ import annotations

import asyncio
import os
import shutil
import sys
from pathlib import Path

from kubeforge.config import Settings
from kubeforge.plugin.base import Plugin, PluginError, load_plugin_config
from kubeforge.plugin.keys import resolve_config_key
from kubeforge.plugins import (
    DEFAULT_LAYOUT,
    DeployImagePlugin,
    available_plugins,
    find_plugin,
    upgrade_layout,
)
from kubeforge.plugins.deploy_image import DeployImageConfig, ImageOptions, image_resources
from kubeforge.project.config import ProjectConfig
from kubeforge.project.resource import API, Resource
from kubeforge.project.store import YamlStore
from kubeforge.utils import (
    CommandError,
    print_phase_header,
    print_step,
    print_success,
    print_warning,
    run_checked,
    run_command,
)

# Formatting steps run after regeneration; failures only warn.
POST_GENERATE_TARGETS = ["fmt", "vet", "lint-fix"]


class GenerateError(Exception):
    """Regeneration failed.

    Attributes:
        command: The CLI invocation that failed, if any.
    """

    def __init__(self, message: str, command: str = "") -> None:
        self.command = command
        super().__init__(message)


def self_command(binary_name: str = "kubeforge") -> list[str]:
    """Argument vector that re-invokes the CLI.

    *binary_name* is looked up on ``PATH`` first, so a generator whose
    directory leads ``PATH`` replays the project with itself. A CLI started
    from an executable file falls back to that file, and a CLI started with
    ``python -m`` to the running interpreter.
    """
    found = shutil.which(binary_name)
    if found:
        return [found]
    argv0 = Path(sys.argv[0]) if sys.argv and sys.argv[0] else None
    if argv0 is not None and argv0.suffix != ".py" and argv0.is_file() and os.access(argv0, os.X_OK):
        return [str(argv0.resolve())]
    return [sys.executable, "-m", "kubeforge"]


# ---------------------------------------------------------------------------
# Argument builders
# ---------------------------------------------------------------------------


def init_args(config: ProjectConfig, plugins: list[Plugin] | None = None) -> list[str]:
    chain = []
    for key in config.get_plugin_chain():
        key = upgrade_layout(key)
        try:
            find_plugin(key, plugins)
        except PluginError:
            print_warning(f"Plugin {key} is not available, it will not be replayed")
            continue
        chain.append(key)
    chain = chain or [DEFAULT_LAYOUT]
    args = ["init", "--plugins", ",".join(dict.fromkeys(chain))]
    if config.get_domain():
        args += ["--domain", config.get_domain()]
    if config.get_repository():
        args += ["--repo", config.get_repository()]
    if config.get_project_name():
        args += ["--project-name", config.get_project_name()]
    return args


def _gvk_args(resource: Resource) -> list[str]:
    args = []
    if resource.group:
        args += ["--group", resource.group]
    args += ["--version", resource.version, "--kind", resource.kind]
    return args


def api_args(resource: Resource) -> list[str]:
    args = ["create", "api", *_gvk_args(resource)]
    if resource.plural and not resource.is_regular_plural():
        args += ["--plural", resource.plural]
    if resource.has_api():
        args.append("--resource")
        args.append("--namespaced" if resource.api.namespaced else "--namespaced=false")
    else:
        args.append("--resource=false")
    args.append("--controller" if resource.has_controller() else "--controller=false")
    if resource.is_external():
        args += ["--external-api-path", resource.path, "--external-api-domain", resource.domain]
    return args


def webhook_args(resource: Resource) -> list[str]:
    args = ["create", "webhook", *_gvk_args(resource)]
    if resource.is_external():
        args += ["--external-api-path", resource.path, "--external-api-domain", resource.domain]
    if resource.has_defaulting_webhook():
        args.append("--defaulting")
    if resource.has_validation_webhook():
        args.append("--programmatic-validation")
    if resource.has_conversion_webhook():
        args.append("--conversion")
        for spoke in resource.webhooks.spoke:
            args += ["--spoke", spoke]
    return args


def deploy_image_args(
    resource: Resource, options: ImageOptions, plugin_key: str | None = None
) -> list[str]:
    args = ["create", "api", *_gvk_args(resource), f"--image={options.image}"]
    if options.container_command:
        args.append(f"--image-container-command={options.container_command}")
    if options.container_port:
        args.append(f"--image-container-port={options.container_port}")
    if options.run_as_user:
        args.append(f"--run-as-user={options.run_as_user}")
    args.append(f"--plugins={plugin_key or DeployImagePlugin().key}")
    return args


def image_plugin_key(config: ProjectConfig, plugins: list[Plugin] | None = None) -> str:
    """Key deploy-image resources are replayed with.

    A bundle re-hosting the plugin is used when the chain records one that
    is registered, so the blob stays under the bundle's key.
    """
    plugin = DeployImagePlugin()
    key = resolve_config_key(config.get_plugin_chain(), plugin)
    try:
        find_plugin(key, plugins)
    except PluginError:
        return plugin.key
    return key


def replay_resources(config: ProjectConfig) -> list[Resource]:
    """Resources to replay, with legacy records expanded to API plus controller."""
    resources = config.get_resources()
    if config.version().number < 3:
        # Schema 2 records only carry the GVK.
        return [
            resource.model_copy(
                update={"api": API(crd_version="v1", namespaced=True), "controller": True}
            )
            for resource in resources
        ]
    return resources


# ---------------------------------------------------------------------------
# Generator
# ---------------------------------------------------------------------------


class Generator:
    """Replays a project's configuration into a clean directory.

    Args:
        input_dir: Directory holding the ``PROJECT`` file.
        output_dir: Directory to regenerate into (the input directory by
            default, which is then emptied first).
        settings: Tool settings (project file name, timeouts).
        command: Argument vector of the CLI to re-invoke.
        plugins: Plugins and bundles the recorded chain resolves against
            (the bundled ones by default).
    """

    def __init__(
        self,
        input_dir: str | Path = ".",
        output_dir: str | Path | None = None,
        settings: Settings | None = None,
        command: list[str] | None = None,
        plugins: list[Plugin] | None = None,
    ) -> None:
        self.input_dir = Path(input_dir).resolve()
        self.output_dir = Path(output_dir).resolve() if output_dir else self.input_dir
        self.settings = settings or Settings()
        self.command = command or self_command(self.settings.binary_name)
        self.plugins = plugins if plugins is not None else available_plugins()

    def load(self) -> ProjectConfig:
        store = YamlStore(self.input_dir, self.settings.project_file)
        return store.load()

    async def generate(self) -> None:
        """Regenerate the project.

        Raises:
            LoadError: If the ``PROJECT`` file cannot be read.
            DecodeError: If it cannot be decoded.
            GenerateError: If any replayed CLI invocation fails.
        """
        config = self.load()
        print_phase_header(f"Regenerating project into {self.output_dir}")

        if self.output_dir == self.input_dir:
            print_warning(f"Removing every file in {self.output_dir} except .git before regenerating")
        await asyncio.to_thread(clean_directory, self.output_dir)

        await self._run(init_args(config, self.plugins))
        if config.is_multigroup():
            await self._run(["edit", "--multigroup"])

        image_blob = load_plugin_config(config, DeployImagePlugin(), DeployImageConfig)
        images = image_resources(image_blob)
        image_gvks = [resource.gvk for resource, _ in images]

        resources = replay_resources(config)
        for resource in resources:
            if any(resource.gvk.is_equal_to(gvk) for gvk in image_gvks):
                continue
            if not resource.has_api() and not resource.has_controller():
                continue
            await self._run(api_args(resource))

        image_key = image_plugin_key(config, self.plugins)
        for resource, options in images:
            await self._run(deploy_image_args(resource, options, image_key))

        for resource in resources:
            if resource.has_webhooks():
                await self._run(webhook_args(resource))

        await self._post_generate()
        print_success(f"Project regenerated in {self.output_dir}")

    async def _run(self, args: list[str]) -> None:
        cmd = [*self.command, *args]
        print_step(" ".join(args))
        try:
            await run_checked(
                cmd, cwd=self.output_dir, timeout=self.settings.command_timeout, capture=False
            )
        except CommandError as exc:
            raise GenerateError(f"regeneration step failed: {exc}", command=exc.command) from exc

    async def _post_generate(self) -> None:
        for target in POST_GENERATE_TARGETS:
            print_step(f"Running make {target}")
            returncode, _, stderr = await run_command(
                ["make", target],
                cwd=self.output_dir,
                timeout=self.settings.command_timeout,
                capture=False,
            )
            if returncode != 0:
                detail = f": {stderr}" if stderr else ""
                print_warning(f"make {target} failed (exit {returncode}){detail}")


def clean_directory(path: Path) -> None:
    """Create *path* if needed and delete everything in it except ``.git``."""
    path.mkdir(parents=True, exist_ok=True)
    for entry in path.iterdir():
        if entry.name == ".git":
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
