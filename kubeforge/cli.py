"""Command-line interface.

Every subcommand follows the same flow: load the ``PROJECT`` file through the
store, resolve the plugin chain, run the matching hook of each plugin, and
save the mutated configuration. Errors are rendered with :func:`print_error`
and turn into exit status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Sequence

from kubeforge import __version__
from kubeforge.alpha.generate import GenerateError, Generator
from kubeforge.alpha.update import UpgradeError, UpgradeOrchestrator
from kubeforge.config import Settings
from kubeforge.plugin.base import Plugin, PluginError, SubcommandContext
from kubeforge.plugins import DEFAULT_LAYOUT, available_plugins, resolve_chain
from kubeforge.project.config import ProjectConfig
from kubeforge.project.errors import (
    ProjectConfigError,
    ResourceNotFoundError,
    UnsupportedFieldError,
)
from kubeforge.project.resource import API, GVK, Resource, Webhooks
from kubeforge.project.store import YamlStore
from kubeforge.scaffolder import ScaffoldError
from kubeforge.utils import console, print_error, print_warning

# Exit status of ``alpha update`` when conflicts remain and --force is not set.
EXIT_CONFLICTS = 2

_TRUE = {"true", "t", "yes", "y", "1"}
_FALSE = {"false", "f", "no", "n", "0"}


def _flag(value: str | bool) -> bool:
    """Parse ``--flag``, ``--flag=true`` and ``--flag=false`` style values."""
    if isinstance(value, bool):
        return value
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"expected a boolean, got {value!r}")


def _split_keys(value: str | None) -> list[str]:
    if not value:
        return []
    return [key.strip() for key in value.split(",") if key.strip()]


# ---------------------------------------------------------------------------
# Shared plumbing
# ---------------------------------------------------------------------------


def _plugins_for(config: ProjectConfig, requested: str | None, available: list[Plugin]) -> list[Plugin]:
    """Plugins to run: the ``--plugins`` flag if given, else the recorded chain.

    Keys are looked up among *available*, the bundled plugins plus any
    registered with :func:`main`.
    """
    keys = _split_keys(requested)
    if not keys:
        keys = config.get_plugin_chain() or [DEFAULT_LAYOUT]
    plugins = resolve_chain(keys, available)
    for plugin in plugins:
        if not plugin.supports(config.version()):
            raise PluginError(
                plugin.key,
                f"project version {config.version()} is not supported, "
                "run 'kubeforge alpha generate' to migrate the project",
            )
    return plugins


async def _run_hooks(plugins: list[Plugin], hook: str, ctx: SubcommandContext) -> None:
    for plugin in plugins:
        await getattr(plugin, hook)(ctx)


def _load(settings: Settings) -> YamlStore:
    store = YamlStore(Path.cwd(), settings.project_file)
    store.load()
    return store


def _tracked(config: ProjectConfig, group: str, version: str, kind: str) -> Resource:
    """Find a tracked resource by group, version and kind, whatever its domain."""
    for resource in config.get_resources():
        if (resource.group, resource.version, resource.kind) == (group, version, kind):
            return resource
    raise ResourceNotFoundError(GVK(group=group, version=version, kind=kind))


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def cmd_init(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    root = Path.cwd()
    store = YamlStore(root, settings.project_file)
    if store.exists():
        raise PluginError("init", f"{settings.project_file} already exists, the project is initialised")

    config = store.new(args.project_version)
    plugins = _plugins_for(config, args.plugins or DEFAULT_LAYOUT, available)
    try:
        config.set_plugin_chain([plugin.key for plugin in plugins])
        config.set_cli_version(__version__)
    except UnsupportedFieldError as exc:
        print_warning(str(exc))

    ctx = SubcommandContext(
        config=config,
        root=root,
        options={
            "domain": args.domain,
            "repo": args.repo,
            "project_name": args.project_name,
            "owner": args.owner,
        },
        force=args.force,
    )
    asyncio.run(_run_hooks(plugins, "init", ctx))
    store.save()
    return 0


def cmd_edit(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    store = _load(settings)
    config = store.config
    plugins = _plugins_for(config, args.plugins, available)
    ctx = SubcommandContext(config=config, root=Path.cwd(), options={"multigroup": args.multigroup})
    asyncio.run(_run_hooks(plugins, "edit", ctx))
    store.save()
    return 0


def cmd_create_api(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    store = _load(settings)
    config = store.config
    plugins = _plugins_for(config, args.plugins, available)
    resource = Resource(
        group=args.group,
        version=args.version,
        kind=args.kind,
        plural=args.plural or "",
        api=API(crd_version="v1", namespaced=args.namespaced) if args.resource else None,
        controller=args.controller,
    )
    ctx = SubcommandContext(
        config=config,
        root=Path.cwd(),
        resource=resource,
        options={
            "external_api_path": args.external_api_path,
            "external_api_domain": args.external_api_domain,
            "image": args.image,
            "image_container_command": args.image_container_command,
            "image_container_port": args.image_container_port,
            "run_as_user": args.run_as_user,
        },
        force=args.force,
    )
    asyncio.run(_run_hooks(plugins, "create_api", ctx))
    store.save()
    return 0


def cmd_create_webhook(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    store = _load(settings)
    config = store.config
    plugins = _plugins_for(config, args.plugins, available)
    resource = Resource(
        group=args.group,
        version=args.version,
        kind=args.kind,
        plural=args.plural or "",
        webhooks=Webhooks(
            webhook_version="v1",
            defaulting=args.defaulting,
            validation=args.programmatic_validation,
            conversion=args.conversion,
            spoke=args.spoke or [],
        ),
    )
    ctx = SubcommandContext(
        config=config,
        root=Path.cwd(),
        resource=resource,
        options={
            "external_api_path": args.external_api_path,
            "external_api_domain": args.external_api_domain,
        },
        force=args.force,
    )
    asyncio.run(_run_hooks(plugins, "create_webhook", ctx))
    store.save()
    return 0


def cmd_delete_api(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    store = _load(settings)
    config = store.config
    plugins = _plugins_for(config, args.plugins, available)
    resource = _tracked(config, args.group, args.version, args.kind)
    ctx = SubcommandContext(config=config, root=Path.cwd(), resource=resource)
    asyncio.run(_run_hooks(plugins, "delete_api", ctx))
    store.save()
    return 0


def cmd_delete_webhook(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    store = _load(settings)
    config = store.config
    plugins = _plugins_for(config, args.plugins, available)
    resource = _tracked(config, args.group, args.version, args.kind)
    ctx = SubcommandContext(
        config=config,
        root=Path.cwd(),
        resource=resource,
        options={
            "defaulting": args.defaulting,
            "validation": args.programmatic_validation,
            "conversion": args.conversion,
        },
    )
    asyncio.run(_run_hooks(plugins, "delete_webhook", ctx))
    store.save()
    return 0


def cmd_alpha_generate(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    generator = Generator(args.input_dir, args.output_dir, settings=settings, plugins=available)
    asyncio.run(generator.generate())
    return 0


def cmd_alpha_update(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    orchestrator = UpgradeOrchestrator(
        Path.cwd(),
        from_version=args.from_version or "",
        from_branch=args.from_branch,
        settings=settings,
        to_version=args.to_version or "",
        force=args.force,
        show_commits=args.show_commits,
        output_branch=args.output_branch or "",
        restore_paths=args.restore_path or [],
        git_config=args.git_config or [],
        merge_message=args.merge_message or "",
        conflict_message=args.conflict_message or "",
    )
    session = asyncio.run(orchestrator.run())
    if session.has_conflicts and not args.force:
        return EXIT_CONFLICTS
    return 0


def cmd_version(args: argparse.Namespace, settings: Settings, available: list[Plugin]) -> int:
    console.print(f"kubeforge {__version__}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_gvk_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--group", default="", help="Resource group (empty for the core group)")
    parser.add_argument("--version", required=True, help="Resource version, e.g. v1")
    parser.add_argument("--kind", required=True, help="Resource kind, e.g. Memcached")


def _add_plugins_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--plugins",
        default=None,
        help="Comma-separated plugin keys (default: the chain recorded in PROJECT)",
    )


def _add_bool_argument(
    parser: argparse.ArgumentParser, name: str, default: bool | None, help_text: str
) -> None:
    dest = name.replace("-", "_")
    parser.add_argument(f"--{name}", dest=dest, type=_flag, nargs="?", const=True, default=default, help=help_text)
    parser.add_argument(f"--no-{name}", dest=dest, action="store_false", help=argparse.SUPPRESS)


def _add_external_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--external-api-path", default="", help="Go import path of an external API")
    parser.add_argument("--external-api-domain", default="", help="Domain of the external API")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubeforge",
        description="kubeforge -- scaffold and upgrade Kubernetes operator projects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  kubeforge init --domain example.com --repo github.com/example/memcached\n"
            "  kubeforge create api --group cache --version v1alpha1 --kind Memcached\n"
            "  kubeforge create webhook --group cache --version v1alpha1 --kind Memcached --defaulting\n"
            "  kubeforge alpha update --from-branch main\n"
        ),
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    init = commands.add_parser("init", help="Initialise a new project")
    init.add_argument("--domain", default="", help="Domain for API groups (default: my.domain)")
    init.add_argument("--repo", default="", help="Go module path (default: read from go.mod)")
    init.add_argument("--project-name", default="", help="Project name (default: directory name)")
    init.add_argument("--owner", default="", help="Copyright owner for the boilerplate header")
    init.add_argument("--plugins", default=DEFAULT_LAYOUT, help=f"Plugin chain (default: {DEFAULT_LAYOUT})")
    init.add_argument("--project-version", default="3", help="PROJECT schema version (default: 3)")
    init.add_argument("--force", action="store_true", help="Overwrite files where allowed")
    init.set_defaults(handler=cmd_init)

    edit = commands.add_parser("edit", help="Change project-wide settings")
    _add_bool_argument(edit, "multigroup", None, "Lay out APIs in one directory per group")
    _add_plugins_argument(edit)
    edit.set_defaults(handler=cmd_edit)

    create = commands.add_parser("create", help="Scaffold an API or webhook")
    create_commands = create.add_subparsers(dest="create_command", metavar="KIND")
    create_commands.required = True

    api = create_commands.add_parser("api", help="Scaffold an API type and/or controller")
    _add_gvk_arguments(api)
    api.add_argument("--plural", default="", help="Plural form, when not the regular one")
    _add_bool_argument(api, "resource", True, "Scaffold the API type")
    _add_bool_argument(api, "controller", True, "Scaffold the controller")
    _add_bool_argument(api, "namespaced", True, "Namespaced (rather than cluster-scoped) API")
    _add_external_arguments(api)
    api.add_argument("--image", default="", help="Container image (deploy-image plugin)")
    api.add_argument("--image-container-command", default="", help="Container command (deploy-image plugin)")
    api.add_argument("--image-container-port", default="", help="Container port (deploy-image plugin)")
    api.add_argument("--run-as-user", default="", help="User id to run as (deploy-image plugin)")
    api.add_argument("--force", action="store_true", help="Re-scaffold files where allowed")
    _add_plugins_argument(api)
    api.set_defaults(handler=cmd_create_api)

    webhook = create_commands.add_parser("webhook", help="Scaffold webhooks for a resource")
    _add_gvk_arguments(webhook)
    webhook.add_argument("--plural", default="", help="Plural form, when not the regular one")
    webhook.add_argument("--defaulting", action="store_true", help="Scaffold a defaulting webhook")
    webhook.add_argument(
        "--programmatic-validation", action="store_true", help="Scaffold a validating webhook"
    )
    webhook.add_argument("--conversion", action="store_true", help="Scaffold a conversion webhook")
    webhook.add_argument("--spoke", action="append", default=None, help="Spoke version (repeatable)")
    _add_external_arguments(webhook)
    webhook.add_argument("--force", action="store_true", help="Re-scaffold existing webhooks")
    _add_plugins_argument(webhook)
    webhook.set_defaults(handler=cmd_create_webhook)

    delete = commands.add_parser("delete", help="Remove a scaffolded API or webhook")
    delete_commands = delete.add_subparsers(dest="delete_command", metavar="KIND")
    delete_commands.required = True
    delete_api = delete_commands.add_parser("api", help="Delete an API and its files")
    _add_gvk_arguments(delete_api)
    _add_plugins_argument(delete_api)
    delete_api.set_defaults(handler=cmd_delete_api)

    delete_webhook = delete_commands.add_parser("webhook", help="Delete webhooks of a resource")
    _add_gvk_arguments(delete_webhook)
    delete_webhook.add_argument("--defaulting", action="store_true", help="Delete the defaulting webhook")
    delete_webhook.add_argument(
        "--programmatic-validation", action="store_true", help="Delete the validating webhook"
    )
    delete_webhook.add_argument("--conversion", action="store_true", help="Delete the conversion webhook")
    _add_plugins_argument(delete_webhook)
    delete_webhook.set_defaults(handler=cmd_delete_webhook)

    alpha = commands.add_parser("alpha", help="Experimental commands")
    alpha_commands = alpha.add_subparsers(dest="alpha_command", metavar="COMMAND")
    alpha_commands.required = True

    generate = alpha_commands.add_parser("generate", help="Regenerate the project from PROJECT")
    generate.add_argument("--input-dir", default=".", help="Directory holding PROJECT (default: .)")
    generate.add_argument("--output-dir", default=None, help="Directory to regenerate into (default: input dir)")
    generate.set_defaults(handler=cmd_alpha_generate)

    update = alpha_commands.add_parser("update", help="Upgrade the project with a three-way merge")
    update.add_argument("--from-version", default="", help="Version the project was generated with")
    update.add_argument("--from-branch", default=None, help="Branch holding your code (default: main)")
    update.add_argument("--to-version", default="", help="Release to upgrade to (default: the installed version)")
    update.add_argument(
        "--force",
        action="store_true",
        help=f"Commit conflict markers instead of exiting with status {EXIT_CONFLICTS}",
    )
    update.add_argument(
        "--show-commits", action="store_true", help="Keep the session history instead of one squashed commit"
    )
    update.add_argument(
        "--output-branch",
        default="",
        help="Branch for the result (default: kubeforge-update-from-<from>-to-<to>)",
    )
    update.add_argument(
        "--restore-path",
        action="append",
        default=None,
        help="Path restored from --from-branch on the squashed result (repeatable)",
    )
    update.add_argument(
        "--git-config",
        action="append",
        default=None,
        help="key=value passed to every git command (repeatable, \"disable\" drops the defaults)",
    )
    update.add_argument("--merge-message", default="", help="Commit message for a clean merge")
    update.add_argument("--conflict-message", default="", help="Commit message for a merge with conflicts")
    update.set_defaults(handler=cmd_alpha_update)

    version = commands.add_parser("version", help="Print the version")
    version.set_defaults(handler=cmd_version)

    return parser


def main(argv: list[str] | None = None, plugins: Sequence[Plugin] = ()) -> None:
    """CLI entry point for ``kubeforge`` and ``python -m kubeforge``.

    *plugins* are registered next to the bundled ones, so a distribution
    can ship its own bundles with a two-line entry point.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        code = args.handler(args, settings, available_plugins(plugins))
    except (
        ProjectConfigError,
        PluginError,
        ScaffoldError,
        GenerateError,
        UpgradeError,
        ValueError,
    ) as exc:
        print_error(f"Error: {exc}")
        sys.exit(1)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
