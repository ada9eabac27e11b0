"""Template scaffolder: writes an enumerated list of files under a root.

Every file declares what happens when its target already exists, so the
behaviour of a re-run is decided file by file rather than by one global rule.
"""

from __future__ import annotations

import asyncio
import datetime
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, Sequence

from jinja2 import TemplateError

from kubeforge.project.config import ProjectConfig
from kubeforge.project.resource import Resource, regular_plural
from kubeforge.scaffolder.templates import TemplateRenderer
from kubeforge.utils import console


class IfExists(str, Enum):
    """Policy applied when a scaffolded file already exists."""
    OVERWRITE = "overwrite"
    SKIP = "skip_if_exists"
    ERROR = "error_if_exists"


class ScaffoldError(Exception):
    """A file could not be rendered or written.

    Attributes:
        path: Target path relative to the scaffold root, when known.
    """

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


@dataclass(frozen=True)
class TemplateFile:
    """One scaffolded file.

    Attributes:
        template: Template path relative to the template directory.
        path: Target path pattern; ``%[group]``-style placeholders are
            filled from the resource.
        if_exists: Policy when the target exists.
        force_overwrite: Whether ``--force`` turns the policy into overwrite.
        multigroup_path: Target pattern used instead of ``path`` in
            multigroup projects.
    """

    template: str
    path: str
    if_exists: IfExists = IfExists.SKIP
    force_overwrite: bool = False
    multigroup_path: str = ""

    def policy(self, force: bool) -> IfExists:
        if force and self.force_overwrite:
            return IfExists.OVERWRITE
        return self.if_exists

    def target(self, config: ProjectConfig, resource: Resource | None) -> str:
        pattern = self.path
        if self.multigroup_path and config.is_multigroup() and resource is not None and resource.group:
            pattern = self.multigroup_path
        if resource is not None:
            pattern = resource.replacer().replace(pattern)
        return pattern


class Scaffolder(Protocol):
    """Writes files for a configuration and, optionally, one resource."""

    async def scaffold(self, config: ProjectConfig, resource: Resource | None = None) -> list[Path]:
        ...


class TemplateScaffolder:
    """Renders a fixed list of :class:`TemplateFile` entries under *root*.

    Args:
        root: Directory the target paths are relative to.
        files: The files to write, in order.
        renderer: Template renderer; the packaged templates by default.
        force: Apply each file's ``--force`` overwrite behaviour.
        extra: Additional template context (e.g. plugin options).
    """

    def __init__(
        self,
        root: str | Path,
        files: Sequence[TemplateFile],
        *,
        renderer: TemplateRenderer | None = None,
        force: bool = False,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.root = Path(root)
        self.files = list(files)
        self.renderer = renderer or TemplateRenderer()
        self.force = force
        self.extra = dict(extra or {})

    def context(self, config: ProjectConfig, resource: Resource | None) -> dict[str, Any]:
        project_name = config.get_project_name() or self.root.resolve().name
        context: dict[str, Any] = {
            "domain": config.get_domain(),
            "repo": config.get_repository(),
            "project_name": project_name,
            "year": datetime.date.today().year,
            "owner": f"The {project_name} Authors",
            "multigroup": config.is_multigroup(),
            "resources": config.get_resources(),
            "resource": resource,
        }
        if resource is not None:
            context["plural"] = resource.plural or regular_plural(resource.kind)
        context.update(self.extra)
        return context

    async def scaffold(self, config: ProjectConfig, resource: Resource | None = None) -> list[Path]:
        """Write every file and return the paths actually written.

        Raises:
            ScaffoldError: If a file with the ``error_if_exists`` policy is
                already present, or a template fails to render.
        """
        context = self.context(config, resource)

        # Check every error-on-exist target before writing anything.
        for entry in self.files:
            rel = entry.target(config, resource)
            if entry.policy(self.force) is IfExists.ERROR and (self.root / rel).exists():
                raise ScaffoldError(f"{rel} already exists", rel)

        written: list[Path] = []
        for entry in self.files:
            rel = entry.target(config, resource)
            out = self.root / rel
            if out.exists() and entry.policy(self.force) is IfExists.SKIP:
                console.print(f"  [dim]skip[/dim] {rel}")
                continue
            try:
                await self.renderer.render_to_file(entry.template, out, context)
            except TemplateError as exc:
                raise ScaffoldError(f"failed to render {entry.template}: {exc}", rel) from exc
            console.print(f"  [green]write[/green] {rel}")
            written.append(out)
        return written

    async def remove(self, config: ProjectConfig, resource: Resource | None = None) -> list[Path]:
        """Delete the files this scaffolder would write and return them."""
        removed: list[Path] = []
        for entry in self.files:
            rel = entry.target(config, resource)
            out = self.root / rel
            if out.is_file():
                await asyncio.to_thread(out.unlink)
                console.print(f"  [red]remove[/red] {rel}")
                removed.append(out)
        return removed
