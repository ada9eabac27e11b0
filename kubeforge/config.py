"""kubeforge tool settings.

Centralised, typed configuration for the CLI itself (not the per-project
``PROJECT`` document, which lives in :mod:`kubeforge.project`). Settings use
Pydantic v2 models so they can be validated at construction time and
read from environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_RELEASE_URL = (
    "https://github.com/kubeforge/kubeforge/releases/download/"
    "{version}/kubeforge_{os}_{arch}"
)

DEFAULT_MAKE_TARGETS = ["manifests", "generate", "fmt", "vet", "lint-fix"]


class Settings(BaseModel):
    """Global kubeforge settings.

    Instances are typically created once by the CLI entry point (usually via
    :meth:`from_env`) and then passed to the commands that need them.
    """

    project_file: str = Field(default="PROJECT", description="Project configuration file name")
    release_url: str = Field(
        default=DEFAULT_RELEASE_URL,
        description="Download URL template with {version}, {os} and {arch} placeholders",
    )
    binary_name: str = Field(default="kubeforge", description="Name of the downloaded binary")
    make_targets: list[str] = Field(default_factory=lambda: list(DEFAULT_MAKE_TARGETS))
    from_branch: str = Field(default="main", description="Default branch holding the user's project")
    git_timeout: int = Field(default=120, ge=1, description="Per-git-command timeout in seconds")
    command_timeout: int = Field(
        default=1800, ge=1, description="Timeout for make and generator runs in seconds"
    )
    http_timeout: float = Field(default=60.0, gt=0, description="HTTP request timeout in seconds")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build ``Settings`` from environment variables.

        Recognised variables (all optional):
            KUBEFORGE_PROJECT_FILE, KUBEFORGE_RELEASE_URL, KUBEFORGE_BINARY_NAME,
            KUBEFORGE_MAKE_TARGETS (comma separated), KUBEFORGE_FROM_BRANCH,
            KUBEFORGE_GIT_TIMEOUT, KUBEFORGE_COMMAND_TIMEOUT, KUBEFORGE_HTTP_TIMEOUT.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("KUBEFORGE_PROJECT_FILE"):
            kwargs["project_file"] = os.environ["KUBEFORGE_PROJECT_FILE"]
        if os.environ.get("KUBEFORGE_RELEASE_URL"):
            kwargs["release_url"] = os.environ["KUBEFORGE_RELEASE_URL"]
        if os.environ.get("KUBEFORGE_BINARY_NAME"):
            kwargs["binary_name"] = os.environ["KUBEFORGE_BINARY_NAME"]
        if os.environ.get("KUBEFORGE_FROM_BRANCH"):
            kwargs["from_branch"] = os.environ["KUBEFORGE_FROM_BRANCH"]
        if os.environ.get("KUBEFORGE_GIT_TIMEOUT"):
            kwargs["git_timeout"] = int(os.environ["KUBEFORGE_GIT_TIMEOUT"])
        if os.environ.get("KUBEFORGE_COMMAND_TIMEOUT"):
            kwargs["command_timeout"] = int(os.environ["KUBEFORGE_COMMAND_TIMEOUT"])
        if os.environ.get("KUBEFORGE_HTTP_TIMEOUT"):
            kwargs["http_timeout"] = float(os.environ["KUBEFORGE_HTTP_TIMEOUT"])

        targets = os.environ.get("KUBEFORGE_MAKE_TARGETS")
        if targets is not None:
            kwargs["make_targets"] = [t.strip() for t in targets.split(",") if t.strip()]

        return cls(**kwargs)
