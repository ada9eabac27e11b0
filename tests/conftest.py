"""Shared pytest fixtures for the kubeforge test suite.

Provides reusable fixtures for:
- Temporary project directories and a real temporary git repository
- Fresh schema 2 / schema 3 project configurations
- Mock subprocess helpers
- An ``httpx`` mock transport for the release endpoint
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from kubeforge.config import Settings
from kubeforge.project import new_config
from kubeforge.project.config import ProjectConfig


# ---------------------------------------------------------------------------
# Paths & Directories
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_project_dir(tmp_path: Path) -> Path:
    """Temporary directory for generated projects (auto-cleanup)."""
    project_dir = tmp_path / "test-project"
    project_dir.mkdir()
    yield project_dir


def git(repo_dir: Path, *args: str) -> str:
    """Run git synchronously in *repo_dir* and return its stdout."""
    result = subprocess.run(
        ["git", *args], cwd=repo_dir, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """Temporary git repository with an initial commit on ``main``.

    Creates a real git repo in a temp directory so that tests depending on
    git operations (branches, merges, etc.) have a valid repo to work in.
    """
    repo_dir = tmp_path / "test-repo"
    repo_dir.mkdir()
    git(repo_dir, "init")
    git(repo_dir, "checkout", "-b", "main")
    git(repo_dir, "config", "user.email", "test@kubeforge.local")
    git(repo_dir, "config", "user.name", "kubeforge Test")
    git(repo_dir, "config", "commit.gpgsign", "false")
    # Create an initial commit so branches can be created
    readme = repo_dir / "README.md"
    readme.write_text("# Test Project\n", encoding="utf-8")
    git(repo_dir, "add", ".")
    git(repo_dir, "commit", "-m", "Initial commit")
    yield repo_dir


@pytest.fixture
def git_cmd() -> Callable[..., str]:
    """The synchronous ``git(repo_dir, *args)`` helper, for assertions on real repos."""
    return git


# ---------------------------------------------------------------------------
# Project configurations
# ---------------------------------------------------------------------------

@pytest.fixture
def v3_config() -> ProjectConfig:
    """Schema 3 configuration for ``my.domain`` / ``github.com/example/memcached``."""
    config = new_config("3")
    config.set_domain("my.domain")
    config.set_repository("github.com/example/memcached")
    config.set_project_name("memcached")
    config.set_plugin_chain(["go.kubebuilder.io/v4"])
    return config


@pytest.fixture
def v2_config() -> ProjectConfig:
    config = new_config("2")
    config.set_domain("my.domain")
    config.set_repository("myrepo")
    return config


@pytest.fixture
def settings() -> Settings:
    """Settings with fast timeouts and a local release URL."""
    return Settings(
        release_url="https://releases.test/{version}/kubeforge_{os}_{arch}",
        git_timeout=30,
        command_timeout=60,
        http_timeout=5.0,
    )


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", return_value=proc):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.communicate = AsyncMock(
            return_value=(stdout.encode("utf-8"), stderr.encode("utf-8"))
        )
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory


# ---------------------------------------------------------------------------
# Mock HTTP
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_transport():
    """Factory for ``httpx.MockTransport`` instances.

    Usage:
        def test_missing_release(mock_transport):
            transport, requests = mock_transport(status_code=404)
            client = ReleaseClient(settings, transport=transport)

    The second element collects every request the transport received.
    """
    def factory(
        status_code: int = 200,
        content: bytes = b"",
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        requests: list[httpx.Request] = []

        def _handle(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if handler is not None:
                return handler(request)
            body = content if request.method == "GET" else b""
            return httpx.Response(status_code, content=body)

        return httpx.MockTransport(_handle), requests

    return factory
