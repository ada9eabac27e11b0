"""Locating and downloading published generator binaries.

The upgrade needs the exact binary a project was generated with. Release
assets are addressed by version, OS and architecture; availability is
checked with a HEAD request before the full download is attempted.
"""

from __future__ import annotations

import platform
import tempfile
from pathlib import Path

import httpx

from kubeforge.config import Settings

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


class ReleaseError(Exception):
    """A release binary could not be located or fetched.

    Attributes:
        url: The URL that was requested.
        status_code: HTTP status of the response, when one was received.
    """

    def __init__(self, message: str, url: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class BinaryNotPublishedError(ReleaseError):
    """The server answered 404: no binary exists for this version/platform."""


class UnexpectedResponseError(ReleaseError):
    """The server answered with a status other than 200 or 404."""


def host_platform() -> tuple[str, str]:
    """Return ``(os, arch)`` of the running host in release-asset terms."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    return system, _ARCH_ALIASES.get(machine, machine)


class ReleaseClient:
    """Async client for the release download endpoint.

    Args:
        settings: Supplies the URL template, binary name and timeout.
        transport: Optional ``httpx`` transport (tests pass a mock).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.http_timeout, connect=10.0),
            follow_redirects=True,
            transport=self.transport,
        )

    def binary_url(self, version: str, os_name: str | None = None, arch: str | None = None) -> str:
        """Return the download URL of *version* for a platform (the host by default)."""
        host_os, host_arch = host_platform()
        return self.settings.release_url.format(
            version=version, os=os_name or host_os, arch=arch or host_arch
        )

    async def check_binary_available(self, url: str) -> None:
        """Check that *url* answers a HEAD request with 200.

        Raises:
            BinaryNotPublishedError: On 404.
            UnexpectedResponseError: On any other non-200 status or a
                transport failure.
        """
        try:
            async with self._client() as client:
                response = await client.head(url)
        except httpx.HTTPError as exc:
            raise UnexpectedResponseError(f"failed to reach {url}: {exc}", url) from exc

        if response.status_code == 200:
            return
        if response.status_code == 404:
            raise BinaryNotPublishedError(
                f"no binary published at {url} for this version and platform", url, 404
            )
        raise UnexpectedResponseError(
            f"unexpected response {response.status_code} from {url}", url, response.status_code
        )

    async def download_binary(self, url: str, dest_dir: str | Path | None = None) -> Path:
        """Stream *url* into *dest_dir* (a fresh temp dir by default) and make it executable.

        Returns:
            Path to the downloaded binary.

        Raises:
            ReleaseError: On a non-200 response or transport failure.
        """
        if dest_dir is None:
            dest_dir = tempfile.mkdtemp(prefix="kubeforge-")
        dest = Path(dest_dir)
        dest.mkdir(parents=True, exist_ok=True)
        binary = dest / self.settings.binary_name

        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise ReleaseError(
                            f"failed to download {url}: HTTP {response.status_code}",
                            url,
                            response.status_code,
                        )
                    with binary.open("wb") as handle:
                        async for chunk in response.aiter_bytes():
                            handle.write(chunk)
        except httpx.HTTPError as exc:
            raise ReleaseError(f"failed to download {url}: {exc}", url) from exc

        binary.chmod(0o755)
        return binary
