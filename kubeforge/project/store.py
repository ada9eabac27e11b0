"""Filesystem store for the ``PROJECT`` document.

The store reads a document without knowing its schema version in advance:
it reads the ``version`` field first, instantiates the registered schema and then
decodes the whole document strictly against it.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from kubeforge.project.config import ProjectConfig, new_config
from kubeforge.project.errors import DecodeError, LoadError, SaveError, UnknownVersionError
from kubeforge.project.version import ProjectVersion
from kubeforge.project.yamlutil import load_mapping

DEFAULT_PATH = "PROJECT"


def read_from(path: Path | str) -> ProjectConfig:
    """Decode the document at *path* into the matching schema implementation.

    Raises:
        LoadError: If the file cannot be read.
        DecodeError: If the version is missing or unknown, or decoding fails.
    """
    try:
        raw = Path(path).read_bytes()
    except OSError as exc:
        raise LoadError(f"unable to read {path}: {exc}") from exc
    return decode(raw)


def decode(raw: str | bytes) -> ProjectConfig:
    """Read the ``version`` field of *raw*, then decode it in full."""
    head = load_mapping(raw)
    if "version" not in head or head["version"] in (None, ""):
        raise DecodeError("project document has no version field")
    try:
        version = ProjectVersion.parse(head["version"])
    except ValueError:
        raise UnknownVersionError(head["version"]) from None
    config = new_config(version)
    config.unmarshal_yaml(raw)
    return config


class YamlStore:
    """Holds one project configuration and the path it is persisted to.

    Args:
        fs_root: Directory relative paths are resolved against. ``None``
            means no filesystem backend is configured and every save fails.
        path: File name of the document, ``PROJECT`` by default.
    """

    def __init__(self, fs_root: Path | str | None, path: str = DEFAULT_PATH) -> None:
        self.fs_root = Path(fs_root) if fs_root is not None else None
        self.path = path
        self._config: ProjectConfig | None = None
        self._must_not_exist = False

    @property
    def config(self) -> ProjectConfig | None:
        return self._config

    @property
    def must_not_exist(self) -> bool:
        return self._must_not_exist

    def _resolve(self, path: Path | str) -> Path:
        path = Path(path)
        if self.fs_root is not None and not path.is_absolute():
            return self.fs_root / path
        return path

    def exists(self) -> bool:
        return self.fs_root is not None and self._resolve(self.path).is_file()

    # ------------------------------------------------------------------
    # Init / load
    # ------------------------------------------------------------------

    def new(self, version: ProjectVersion | str | int) -> ProjectConfig:
        """Start a brand-new project of *version*.

        The next save refuses to overwrite an existing file.
        """
        self._config = new_config(version)
        self._must_not_exist = True
        return self._config

    def load(self) -> ProjectConfig:
        return self.load_from(self.path)

    def load_from(self, path: Path | str) -> ProjectConfig:
        """Load the document at *path* and make it the store's configuration.

        Raises:
            LoadError: If there is no filesystem root or the file is unreadable.
            DecodeError: If the document cannot be decoded.
        """
        if self.fs_root is None:
            raise LoadError("no filesystem root configured")
        self._config = read_from(self._resolve(path))
        self.path = str(path)
        self._must_not_exist = False
        return self._config

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self) -> Path:
        return self.save_to(self.path)

    def save_to(self, path: Path | str) -> Path:
        """Persist the configuration to *path* and return the written file.

        Raises:
            SaveError: If there is no filesystem root or configuration, if a
                new project would overwrite an existing file, or on I/O
                failure.
        """
        if self.fs_root is None:
            raise SaveError("no filesystem root configured")
        if self._config is None:
            raise SaveError("no configuration to save")

        target = self._resolve(path)
        if self._must_not_exist and target.exists():
            raise SaveError(f"configuration already exists in {target}")

        content = self._config.marshal_yaml()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.chmod(tmp_name, 0o644)
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SaveError(f"unable to write {target}: {exc}") from exc
        return target
