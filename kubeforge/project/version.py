"""Project and plugin version identifiers.

A project version is ``<number>[-<stage>]`` (``"3"``, ``"3-alpha"``); a plugin
version is the same prefixed with ``v`` (``"v4"``, ``"v1-alpha"``). Both are
ordered by number first and stage second (alpha < beta < stable).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class Stage(str, Enum):
    """Stability stage of a version."""
    STABLE = ""
    ALPHA = "alpha"
    BETA = "beta"

    @property
    def rank(self) -> int:
        return _STAGE_RANK[self]

    @classmethod
    def parse(cls, value: str) -> "Stage":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"invalid stage {value!r}") from None


_STAGE_RANK = {Stage.ALPHA: 0, Stage.BETA: 1, Stage.STABLE: 2}

_PROJECT_VERSION_RE = re.compile(r"^(\d+)(?:-(\w+))?$")
_PLUGIN_VERSION_RE = re.compile(r"^v(\d+)(?:-(\w+))?$")


@dataclass(frozen=True)
class ProjectVersion:
    """Version of the ``PROJECT`` document schema."""

    number: int
    stage: Stage = Stage.STABLE

    @classmethod
    def parse(cls, value: str | int) -> "ProjectVersion":
        """Parse ``"3"``, ``"3-alpha"`` or a bare integer.

        Raises:
            ValueError: If the value is malformed or the number is not positive.
        """
        match = _PROJECT_VERSION_RE.match(str(value).strip())
        if not match:
            raise ValueError(f"invalid project version {value!r}")
        version = cls(int(match.group(1)), Stage.parse(match.group(2) or ""))
        version.validate()
        return version

    def validate(self) -> None:
        if self.number < 1:
            raise ValueError(f"project version number must be positive, got {self.number}")

    def is_stable(self) -> bool:
        return self.stage is Stage.STABLE

    def compare(self, other: "ProjectVersion") -> int:
        """Return -1, 0 or 1 like a classic comparator."""
        mine = (self.number, self.stage.rank)
        theirs = (other.number, other.stage.rank)
        return (mine > theirs) - (mine < theirs)

    def __lt__(self, other: "ProjectVersion") -> bool:
        return self.compare(other) < 0

    def __str__(self) -> str:
        if self.stage is Stage.STABLE:
            return str(self.number)
        return f"{self.number}-{self.stage.value}"


@dataclass(frozen=True)
class PluginVersion:
    """Version of a plugin, e.g. ``v4`` or ``v1-alpha``.

    Version 0 is only meaningful for unstable plugins (``v0-alpha``).
    """

    number: int
    stage: Stage = Stage.STABLE

    @classmethod
    def parse(cls, value: str) -> "PluginVersion":
        match = _PLUGIN_VERSION_RE.match(value.strip())
        if not match:
            raise ValueError(f"invalid plugin version {value!r}")
        version = cls(int(match.group(1)), Stage.parse(match.group(2) or ""))
        version.validate()
        return version

    def validate(self) -> None:
        if self.number < 0:
            raise ValueError(f"plugin version number must not be negative, got {self.number}")
        if self.number == 0 and self.stage is Stage.STABLE:
            raise ValueError("plugin version 0 must be alpha or beta")

    def compare(self, other: "PluginVersion") -> int:
        mine = (self.number, self.stage.rank)
        theirs = (other.number, other.stage.rank)
        return (mine > theirs) - (mine < theirs)

    def __lt__(self, other: "PluginVersion") -> bool:
        return self.compare(other) < 0

    def __str__(self) -> str:
        if self.stage is Stage.STABLE:
            return f"v{self.number}"
        return f"v{self.number}-{self.stage.value}"
