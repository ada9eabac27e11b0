"""Experimental commands: project regeneration and three-way upgrade."""

from kubeforge.alpha.generate import GenerateError, Generator
from kubeforge.alpha.git import GitError
from kubeforge.alpha.release import (
    BinaryNotPublishedError,
    ReleaseClient,
    ReleaseError,
    UnexpectedResponseError,
)
from kubeforge.alpha.update import (
    UpgradeError,
    UpgradeOrchestrator,
    UpgradeSession,
    UpgradeState,
)

__all__ = [
    "BinaryNotPublishedError",
    "GenerateError",
    "Generator",
    "GitError",
    "ReleaseClient",
    "ReleaseError",
    "UnexpectedResponseError",
    "UpgradeError",
    "UpgradeOrchestrator",
    "UpgradeSession",
    "UpgradeState",
]
