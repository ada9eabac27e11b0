"""Thin async wrappers around the ``git`` executable."""

from __future__ import annotations

from pathlib import Path
from typing import Sequence

from kubeforge.utils import run_command

# ``git merge`` exits with 1 when it stopped on conflicts, but also for some
# other failures (e.g. an unknown branch), so unmerged paths are checked too.
MERGE_CONFLICT_EXIT = 1

# Applied to every git command unless the user passes "disable".
DEFAULT_GIT_CONFIG = ["merge.renameLimit=999999", "diff.renameLimit=999999"]


class GitError(Exception):
    """Raised when a git command fails."""

    def __init__(self, message: str, command: str = "", returncode: int | None = None, stderr: str = ""):
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


def resolve_git_config(values: Sequence[str] = ()) -> list[str]:
    """Return the ``key=value`` settings to pass to every git command.

    *values* are appended to :data:`DEFAULT_GIT_CONFIG`; a literal
    ``disable`` among them drops the defaults.

    Raises:
        ValueError: If a value is not ``key=value``.
    """
    values = [value.strip() for value in values if value.strip()]
    user = [value for value in values if value != "disable"]
    for value in user:
        key, sep, _ = value.partition("=")
        if not sep or not key:
            raise ValueError(f"git config {value!r} must be key=value")
    if "disable" in values:
        return user
    return [*DEFAULT_GIT_CONFIG, *user]


def git_command(args: Sequence[str], config: Sequence[str] = ()) -> list[str]:
    cmd = ["git"]
    for value in config:
        cmd += ["-c", value]
    return [*cmd, *args]


async def run_git(
    *args: str,
    cwd: str | Path | None = None,
    timeout: int = 120,
    capture: bool = True,
    config: Sequence[str] = (),
) -> str:
    """Run a git command and return its stdout.

    Raises GitError if the command exits with a non-zero code.
    """
    cmd = git_command(args, config)
    cmd_str = " ".join(cmd)
    returncode, stdout, stderr = await run_command(cmd, cwd=cwd, timeout=timeout, capture=capture)
    if returncode != 0:
        detail = f"\n{stderr}" if stderr else ""
        raise GitError(
            f"Git command failed (exit {returncode}): {cmd_str}{detail}",
            command=cmd_str,
            returncode=returncode,
            stderr=stderr,
        )
    return stdout


async def unmerged_paths(
    cwd: str | Path | None = None, timeout: int = 120, config: Sequence[str] = ()
) -> list[str]:
    """Return the paths git reports as unmerged (conflicted)."""
    out = await run_git(
        "diff", "--name-only", "--diff-filter=U", cwd=cwd, timeout=timeout, config=config
    )
    return [line for line in out.splitlines() if line.strip()]


async def merge(
    branch: str,
    cwd: str | Path | None = None,
    timeout: int = 120,
    config: Sequence[str] = (),
    commit: bool = True,
) -> bool:
    """Merge *branch* into the checked-out branch.

    With ``commit=False`` a clean merge is staged but not committed.

    Returns:
        ``True`` for a clean merge, ``False`` when git stopped on conflicts
        and left markers in the tree.

    Raises:
        GitError: For any other failure, including an exit status 1 that
            left no unmerged paths behind.
    """
    args = ["merge", "--no-edit"]
    if not commit:
        args += ["--no-commit", "--no-ff"]
    cmd = git_command([*args, branch], config)
    cmd_str = " ".join(cmd)
    returncode, _, stderr = await run_command(cmd, cwd=cwd, timeout=timeout, capture=True)
    if returncode == 0:
        return True
    if returncode == MERGE_CONFLICT_EXIT and await unmerged_paths(cwd, timeout, config):
        return False
    detail = f"\n{stderr}" if stderr else ""
    raise GitError(
        f"Git command failed (exit {returncode}): {cmd_str}{detail}",
        command=cmd_str,
        returncode=returncode,
        stderr=stderr,
    )


async def branch_exists(
    branch: str, cwd: str | Path | None = None, timeout: int = 120, config: Sequence[str] = ()
) -> bool:
    """True if *branch* is a local branch (tags, SHAs and remote refs do not count)."""
    try:
        await run_git(
            "show-ref", "--verify", "--quiet", f"refs/heads/{branch}",
            cwd=cwd, timeout=timeout, config=config,
        )
    except GitError as exc:
        if exc.returncode == 1:
            return False
        raise
    return True


async def commit_all(
    message: str, cwd: str | Path | None = None, timeout: int = 120, config: Sequence[str] = ()
) -> None:
    """Stage every change and commit it, even when nothing changed."""
    await run_git("add", "-A", cwd=cwd, timeout=timeout, config=config)
    await run_git(
        "commit", "--allow-empty", "--no-verify", "-m", message,
        cwd=cwd, timeout=timeout, config=config,
    )
