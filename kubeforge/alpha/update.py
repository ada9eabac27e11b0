"""Three-way upgrade of a scaffolded project to a newer generator.

The orchestrator rebuilds yesterday's scaffolding with the binary the project
was generated with (``ancestor``), overlays the user's real branch on top of
it (``current``), regenerates with the target generator (``upgrade``) and
finally merges ``upgrade`` into a copy of ``current`` (``merge``). Every step
commits before the next one starts so a failed session can be inspected
branch by branch.

A merged session is written to an output branch, squashed into one commit
on top of ``--from-branch`` or, with ``show_commits``, keeping the session's
history. The temporary branches are then deleted.

Session flow::

    VALIDATE -> DOWNLOAD_OLD_BINARY -> CREATE_ANCESTOR_BRANCH
      -> CLEAN_ANCESTOR_BRANCH -> REGENERATE_ANCESTOR
      -> CREATE_CURRENT_BRANCH -> CREATE_UPGRADE_BRANCH
      -> CREATE_MERGE_BRANCH -> MERGE_UPGRADE_INTO_MERGE
      -> CONFLICTS_LEFT_FOR_USER
       | WRITE_OUTPUT_BRANCH -> CLEANUP_BRANCHES -> DONE | CONFLICTS_LEFT_FOR_USER
"""

from __future__ import annotations

import asyncio
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Sequence

from kubeforge import __version__
from kubeforge.alpha.generate import POST_GENERATE_TARGETS, self_command
from kubeforge.alpha.git import GitError, branch_exists, commit_all, merge, resolve_git_config, run_git
from kubeforge.alpha.release import ReleaseClient, ReleaseError
from kubeforge.config import Settings
from kubeforge.project.errors import ProjectConfigError
from kubeforge.project.store import YamlStore
from kubeforge.utils import (
    CommandError,
    print_phase_header,
    print_step,
    print_success,
    print_summary_table,
    print_warning,
    run_checked,
    run_make_targets,
)

SEMVER_RE = re.compile(
    r"^v?(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?$"
)

BRANCH_PREFIX = "tmp-kf-update"
BRANCH_SUFFIX_FORMAT = "%d-%m-%y-%H-%M"
OUTPUT_BRANCH_TEMPLATE = "kubeforge-update-from-{from_version}-to-{to_version}"


class UpgradeState(str, Enum):
    VALIDATE = "validate"
    DOWNLOAD_OLD_BINARY = "download_old_binary"
    CREATE_ANCESTOR_BRANCH = "create_ancestor_branch"
    CLEAN_ANCESTOR_BRANCH = "clean_ancestor_branch"
    REGENERATE_ANCESTOR = "regenerate_ancestor"
    CREATE_CURRENT_BRANCH = "create_current_branch"
    CREATE_UPGRADE_BRANCH = "create_upgrade_branch"
    CREATE_MERGE_BRANCH = "create_merge_branch"
    MERGE_UPGRADE_INTO_MERGE = "merge_upgrade_into_merge"
    WRITE_OUTPUT_BRANCH = "write_output_branch"
    CLEANUP_BRANCHES = "cleanup_branches"
    DONE = "done"
    CONFLICTS_LEFT_FOR_USER = "conflicts_left_for_user"
    FAILED = "failed"


TERMINAL_STATES = frozenset(
    {UpgradeState.DONE, UpgradeState.CONFLICTS_LEFT_FOR_USER, UpgradeState.FAILED}
)


class UpgradeError(Exception):
    """Fatal upgrade failure.

    Attributes:
        state: The state the session was in when it failed.
    """

    def __init__(self, message: str, state: UpgradeState) -> None:
        self.state = state
        super().__init__(message)


def is_semver(version: str) -> bool:
    """Return True if *version* is ``X.Y.Z`` (optionally ``v``-prefixed, with pre-release/build)."""
    return bool(SEMVER_RE.match(version))


def normalize_version(version: str) -> str:
    """Return *version* with exactly one leading ``v``."""
    return "v" + version.strip().lstrip("v")


def branch_suffix(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime(BRANCH_SUFFIX_FORMAT)


@dataclass
class UpgradeSession:
    """Everything an upgrade run creates, for reporting and manual cleanup.

    The temporary branch names carry :attr:`suffix` (a timestamp by
    default) so a later session does not collide with an earlier one.
    """

    from_branch: str
    from_version: str = ""
    to_version: str = ""
    suffix: str = field(default_factory=branch_suffix)
    output_branch: str = ""
    binary_url: str = ""
    to_binary_url: str = ""
    temp_dir: Path | None = None
    binary_path: Path | None = None
    to_binary_path: Path | None = None
    conflicts_committed: bool = False
    state: UpgradeState = UpgradeState.VALIDATE
    history: list[UpgradeState] = field(default_factory=lambda: [UpgradeState.VALIDATE])
    error: str = ""

    @property
    def ancestor_branch(self) -> str:
        return f"{BRANCH_PREFIX}-ancestor-{self.suffix}"

    @property
    def current_branch(self) -> str:
        return f"{BRANCH_PREFIX}-current-{self.suffix}"

    @property
    def upgrade_branch(self) -> str:
        return f"{BRANCH_PREFIX}-upgrade-{self.suffix}"

    @property
    def merge_branch(self) -> str:
        return f"{BRANCH_PREFIX}-merge-{self.suffix}"

    @property
    def temp_branches(self) -> list[str]:
        return [self.ancestor_branch, self.current_branch, self.upgrade_branch, self.merge_branch]

    def advance(self, state: UpgradeState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"session already finished in state {self.state.value}")
        self.state = state
        self.history.append(state)

    def fail(self, message: str) -> None:
        self.error = message
        self.advance(UpgradeState.FAILED)

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def has_conflicts(self) -> bool:
        return self.state is UpgradeState.CONFLICTS_LEFT_FOR_USER

    def summary(self) -> dict[str, str]:
        data = {
            "Outcome": self.state.value,
            "From branch": self.from_branch,
            "From version": self.from_version or "-",
            "To version": self.to_version or "-",
            "Output branch": self.output_branch or "-",
            "Ancestor branch": self.ancestor_branch,
            "Current branch": self.current_branch,
            "Upgrade branch": self.upgrade_branch,
            "Merge branch": self.merge_branch,
            "Old binary": str(self.binary_path) if self.binary_path else "-",
            "Temp dir": str(self.temp_dir) if self.temp_dir else "-",
        }
        if self.error:
            data["Error"] = self.error
        return data

    def report(self) -> None:
        print_summary_table(self.summary(), title="Upgrade session")


class UpgradeOrchestrator:
    """Runs the upgrade state machine against a git working tree.

    Args:
        repo_dir: Root of the user's project (a git working tree).
        from_version: Generator version the project was built with. Read
            from the project file's ``cliVersion`` when empty.
        from_branch: Branch holding the user's code.
        settings: Tool settings (make targets, timeouts, project file name).
        release: Client used to check and download release binaries.
        command: Argument vector running the installed generator.
        to_version: Release to upgrade to. The installed generator is used
            when empty; otherwise that release is downloaded too.
        force: Commit conflict markers instead of stopping on conflicts.
        show_commits: Point the output branch at the merge branch history
            instead of squashing it into one commit.
        output_branch: Name of the branch holding the result.
        restore_paths: Paths restored from ``from_branch`` on the squashed
            output branch.
        git_config: Extra ``key=value`` settings for every git command.
            ``disable`` drops the defaults.
        merge_message: Commit message for a clean merge.
        conflict_message: Commit message for a forced merge with conflicts.
        branch_suffix: Suffix of the temporary branch names.
    """

    def __init__(
        self,
        repo_dir: str | Path = ".",
        from_version: str = "",
        from_branch: str | None = None,
        settings: Settings | None = None,
        release: ReleaseClient | None = None,
        command: list[str] | None = None,
        to_version: str = "",
        force: bool = False,
        show_commits: bool = False,
        output_branch: str = "",
        restore_paths: Sequence[str] = (),
        git_config: Sequence[str] = (),
        merge_message: str = "",
        conflict_message: str = "",
        branch_suffix: str = "",
    ) -> None:
        self.repo_dir = Path(repo_dir).resolve()
        self.settings = settings or Settings()
        self.release = release or ReleaseClient(self.settings)
        self.command = command or self_command(self.settings.binary_name)
        self.from_version = from_version.strip()
        self.to_version = to_version.strip()
        self.force = force
        self.show_commits = show_commits
        self.output_branch = output_branch.strip()
        self.restore_paths = [path for path in restore_paths if path.strip()]
        self.git_config_values = list(git_config)
        self.git_config: list[str] = []
        self.merge_message = merge_message
        self.conflict_message = conflict_message
        session = UpgradeSession(from_branch=from_branch or self.settings.from_branch)
        if branch_suffix:
            session.suffix = branch_suffix
        self.session = session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def validate(self) -> None:
        """Check every precondition without changing the working tree.

        Raises:
            UpgradeError: If any precondition does not hold.
        """
        session = self.session
        # Must fail before anything touches git or the network.
        for flag, value in (("--from-version", self.from_version), ("--to-version", self.to_version)):
            if value and not is_semver(value):
                raise UpgradeError(
                    f"{flag} {value!r} is not a valid semantic version", UpgradeState.VALIDATE
                )
        try:
            self.git_config = resolve_git_config(self.git_config_values)
        except ValueError as exc:
            raise UpgradeError(str(exc), UpgradeState.VALIDATE) from exc
        if self.show_commits and self.restore_paths:
            raise UpgradeError(
                "--restore-path only applies to the squashed output branch, drop --show-commits",
                UpgradeState.VALIDATE,
            )

        try:
            await self._git("rev-parse", "--git-dir")
        except GitError as exc:
            raise UpgradeError(f"{self.repo_dir} is not a git repository", UpgradeState.VALIDATE) from exc

        status = await self._git("status", "--porcelain")
        if status.strip():
            raise UpgradeError(
                "working tree has uncommitted changes, commit or stash them first",
                UpgradeState.VALIDATE,
            )

        if not await self._branch_exists(session.from_branch):
            raise UpgradeError(
                f"branch {session.from_branch!r} does not exist", UpgradeState.VALIDATE
            )

        leftover = [branch for branch in session.temp_branches if await self._branch_exists(branch)]
        if leftover:
            raise UpgradeError(
                f"branches from an earlier update already exist: {', '.join(leftover)}; delete them first",
                UpgradeState.VALIDATE,
            )

        version = self.from_version or self._recorded_version()
        if not version:
            raise UpgradeError(
                "the project file records no CLI version, pass --from-version",
                UpgradeState.VALIDATE,
            )
        if not is_semver(version):
            raise UpgradeError(
                f"recorded CLI version {version!r} is not a valid semantic version",
                UpgradeState.VALIDATE,
            )
        session.from_version = normalize_version(version)
        session.to_version = normalize_version(self.to_version or __version__)
        session.output_branch = self.output_branch or OUTPUT_BRANCH_TEMPLATE.format(
            from_version=session.from_version, to_version=session.to_version
        )

        session.binary_url = self.release.binary_url(session.from_version)
        if self.to_version:
            session.to_binary_url = self.release.binary_url(session.to_version)
        for url in filter(None, (session.binary_url, session.to_binary_url)):
            try:
                await self.release.check_binary_available(url)
            except ReleaseError as exc:
                raise UpgradeError(str(exc), UpgradeState.VALIDATE) from exc

    async def run(self) -> UpgradeSession:
        """Run the whole session.

        Returns:
            The finished session, in ``DONE`` or ``CONFLICTS_LEFT_FOR_USER``.

        Raises:
            UpgradeError: On any fatal failure; the session is left in
                ``FAILED`` with branches and temp files in place.
        """
        session = self.session
        print_phase_header(f"Upgrading project from {session.from_branch}")
        try:
            print_step("Validating the working tree")
            await self.validate()
            await self._download_binaries()
            await self._create_ancestor_branch()
            await self._clean_ancestor_branch()
            await self._regenerate_ancestor()
            await self._create_current_branch()
            await self._create_upgrade_branch()
            await self._create_merge_branch()
            if await self._merge_upgrade_into_merge():
                await self._write_output_branch()
                await self._cleanup_branches()
                self._finish()
        except UpgradeError as exc:
            session.fail(str(exc))
            session.report()
            raise
        except (GitError, CommandError, ReleaseError, ProjectConfigError, OSError) as exc:
            state = session.state
            session.fail(str(exc))
            session.report()
            raise UpgradeError(str(exc), state) from exc

        session.report()
        return session

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _download_binaries(self) -> None:
        session = self._enter(UpgradeState.DOWNLOAD_OLD_BINARY, "Downloading release binaries")
        session.temp_dir = Path(tempfile.mkdtemp(prefix="kubeforge-update-"))
        session.binary_path = await self.release.download_binary(
            session.binary_url, session.temp_dir / "from"
        )
        if session.to_binary_url:
            session.to_binary_path = await self.release.download_binary(
                session.to_binary_url, session.temp_dir / "to"
            )

    async def _create_ancestor_branch(self) -> None:
        session = self._enter(UpgradeState.CREATE_ANCESTOR_BRANCH, "Creating the ancestor branch")
        await self._git("checkout", "-b", session.ancestor_branch, session.from_branch)

    async def _clean_ancestor_branch(self) -> None:
        self._enter(UpgradeState.CLEAN_ANCESTOR_BRANCH, "Cleaning the ancestor branch")
        keep = {".git", self.settings.project_file}
        await asyncio.to_thread(_remove_all_except, self.repo_dir, keep)
        await self._commit("Clean up the ancestor branch")

    async def _regenerate_ancestor(self) -> None:
        session = self._enter(UpgradeState.REGENERATE_ANCESTOR, "Regenerating the ancestor with the old binary")
        await self._regenerate(session.binary_path)
        await self._make(after_generate=True)
        await self._commit(f"Scaffold with {self.settings.binary_name} {session.from_version}")

    async def _create_current_branch(self) -> None:
        session = self._enter(UpgradeState.CREATE_CURRENT_BRANCH, "Overlaying the user's code")
        await self._git("checkout", "-b", session.current_branch, session.ancestor_branch)
        await self._git("checkout", session.from_branch, "--", ".")
        await self._commit(f"Add content from {session.from_branch}")

    async def _create_upgrade_branch(self) -> None:
        target = f"release {self.session.to_version}" if self.session.to_binary_path else "the installed binary"
        session = self._enter(UpgradeState.CREATE_UPGRADE_BRANCH, f"Regenerating with {target}")
        await self._git("checkout", "-b", session.upgrade_branch, session.ancestor_branch)
        await self._regenerate(session.to_binary_path)
        await self._make(after_generate=True)
        await self._commit(f"Scaffold with {self.settings.binary_name} {session.to_version}")

    async def _create_merge_branch(self) -> None:
        session = self._enter(UpgradeState.CREATE_MERGE_BRANCH, "Creating the merge branch")
        await self._git("checkout", "-b", session.merge_branch, session.current_branch)

    async def _merge_upgrade_into_merge(self) -> bool:
        """Merge and commit; False when conflicts are left for the user."""
        session = self._enter(UpgradeState.MERGE_UPGRADE_INTO_MERGE, "Merging the upgrade")
        clean = await merge(
            session.upgrade_branch,
            cwd=self.repo_dir,
            timeout=self.settings.git_timeout,
            config=self.git_config,
            commit=False,
        )
        if clean:
            await self._make()
            await self._commit(self._message())
            print_success(f"Upgrade merged cleanly on {session.merge_branch}")
            return True

        if not self.force:
            session.advance(UpgradeState.CONFLICTS_LEFT_FOR_USER)
            print_warning(
                f"Merge conflicts left on {session.merge_branch}, resolve them and commit the result"
                " or run the update again with --force"
            )
            return False

        # Markers are committed as-is; make would only trip over them.
        session.conflicts_committed = True
        await self._commit(self._message())
        print_warning(f"Merge conflicts committed with markers on {session.merge_branch}")
        return True

    async def _write_output_branch(self) -> None:
        session = self._enter(UpgradeState.WRITE_OUTPUT_BRANCH, "Writing the output branch")
        if self.show_commits:
            await self._git("checkout", "-B", session.output_branch, session.merge_branch)
            return

        await self._git("checkout", "-B", session.output_branch, session.from_branch)
        await self._git("rm", "-r", "--quiet", "--ignore-unmatch", "--", ".")
        await self._git("checkout", session.merge_branch, "--", ".")
        for path in self.restore_paths:
            try:
                await self._git("checkout", session.from_branch, "--", path)
            except GitError as exc:
                print_warning(f"Could not restore {path} from {session.from_branch}: {exc}")
        await self._commit(self._message())

    async def _cleanup_branches(self) -> None:
        session = self._enter(UpgradeState.CLEANUP_BRANCHES, "Deleting the temporary branches")
        for branch in session.temp_branches:
            try:
                if await self._branch_exists(branch):
                    await self._git("branch", "-D", branch)
            except GitError as exc:
                print_warning(f"Could not delete branch {branch}: {exc}")
        if session.temp_dir is not None:
            await asyncio.to_thread(shutil.rmtree, session.temp_dir, True)

    def _finish(self) -> None:
        session = self.session
        if session.conflicts_committed:
            session.advance(UpgradeState.CONFLICTS_LEFT_FOR_USER)
            print_warning(
                f"{session.output_branch} contains conflict markers, resolve them before merging it"
            )
            return
        session.advance(UpgradeState.DONE)
        print_success(f"Upgrade written to {session.output_branch}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _enter(self, state: UpgradeState, message: str) -> UpgradeSession:
        self.session.advance(state)
        print_step(message)
        return self.session

    def _message(self) -> str:
        session = self.session
        default = f"Update scaffold from {session.from_version} to {session.to_version}"
        if session.conflicts_committed:
            return self.conflict_message or f"{default} (manual conflict resolution required)"
        return self.merge_message or default

    def _recorded_version(self) -> str:
        store = YamlStore(self.repo_dir, self.settings.project_file)
        try:
            config = store.load()
        except ProjectConfigError as exc:
            raise UpgradeError(f"cannot read the project file: {exc}", UpgradeState.VALIDATE) from exc
        try:
            return config.get_cli_version()
        except ProjectConfigError:
            return ""

    async def _regenerate(self, binary: Path | None) -> None:
        """Run ``alpha generate`` with a release *binary*, or the installed CLI."""
        if binary is None:
            await run_checked(
                [*self.command, "alpha", "generate"],
                cwd=self.repo_dir,
                timeout=self.settings.command_timeout,
            )
            return
        # A release binary re-invokes itself by name during regeneration.
        path = os.pathsep.join([str(binary.parent), os.environ.get("PATH", "")])
        await run_checked(
            [str(binary), "alpha", "generate"],
            cwd=self.repo_dir,
            timeout=self.settings.command_timeout,
            env={"PATH": path},
        )

    async def _git(self, *args: str) -> str:
        return await run_git(
            *args, cwd=self.repo_dir, timeout=self.settings.git_timeout, config=self.git_config
        )

    async def _branch_exists(self, branch: str) -> bool:
        return await branch_exists(
            branch, cwd=self.repo_dir, timeout=self.settings.git_timeout, config=self.git_config
        )

    async def _commit(self, message: str) -> None:
        await commit_all(
            message, cwd=self.repo_dir, timeout=self.settings.git_timeout, config=self.git_config
        )

    async def _make(self, after_generate: bool = False) -> None:
        targets = self.settings.make_targets
        if after_generate:
            # alpha generate already ran these.
            targets = [target for target in targets if target not in POST_GENERATE_TARGETS]
        await run_make_targets(
            targets, cwd=self.repo_dir, timeout=self.settings.command_timeout, check=False
        )


def _remove_all_except(root: Path, keep: set[str]) -> None:
    for entry in root.iterdir():
        if entry.name in keep:
            continue
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()
