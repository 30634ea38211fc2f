"""
Single-file artifact retrieval from a remote git repository.

Instead of cloning, the fetcher builds an empty repository in a scratch
directory, fetches only the head of one branch at depth 1 and reads the
blob for one path straight out of the object store. The scratch directory
is removed on every exit path.
"""

import logging
import os
import shutil
import stat
import sys
import tempfile
from pathlib import Path

from kitty_common.errors import (
    FetchFailure,
    KittyError,
    ProcessLaunchFailure,
    ScratchDirFailure,
)

from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

SCRATCH_PREFIX = "kitty_git_fetch_"


def remove_tree(path: Path) -> list[str]:
    """
    Delete a directory tree, continuing past individual failures.

    Symlinks inside the tree are removed, never followed.

    Args:
        path: Directory to delete

    Returns:
        Descriptions of the entries that could not be removed (empty on success)
    """
    failures: list[str] = []
    if not os.path.lexists(path):
        return failures

    def on_error(func, entry, error):
        if isinstance(error, FileNotFoundError):
            return
        retryable = func in (os.unlink, os.rmdir) and not os.path.islink(entry)
        if isinstance(error, PermissionError) and retryable:
            # git marks pack files read-only
            try:
                os.chmod(entry, stat.S_IRWXU)
                func(entry)
                return
            except OSError as e:
                error = e
        failures.append(f"{entry}: {error}")

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=on_error)
    else:
        shutil.rmtree(
            path, onerror=lambda func, entry, exc_info: on_error(func, entry, exc_info[1])
        )
    return failures


class ArtifactFetcher:
    """
    Fetches the content of one file at a branch head of a remote repository.

    Each call is independent: scratch repositories are never reused.
    """

    def __init__(
        self,
        runner: ProcessRunner,
        repo_url: str,
        branch: str = "main",
        git: str = "git",
        scratch_root: Path | str | None = None,
    ):
        """
        Initialize the fetcher.

        Args:
            runner: Process runner used for every git step
            repo_url: Remote repository URL
            branch: Branch whose head is read
            git: git executable
            scratch_root: Parent for scratch directories (default: system temp dir)
        """
        self.runner = runner
        self.repo_url = repo_url
        self.branch = branch
        self.git = git
        self.scratch_root = Path(scratch_root) if scratch_root else None

    async def fetch(self, path_in_repo: str) -> bytes:
        """
        Return the content of `path_in_repo` at the head of the branch.

        Raises:
            ScratchDirFailure: If the scratch directory cannot be created
            FetchFailure: If any git step fails to launch or exits non-zero
        """
        scratch = self._make_scratch_dir()
        logger.info(f"Fetching {path_in_repo} from {self.repo_url} ({self.branch})")
        try:
            await self._step(scratch, ["init", "-q"], "git init failed")
            await self._step(
                scratch,
                ["remote", "add", "origin", self.repo_url],
                "git remote add failed",
            )
            await self._step(
                scratch,
                ["fetch", "--depth", "1", "origin", self.branch],
                "git fetch failed",
            )

            argv = [self.git, "show", f"FETCH_HEAD:{path_in_repo}"]
            try:
                result = await self.runner.capture(argv, cwd=scratch)
            except ProcessLaunchFailure as e:
                raise FetchFailure(f"git show failed for {path_in_repo}: {e}") from e
            if not result.ok:
                raise FetchFailure(
                    f"git show failed for {path_in_repo} (exit={result.returncode})"
                )
            logger.info(f"Fetched {path_in_repo} ({len(result.stdout)} bytes)")
            return result.stdout
        finally:
            self._cleanup(scratch)

    async def fetch_to(self, path_in_repo: str, target: Path | str) -> Path:
        """
        Fetch `path_in_repo` and write it to `target`.

        The file only appears at `target` once the fetch fully succeeded;
        on failure nothing is written there.

        Returns:
            The target path
        """
        target = Path(target)
        content = await self.fetch(path_in_repo)

        fd, partial = tempfile.mkstemp(
            prefix=f".{target.name}.", suffix=".part", dir=target.parent
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(partial, target)
        except BaseException:
            try:
                os.unlink(partial)
            except OSError:
                pass
            raise
        return target

    async def _step(self, scratch: Path, args: list[str], message: str) -> None:
        argv = [self.git, *args]
        try:
            returncode = await self.runner.execute(argv, cwd=scratch)
        except KittyError as e:
            raise FetchFailure(f"{message}: {e}") from e
        if returncode != 0:
            raise FetchFailure(f"{message} (exit={returncode})")

    def _make_scratch_dir(self) -> Path:
        try:
            return Path(
                tempfile.mkdtemp(
                    prefix=SCRATCH_PREFIX,
                    dir=str(self.scratch_root) if self.scratch_root else None,
                )
            )
        except OSError as e:
            raise ScratchDirFailure(f"Cannot create scratch directory: {e}") from e

    def _cleanup(self, scratch: Path) -> None:
        for failure in remove_tree(scratch):
            logger.warning(f"Could not remove scratch entry {failure}")
