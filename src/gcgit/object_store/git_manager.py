"""Git integration for instance directories.

Provides:
- Repository initialization
- Staging of pulled object files
- Status snapshots to decide whether a pull changed anything
- Commits
"""
import logging
import subprocess
from pathlib import Path
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

DEFAULT_AUTHOR_NAME = "gcgit"
DEFAULT_AUTHOR_EMAIL = "gcgit@local"

# Index-side status letters that mean "staged change".
STAGED_CODES = frozenset("AMDRC")


class GitManager:
    """
    Manages git operations for one instance directory.

    The instance directory is the repository root; paths passed in and
    returned are relative to it.
    """

    def __init__(self, repo_path: Path):
        """
        Initialize GitManager.

        Args:
            repo_path: Path to the instance directory (will be git root)
        """
        self.repo_path = repo_path

    def _run_git(
        self,
        *args: str,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        """Run a git command in the repo directory."""
        cmd = ["git", "-C", str(self.repo_path)] + list(args)
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise GitError("git executable not found") from e

        if check and result.returncode != 0:
            logger.error(f"Git command failed: {result.stderr.strip()}")
            raise GitError(f"Git command failed: {result.stderr.strip()}")

        return result

    def is_initialized(self) -> bool:
        """Check if the git repo is initialized."""
        return (self.repo_path / ".git").exists()

    def init(self, message: str = "Initial gcgit repository") -> bool:
        """
        Initialize the git repo if not already done.

        Everything not ignored by the instance's .gitignore goes into the
        initial commit.

        Returns:
            True if newly initialized, False if already exists
        """
        if self.is_initialized():
            logger.debug("Git repo already initialized")
            return False

        self.repo_path.mkdir(parents=True, exist_ok=True)
        self._run_git("init")
        if not self._has_identity():
            self._run_git("config", "user.name", DEFAULT_AUTHOR_NAME)
            self._run_git("config", "user.email", DEFAULT_AUTHOR_EMAIL)

        self._run_git("add", "-A")
        self._run_git("commit", "-m", message, "--allow-empty")

        logger.info(f"Initialized git repo at {self.repo_path}")
        return True

    def _has_identity(self) -> bool:
        name = self._run_git("config", "user.name", check=False)
        email = self._run_git("config", "user.email", check=False)
        return bool(name.stdout.strip()) and bool(email.stdout.strip())

    def add_files(self, paths: Iterable[str]) -> None:
        """Stage the given paths."""
        paths = list(paths)
        if paths:
            self._run_git("add", "--", *paths)

    def status_snapshot(self) -> dict[str, str]:
        """
        Porcelain status of every changed path.

        Returns:
            Mapping of path to its two-letter status code (index, worktree)
        """
        result = self._run_git("status", "--porcelain=v1", "-z", "--untracked-files=all")
        snapshot: dict[str, str] = {}
        entries = result.stdout.split("\0")
        index = 0
        while index < len(entries):
            entry = entries[index]
            index += 1
            if len(entry) < 4:
                continue
            code, path = entry[:2], entry[3:]
            snapshot[path] = code
            if code[0] in "RC":
                index += 1  # skip the rename source
        return snapshot

    def staged_changes(self, paths: Optional[Iterable[str]] = None) -> list[str]:
        """
        Paths with a staged change, optionally restricted to ``paths``.
        """
        wanted = set(paths) if paths is not None else None
        return sorted(
            path for path, code in self.status_snapshot().items()
            if code[0] in STAGED_CODES and (wanted is None or path in wanted)
        )

    def commit(self, message: str, paths: Optional[list[str]] = None) -> Optional[str]:
        """
        Commit staged changes.

        Args:
            message: Commit message
            paths: Restrict the commit to these paths

        Returns:
            Commit hash if successful, None if nothing to commit
        """
        if not self.staged_changes(paths):
            logger.debug("No changes to commit")
            return None

        args = ["commit", "-m", message]
        if paths:
            args += ["--", *paths]
        self._run_git(*args)

        commit_hash = self._run_git("rev-parse", "HEAD").stdout.strip()
        logger.info(f"Committed: {commit_hash[:8]} - {message.splitlines()[0]}")
        return commit_hash

    def modified_object_files(self, suffixes: tuple[str, ...] = (".yaml", ".yml")) -> dict[str, str]:
        """Changed object files and their status codes, config files excluded."""
        return {
            path: code for path, code in self.status_snapshot().items()
            if path.endswith(suffixes) and "/" in path
        }


class GitError(Exception):
    """Exception raised for git operation failures."""
    pass
