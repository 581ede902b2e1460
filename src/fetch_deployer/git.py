"""Git working tree used as the fetch target for deployments.

Shells out to the `git` CLI. Fetches never merge: the working tree is reset
onto the fetched branch, so a fetch either applies cleanly or fails as a whole.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

ZERO_SHA = "0" * 40


class FetchError(RuntimeError):
    """Raised when a git command needed for a fetch fails."""


@dataclass(frozen=True, slots=True)
class RepositoryConfig:
    path: Path
    receive_info_file: Path


@dataclass(frozen=True, slots=True)
class ReceiveInfo:
    old_ref: str | None
    new_ref: str | None
    branch: str

    def to_line(self) -> str:
        # Same layout as a post-receive hook line: "<old> <new> <ref>".
        return f"{self.old_ref or ZERO_SHA} {self.new_ref or ZERO_SHA} refs/heads/{self.branch}\n"


class GitRepository:
    """Minimal git CLI wrapper for fetch based deployments."""

    def __init__(self, git_executable: str = "git") -> None:
        self._git = git_executable
        self._config: RepositoryConfig | None = None
        self.receive_info: ReceiveInfo | None = None

    @property
    def config(self) -> RepositoryConfig:
        if self._config is None:
            raise RuntimeError("GitRepository.initialize() must be called first")
        return self._config

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        cmd = [self._git, *args]
        logger.debug("Running git", extra={"git_args": list(args)})
        try:
            return subprocess.run(
                cmd,
                cwd=self.config.path,
                capture_output=True,
                text=True,
                check=check,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise FetchError(f"git {' '.join(args)} failed: {stderr}") from e
        except OSError as e:
            raise FetchError(f"Unable to run git: {e}") from e

    def initialize(self, config: RepositoryConfig) -> None:
        """Bind to `config.path`, creating an empty repository if needed."""

        self._config = config
        config.path.mkdir(parents=True, exist_ok=True)
        if not (config.path / ".git").exists():
            logger.info("Initializing repository", extra={"path": str(config.path)})
            self._run("init", "--quiet")

    def set_receive_info(self, old_ref: str | None, new_ref: str | None, branch: str) -> None:
        """Record the pushed revision range for the upcoming deployment."""

        info = ReceiveInfo(old_ref=old_ref, new_ref=new_ref, branch=branch)
        self.receive_info = info
        path = self.config.receive_info_file
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(info.to_line(), encoding="utf-8")

    def fetch_without_conflict(self, url: str, remote_alias: str, branch: str) -> str:
        """Fetch `branch` from `url` and check it out.

        Returns:
            The commit id now checked out.

        Raises:
            FetchError: If any git step fails. The remote alias and the working
                tree are only touched after the fetch itself succeeded.
        """

        tracking_ref = f"refs/remotes/{remote_alias}/{branch}"
        self._run("fetch", "--quiet", "--no-tags", url, f"+refs/heads/{branch}:{tracking_ref}")

        remotes = self._run("remote").stdout.split()
        if remote_alias in remotes:
            self._run("remote", "set-url", remote_alias, url)
        else:
            self._run("remote", "add", remote_alias, url)

        self._run("reset", "--hard", "--quiet", tracking_ref)
        self._run("clean", "-fdq")

        commit = self.head_commit() or ""
        logger.info(
            "Fetched branch",
            extra={"remote": remote_alias, "branch": branch, "commit": commit},
        )
        return commit

    def head_commit(self) -> str | None:
        result = self._run("rev-parse", "--verify", "--quiet", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None
