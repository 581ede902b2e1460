"""Unit tests for the git fetch collaborator (git CLI mocked)."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from fetch_deployer import git as git_module
from fetch_deployer.git import FetchError, GitRepository, ReceiveInfo, RepositoryConfig


class FakeGit:
    def __init__(self, *, remotes: str = "", fail_on: str | None = None) -> None:
        self.commands: list[list[str]] = []
        self.remotes = remotes
        self.fail_on = fail_on

    def __call__(self, cmd, cwd, capture_output, text, check):
        args = list(cmd[1:])
        self.commands.append(args)
        if self.fail_on is not None and args[0] == self.fail_on:
            raise subprocess.CalledProcessError(128, cmd, output="", stderr="fatal: nope\n")
        stdout = ""
        if args == ["remote"]:
            stdout = self.remotes
        elif args[0] == "rev-parse":
            stdout = "deadbeef\n"
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")


@pytest.fixture
def config(tmp_path: Path) -> RepositoryConfig:
    return RepositoryConfig(
        path=tmp_path / "repository",
        receive_info_file=tmp_path / "deployments" / "receiveinfo",
    )


def test_initialize_runs_git_init_once(
    config: RepositoryConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeGit()
    monkeypatch.setattr(git_module.subprocess, "run", fake)
    repo = GitRepository()

    repo.initialize(config)
    assert fake.commands == [["init", "--quiet"]]
    assert config.path.is_dir()

    (config.path / ".git").mkdir()
    repo.initialize(config)
    assert fake.commands == [["init", "--quiet"]]


def test_set_receive_info_writes_post_receive_line(
    config: RepositoryConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(git_module.subprocess, "run", FakeGit())
    repo = GitRepository()
    repo.initialize(config)

    repo.set_receive_info("aaa", None, "main")

    assert repo.receive_info == ReceiveInfo(old_ref="aaa", new_ref=None, branch="main")
    assert config.receive_info_file.read_text(encoding="utf-8") == (
        f"aaa {'0' * 40} refs/heads/main\n"
    )


def test_fetch_then_adds_remote_and_resets(
    config: RepositoryConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeGit(remotes="origin\n")
    monkeypatch.setattr(git_module.subprocess, "run", fake)
    repo = GitRepository()
    repo.initialize(config)
    fake.commands.clear()

    commit = repo.fetch_without_conflict("https://example.com/site.git", "external", "main")

    assert commit == "deadbeef"
    assert fake.commands == [
        [
            "fetch",
            "--quiet",
            "--no-tags",
            "https://example.com/site.git",
            "+refs/heads/main:refs/remotes/external/main",
        ],
        ["remote"],
        ["remote", "add", "external", "https://example.com/site.git"],
        ["reset", "--hard", "--quiet", "refs/remotes/external/main"],
        ["clean", "-fdq"],
        ["rev-parse", "--verify", "--quiet", "HEAD"],
    ]


def test_fetch_updates_existing_remote(
    config: RepositoryConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeGit(remotes="external\norigin\n")
    monkeypatch.setattr(git_module.subprocess, "run", fake)
    repo = GitRepository()
    repo.initialize(config)

    repo.fetch_without_conflict("https://example.com/new.git", "external", "main")

    assert ["remote", "set-url", "external", "https://example.com/new.git"] in fake.commands


def test_failed_fetch_leaves_remote_and_working_tree_alone(
    config: RepositoryConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = FakeGit(fail_on="fetch")
    monkeypatch.setattr(git_module.subprocess, "run", fake)
    repo = GitRepository()
    repo.initialize(config)

    with pytest.raises(FetchError, match="fatal: nope"):
        repo.fetch_without_conflict("https://example.com/site.git", "external", "main")

    assert not any(cmd[0] in ("reset", "remote") for cmd in fake.commands)


def test_requires_initialize() -> None:
    with pytest.raises(RuntimeError):
        GitRepository().set_receive_info(None, None, "main")
