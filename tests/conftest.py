"""Test configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from fetch_deployer.config import DeployerSettings
from fetch_deployer.git import RepositoryConfig


class RecordingFetcher:
    """Fetch collaborator double that records calls instead of running git."""

    def __init__(self, calls: list[tuple[object, ...]]) -> None:
        self.calls = calls

    def initialize(self, config: RepositoryConfig) -> None:
        self.calls.append(("initialize", config.path))

    def set_receive_info(self, old_ref: str | None, new_ref: str | None, branch: str) -> None:
        self.calls.append(("set_receive_info", old_ref, new_ref, branch))

    def fetch_without_conflict(self, url: str, remote_alias: str, branch: str) -> str:
        self.calls.append(("fetch", url, remote_alias, branch))
        return "abc123"


class RecordingDeployer:
    def __init__(self, calls: list[tuple[object, ...]]) -> None:
        self.calls = calls

    def deploy(self, deployer: str | None) -> None:
        self.calls.append(("deploy", deployer))


@pytest.fixture
def settings(tmp_path: Path) -> DeployerSettings:
    """Provide settings rooted in a temporary site directory."""
    site = tmp_path / "site"
    return DeployerSettings(
        repository_path=site / "repository",
        deployment_cache_path=site / "deployments",
        locks_path=site / "locks",
        _env_file=None,
    )


@pytest.fixture
def repository_config(settings: DeployerSettings) -> RepositoryConfig:
    return RepositoryConfig(
        path=settings.repository_path,
        receive_info_file=settings.receive_info_file,
    )


@pytest.fixture
def calls() -> list[tuple[object, ...]]:
    return []


@pytest.fixture
def fetcher(calls: list[tuple[object, ...]]) -> RecordingFetcher:
    return RecordingFetcher(calls)


@pytest.fixture
def deployer(calls: list[tuple[object, ...]]) -> RecordingDeployer:
    return RecordingDeployer(calls)
