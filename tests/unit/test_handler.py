"""Unit tests for the webhook request handler."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from unittest.mock import Mock

import pytest

from fetch_deployer.dispatcher import DeploymentDispatcher
from fetch_deployer.git import RepositoryConfig
from fetch_deployer.handler import FetchHandler, HandlerResult, RequestState
from fetch_deployer.locking import OperationLock
from fetch_deployer.marker import MarkerStore
from fetch_deployer.payload import TriggerInfo
from fetch_deployer.settings_store import SettingsStore

GITHUB_PUSH = json.dumps(
    {
        "repository": {"url": "https://github.com/acme/site.git"},
        "ref": "refs/heads/main",
        "before": "aaa",
        "after": "bbb",
    }
)


def _handler(
    tmp_path: Path, dispatcher, *, settings: SettingsStore | None = None
) -> tuple[FetchHandler, OperationLock, MarkerStore]:
    lock = OperationLock("deployment", tmp_path / "locks")
    markers = MarkerStore(tmp_path / "deployments" / "pending")
    handler = FetchHandler(
        lock=lock,
        markers=markers,
        dispatcher=dispatcher,
        settings=settings or SettingsStore(tmp_path / "deployments" / "settings.json"),
    )
    return handler, lock, markers


def test_empty_payload_is_rejected_without_locking(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    handler, lock, markers = _handler(tmp_path, dispatcher)
    lock.try_acquire = Mock(wraps=lock.try_acquire)  # type: ignore[method-assign]

    for payload in ("", None):
        result = handler.handle(payload, {})
        assert result.status_code == 400
        assert result.state == RequestState.REJECTED

    lock.try_acquire.assert_not_called()
    dispatcher.run_cycle.assert_not_called()
    assert markers.exists() is False


def test_malformed_payload_is_rejected_with_message(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    handler, _lock, _markers = _handler(tmp_path, dispatcher)

    result = handler.handle("not json", {})

    assert result.status_code == 400
    assert "format" in result.message
    dispatcher.run_cycle.assert_not_called()


def test_missing_repository_is_rejected(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    handler, _lock, _markers = _handler(tmp_path, dispatcher)

    result = handler.handle(json.dumps({"branch": "main"}), {})

    assert result.status_code == 400
    assert "repository" in result.message


def test_acquired_lock_runs_cycle_with_default_branch(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    dispatcher.run_cycle.return_value = 1
    handler, lock, _markers = _handler(tmp_path, dispatcher)

    result = handler.handle(GITHUB_PUSH, {"X-GitHub-Event": "push"})

    assert result == HandlerResult(200, RequestState.COMPLETED, "Deployment completed", 1)
    dispatcher.run_cycle.assert_called_once_with(
        TriggerInfo(
            repository_url="https://github.com/acme/site.git",
            branch="main",
            old_ref="aaa",
            new_ref="bbb",
            deployer="github",
        ),
        "master",
    )
    assert not lock.is_held()


def test_branch_setting_overrides_target_branch(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    dispatcher.run_cycle.return_value = 1
    settings = SettingsStore(tmp_path / "settings.json")
    settings.set_value("branch", "production")
    handler, _lock, _markers = _handler(tmp_path, dispatcher, settings=settings)

    handler.handle(GITHUB_PUSH, {})

    assert dispatcher.run_cycle.call_args.args[1] == "production"


def test_busy_lock_creates_marker_and_returns_conflict(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    handler, lock, markers = _handler(tmp_path, dispatcher)

    held = lock.try_acquire()
    try:
        with caplog.at_level(logging.INFO, logger="fetch_deployer.locking"):
            result = handler.handle(GITHUB_PUSH, {})
    finally:
        held.release()  # type: ignore[union-attr]

    assert result.status_code == 409
    assert result.state == RequestState.DEFERRED
    assert markers.exists() is True
    dispatcher.run_cycle.assert_not_called()
    assert "Lock busy" in [r.getMessage() for r in caplog.records]


def test_lock_released_when_cycle_fails(tmp_path: Path) -> None:
    dispatcher = Mock(spec=DeploymentDispatcher)
    dispatcher.run_cycle.side_effect = RuntimeError("deploy failed")
    handler, lock, _markers = _handler(tmp_path, dispatcher)

    with pytest.raises(RuntimeError, match="deploy failed"):
        handler.handle(GITHUB_PUSH, {})

    assert not lock.is_held()


def test_conflict_during_cycle_triggers_one_follow_up(
    tmp_path: Path, repository_config: RepositoryConfig
) -> None:
    """R1 deploys; R2 and R3 arrive mid-cycle; R1 drains with its own trigger."""

    in_first_deploy = threading.Event()
    release_first_deploy = threading.Event()
    fetched_urls: list[str] = []
    deployed_by: list[str | None] = []

    class Fetcher:
        def initialize(self, config: RepositoryConfig) -> None:
            pass

        def set_receive_info(self, old_ref, new_ref, branch) -> None:
            pass

        def fetch_without_conflict(self, url: str, remote_alias: str, branch: str) -> None:
            fetched_urls.append(url)

    class Deployer:
        def deploy(self, who: str | None) -> None:
            deployed_by.append(who)
            if len(deployed_by) == 1:
                in_first_deploy.set()
                release_first_deploy.wait(timeout=5)

    markers_path = tmp_path / "deployments" / "pending"
    dispatcher = DeploymentDispatcher(
        fetcher=Fetcher(),
        deployer=Deployer(),
        markers=MarkerStore(markers_path),
        repository_config=repository_config,
    )
    handler, lock, markers = _handler(tmp_path, dispatcher)

    results: list[HandlerResult] = []
    r1 = threading.Thread(
        target=lambda: results.append(handler.handle(GITHUB_PUSH, {"X-GitHub-Event": "push"}))
    )
    r1.start()
    assert in_first_deploy.wait(timeout=5)

    other_repo = json.dumps({"url": "https://example.com/other.git", "deployer": "manual"})
    r2 = handler.handle(other_repo, {})
    r3 = handler.handle(GITHUB_PUSH, {})
    assert r2.status_code == 409
    assert r3.status_code == 409
    assert markers.exists() is True

    release_first_deploy.set()
    r1.join(timeout=5)

    assert results[0].status_code == 200
    assert results[0].cycles == 2
    assert fetched_urls == ["https://github.com/acme/site.git"] * 2
    assert deployed_by == ["github", "github"]
    assert markers.exists() is False
    assert not lock.is_held()
