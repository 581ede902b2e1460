"""Build the collaborators for one deployment environment from settings."""

from __future__ import annotations

from dataclasses import dataclass

from fetch_deployer.config import DeployerSettings
from fetch_deployer.deploy import CommandDeploymentManager, DeploymentStore
from fetch_deployer.dispatcher import DeploymentDispatcher
from fetch_deployer.git import GitRepository, RepositoryConfig
from fetch_deployer.handler import FetchHandler
from fetch_deployer.locking import OperationLock
from fetch_deployer.marker import MarkerStore
from fetch_deployer.settings_store import SettingsStore


@dataclass(frozen=True, slots=True)
class DeployerServices:
    settings: DeployerSettings
    lock: OperationLock
    markers: MarkerStore
    repository: GitRepository
    deployments: DeploymentStore
    settings_store: SettingsStore
    dispatcher: DeploymentDispatcher
    handler: FetchHandler


def build_services(settings: DeployerSettings) -> DeployerServices:
    lock = OperationLock(settings.lock_name, settings.locks_path)
    markers = MarkerStore(settings.marker_file)
    repository = GitRepository()
    deployments = DeploymentStore(settings.deployments_state_file)
    settings_store = SettingsStore(
        settings.settings_state_file, defaults={"branch": settings.branch}
    )

    dispatcher = DeploymentDispatcher(
        fetcher=repository,
        deployer=CommandDeploymentManager(
            store=deployments,
            repository_path=settings.repository_path,
            command=settings.deploy_command,
            source=repository,
        ),
        markers=markers,
        repository_config=RepositoryConfig(
            path=settings.repository_path,
            receive_info_file=settings.receive_info_file,
        ),
        remote_alias=settings.remote_alias,
        max_drain_cycles=settings.max_drain_cycles,
    )
    handler = FetchHandler(
        lock=lock,
        markers=markers,
        dispatcher=dispatcher,
        settings=settings_store,
        trace_level=settings.trace_level,
    )
    return DeployerServices(
        settings=settings,
        lock=lock,
        markers=markers,
        repository=repository,
        deployments=deployments,
        settings_store=settings_store,
        dispatcher=dispatcher,
        handler=handler,
    )
