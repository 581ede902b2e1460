"""Configuration for the deployment coordinator.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Everything has a default so the server can start against a fresh directory.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DeployerSettings(BaseSettings):
    """Settings for one deployment environment.

    Environment variables:
    - REPOSITORY_PATH        (optional)
    - DEPLOYMENT_CACHE_PATH  (optional)
    - LOCKS_PATH             (optional)
    - DEPLOYMENT_BRANCH      (optional)
    - DEPLOY_COMMAND         (optional)
    - LOG_LEVEL              (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `DeployerSettings(_env_file=path_to_env)`.
    """

    repository_path: Path = Field(
        default=Path("site/repository"),
        validation_alias="REPOSITORY_PATH",
        description="Working tree that fetched revisions are checked out into",
    )
    deployment_cache_path: Path = Field(
        default=Path("site/deployments"),
        validation_alias="DEPLOYMENT_CACHE_PATH",
        description="Directory holding deployment records, settings and the pending marker",
    )
    locks_path: Path = Field(
        default=Path("site/locks"),
        validation_alias="LOCKS_PATH",
        description="Directory holding lock files",
    )
    lock_name: str = Field(
        default="deployment",
        validation_alias="DEPLOYMENT_LOCK_NAME",
        description="Name of the environment-wide deployment lock",
    )

    branch: str = Field(
        default="master",
        validation_alias="DEPLOYMENT_BRANCH",
        description=(
            "Default target branch. A 'branch' value in the settings store takes "
            "priority over this."
        ),
    )
    remote_alias: str = Field(
        default="external",
        validation_alias="DEPLOY_REMOTE_ALIAS",
        description="Remote name that webhook repositories are fetched into",
    )
    deploy_command: str = Field(
        default="",
        validation_alias="DEPLOY_COMMAND",
        description=(
            "Shell command run in the repository after each fetch. "
            "Empty means the deployment only records the fetched commit."
        ),
    )

    max_drain_cycles: int = Field(
        default=10,
        validation_alias="MAX_DRAIN_CYCLES",
        description="Upper bound on follow-up cycles run for deferred triggers per request",
        ge=1,
        le=1000,
    )
    trace_level: int = Field(
        default=1,
        validation_alias="TRACE_LEVEL",
        description="Values above 1 log raw webhook payloads",
        ge=0,
    )
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    server_host: str = Field(default="127.0.0.1", validation_alias="SERVER_HOST")
    server_port: int = Field(default=8000, validation_alias="SERVER_PORT", gt=0, lt=65536)

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        # Allow `DeployerSettings(repository_path=...)` alongside the env aliases.
        populate_by_name=True,
    )

    @property
    def marker_file(self) -> Path:
        """Presence means a trigger was deferred while a deployment ran."""

        return self.deployment_cache_path / "pending"

    @property
    def receive_info_file(self) -> Path:
        return self.deployment_cache_path / "receiveinfo"

    @property
    def deployments_state_file(self) -> Path:
        return self.deployment_cache_path / "deployments.json"

    @property
    def settings_state_file(self) -> Path:
        return self.deployment_cache_path / "settings.json"
