"""Fetch-and-deploy cycles with draining of deferred triggers.

Callers must hold the deployment lock. Follow-up cycles run while the lock is
still held, so a deferred trigger is served before any new request gets in.
"""

from __future__ import annotations

import logging
from typing import Protocol

from fetch_deployer.git import RepositoryConfig
from fetch_deployer.logging import step
from fetch_deployer.marker import MarkerStore
from fetch_deployer.payload import TriggerInfo

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_ALIAS = "external"


class Fetcher(Protocol):
    def initialize(self, config: RepositoryConfig) -> None: ...

    def set_receive_info(self, old_ref: str | None, new_ref: str | None, branch: str) -> None: ...

    def fetch_without_conflict(self, url: str, remote_alias: str, branch: str) -> object: ...


class Deployer(Protocol):
    def deploy(self, deployer: str | None) -> object: ...


class DeploymentDispatcher:
    def __init__(
        self,
        *,
        fetcher: Fetcher,
        deployer: Deployer,
        markers: MarkerStore,
        repository_config: RepositoryConfig,
        remote_alias: str = DEFAULT_REMOTE_ALIAS,
        max_drain_cycles: int = 10,
    ) -> None:
        if max_drain_cycles < 1:
            raise ValueError("max_drain_cycles must be >= 1")
        self.fetcher = fetcher
        self.deployer = deployer
        self.markers = markers
        self.repository_config = repository_config
        self.remote_alias = remote_alias
        self.max_drain_cycles = max_drain_cycles

    def run_cycle(self, trigger: TriggerInfo, target_branch: str) -> int:
        """Deploy `trigger`, then once more for each time the marker was set.

        Follow-up cycles reuse `trigger` as-is: the deferred request's own
        payload is not kept, only the fact that it arrived.

        Returns:
            Number of cycles performed (1 + follow-ups).

        Raises:
            Whatever the fetch or deploy collaborators raise. A failed cycle
            leaves the marker untouched.
        """

        self._perform(trigger, target_branch)
        cycles = 1

        while self.markers.exists():
            if cycles > self.max_drain_cycles:
                logger.warning(
                    "Drain limit reached; leaving pending marker for the next trigger",
                    extra={"cycles": cycles, "max_drain_cycles": self.max_drain_cycles},
                )
                break
            with step("Draining pending marker"):
                self.markers.delete()
                self._perform(trigger, target_branch)
            cycles += 1

        return cycles

    def _perform(self, trigger: TriggerInfo, target_branch: str) -> None:
        with step(
            "Performing fetch based deployment",
            repository_url=trigger.repository_url,
            target_branch=target_branch,
        ):
            self.fetcher.initialize(self.repository_config)
            self.fetcher.set_receive_info(trigger.old_ref, trigger.new_ref, target_branch)
            self.fetcher.fetch_without_conflict(
                trigger.repository_url, self.remote_alias, target_branch
            )
            self.deployer.deploy(trigger.deployer)
