"""Transport-neutral handling of a deployment webhook request.

The HTTP layer hands over the form `payload` field and the request headers
and turns the returned :class:`HandlerResult` into a response.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from fetch_deployer.dispatcher import DeploymentDispatcher
from fetch_deployer.locking import OperationLock
from fetch_deployer.logging import step
from fetch_deployer.marker import MarkerStore
from fetch_deployer.payload import DEFAULT_BRANCH, EmptyPayload, PayloadError, normalize

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    """Terminal states of a webhook request."""

    REJECTED = "rejected"
    DEFERRED = "deferred"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class HandlerResult:
    status_code: int
    state: RequestState
    message: str = ""
    cycles: int = 0


class SettingsLookup(Protocol):
    def get_value(self, key: str) -> str | None: ...


class FetchHandler:
    """Accept a push notification and deploy it, or defer it if busy."""

    def __init__(
        self,
        *,
        lock: OperationLock,
        markers: MarkerStore,
        dispatcher: DeploymentDispatcher,
        settings: SettingsLookup,
        trace_level: int = 1,
    ) -> None:
        self.lock = lock
        self.markers = markers
        self.dispatcher = dispatcher
        self.settings = settings
        self.trace_level = trace_level

    def handle(self, payload: str | None, headers: Mapping[str, str]) -> HandlerResult:
        with step("FetchHandler"):
            if not payload:
                logger.warning("Received empty json payload")
                return HandlerResult(400, RequestState.REJECTED, str(EmptyPayload()))

            if self.trace_level > 1:
                logger.debug("payload", extra={"json": payload})

            try:
                trigger = normalize(payload, headers)
            except PayloadError as e:
                logger.warning("Rejected webhook payload", extra={"error": str(e)})
                return HandlerResult(400, RequestState.REJECTED, str(e))

            target_branch = self.settings.get_value("branch") or DEFAULT_BRANCH
            logger.info(
                "Attempting to fetch target branch",
                extra={"target_branch": target_branch, "repository_url": trigger.repository_url},
            )

            def deploy() -> HandlerResult:
                cycles = self.dispatcher.run_cycle(trigger, target_branch)
                return HandlerResult(200, RequestState.COMPLETED, "Deployment completed", cycles)

            def defer() -> HandlerResult:
                # The follow-up cycle redeploys the running trigger, not this one.
                with step("Creating marker file"):
                    self.markers.create()
                return HandlerResult(
                    409,
                    RequestState.DEFERRED,
                    "A deployment is already in progress; it will be retried automatically",
                )

            return self.lock.try_run(deploy, defer)
