"""Webhook payload normalization.

Two payload shapes are accepted:

Host style (push event)::

    {"repository": {"url": "..."}, "ref": "refs/heads/main", "before": "...", "after": "..."}

Generic (manual or custom integrations)::

    {"url": "...", "branch": "...", "deployer": "...", "oldRef": "...", "newRef": "..."}

Both are reduced to a :class:`TriggerInfo`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "master"

# Header -> integration identifier. Checked in order; first match wins.
DEPLOYER_HEADERS: tuple[tuple[str, str], ...] = (
    ("x-github-event", "github"),
    ("x-gitlab-event", "gitlab"),
    ("x-event-key", "bitbucket"),
)


class PayloadError(ValueError):
    """Base class for payloads that cannot be turned into a trigger."""


class EmptyPayload(PayloadError):
    def __init__(self, message: str = "Payload is empty") -> None:
        super().__init__(message)


class MalformedPayload(PayloadError):
    def __init__(self, message: str = "Unsupported payload format") -> None:
        super().__init__(message)


class MissingRepository(PayloadError):
    def __init__(self, message: str = "Payload does not contain a repository url") -> None:
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class TriggerInfo:
    """Canonical description of what a push asks us to deploy."""

    repository_url: str
    branch: str = DEFAULT_BRANCH
    old_ref: str | None = None
    new_ref: str | None = None
    deployer: str | None = None


def detect_deployer(headers: Mapping[str, str]) -> str | None:
    """Best-effort guess of which integration sent the request.

    This is a heuristic over header names, not an authentication check.
    """

    present = {name.lower() for name in headers}
    for header, deployer in DEPLOYER_HEADERS:
        if header in present:
            return deployer
    return None


def _str(obj: Mapping[str, object], key: str) -> str | None:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return json.dumps(value)
    return None


@dataclass(frozen=True, slots=True)
class HostStylePayload:
    repository_url: str | None
    ref: str
    before: str | None
    after: str | None

    @property
    def branch(self) -> str:
        # refs/heads/feature/x -> x; only the last segment is kept.
        return self.ref.split("/")[-1]

    def to_trigger(self, headers: Mapping[str, str]) -> TriggerInfo:
        return _finish(
            repository_url=self.repository_url,
            branch=self.branch,
            old_ref=self.before,
            new_ref=self.after,
            deployer=detect_deployer(headers),
        )


@dataclass(frozen=True, slots=True)
class GenericPayload:
    url: str | None
    branch: str | None
    deployer: str | None
    old_ref: str | None
    new_ref: str | None

    def to_trigger(self, headers: Mapping[str, str]) -> TriggerInfo:
        _ = headers
        return _finish(
            repository_url=self.url,
            branch=self.branch,
            old_ref=self.old_ref,
            new_ref=self.new_ref,
            deployer=self.deployer,
        )


ParsedPayload = HostStylePayload | GenericPayload


def _finish(
    *,
    repository_url: str | None,
    branch: str | None,
    old_ref: str | None,
    new_ref: str | None,
    deployer: str | None,
) -> TriggerInfo:
    if not repository_url:
        raise MissingRepository()
    return TriggerInfo(
        repository_url=repository_url,
        branch=branch or DEFAULT_BRANCH,
        old_ref=old_ref or None,
        new_ref=new_ref or None,
        deployer=deployer or None,
    )


def parse_payload(raw_body: str) -> ParsedPayload:
    """Parse a raw JSON body into one of the supported payload shapes.

    Raises:
        MalformedPayload: If the body is empty, not JSON, not an object, or a
            host style payload has no `ref`.
    """

    if not raw_body:
        raise MalformedPayload()

    try:
        document = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise MalformedPayload() from e

    if not isinstance(document, dict):
        raise MalformedPayload()

    repository = document.get("repository")
    if isinstance(repository, dict):
        ref = _str(document, "ref")
        if not ref:
            raise MalformedPayload()
        return HostStylePayload(
            repository_url=_str(repository, "url"),
            ref=ref,
            before=_str(document, "before"),
            after=_str(document, "after"),
        )

    return GenericPayload(
        url=_str(document, "url"),
        branch=_str(document, "branch"),
        deployer=_str(document, "deployer"),
        old_ref=_str(document, "oldRef"),
        new_ref=_str(document, "newRef"),
    )


def normalize(raw_body: str, headers: Mapping[str, str] | None = None) -> TriggerInfo:
    """Turn a webhook body into a :class:`TriggerInfo`.

    Raises:
        MalformedPayload: See :func:`parse_payload`.
        MissingRepository: If no repository url can be determined.
    """

    parsed = parse_payload(raw_body)
    trigger = parsed.to_trigger(headers or {})
    logger.debug(
        "Payload normalized",
        extra={
            "payload_format": type(parsed).__name__,
            "repository_url": trigger.repository_url,
            "branch": trigger.branch,
            "deployer": trigger.deployer,
        },
    )
    return trigger
