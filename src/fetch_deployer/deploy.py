"""Deployment execution and persisted deployment records.

Records are persisted to the deployment cache so they survive restarts
(best-effort). This is intentionally minimal: one JSON file, rewritten on
every update under a process-local lock.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, Protocol

from pydantic import BaseModel, ValidationError

from fetch_deployer.git import ReceiveInfo

logger = logging.getLogger(__name__)

DeploymentStatus = Literal["running", "succeeded", "failed"]

# Enough of a failing command's stderr to explain the failure.
_ERROR_TAIL_CHARS = 2000


class DeploymentFailed(RuntimeError):
    """Raised when the deploy command exits unsuccessfully."""

    def __init__(self, deployment_id: str, message: str) -> None:
        super().__init__(message)
        self.deployment_id = deployment_id


class DeploymentRecord(BaseModel):
    deployment_id: str
    status: DeploymentStatus
    created_at: str
    updated_at: str

    deployer: str | None = None
    branch: str | None = None
    commit: str | None = None
    error: str | None = None


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class DeploymentStore:
    path: Path

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> list[DeploymentRecord]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return []
        if not isinstance(raw, list):
            return []
        records: list[DeploymentRecord] = []
        for item in raw:
            try:
                records.append(DeploymentRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid deployment record",
                    extra={"path": str(self.path), "error": str(e)},
                )
        return records

    def _save_unlocked(self, records: list[DeploymentRecord]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = [r.model_dump(mode="json") for r in records]
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    def list(self) -> list[DeploymentRecord]:
        with self._lock:
            return self._load_unlocked()

    def get(self, deployment_id: str) -> DeploymentRecord | None:
        with self._lock:
            for record in self._load_unlocked():
                if record.deployment_id == deployment_id:
                    return record
            return None

    def create(
        self, *, deployer: str | None, branch: str | None, commit: str | None
    ) -> DeploymentRecord:
        with self._lock:
            records = self._load_unlocked()
            now = _utc_iso_now()
            record = DeploymentRecord(
                deployment_id=uuid.uuid4().hex,
                status="running",
                created_at=now,
                updated_at=now,
                deployer=deployer,
                branch=branch,
                commit=commit,
            )
            records.append(record)
            self._save_unlocked(records)
            return record

    def update(self, deployment_id: str, **updates: object) -> DeploymentRecord:
        with self._lock:
            records = self._load_unlocked()
            for idx, record in enumerate(records):
                if record.deployment_id != deployment_id:
                    continue
                merged = record.model_copy(update={"updated_at": _utc_iso_now(), **updates})
                records[idx] = merged
                self._save_unlocked(records)
                return merged
            raise KeyError(deployment_id)


class SourceInfo(Protocol):
    """What the deploy step needs to know about the fetched working tree."""

    @property
    def receive_info(self) -> ReceiveInfo | None: ...

    def head_commit(self) -> str | None: ...


class CommandDeploymentManager:
    """Deploys the working tree by running a configured shell command.

    With an empty command the deployment simply records the fetched commit.
    """

    def __init__(
        self,
        *,
        store: DeploymentStore,
        repository_path: Path,
        command: str,
        source: SourceInfo | None = None,
    ) -> None:
        self.store = store
        self.repository_path = repository_path
        self.command = command
        self.source = source

    def deploy(self, deployer: str | None) -> DeploymentRecord:
        commit = None
        branch = None
        if self.source is not None:
            commit = self.source.head_commit()
            if self.source.receive_info is not None:
                branch = self.source.receive_info.branch

        record = self.store.create(deployer=deployer, branch=branch, commit=commit)
        logger.info(
            "Deployment started",
            extra={"deployment_id": record.deployment_id, "deployer": deployer, "commit": commit},
        )

        if not self.command.strip():
            return self.store.update(record.deployment_id, status="succeeded")

        env = {
            **os.environ,
            "DEPLOYER": deployer or "",
            "DEPLOYMENT_ID": record.deployment_id,
            "COMMIT_ID": commit or "",
        }
        try:
            result = subprocess.run(
                self.command,
                shell=True,
                cwd=self.repository_path,
                env=env,
                capture_output=True,
                text=True,
            )
        except OSError as e:
            self.store.update(record.deployment_id, status="failed", error=str(e))
            raise DeploymentFailed(record.deployment_id, f"Unable to run deploy command: {e}") from e

        if result.returncode != 0:
            error = (result.stderr or result.stdout or "").strip()[-_ERROR_TAIL_CHARS:]
            self.store.update(record.deployment_id, status="failed", error=error)
            logger.error(
                "Deployment failed",
                extra={"deployment_id": record.deployment_id, "returncode": result.returncode},
            )
            raise DeploymentFailed(
                record.deployment_id,
                f"Deploy command exited with status {result.returncode}",
            )

        logger.info("Deployment succeeded", extra={"deployment_id": record.deployment_id})
        return self.store.update(record.deployment_id, status="succeeded")
