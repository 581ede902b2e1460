"""Deployment settings persisted next to the deployment records.

A flat JSON object of string keys to string values. The only key the
coordinator reads today is `branch`.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class SettingsStore:
    path: Path
    defaults: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    def _load_unlocked(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable settings file", extra={"path": str(self.path)})
            return {}
        if not isinstance(raw, dict):
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def all(self) -> dict[str, str]:
        with self._lock:
            return {**self.defaults, **self._load_unlocked()}

    def get_value(self, key: str) -> str | None:
        value = self.all().get(key)
        return value or None

    def set_value(self, key: str, value: str) -> None:
        with self._lock:
            values = self._load_unlocked()
            values[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps(values, indent=2, ensure_ascii=False, sort_keys=True) + "\n",
                encoding="utf-8",
            )
