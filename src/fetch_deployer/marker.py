"""Durable "a deployment was deferred" flag.

The marker carries no data: only its presence matters. Several deferred
triggers collapse into one marker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class MarkerStore:
    path: Path

    def create(self) -> None:
        """Mark a deployment as pending. Safe to call when already pending."""

        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Opening with "a" creates the file if absent and never truncates.
        with self.path.open("a", encoding="utf-8"):
            pass
        logger.info("Pending deployment marker created", extra={"marker": str(self.path)})

    def exists(self) -> bool:
        return self.path.is_file()

    def delete(self) -> None:
        """Clear the marker. Never raises."""

        try:
            self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning(
                "Failed to delete pending deployment marker",
                exc_info=True,
                extra={"marker": str(self.path)},
            )
