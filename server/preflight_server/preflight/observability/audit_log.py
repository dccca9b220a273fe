"""Append-only JSONL audit log of preflight searches.

One line per turn that reached the search stage, kept for later analysis
of extraction quality and hit rates.  Writing is best-effort: failures are
logged and dropped.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Iterator

import anyio

from preflight import config as cfg
from preflight.models import AuditRecord

logger = logging.getLogger(__name__)


class SearchAuditLog:
    def __init__(self, path: str | None = None, *, enabled: bool | None = None) -> None:
        self.path = path or cfg.SEARCH_LOG_PATH
        self.enabled = cfg.SEARCH_LOG_ENABLED if enabled is None else enabled

    def _append(self, line: str) -> None:
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    async def record(self, entry: AuditRecord) -> None:
        """Append *entry*; never raises."""
        if not self.enabled:
            return
        try:
            await anyio.to_thread.run_sync(self._append, entry.to_json())
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to log search to %s: %s", self.path, exc)


def read_records(path: str) -> Iterator[AuditRecord]:
    """Yield records from a log file, skipping lines that do not parse."""
    with open(path, encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                record = AuditRecord.from_dict(json.loads(line))
            except (AttributeError, TypeError, ValueError):
                logger.debug("Skipping malformed audit line")
                continue
            yield record
