"""Short text previews for keyword hits, read from the workspace."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import List

import anyio

from preflight import config as cfg
from preflight.models import SearchHit
from preflight.retrieval.backends import collapse_whitespace

logger = logging.getLogger(__name__)

_LEADING_HEADING = re.compile(r"^#.*\n")


def clean_preview(raw: str, max_chars: int) -> str:
    """Drop a leading markdown heading, collapse whitespace, truncate."""
    return collapse_whitespace(_LEADING_HEADING.sub("", raw, count=1))[:max_chars]


class PreviewReader:
    def __init__(
        self,
        workspace_dir: str | None = None,
        *,
        read_bytes: int | None = None,
        max_chars: int | None = None,
    ) -> None:
        self.workspace_dir = os.path.realpath(workspace_dir or cfg.WORKSPACE_DIR)
        self.read_bytes = read_bytes if read_bytes is not None else cfg.PREVIEW_READ_BYTES
        self.max_chars = max_chars if max_chars is not None else cfg.PREVIEW_MAX_CHARS

    def _resolve(self, path: str) -> str | None:
        full = os.path.realpath(os.path.join(self.workspace_dir, path))
        if os.path.commonpath([full, self.workspace_dir]) != self.workspace_dir:
            return None
        return full

    def _read_prefix(self, full_path: str) -> str:
        with open(full_path, "rb") as fh:
            data = fh.read(self.read_bytes)
        # The byte cut may split a multi-byte character; drop the fragment.
        return data.decode("utf-8", errors="ignore")

    async def read(self, path: str) -> str:
        """Preview text for *path*, or ``""`` if it cannot be read."""
        full = self._resolve(path)
        if full is None:
            logger.warning("Preview path escapes workspace: %s", path)
            return ""
        try:
            raw = await anyio.to_thread.run_sync(self._read_prefix, full)
        except OSError as exc:
            logger.debug("Preview read failed for %s: %s", path, exc)
            return ""
        return clean_preview(raw, self.max_chars)

    async def attach(self, hits: List[SearchHit]) -> List[SearchHit]:
        """Fill in ``preview`` on every hit; reads run concurrently."""
        previews = await asyncio.gather(*(self.read(hit.path) for hit in hits))
        for hit, preview in zip(hits, previews):
            hit.preview = preview
        return hits
