"""Keyword backend backed by the ``qmd`` CLI (local BM25 index).

``qmd search <query> -n <k> --files`` prints one match per line as
``#hash,score,qmd://collection/path``, best first.  Anything that goes wrong
(missing binary, non-zero exit, timeout, garbage output) yields no hits.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import List

from preflight import config as cfg
from preflight.models import SearchHit

logger = logging.getLogger(__name__)


def parse_qmd_files_output(
    stdout: str,
    collection_prefix: str | None = None,
    workspace_prefix: str | None = None,
) -> List[SearchHit]:
    """Parse ``--files`` output into hits, preserving order.

    The collection URI prefix is rewritten to a workspace-relative path,
    e.g. ``qmd://memory/notes/trip.md`` → ``memory/notes/trip.md``.
    """
    prefix = collection_prefix if collection_prefix is not None else cfg.QMD_COLLECTION_PREFIX
    target = workspace_prefix if workspace_prefix is not None else cfg.QMD_WORKSPACE_PREFIX
    hits: List[SearchHit] = []
    for line in stdout.strip().splitlines():
        parts = line.strip().split(",")
        if len(parts) < 3:
            continue
        try:
            score = float(parts[1])
        except ValueError:
            logger.debug("Skipping malformed qmd line: %r", line)
            continue
        uri = ",".join(parts[2:])  # paths may contain commas
        if prefix and uri.startswith(prefix):
            uri = target + uri[len(prefix):]
        hits.append(SearchHit(path=uri, score=score, hash=parts[0]))
    return hits


class QmdKeywordBackend:
    def __init__(
        self,
        qmd_path: str | None = None,
        *,
        timeout: float | None = None,
        collection_prefix: str | None = None,
        workspace_prefix: str | None = None,
    ) -> None:
        self.qmd_path = qmd_path or cfg.QMD_PATH
        self.timeout = timeout if timeout is not None else cfg.QMD_TIMEOUT_SECONDS
        self.collection_prefix = (
            collection_prefix if collection_prefix is not None else cfg.QMD_COLLECTION_PREFIX
        )
        self.workspace_prefix = (
            workspace_prefix if workspace_prefix is not None else cfg.QMD_WORKSPACE_PREFIX
        )

    async def search(self, query: str, max_results: int) -> List[SearchHit]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.qmd_path,
                "search",
                query,
                "-n",
                str(max_results),
                "--files",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.warning("qmd not runnable at %s: %s", self.qmd_path, exc)
            return []

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("qmd search timed out after %.1fs", self.timeout)
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()
            return []

        if proc.returncode != 0:
            logger.warning("qmd search exited with status %d", proc.returncode)
            return []

        return parse_qmd_files_output(
            stdout.decode("utf-8", errors="replace"),
            self.collection_prefix,
            self.workspace_prefix,
        )

    def is_available(self) -> bool:
        return os.path.isfile(self.qmd_path) and os.access(self.qmd_path, os.X_OK)
