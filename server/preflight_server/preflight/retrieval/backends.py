"""Backend interfaces for the search cascade (structural typing)."""

from __future__ import annotations

import os
import re
from typing import List, Protocol

from preflight.models import SearchHit

_WHITESPACE = re.compile(r"\s+")


class KeywordBackend(Protocol):
    """Fast lexical search over a short term query."""

    async def search(self, query: str, max_results: int) -> List[SearchHit]: ...


class SemanticBackend(Protocol):
    """Meaning-based search over the original message text."""

    async def search(
        self, query: str, max_results: int, min_score: float
    ) -> List[SearchHit]: ...


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def workspace_relative(path: str, workspace_dir: str) -> str:
    """Rewrite an absolute path under *workspace_dir* to a relative one."""
    root = os.path.normpath(workspace_dir) + os.sep
    if path.startswith(root):
        return path[len(root):]
    return path
