"""Semantic backend backed by the host's memory search tool.

The host exposes a tool factory (``createMemorySearchTool`` on the Node side)
that may return ``None`` when no embedding provider is configured.  The tool
is created on first use, at most once per backend instance, and reused.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from preflight import config as cfg
from preflight.models import SearchHit
from preflight.retrieval.backends import collapse_whitespace, workspace_relative

logger = logging.getLogger(__name__)

TOOL_CALL_ID = "preflight-fallback"

ToolFactory = Callable[[], Any]


class SemanticResult(BaseModel):
    path: str
    snippet: str = ""
    score: float = 0.0


class SemanticPayload(BaseModel):
    results: List[SemanticResult] = Field(default_factory=list)
    disabled: bool = False


def parse_tool_result(result: Any) -> Optional[SemanticPayload]:
    """Accept either a bare payload dict or a ``{"content": [{"type": "text", ...}]}`` envelope."""
    if result is None:
        return None

    if isinstance(result, dict) and "content" in result:
        content = result.get("content") or []
        first = content[0] if content else None
        if not isinstance(first, dict) or first.get("type") != "text":
            return None
        try:
            data = json.loads(first.get("text") or "")
        except ValueError:
            logger.info("Semantic tool returned unparsable text")
            return None
    else:
        data = result

    try:
        return SemanticPayload.model_validate(data)
    except ValidationError:
        logger.info("Semantic tool returned an unexpected payload shape")
        return None


class HostToolSemanticBackend:
    def __init__(
        self,
        tool_factory: ToolFactory,
        *,
        workspace_dir: str | None = None,
        preview_max_chars: int | None = None,
    ) -> None:
        self._tool_factory = tool_factory
        self._tool: Any | None = None
        self._init_lock = asyncio.Lock()
        self._initialized = False
        self.workspace_dir = workspace_dir or cfg.WORKSPACE_DIR
        self.preview_max_chars = (
            preview_max_chars if preview_max_chars is not None else cfg.SEMANTIC_PREVIEW_MAX_CHARS
        )

    async def _ensure_tool(self) -> Any | None:
        """Create the host tool once; a ``None`` tool means "not configured"."""
        if self._initialized:
            return self._tool
        async with self._init_lock:
            if self._initialized:
                return self._tool
            try:
                tool = self._tool_factory()
                if inspect.isawaitable(tool):
                    tool = await tool
                self._tool = tool
            except Exception:
                logger.exception("Failed to create host memory search tool")
            self._initialized = True
        return self._tool

    async def search(self, query: str, max_results: int, min_score: float) -> List[SearchHit]:
        tool = await self._ensure_tool()
        if tool is None:
            logger.info("Semantic fallback not configured")
            return []

        params = {"query": query, "maxResults": max_results, "minScore": min_score}
        try:
            result = tool.execute(TOOL_CALL_ID, params)
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            logger.exception("Host memory search tool failed")
            return []

        payload = parse_tool_result(result)
        if payload is None or payload.disabled or not payload.results:
            logger.info("Semantic fallback: no matches")
            return []

        return [
            SearchHit(
                path=workspace_relative(r.path, self.workspace_dir),
                score=r.score,
                preview=collapse_whitespace(r.snippet)[: self.preview_max_chars],
            )
            for r in payload.results[:max_results]
        ]
