"""Semantic backend backed by an Azure AI Search vector index.

Used when the plugin runs as a standalone sidecar and no host memory tool
is available.  The index holds one document per memory file chunk with
``id``, ``path``, ``text`` and ``vector`` fields.

Search:
    1. Embed the query with Azure OpenAI.
    2. Vector query (k nearest neighbours) against the index.
    3. Drop results under ``min_score``; keep index order.

Any failure returns an empty list: the turn must never fail because the
fallback is unavailable.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional

import anyio

from preflight import config as cfg
from preflight.models import SearchHit
from preflight.retrieval.backends import collapse_whitespace, workspace_relative

logger = logging.getLogger(__name__)

Embedder = Callable[[str], Awaitable[List[float]]]


class AzureSearchSemanticBackend:
    def __init__(
        self,
        *,
        search_client: Any | None = None,
        embedder: Optional[Embedder] = None,
        workspace_dir: str | None = None,
        preview_max_chars: int | None = None,
    ) -> None:
        self._search_client = search_client
        self._embed_client: Any | None = None
        self._embedder = embedder
        self._init_lock = asyncio.Lock()
        self._initialized = search_client is not None
        self.workspace_dir = workspace_dir or cfg.WORKSPACE_DIR
        self.preview_max_chars = (
            preview_max_chars if preview_max_chars is not None else cfg.SEMANTIC_PREVIEW_MAX_CHARS
        )

    # -- Lazy initialisation -------------------------------------------

    async def _ensure_clients(self) -> None:
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            try:
                if cfg.AZURE_SEARCH_ENDPOINT and cfg.AZURE_SEARCH_API_KEY:
                    from azure.core.credentials import AzureKeyCredential
                    from azure.search.documents import SearchClient

                    self._search_client = SearchClient(
                        endpoint=cfg.AZURE_SEARCH_ENDPOINT,
                        index_name=cfg.MEMORY_INDEX_NAME,
                        credential=AzureKeyCredential(cfg.AZURE_SEARCH_API_KEY),
                    )
                else:
                    logger.info("Azure AI Search not configured; semantic fallback disabled")
            except Exception:
                logger.exception("Failed to initialise Azure AI Search client")
            self._initialized = True

    async def _compute_embedding(self, text: str) -> List[float]:
        if self._embedder is not None:
            return await self._embedder(text)
        if not cfg.AZURE_OPENAI_ENDPOINT or not cfg.AZURE_OPENAI_API_KEY:
            return []
        from openai import AsyncAzureOpenAI

        if self._embed_client is None:
            self._embed_client = AsyncAzureOpenAI(
                api_key=cfg.AZURE_OPENAI_API_KEY,
                azure_endpoint=cfg.AZURE_OPENAI_ENDPOINT,
                api_version="2024-02-01",
            )
        response = await self._embed_client.embeddings.create(
            input=[text], model=cfg.AZURE_OPENAI_EMBED_MODEL
        )
        return response.data[0].embedding

    # -- Search --------------------------------------------------------

    async def search(self, query: str, max_results: int, min_score: float) -> List[SearchHit]:
        try:
            await self._ensure_clients()
            if self._search_client is None:
                return []

            vector = await self._compute_embedding(query)
            if not vector:
                logger.info("No query embedding; skipping vector search")
                return []

            docs = await anyio.to_thread.run_sync(self._vector_search, vector, max_results)
        except Exception:
            logger.exception("Azure semantic search failed")
            return []

        hits: List[SearchHit] = []
        for doc in docs:
            score = float(doc.get("@search.score", 0.0))
            if score < min_score:
                continue
            path = doc.get("path") or doc.get("id", "")
            hits.append(
                SearchHit(
                    path=workspace_relative(path, self.workspace_dir),
                    score=score,
                    preview=collapse_whitespace(doc.get("text", ""))[: self.preview_max_chars],
                )
            )
        return hits[:max_results]

    def _vector_search(self, vector: List[float], top: int) -> List[dict]:
        from azure.search.documents.models import VectorizedQuery

        vec_query = VectorizedQuery(vector=vector, k_nearest_neighbors=top, fields="vector")
        results = self._search_client.search(
            search_text=None,
            vector_queries=[vec_query],
            top=top,
            select=["id", "path", "text"],
        )
        return [dict(doc) for doc in results]

    async def close(self) -> None:
        if self._embed_client is not None:
            try:
                await self._embed_client.close()
            except Exception:
                logger.debug("Embedding client close failed", exc_info=True)
            self._embed_client = None
