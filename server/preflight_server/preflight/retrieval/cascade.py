"""Search cascade: keyword backend first, semantic backend only on a miss.

Scores are backend-local (BM25-like vs cosine-like), so hits from the two
stages are never merged or re-ranked; each stage keeps its backend's order.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from preflight import config as cfg
from preflight.models import HintBlock, SearchHit
from preflight.retrieval.backends import KeywordBackend, SemanticBackend
from preflight.retrieval.preview import PreviewReader

logger = logging.getLogger(__name__)


@dataclass
class CascadeOutcome:
    hits: List[SearchHit] = field(default_factory=list)
    backend: str = "none"  # keyword|semantic|none
    fallback_used: bool = False
    keyword_ms: float = 0.0
    semantic_ms: float = 0.0

    @property
    def search_ms(self) -> float:
        return self.keyword_ms + self.semantic_ms

    @property
    def hint_block(self) -> Optional[HintBlock]:
        if not self.hits:
            return None
        return HintBlock.from_hits(self.hits)


class SearchCascade:
    def __init__(
        self,
        keyword: KeywordBackend | None,
        semantic: SemanticBackend | None,
        preview_reader: PreviewReader | None = None,
        *,
        max_results: int | None = None,
        min_score: float | None = None,
        semantic_query_max_chars: int | None = None,
    ) -> None:
        self.keyword = keyword
        self.semantic = semantic
        self.preview_reader = preview_reader or PreviewReader()
        self.max_results = max_results if max_results is not None else cfg.SEARCH_MAX_RESULTS
        self.min_score = min_score if min_score is not None else cfg.SEMANTIC_MIN_SCORE
        self.semantic_query_max_chars = (
            semantic_query_max_chars
            if semantic_query_max_chars is not None
            else cfg.SEMANTIC_QUERY_MAX_CHARS
        )

    async def search(self, term_query: str, normalized_text: str) -> CascadeOutcome:
        outcome = CascadeOutcome()

        if self.keyword is not None:
            start = time.monotonic()
            hits = await self.keyword.search(term_query, self.max_results)
            outcome.keyword_ms = (time.monotonic() - start) * 1000
            logger.info(
                "preflight.keyword query=%r hits=%d elapsed_ms=%.1f",
                term_query, len(hits), outcome.keyword_ms,
            )
            if hits:
                outcome.hits = await self.preview_reader.attach(hits)
                outcome.backend = "keyword"
                return outcome

        if self.semantic is None:
            return outcome

        # The semantic backend matches on meaning, so it gets the message
        # itself rather than the extracted terms.
        outcome.fallback_used = True
        start = time.monotonic()
        hits = await self.semantic.search(
            normalized_text[: self.semantic_query_max_chars],
            self.max_results,
            self.min_score,
        )
        outcome.semantic_ms = (time.monotonic() - start) * 1000
        logger.info(
            "preflight.semantic hits=%d elapsed_ms=%.1f", len(hits), outcome.semantic_ms
        )
        if hits:
            outcome.hits = hits
            outcome.backend = "semantic"
        return outcome
