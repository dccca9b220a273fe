"""Preflight orchestrator: decides whether, and how, to augment a turn.

Per turn, strictly in order:
    1. Normalize the raw prompt; ineligible turns end here silently.
    2. Extract search terms (local LLM, optional stop-word fallback).
    3. Run the search cascade (keyword, then semantic on a miss).
    4. Append one audit record.
    5. Return a ``PreflightResult``.

Nothing here raises to the host: memory augmentation is best-effort.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from preflight import config as cfg
from preflight.intake.normalizer import normalize
from preflight.intake.term_extractor import TermExtractor
from preflight.models import AuditRecord, HintBlock, PreflightResult, Skip, TermSet, Turn
from preflight.observability.audit_log import SearchAuditLog
from preflight.observability.tracing import log_with_context, record_metric
from preflight.retrieval.cascade import CascadeOutcome, SearchCascade
from preflight.retrieval.keyword_qmd import QmdKeywordBackend
from preflight.retrieval.preview import PreviewReader
from preflight.retrieval.semantic_azure import AzureSearchSemanticBackend
from preflight.retrieval.semantic_host_tool import HostToolSemanticBackend

logger = logging.getLogger(__name__)

FALLBACK_QUERY_SUFFIX = " [SEMANTIC FALLBACK]"


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def build_keyword_backend(name: str | None = None):
    name = (name or cfg.KEYWORD_BACKEND).lower()
    if name == "qmd":
        return QmdKeywordBackend()
    if name == "none":
        return None
    raise ValueError(f"Unknown KEYWORD_BACKEND: {name!r}")


def build_semantic_backend(
    name: str | None = None,
    tool_factory: Optional[Callable[[], Any]] = None,
):
    name = (name or cfg.SEMANTIC_BACKEND).lower()
    if name == "host":
        if tool_factory is None:
            logger.info("SEMANTIC_BACKEND=host but no host tool factory given")
            return None
        return HostToolSemanticBackend(tool_factory)
    if name == "azure":
        return AzureSearchSemanticBackend()
    if name == "none":
        return None
    raise ValueError(f"Unknown SEMANTIC_BACKEND: {name!r}")


class PreflightOrchestrator:
    def __init__(
        self,
        extractor: TermExtractor,
        cascade: SearchCascade,
        audit_log: SearchAuditLog | None = None,
    ) -> None:
        self.extractor = extractor
        self.cascade = cascade
        self.audit_log = audit_log or SearchAuditLog()

    @classmethod
    def from_config(
        cls, tool_factory: Optional[Callable[[], Any]] = None
    ) -> "PreflightOrchestrator":
        cascade = SearchCascade(
            keyword=build_keyword_backend(),
            semantic=build_semantic_backend(tool_factory=tool_factory),
            preview_reader=PreviewReader(),
        )
        return cls(TermExtractor(), cascade, SearchAuditLog())

    async def run(self, turn: Turn) -> PreflightResult:
        start_total = time.monotonic()
        record_metric("preflight_turns")

        if not cfg.PREFLIGHT_ENABLED:
            return PreflightResult.skipped("disabled")

        normalized = normalize(turn.prompt)
        if isinstance(normalized, Skip):
            record_metric("preflight_skipped")
            return PreflightResult.skipped(normalized.reason)
        text = normalized.text

        start_extract = time.monotonic()
        terms = await self.extractor.extract(text)
        extract_ms = _elapsed_ms(start_extract)
        record_metric("preflight_extract_ms_total", extract_ms)

        if terms is None:
            record_metric("preflight_extractor_unavailable")
            log_with_context(
                logging.WARNING,
                "preflight: entity extractor unavailable, memory search disabled",
                session_key=turn.session_key,
            )
            return PreflightResult.with_hints(
                HintBlock.recall_disabled(self.extractor.model), "extractor_unavailable"
            )
        if terms.provenance == "fallback":
            record_metric("preflight_stopword_fallback")

        logger.info(
            "preflight.terms provenance=%s raw=%r query=%r extract_ms=%.1f",
            terms.provenance, terms.raw, terms.query, extract_ms,
        )
        if len(terms.query) < 2:
            record_metric("preflight_skipped")
            return PreflightResult.skipped("no_search_query", terms)

        return await self._search(turn, text, terms, extract_ms, start_total)

    async def _search(
        self,
        turn: Turn,
        text: str,
        terms: TermSet,
        extract_ms: float,
        start_total: float,
    ) -> PreflightResult:
        start_search = time.monotonic()
        outcome: CascadeOutcome | None = None
        try:
            outcome = await self.cascade.search(terms.query, text)
        except Exception:
            logger.exception("preflight search failed")
            record_metric("preflight_errors")

        search_ms = outcome.search_ms if outcome is not None else _elapsed_ms(start_search)
        total_ms = _elapsed_ms(start_total)
        record_metric("preflight_search_ms_total", search_ms)
        record_metric("preflight_total_ms_total", total_ms)

        await self.audit_log.record(
            self._audit_entry(text, terms, outcome, extract_ms, search_ms, total_ms)
        )

        if outcome is None:
            return PreflightResult.skipped("search_failed", terms)
        if outcome.fallback_used:
            record_metric("preflight_semantic_fallback")

        block = outcome.hint_block
        log_with_context(
            logging.INFO,
            "preflight.search",
            session_key=turn.session_key,
            backend=outcome.backend,
            hits=len(outcome.hits),
            search_ms=round(search_ms, 1),
            total_ms=round(total_ms, 1),
        )
        if block is None:
            return PreflightResult.skipped("no_hits", terms)

        record_metric(f"preflight_{outcome.backend}_hits")
        record_metric("preflight_augmented")
        return PreflightResult.with_hints(
            block, f"{outcome.backend}_hits", terms=terms, hits=outcome.hits
        )

    @staticmethod
    def _audit_entry(
        text: str,
        terms: TermSet,
        outcome: CascadeOutcome | None,
        extract_ms: float,
        search_ms: float,
        total_ms: float,
    ) -> AuditRecord:
        query = terms.query
        if outcome is not None and outcome.fallback_used:
            query += FALLBACK_QUERY_SUFFIX
        return AuditRecord(
            prompt=text[: cfg.AUDIT_PROMPT_MAX_CHARS],
            entities=terms.raw or None,
            search_query=query,
            results=[(h.path, h.score) for h in outcome.hits] if outcome else [],
            extract_ms=extract_ms,
            search_ms=search_ms,
            total_ms=total_ms,
            backend=outcome.backend if outcome else "none",
        )

    async def close(self) -> None:
        await self.extractor.close()
        semantic_close = getattr(self.cascade.semantic, "close", None)
        if semantic_close is not None:
            await semantic_close()
