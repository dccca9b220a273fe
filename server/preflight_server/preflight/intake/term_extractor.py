"""Term extraction via a local Ollama model, with a stop-word fallback.

The model is asked for 2–4 comma-separated nouns/topics.  Its answer is
lower-cased and capped to a few terms so a BM25 query is not diluted.
Every failure on the model path is soft: the caller sees ``None``.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional

import httpx

from preflight import config as cfg
from preflight.intake.stopwords import stopword_terms
from preflight.models import TermSet

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = """Extract 2-4 key search terms (nouns, names, topics). Output ONLY comma-separated terms.

"my girlfriend's birthday" → girlfriend, birthday
"what supplements should I take" → supplements, health
"tell me about the Toronto trip" → Toronto, trip
"what did we discuss yesterday" → yesterday, discussion

"{query}" →"""

_WHITESPACE = re.compile(r"\s+")


def split_terms(raw: str) -> List[str]:
    """``"Toronto, trip"`` → ``["toronto", "trip"]``."""
    flattened = _WHITESPACE.sub(" ", raw.lower().replace(",", " ")).strip()
    return flattened.split(" ") if flattened else []


def build_term_set(raw: str, provenance: str, max_terms: int | None = None) -> TermSet:
    limit = max_terms if max_terms is not None else cfg.MAX_SEARCH_TERMS
    return TermSet(terms=split_terms(raw)[:limit], provenance=provenance, raw=raw)


class TermExtractor:
    """Reduces a user message to a short list of search terms."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        fallback_enabled: bool | None = None,
        max_terms: int | None = None,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self.base_url = (base_url or cfg.OLLAMA_URL).rstrip("/")
        self.model = model or cfg.OLLAMA_MODEL
        self.timeout = timeout if timeout is not None else cfg.OLLAMA_TIMEOUT_SECONDS
        self.fallback_enabled = (
            cfg.STOPWORD_FALLBACK_ENABLED if fallback_enabled is None else fallback_enabled
        )
        self.max_terms = max_terms if max_terms is not None else cfg.MAX_SEARCH_TERMS

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def request_entities(self, text: str) -> Optional[str]:
        """Ask the model for comma-separated terms; ``None`` when unavailable."""
        payload = {
            "model": self.model,
            "prompt": PROMPT_TEMPLATE.format(query=text),
            "stream": False,
            "options": {"num_predict": cfg.OLLAMA_NUM_PREDICT, "temperature": 0},
        }
        try:
            response = await self._get_client().post(
                f"{self.base_url}/api/generate", json=payload, timeout=self.timeout
            )
            if response.status_code != 200:
                logger.warning("Ollama returned HTTP %d", response.status_code)
                return None
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Ollama request failed: %s", exc)
            return None

        entities = data.get("response") if isinstance(data, dict) else None
        entities = entities.strip() if isinstance(entities, str) else ""
        # A long answer means the model wrote prose instead of terms.
        if 0 < len(entities) < cfg.MAX_ENTITY_RESPONSE_CHARS:
            return entities
        logger.info("Ollama response rejected (%d chars)", len(entities))
        return None

    async def extract(self, text: str) -> Optional[TermSet]:
        """Model terms first, then stop-word terms if enabled, else ``None``."""
        entities = await self.request_entities(text)
        if entities:
            return build_term_set(entities, "model", self.max_terms)
        if self.fallback_enabled:
            terms = stopword_terms(text)[: self.max_terms]
            logger.info("Using stop-word fallback terms: %s", terms)
            return TermSet(terms=terms, provenance="fallback", raw=" ".join(terms))
        return None

    async def ping(self) -> bool:
        """Health probe: is the Ollama server answering?"""
        try:
            response = await self._get_client().get(f"{self.base_url}/api/tags", timeout=5.0)
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
