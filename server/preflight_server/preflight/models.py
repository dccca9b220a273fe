"""Data models for the memory preflight pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

HINT_TAG = "memory-hints"
HINT_HEADER = "Possibly relevant (read if needed):"


@dataclass(frozen=True)
class Turn:
    """The inbound user message the host is about to answer."""

    prompt: str
    session_key: str = ""

    @classmethod
    def from_event(cls, event: Any) -> "Turn":
        """Build a turn from a host event (mapping or attribute style)."""
        if isinstance(event, dict):
            prompt = event.get("prompt") or ""
            session_key = event.get("sessionKey") or event.get("session_key") or ""
        else:
            prompt = getattr(event, "prompt", None) or ""
            session_key = (
                getattr(event, "sessionKey", None)
                or getattr(event, "session_key", None)
                or ""
            )
        return cls(prompt=prompt, session_key=session_key)


@dataclass(frozen=True)
class NormalizedMessage:
    text: str


@dataclass(frozen=True)
class Skip:
    """Turn is not eligible for augmentation."""

    reason: str


@dataclass
class TermSet:
    """Search terms extracted from a normalized message."""

    terms: List[str]
    provenance: str  # model|fallback
    raw: str = ""

    @property
    def query(self) -> str:
        return " ".join(self.terms)


@dataclass
class SearchHit:
    """A single match returned by a keyword or semantic backend."""

    path: str
    score: float
    preview: str = ""
    hash: str = ""

    def hint_line(self) -> str:
        return f'- {self.path} ({self.score:.2f}): "{self.preview}..."'


@dataclass
class HintBlock:
    """Text spliced into the assistant context ahead of generation."""

    lines: List[str] = field(default_factory=list)
    diagnostic: Optional[str] = None

    @classmethod
    def from_hits(cls, hits: List[SearchHit]) -> "HintBlock":
        return cls(lines=[hit.hint_line() for hit in hits])

    @classmethod
    def recall_disabled(cls, model: str) -> "HintBlock":
        return cls(
            diagnostic=(
                "⚠️ Local LLM (Ollama) not running. Memory search disabled.\n"
                f"Run `ollama serve` and ensure {model} is available."
            )
        )

    def render(self) -> str:
        if self.diagnostic is not None:
            body = self.diagnostic
        else:
            body = HINT_HEADER + "\n" + "\n".join(self.lines)
        return f"<{HINT_TAG}>\n{body}\n</{HINT_TAG}>"


@dataclass
class AuditRecord:
    """One line of the search audit log."""

    prompt: str
    entities: Optional[str]
    search_query: str
    results: List[Tuple[str, float]] = field(default_factory=list)
    extract_ms: float = 0.0
    search_ms: float = 0.0
    total_ms: float = 0.0
    backend: str = "none"
    ts: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "prompt": self.prompt,
            "entities": self.entities,
            "searchQuery": self.search_query,
            "results": [{"path": p, "score": s} for p, s in self.results],
            "extractMs": round(self.extract_ms),
            "searchMs": round(self.search_ms),
            "totalMs": round(self.total_ms),
            "backend": self.backend,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditRecord":
        results = [
            (r.get("path", ""), float(r.get("score", 0.0)))
            for r in data.get("results") or []
        ]
        search_query = data.get("searchQuery", "")
        backend = data.get("backend")
        if backend is None:
            # Lines written before the backend field existed.
            if not results:
                backend = "none"
            elif search_query.endswith("FALLBACK]"):
                backend = "semantic"
            else:
                backend = "keyword"
        return cls(
            ts=data.get("ts", ""),
            prompt=data.get("prompt", ""),
            entities=data.get("entities"),
            search_query=search_query,
            results=results,
            extract_ms=float(data.get("extractMs", 0)),
            search_ms=float(data.get("searchMs", 0)),
            total_ms=float(data.get("totalMs", 0)),
            backend=backend,
        )


@dataclass
class PreflightResult:
    """Outcome of one preflight run: augmented context, or the reason why not."""

    augmented: bool
    reason: str
    context: Optional[str] = None
    terms: Optional[TermSet] = None
    hits: List[SearchHit] = field(default_factory=list)

    @classmethod
    def skipped(cls, reason: str, terms: Optional[TermSet] = None) -> "PreflightResult":
        return cls(augmented=False, reason=reason, terms=terms)

    @classmethod
    def with_hints(
        cls,
        block: HintBlock,
        reason: str,
        terms: Optional[TermSet] = None,
        hits: Optional[List[SearchHit]] = None,
    ) -> "PreflightResult":
        return cls(
            augmented=True,
            reason=reason,
            context=block.render(),
            terms=terms,
            hits=list(hits or []),
        )

    def prepend_context(self) -> Optional[Dict[str, str]]:
        """Host hook return value: ``{"prependContext": ...}`` or ``None``."""
        if not self.augmented or self.context is None:
            return None
        return {"prependContext": self.context}
