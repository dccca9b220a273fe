"""Memory preflight: auto-recall from workspace memory before each agent turn.

Normalizer → term extractor (local Ollama, optional stop-word fallback)
→ search cascade (qmd BM25 first, semantic fallback on a miss)
→ JSONL audit log → hint block prepended to the assistant's context.
"""

from preflight.models import HintBlock, PreflightResult, SearchHit, TermSet, Turn
from preflight.orchestrator import PreflightOrchestrator
from preflight.plugin import MemoryPreflightPlugin

__all__ = [
    "HintBlock",
    "PreflightResult",
    "SearchHit",
    "TermSet",
    "Turn",
    "PreflightOrchestrator",
    "MemoryPreflightPlugin",
]
