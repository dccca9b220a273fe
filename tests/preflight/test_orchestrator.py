"""End-to-end tests for the preflight orchestrator with fake backends."""

import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "preflight_server"))

import httpx
import pytest

from preflight.intake.term_extractor import TermExtractor
from preflight.models import HintBlock, SearchHit, TermSet, Turn
from preflight.observability.audit_log import SearchAuditLog
from preflight.observability.tracing import get_metrics, reset_metrics
from preflight.orchestrator import PreflightOrchestrator
from preflight.retrieval.cascade import SearchCascade
from preflight.retrieval.preview import PreviewReader

TORONTO = "tell me about the Toronto trip we planned"


class FakeExtractor:
    model = "gemma3:4b"

    def __init__(self, terms):
        self.terms = terms
        self.calls = []

    async def extract(self, text):
        self.calls.append(text)
        return self.terms

    async def close(self):
        pass


class FakeKeyword:
    def __init__(self, hits=None):
        self.hits = hits or []
        self.calls = []

    async def search(self, query, max_results):
        self.calls.append((query, max_results))
        return [SearchHit(path=h.path, score=h.score, hash=h.hash) for h in self.hits]


class FakeSemantic:
    def __init__(self, hits=None):
        self.hits = hits or []
        self.calls = []

    async def search(self, query, max_results, min_score):
        self.calls.append((query, max_results, min_score))
        return list(self.hits)


class ExplodingKeyword:
    async def search(self, query, max_results):
        raise RuntimeError("index corrupted")


@pytest.fixture(autouse=True)
def _metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture
def workspace(tmp_path):
    notes = tmp_path / "memory" / "notes"
    notes.mkdir(parents=True)
    (notes / "trip.md").write_text("# Toronto\nFlights booked for May, hotel near Union Station.\n")
    return tmp_path


def _orchestrator(workspace, extractor, keyword=None, semantic=None, log_path=None):
    cascade = SearchCascade(
        keyword,
        semantic,
        PreviewReader(str(workspace)),
        max_results=5,
        min_score=0.3,
        semantic_query_max_chars=200,
    )
    log = SearchAuditLog(str(log_path or workspace / "meta" / "search-log.jsonl"), enabled=True)
    return PreflightOrchestrator(extractor, cascade, log)


def _run(orchestrator, prompt, session_key="session-1"):
    return asyncio.run(orchestrator.run(Turn(prompt=prompt, session_key=session_key)))


def _log_lines(workspace):
    path = workspace / "meta" / "search-log.jsonl"
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text().splitlines()]


def _model_terms(raw):
    return TermSet(terms=raw.lower().replace(",", " ").split()[:3], provenance="model", raw=raw)


# ── Eligibility ──────────────────────────────────────────────────────

@pytest.mark.parametrize("prompt", ["", "hi", "short one"])
def test_short_prompt_no_backend_calls(workspace, prompt):
    extractor, keyword, semantic = FakeExtractor(_model_terms("x, y")), FakeKeyword(), FakeSemantic()
    result = _run(_orchestrator(workspace, extractor, keyword, semantic), prompt)

    assert result.augmented is False
    assert result.prepend_context() is None
    assert extractor.calls == [] and keyword.calls == [] and semantic.calls == []
    assert _log_lines(workspace) == []


@pytest.mark.parametrize("prompt", ["Thank you.", "sounds good", "  HELLO    "])
def test_acknowledgement_no_hint(workspace, prompt):
    extractor = FakeExtractor(_model_terms("x, y"))
    result = _run(_orchestrator(workspace, extractor, FakeKeyword()), prompt)
    assert result.augmented is False
    assert result.reason == "acknowledgement"
    assert extractor.calls == []


# ── Extractor unavailable ────────────────────────────────────────────

def test_extractor_unavailable_gives_disabled_diagnostic(workspace):
    keyword, semantic = FakeKeyword(), FakeSemantic()
    result = _run(_orchestrator(workspace, FakeExtractor(None), keyword, semantic), TORONTO)

    assert result.augmented is True
    assert result.reason == "extractor_unavailable"
    assert result.context == (
        "<memory-hints>\n"
        "⚠️ Local LLM (Ollama) not running. Memory search disabled.\n"
        "Run `ollama serve` and ensure gemma3:4b is available.\n"
        "</memory-hints>"
    )
    assert result.context == HintBlock.recall_disabled("gemma3:4b").render()
    assert keyword.calls == [] and semantic.calls == []
    assert get_metrics()["preflight_extractor_unavailable"] == 1


def test_real_extractor_down_without_fallback(workspace):
    def handler(request):
        raise httpx.ConnectError("connection refused")

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            extractor = TermExtractor(client=client, fallback_enabled=False, model="gemma3:4b")
            orch = _orchestrator(workspace, extractor, FakeKeyword())
            return await orch.run(Turn(prompt=TORONTO))

    result = asyncio.run(go())
    assert result.reason == "extractor_unavailable"
    assert "Memory search disabled" in result.context


def test_no_meaningful_query_skipped(workspace):
    keyword = FakeKeyword()
    result = _run(_orchestrator(workspace, FakeExtractor(TermSet(["x"], "model", "x")), keyword), TORONTO)
    assert result.reason == "no_search_query"
    assert keyword.calls == []
    assert _log_lines(workspace) == []


# ── Keyword stage ────────────────────────────────────────────────────

def test_model_terms_become_keyword_query(workspace):
    def handler(request):
        return httpx.Response(200, json={"response": "Toronto, trip"})

    keyword = FakeKeyword()

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            orch = _orchestrator(workspace, TermExtractor(client=client), keyword)
            return await orch.run(Turn(prompt=TORONTO))

    result = asyncio.run(go())
    assert keyword.calls == [("toronto trip", 5)]
    assert result.terms.query == "toronto trip"


def test_keyword_hits_skip_semantic(workspace):
    keyword = FakeKeyword([SearchHit(path="memory/notes/trip.md", score=0.9166, hash="#a1")])
    semantic = FakeSemantic([SearchHit(path="memory/other.md", score=0.8, preview="x")])
    result = _run(_orchestrator(workspace, FakeExtractor(_model_terms("Toronto, trip")), keyword, semantic), TORONTO)

    assert semantic.calls == []
    assert result.augmented is True
    assert result.reason == "keyword_hits"
    assert result.context == (
        "<memory-hints>\n"
        "Possibly relevant (read if needed):\n"
        '- memory/notes/trip.md (0.92): "Flights booked for May, hotel near Union Station...."\n'
        "</memory-hints>"
    )
    assert result.prepend_context() == {"prependContext": result.context}
    assert get_metrics()["preflight_keyword_hits"] == 1


def test_missing_preview_file_still_hinted(workspace):
    keyword = FakeKeyword([SearchHit(path="memory/gone.md", score=0.5)])
    result = _run(_orchestrator(workspace, FakeExtractor(_model_terms("gone")), keyword), TORONTO)
    assert '- memory/gone.md (0.50): "..."' in result.context


# ── Semantic fallback ────────────────────────────────────────────────

def test_zero_keyword_hits_fall_back_with_original_text(workspace):
    prompt = "[Mon 2026-01-05 14:03 EST] " + "Where did we leave the plan for the cabin trip? " * 8
    semantic = FakeSemantic([SearchHit(path="memory/cabin.md", score=0.41, preview="Cabin booked")])
    orch = _orchestrator(workspace, FakeExtractor(_model_terms("cabin, trip")), FakeKeyword(), semantic)
    result = _run(orch, prompt)

    assert len(semantic.calls) == 1
    query, max_results, min_score = semantic.calls[0]
    normalized = prompt[len("[Mon 2026-01-05 14:03 EST] "):].strip()
    assert query == normalized[:200]
    assert len(query) == 200
    assert query != "cabin trip"
    assert (max_results, min_score) == (5, 0.3)
    assert result.reason == "semantic_hits"
    assert '- memory/cabin.md (0.41): "Cabin booked..."' in result.context


def test_no_keyword_backend_goes_straight_to_semantic(workspace):
    semantic = FakeSemantic([SearchHit(path="memory/a.md", score=0.6, preview="a")])
    result = _run(_orchestrator(workspace, FakeExtractor(_model_terms("a, b")), None, semantic), TORONTO)
    assert result.reason == "semantic_hits"
    assert semantic.calls[0][0] == TORONTO


def test_both_stages_empty(workspace):
    result = _run(_orchestrator(workspace, FakeExtractor(_model_terms("a, b")), FakeKeyword(), FakeSemantic()), TORONTO)
    assert result.augmented is False
    assert result.reason == "no_hits"


def test_semantic_unconfigured_is_no_hits(workspace):
    result = _run(_orchestrator(workspace, FakeExtractor(_model_terms("a, b")), FakeKeyword(), None), TORONTO)
    assert result.reason == "no_hits"


# ── Audit log ────────────────────────────────────────────────────────

def test_one_audit_record_per_searched_turn(workspace):
    hit = SearchHit(path="memory/notes/trip.md", score=0.9)
    extractor = FakeExtractor(_model_terms("Toronto, trip"))
    semantic_hit = SearchHit(path="memory/cabin.md", score=0.4, preview="c")

    _run(_orchestrator(workspace, extractor, FakeKeyword([hit])), TORONTO)
    _run(_orchestrator(workspace, extractor, FakeKeyword(), FakeSemantic()), TORONTO)
    _run(_orchestrator(workspace, extractor, FakeKeyword(), FakeSemantic([semantic_hit])), TORONTO)
    _run(_orchestrator(workspace, extractor, FakeKeyword()), "ok thanks")

    lines = _log_lines(workspace)
    assert len(lines) == 3
    keyword_line, empty_line, fallback_line = lines
    assert keyword_line["searchQuery"] == "toronto trip"
    assert keyword_line["results"] == [{"path": "memory/notes/trip.md", "score": 0.9}]
    assert keyword_line["entities"] == "Toronto, trip"
    assert keyword_line["prompt"] == TORONTO
    assert keyword_line["backend"] == "keyword"
    assert empty_line["results"] == []
    assert empty_line["searchQuery"] == "toronto trip [SEMANTIC FALLBACK]"
    assert fallback_line["backend"] == "semantic"
    assert fallback_line["results"] == [{"path": "memory/cabin.md", "score": 0.4}]
    for line in lines:
        assert set(line) >= {"ts", "extractMs", "searchMs", "totalMs"}


def test_audit_prompt_truncated(workspace):
    prompt = "notes about the garden " * 20
    _run(_orchestrator(workspace, FakeExtractor(_model_terms("garden")), FakeKeyword()), prompt)
    assert len(_log_lines(workspace)[0]["prompt"]) == 200


def test_cascade_error_is_not_raised_and_still_logged(workspace):
    orch = _orchestrator(workspace, FakeExtractor(_model_terms("a, b")), ExplodingKeyword())
    result = _run(orch, TORONTO)
    assert result.augmented is False
    assert result.reason == "search_failed"
    assert len(_log_lines(workspace)) == 1
    assert get_metrics()["preflight_errors"] == 1


def test_audit_write_failure_does_not_break_turn(workspace):
    blocked = workspace / "blocked"
    blocked.mkdir()
    keyword = FakeKeyword([SearchHit(path="memory/notes/trip.md", score=0.9)])
    orch = _orchestrator(workspace, FakeExtractor(_model_terms("trip")), keyword, log_path=blocked)
    result = _run(orch, TORONTO)
    assert result.augmented is True
