"""Unit tests for Ollama term extraction and the stop-word fallback."""

import asyncio
import json
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "..", "server", "preflight_server"))

import httpx

from preflight.intake.stopwords import stopword_terms
from preflight.intake.term_extractor import TermExtractor, build_term_set, split_terms


def _extract(handler, text="tell me about the Toronto trip", **kwargs):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            extractor = TermExtractor(client=client, base_url="http://ollama.test", **kwargs)
            return await extractor.extract(text)

    return asyncio.run(go())


def _respond(body, status=200):
    def handler(request):
        return httpx.Response(status, json=body)

    return handler


def test_model_terms_lowercased_and_joined():
    terms = _extract(_respond({"response": "Toronto, trip"}), fallback_enabled=False)
    assert terms.terms == ["toronto", "trip"]
    assert terms.query == "toronto trip"
    assert terms.provenance == "model"
    assert terms.raw == "Toronto, trip"


def test_terms_capped():
    terms = _extract(_respond({"response": "alpha, beta, gamma, delta"}), max_terms=3)
    assert terms.query == "alpha beta gamma"


def test_request_payload():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"response": "trip"})

    _extract(handler, text="what did we book in Lisbon", model="gemma3:4b")
    body = seen["body"]
    assert seen["url"] == "http://ollama.test/api/generate"
    assert body["model"] == "gemma3:4b"
    assert body["stream"] is False
    assert body["options"] == {"num_predict": 60, "temperature": 0}
    assert body["prompt"].endswith('"what did we book in Lisbon" →')


def test_http_error_status_is_unavailable():
    assert _extract(_respond({"error": "boom"}, status=500), fallback_enabled=False) is None


def test_connection_error_is_unavailable():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    assert _extract(handler, fallback_enabled=False) is None


def test_invalid_json_is_unavailable():
    def handler(request):
        return httpx.Response(200, text="not json")

    assert _extract(handler, fallback_enabled=False) is None


def test_rambling_response_rejected():
    assert _extract(_respond({"response": "x" * 400}), fallback_enabled=False) is None


def test_empty_response_rejected():
    assert _extract(_respond({"response": "   "}), fallback_enabled=False) is None


def test_stopword_fallback_used_when_model_down():
    terms = _extract(
        _respond({}, status=503),
        text="what did we decide about the kitchen renovation budget",
        fallback_enabled=True,
    )
    assert terms.provenance == "fallback"
    assert terms.terms == ["decide", "kitchen", "renovation"]


def test_build_term_set_collapses_separators():
    assert build_term_set("Toronto,trip ,  flights", "model").query == "toronto trip flights"
    assert split_terms("  ") == []


def test_stopword_terms_preserve_order():
    assert stopword_terms("Do you remember my sister's wedding?") == ["sister's", "wedding"]


def test_stopword_terms_drop_single_chars_and_meta_words():
    assert stopword_terms("a b recall the memory hint X-ray results") == ["x-ray", "results"]
