from __future__ import annotations

import asyncio

import httpx
import orjson

from orelens.llm.enrich import FallbackEnricher, NarrativeContext, OllamaEnricher, build_enricher
from orelens.llm.ollama import OllamaClient, extract_json_object

CONTEXT = NarrativeContext(company_name="Acme Gold Corp", commodity="Gold", metrics={"npv": 485.3})


def _ollama(handler, *, timeout_s: float = 5.0) -> OllamaEnricher:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaEnricher(OllamaClient("http://ollama.test", "llama3.1:8b", http=http), timeout_s=timeout_s)


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"model": "llama3.1:8b", "message": {"role": "assistant", "content": content}})


def _enrich(enricher: OllamaEnricher):
    async def _run():
        try:
            return await enricher.enrich(CONTEXT)
        finally:
            await enricher.aclose()

    return asyncio.run(_run())


def test_fallback_narrative() -> None:
    n = asyncio.run(FallbackEnricher().enrich(CONTEXT))
    assert n.name == "Acme Gold Project"
    assert n.description == "Gold mining project by Acme Gold Corp"
    assert n.source == "fallback"

    named = NarrativeContext(company_name="Acme Gold Corp", commodity="Gold", candidate_name="Alpha Project")
    assert asyncio.run(FallbackEnricher().enrich(named)).name == "Alpha Project"


def test_fallback_description_names_location() -> None:
    located = NarrativeContext(company_name="Acme Gold Corp", commodity="Gold", jurisdiction="Nevada", country="USA")
    n = asyncio.run(FallbackEnricher().enrich(located))
    assert n.description == "Gold mining project by Acme Gold Corp located in Nevada, USA"
    abroad = NarrativeContext(company_name="Acme Gold Corp", commodity="Gold", country="Ghana")
    assert asyncio.run(FallbackEnricher().enrich(abroad)).description.endswith("located in Ghana")


def test_ollama_narrative() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(orjson.loads(request.content))
        return _chat_response('{"name": "Alpha Project", "description": "Open-pit gold project in Nevada."}')

    n = _enrich(_ollama(handler))
    assert n.name == "Alpha Project"
    assert n.description == "Open-pit gold project in Nevada."
    assert n.source == "ollama"
    assert captured["format"] == "json"
    assert "Acme Gold Corp" in captured["messages"][1]["content"]


def test_ollama_failures_fall_back() -> None:
    responses = [
        httpx.Response(500),
        _chat_response("not json at all"),
        _chat_response('{"name": "Only a name"}'),
        _chat_response("[1, 2, 3]"),
        httpx.Response(200, json=[{"message": {"content": "{}"}}]),
        httpx.Response(200, json={"model": "llama3.1:8b", "message": "plain text"}),
    ]
    for resp in responses:
        n = _enrich(_ollama(lambda request, r=resp: r))
        assert n.source == "fallback"
        assert n.name == "Acme Gold Project"


def test_ollama_bad_base_url_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    enricher = OllamaEnricher(OllamaClient("http://[::zz]", "llama3.1:8b", http=http), timeout_s=5.0)
    n = _enrich(enricher)
    assert n.source == "fallback"
    assert n.name == "Acme Gold Project"


def test_ollama_timeout_falls_back() -> None:
    async def slow(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(1.0)
        return _chat_response('{"name": "Late", "description": "Too late."}')

    n = _enrich(_ollama(slow, timeout_s=0.01))
    assert n.source == "fallback"


def test_extract_json_object_with_surrounding_text() -> None:
    assert extract_json_object('Sure! {"name": "X", "description": "Y"} Done.') == {"name": "X", "description": "Y"}


def test_build_enricher_disabled() -> None:
    assert isinstance(build_enricher(enabled=False), FallbackEnricher)
