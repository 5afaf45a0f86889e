"""Project name and description polishing.

Two implementations of one capability, picked at construction time: a
deterministic one and an Ollama-backed one that falls back to it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol

import httpx
import orjson

from orelens.classify import DEFAULT_COMMODITY, fallback_project_name
from orelens.llm.ollama import OllamaClient, extract_json_object

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a mining analyst. Given facts extracted from a technical report, "
    'return a JSON object {"name": ..., "description": ...}. '
    "name is the mineral project's proper name (for example 'Goldstrike Project'), "
    "description is one or two factual sentences. Do not invent numbers."
)


@dataclass(frozen=True)
class NarrativeContext:
    company_name: str
    commodity: str | None = None
    candidate_name: str | None = None
    stage: str | None = None
    jurisdiction: str | None = None
    country: str | None = None
    metrics: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Narrative:
    name: str
    description: str
    source: str = "fallback"


class NarrativeEnricher(Protocol):
    async def enrich(self, context: NarrativeContext) -> Narrative: ...


def fallback_narrative(context: NarrativeContext) -> Narrative:
    commodity = context.commodity or DEFAULT_COMMODITY
    name = context.candidate_name or fallback_project_name(context.company_name, commodity)
    description = f"{commodity} mining project by {context.company_name}"
    where = ", ".join(p for p in (context.jurisdiction, context.country) if p)
    if where:
        description += f" located in {where}"
    return Narrative(name=name, description=description)


class FallbackEnricher:
    async def enrich(self, context: NarrativeContext) -> Narrative:
        return fallback_narrative(context)


def build_prompt(context: NarrativeContext) -> str:
    facts = {
        "company": context.company_name,
        "commodity": context.commodity,
        "candidate_name": context.candidate_name,
        "stage": context.stage,
        "jurisdiction": context.jurisdiction,
        "country": context.country,
        "metrics": dict(context.metrics),
    }
    return "Facts:\n" + orjson.dumps(facts, option=orjson.OPT_INDENT_2).decode("utf-8")


class OllamaEnricher:
    def __init__(self, client: OllamaClient, *, timeout_s: float = 60.0) -> None:
        self.client = client
        self.timeout_s = timeout_s

    async def aclose(self) -> None:
        await self.client.aclose()

    async def enrich(self, context: NarrativeContext) -> Narrative:
        fallback = fallback_narrative(context)
        try:
            resp = await asyncio.wait_for(
                self.client.chat_json(system=SYSTEM_PROMPT, user=build_prompt(context)), timeout=self.timeout_s
            )
            obj = extract_json_object(resp.content)
        except (
            httpx.HTTPError,
            httpx.InvalidURL,
            asyncio.TimeoutError,
            orjson.JSONDecodeError,
            TypeError,
            ValueError,
        ) as e:
            logger.info("Enrichment failed for %s, using fallback: %s", context.company_name, e)
            return fallback

        name = str(obj.get("name") or "").strip()
        description = str(obj.get("description") or "").strip()
        if not name or not description:
            logger.info("Enrichment response for %s lacks name/description, using fallback", context.company_name)
            return fallback
        return Narrative(name=name, description=description, source="ollama")


def build_enricher(
    *, enabled: bool, base_url: str | None = None, model: str | None = None, timeout_s: float = 60.0
) -> NarrativeEnricher:
    if not enabled:
        return FallbackEnricher()
    return OllamaEnricher(OllamaClient(base_url, model, timeout_s=timeout_s), timeout_s=timeout_s)
