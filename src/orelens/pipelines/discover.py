from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, AsyncIterator, Callable, Protocol, TypeVar

import httpx

from orelens.clients.edgar import EdgarClient, FilingDocument, FilingFilters, FilingReference, FilingRequestError
from orelens.clients.http import HttpConfig, build_async_client
from orelens.clients.ratelimit import RateLimiter
from orelens.documents.fetch import DocumentFetcher, DocumentFetchError, HttpDocumentFetcher
from orelens.llm.enrich import FallbackEnricher, NarrativeContext, NarrativeEnricher, build_enricher
from orelens.metrics.engine import MetricsEngine
from orelens.metrics.patterns import default_pattern_table
from orelens.pipelines.extract_document import analyze_text, normalize_document
from orelens.reconcile import Action, ApplyOutcome, Decision, Reconciler, SourceRef
from orelens.settings import Settings
from orelens.storage import DataLayout, RecordStore, StoreError, write_manifest
from orelens.utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FilingSource(Protocol):
    def search(
        self,
        query: str,
        filters: FilingFilters | None = None,
        *,
        start: int = 0,
        max_pages: int | None = None,
    ) -> AsyncIterator[FilingReference]: ...

    async def fetch_index(self, filing: FilingReference) -> list[FilingDocument]: ...


@dataclass
class RunSummary:
    filings_checked: int = 0
    filings_already_processed: int = 0
    documents_fetched: int = 0
    extractions_accepted: int = 0
    extractions_skipped_coverage: int = 0
    inserts: int = 0
    updates: int = 0
    skipped_not_more_confident: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class DiscoveryDeps:
    source: FilingSource
    fetcher: DocumentFetcher
    engine: MetricsEngine
    reconciler: Reconciler
    enricher: NarrativeEnricher = field(default_factory=FallbackEnricher)
    max_chars: int | None = None
    http: httpx.AsyncClient | None = None
    # Serializes store access; the store itself runs in worker threads.
    store_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def store(self) -> RecordStore:
        return self.reconciler.store

    @classmethod
    def from_settings(cls, cfg: Settings, store: RecordStore) -> "DiscoveryDeps":
        """One HTTP client and one rate limiter shared by search, index and document fetches."""
        http_cfg = HttpConfig(
            timeout_s=cfg.http_timeout_s, user_agent=cfg.sec_user_agent, max_attempts=cfg.http_max_attempts
        )
        limiter = RateLimiter(cfg.sec_min_interval_s)
        http = build_async_client(http_cfg)
        return cls(
            source=EdgarClient(http=http, limiter=limiter, cfg=http_cfg),
            fetcher=HttpDocumentFetcher(http=http, limiter=limiter, cfg=http_cfg),
            engine=MetricsEngine(default_pattern_table(), acceptance_threshold=cfg.acceptance_threshold),
            reconciler=Reconciler(store, acceptance_threshold=cfg.acceptance_threshold),
            enricher=build_enricher(
                enabled=cfg.enrich,
                base_url=cfg.ollama_base_url,
                model=cfg.ollama_model,
                timeout_s=cfg.ollama_timeout_s,
            ),
            max_chars=cfg.max_text_chars,
            http=http,
        )

    async def aclose(self) -> None:
        closer = getattr(self.enricher, "aclose", None)
        if closer is not None:
            await closer()
        if self.http is not None:
            await self.http.aclose()


async def _in_store(deps: DiscoveryDeps, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store or reconciler call off the event loop, one at a time."""
    async with deps.store_lock:
        return await asyncio.to_thread(fn, *args, **kwargs)


def _source_ref(filing: FilingReference, doc: FilingDocument) -> SourceRef:
    return SourceRef(
        company_name=filing.company_name,
        url=doc.url,
        filing_date=filing.filing_date,
        accession_number=filing.accession_number,
        cik=filing.cik,
        ticker=filing.ticker,
    )


async def _process_document(
    filing: FilingReference, doc: FilingDocument, deps: DiscoveryDeps, summary: RunSummary
) -> bool:
    """Returns False when the document hit an operator-visible error."""
    try:
        raw = await deps.fetcher.fetch(doc.url)
    except DocumentFetchError as e:
        logger.warning("Document fetch failed (%s): %s", filing.accession_number, e)
        summary.errors += 1
        return False
    summary.documents_fetched += 1

    result = analyze_text(normalize_document(raw, max_chars=deps.max_chars), deps.engine)
    if not result.sufficient:
        logger.info(
            "Insufficient extraction for %s (coverage %.2f)", doc.url, result.coverage_fraction
        )
        summary.extractions_skipped_coverage += 1
        return True
    summary.extractions_accepted += 1

    narrative = await deps.enricher.enrich(
        NarrativeContext(
            company_name=filing.company_name,
            commodity=result.commodity,
            candidate_name=result.project_name,
            stage=result.stage,
            jurisdiction=result.jurisdiction,
            country=result.country,
            metrics={k.value: m.value for k, m in result.metrics.items()},
        )
    )
    source = _source_ref(filing, doc)

    def _reconcile_and_apply() -> tuple[Decision, ApplyOutcome]:
        decision = deps.reconciler.reconcile(
            result, source, project_name=narrative.name, description=narrative.description
        )
        return decision, deps.reconciler.apply(decision)

    try:
        decision, outcome = await _in_store(deps, _reconcile_and_apply)
    except StoreError as e:
        logger.error("Store lookup failed for %s: %s", narrative.name, e)
        summary.errors += 1
        return False

    if not outcome.ok:
        summary.errors += 1
        return False
    if outcome.action is Action.INSERT:
        summary.inserts += 1
    elif outcome.action is Action.UPDATE:
        summary.updates += 1
    elif decision.reason == "not_more_confident":
        summary.skipped_not_more_confident += 1
    return True


async def process_filing(filing: FilingReference, deps: DiscoveryDeps, summary: RunSummary) -> None:
    """Fetch, extract and reconcile every technical report of one filing.

    The filing is marked processed only when none of its steps failed, so a
    later run retries it.
    """
    store = deps.store
    try:
        if await _in_store(deps, store.has_filing, filing.accession_number):
            summary.filings_already_processed += 1
            return
    except StoreError as e:
        logger.error("Cannot check filing %s: %s", filing.accession_number, e)
        summary.errors += 1
        return

    documents = list(filing.documents)
    try:
        for doc in await deps.source.fetch_index(filing):
            if doc.url not in {d.url for d in documents}:
                documents.append(doc)
    except FilingRequestError as e:
        if not documents:
            logger.warning("Index fetch failed for %s: %s", filing.accession_number, e)
            summary.errors += 1
            return
        logger.info("Index fetch failed for %s, using search hits: %s", filing.accession_number, e)

    ok = True
    for doc in documents:
        ok = await _process_document(filing, doc, deps, summary) and ok

    if ok:
        try:
            await _in_store(
                deps,
                store.mark_filing,
                filing.accession_number,
                cik=filing.cik,
                company_name=filing.company_name,
                form=filing.form,
                filing_date=filing.filing_date,
                status="processed" if documents else "no_documents",
            )
        except StoreError as e:
            logger.error("Cannot mark filing %s: %s", filing.accession_number, e)
            summary.errors += 1


async def run_discovery(
    deps: DiscoveryDeps,
    *,
    query: str,
    filters: FilingFilters | None = None,
    start: int = 0,
    max_pages: int | None = None,
    max_filings: int | None = None,
    max_workers: int = 4,
    layout: DataLayout | None = None,
) -> RunSummary:
    """Search filings and process them with at most ``max_workers`` in flight.

    Per-filing failures are counted in the summary; a failing search page ends
    pagination but the filings already found are still processed.
    """
    summary = RunSummary()
    sem = asyncio.Semaphore(max(1, max_workers))
    tasks: set[asyncio.Task[None]] = set()
    started_at = utc_now()

    async def _worker(filing: FilingReference) -> None:
        try:
            await process_filing(filing, deps, summary)
        except Exception:  # noqa: BLE001
            logger.exception("Unexpected failure processing %s", filing.accession_number)
            summary.errors += 1
        finally:
            sem.release()

    try:
        async with contextlib.aclosing(
            deps.source.search(query, filters, start=start, max_pages=max_pages)
        ) as filings:
            async for filing in filings:
                if max_filings is not None and summary.filings_checked >= max_filings:
                    break
                summary.filings_checked += 1
                await sem.acquire()
                task = asyncio.create_task(_worker(filing))
                tasks.add(task)
                task.add_done_callback(tasks.discard)
    except FilingRequestError as e:
        logger.error("Filing search failed: %s", e)
        summary.errors += 1
    finally:
        if tasks:
            await asyncio.gather(*tasks)

    logger.info("Discovery run finished: %s", summary.as_dict())
    if layout is not None:
        write_manifest(
            layout,
            f"discover_{started_at.strftime('%Y%m%dT%H%M%SZ')}",
            {
                "query": query,
                "filters": _filters_payload(filters),
                "start": start,
                "max_pages": max_pages,
                "max_filings": max_filings,
                "max_workers": max_workers,
                "started_at": started_at.isoformat(),
                "finished_at": utc_now().isoformat(),
                "summary": summary.as_dict(),
            },
        )
    return summary


def _filters_payload(filters: FilingFilters | None) -> dict[str, Any]:
    f = filters or FilingFilters()
    return {
        "sic_codes": list(f.effective_sic_codes()),
        "keywords": list(f.keywords),
        "forms": list(f.forms),
        "tickers": list(f.tickers),
        "date_from": f.date_from.isoformat() if f.date_from else None,
        "date_to": f.date_to.isoformat() if f.date_to else None,
    }

