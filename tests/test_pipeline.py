from __future__ import annotations

import asyncio
import threading
from datetime import date
from pathlib import Path

import pytest

from orelens.clients.edgar import FilingDocument, FilingFilters, FilingReference, FilingRequestError
from orelens.documents.fetch import DocumentFetchError, RawDocument
from orelens.metrics.engine import MetricsEngine
from orelens.metrics.patterns import default_pattern_table
from orelens.pipelines.discover import DiscoveryDeps, RunSummary, run_discovery
from orelens.reconcile import Reconciler
from orelens.schemas.records import ProjectRecord
from orelens.storage import DataLayout, MemoryStore

GOOD_TEXT = (
    "<h1>Technical Report Summary on the Alpha Project</h1>"
    "<p>Gold feasibility study. The project has an after-tax NPV of $485.3 million, an IRR of 22.4%, "
    "initial capital of $320 million and a mine life of 12 years.</p>"
)


def _filing(acc: str, company: str = "Acme Gold Corp") -> FilingReference:
    return FilingReference(
        cik="123456",
        company_name=company,
        filing_date=date(2024, 2, 28),
        form="10-K",
        accession_number=acc,
        sic_codes=("1040",),
        documents=(FilingDocument(url=f"https://example.com/{acc}/ex961.htm", document_type="EX-96.1"),),
    )


class FakeSource:
    def __init__(self, filings: list[FilingReference], *, fail_after: int | None = None) -> None:
        self.filings = filings
        self.fail_after = fail_after
        self.index_calls: list[str] = []

    async def search(self, query: str, filters: FilingFilters | None = None, *, start: int = 0, max_pages: int | None = None):
        for i, f in enumerate(self.filings[start:]):
            if self.fail_after is not None and i >= self.fail_after:
                raise FilingRequestError("https://efts.sec.gov/LATEST/search-index", "unavailable", status_code=503)
            yield f

    async def fetch_index(self, filing: FilingReference) -> list[FilingDocument]:
        self.index_calls.append(filing.accession_number)
        return []


class FakeFetcher:
    def __init__(self, pages: dict[str, str], *, delay: float = 0.0) -> None:
        self.pages = pages
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, url: str) -> RawDocument:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if url not in self.pages:
                raise DocumentFetchError(url, "HTTP 404", status_code=404)
            return RawDocument(url=url, content=self.pages[url].encode("utf-8"), content_type="text/html")
        finally:
            self.in_flight -= 1


def _deps(source: FakeSource, fetcher: FakeFetcher, store: MemoryStore) -> DiscoveryDeps:
    return DiscoveryDeps(
        source=source,
        fetcher=fetcher,
        engine=MetricsEngine(default_pattern_table(), acceptance_threshold=0.30),
        reconciler=Reconciler(store, acceptance_threshold=0.30),
    )


def test_batch_counts_and_continues_past_failures(tmp_path: Path) -> None:
    store = MemoryStore()
    store.mark_filing("C")
    filings = [_filing("A"), _filing("B"), _filing("C"), _filing("D", company="Beta Metals Inc")]
    fetcher = FakeFetcher(
        {
            "https://example.com/A/ex961.htm": GOOD_TEXT,
            "https://example.com/D/ex961.htm": "<p>Quarterly letter to shareholders.</p>",
        }
    )
    layout = DataLayout(tmp_path)
    layout.ensure()

    summary = asyncio.run(
        run_discovery(_deps(FakeSource(filings), fetcher, store), query="x", max_workers=2, layout=layout)
    )

    assert summary == RunSummary(
        filings_checked=4,
        filings_already_processed=1,
        documents_fetched=2,
        extractions_accepted=1,
        extractions_skipped_coverage=1,
        inserts=1,
        updates=0,
        skipped_not_more_confident=0,
        errors=1,
    )
    [project] = store.list_projects()
    assert project.project_name == "Alpha Project"
    assert project.company_name == "Acme Gold Corp"
    assert project.primary_commodity == "Gold"
    assert project.post_tax_npv_usd_m == 485.3
    assert project.extraction_confidence == pytest.approx(0.7)
    assert project.accession_number == "A"
    assert store.has_filing("A") and store.has_filing("D")
    assert not store.has_filing("B")
    assert len(list(layout.manifests.glob("discover_*.json"))) == 1


def test_rerun_skips_processed_filings() -> None:
    store = MemoryStore()
    filings = [_filing("A"), _filing("B")]
    fetcher = FakeFetcher({"https://example.com/A/ex961.htm": GOOD_TEXT})

    asyncio.run(run_discovery(_deps(FakeSource(filings), fetcher, store), query="x"))
    again = asyncio.run(run_discovery(_deps(FakeSource(filings), fetcher, store), query="x"))

    assert again.filings_already_processed == 1
    assert again.errors == 1
    assert again.inserts == 0
    assert len(store.list_projects()) == 1


def test_worker_pool_is_bounded() -> None:
    filings = [_filing(str(i)) for i in range(6)]
    fetcher = FakeFetcher({}, delay=0.02)
    summary = asyncio.run(run_discovery(_deps(FakeSource(filings), fetcher, MemoryStore()), query="x", max_workers=2))
    assert summary.errors == 6
    assert fetcher.max_in_flight <= 2


def test_search_failure_keeps_found_filings() -> None:
    store = MemoryStore()
    source = FakeSource([_filing("A"), _filing("B")], fail_after=1)
    fetcher = FakeFetcher({"https://example.com/A/ex961.htm": GOOD_TEXT})
    summary = asyncio.run(run_discovery(_deps(source, fetcher, store), query="x", max_filings=10))
    assert summary.filings_checked == 1
    assert summary.inserts == 1
    assert summary.errors == 1


def test_max_filings_stops_search() -> None:
    source = FakeSource([_filing(str(i)) for i in range(5)])
    summary = asyncio.run(run_discovery(_deps(source, FakeFetcher({}), MemoryStore()), query="x", max_filings=2))
    assert summary.filings_checked == 2
    assert source.index_calls and len(source.index_calls) == 2


class ThreadRecordingStore(MemoryStore):
    def __init__(self) -> None:
        super().__init__()
        self.threads: list[int] = []

    def has_filing(self, accession_number: str) -> bool:
        self.threads.append(threading.get_ident())
        return super().has_filing(accession_number)

    def get_project(self, project_name: str, company_name: str) -> ProjectRecord | None:
        self.threads.append(threading.get_ident())
        return super().get_project(project_name, company_name)

    def upsert_project(self, record: ProjectRecord) -> None:
        self.threads.append(threading.get_ident())
        super().upsert_project(record)

    def mark_filing(self, accession_number: str, **info) -> None:
        self.threads.append(threading.get_ident())
        super().mark_filing(accession_number, **info)


def test_store_calls_run_off_the_event_loop() -> None:
    store = ThreadRecordingStore()
    fetcher = FakeFetcher({"https://example.com/A/ex961.htm": GOOD_TEXT})
    summary = asyncio.run(run_discovery(_deps(FakeSource([_filing("A")]), fetcher, store), query="x"))

    assert summary.inserts == 1
    assert store.threads
    assert threading.get_ident() not in store.threads
