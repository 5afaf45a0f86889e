from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, AsyncIterator, Iterable

import httpx

from orelens.clients.http import HttpConfig, TransientHttpError, build_async_client, get_json, status_code_of
from orelens.clients.ratelimit import RateLimiter
from orelens.parsing import parse_date

logger = logging.getLogger(__name__)

SEARCH_URL = "https://efts.sec.gov/LATEST/search-index"
ARCHIVES_URL = "https://www.sec.gov/Archives/edgar/data"

# Full-text search returns at most 100 hits per page.
PAGE_SIZE = 100

# Issuer SIC codes treated as mining when the caller gives no filter.
MINING_SIC_CODES: tuple[str, ...] = (
    "1000",  # Metal mining
    "1040",  # Gold and silver ores
    "1044",  # Silver ores
    "1090",  # Miscellaneous metal ores
    "1094",  # Uranium-radium-vanadium ores
    "1099",  # Miscellaneous metal ores, NEC
    "1220",  # Bituminous coal and lignite mining
    "1400",  # Mining and quarrying of nonmetallic minerals
    "1455",  # Kaolin and ball clay
    "1459",  # Clay, ceramic and refractory minerals, NEC
    "1470",  # Chemical and fertilizer mineral mining
    "1479",  # Chemical and fertilizer mineral mining, NEC
    "1499",  # Miscellaneous nonmetallic minerals, except fuels
    "3330",  # Primary production of aluminum
    "3339",  # Primary smelting and refining of nonferrous metals
)

DEFAULT_QUERY = '"EX-96.1"'
# Full-text search covers filings from 2001 on.
EARLIEST_FULL_TEXT_DATE = date(2001, 1, 1)

_TECHNICAL_REPORT_HINTS = ("technical report", "ni 43-101", "s-k 1300", "sk-1300", "mineral resource")
_DOCUMENT_SUFFIXES = (".htm", ".html", ".txt", ".pdf")
_EXHIBIT_RE = re.compile(r"ex(?:hibit)?[-_]?(\d{2})(?:[-_.]?(\d{1,2}))?(?!\d)", re.IGNORECASE)
_CIK_SUFFIX_RE = re.compile(r"\s*\(CIK\s*\d+\)\s*$", re.IGNORECASE)
_TICKER_SUFFIX_RE = re.compile(r"\s*\(([A-Z0-9.\-]+(?:,\s*[A-Z0-9.\-]+)*)\)\s*$")


class FilingRequestError(RuntimeError):
    """A filing API request failed after retries; the failure is scoped to one item."""

    def __init__(self, url: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status_code = status_code


@dataclass(frozen=True)
class FilingFilters:
    sic_codes: tuple[str, ...] = ()
    keywords: tuple[str, ...] = ()
    forms: tuple[str, ...] = ()
    tickers: tuple[str, ...] = ()
    date_from: date | None = None
    date_to: date | None = None

    def effective_sic_codes(self) -> tuple[str, ...]:
        if not self.sic_codes and not self.keywords:
            return MINING_SIC_CODES
        return self.sic_codes


@dataclass(frozen=True)
class FilingDocument:
    url: str
    document_type: str
    description: str = ""


@dataclass(frozen=True)
class FilingReference:
    cik: str
    company_name: str
    filing_date: date | None
    form: str
    accession_number: str
    sic_codes: tuple[str, ...] = ()
    ticker: str | None = None
    description: str = ""
    documents: tuple[FilingDocument, ...] = field(default_factory=tuple)

    def with_documents(self, documents: Iterable[FilingDocument]) -> "FilingReference":
        merged: dict[str, FilingDocument] = {d.url: d for d in self.documents}
        for d in documents:
            merged.setdefault(d.url, d)
        return replace(self, documents=tuple(merged.values()))


@dataclass(frozen=True)
class SearchPage:
    filings: tuple[FilingReference, ...]
    offset: int
    next_offset: int | None
    total: int


def exhibit_label(name: str, description: str = "") -> str:
    """Derive an exhibit label such as ``EX-96.1`` from a file name or description."""
    m = _EXHIBIT_RE.search(name or "")
    if m:
        major, minor = m.group(1), m.group(2)
        return f"EX-{major}.{minor}" if minor else f"EX-{major}"
    m = re.search(r"exhibit\s*(\d+(?:\.\d+)?)", description or "", re.IGNORECASE)
    if m:
        return f"EX-{m.group(1)}"
    return "EX-96.1"


def is_technical_report(name: str, document_type: str = "", description: str = "") -> bool:
    n = (name or "").lower()
    if not n.endswith(_DOCUMENT_SUFFIXES):
        return False
    if "ex96" in n or "ex-96" in n or "ex_96" in n:
        return True
    if (document_type or "").upper().startswith("EX-96"):
        return True
    desc = (description or "").lower()
    return any(h in desc for h in _TECHNICAL_REPORT_HINTS)


def _split_display_name(display_name: str) -> tuple[str, str | None]:
    """``"Acme Gold Corp  (AGC)  (CIK 0000123456)"`` -> ``("Acme Gold Corp", "AGC")``."""
    s = _CIK_SUFFIX_RE.sub("", display_name or "").strip()
    m = _TICKER_SUFFIX_RE.search(s)
    ticker = None
    if m:
        ticker = m.group(1).split(",")[0].strip()
        s = s[: m.start()].strip()
    return s, ticker


def _matches_filters(filing: FilingReference, filters: FilingFilters) -> bool:
    sics = set(filters.effective_sic_codes())
    if sics and not sics.intersection(filing.sic_codes):
        return False
    if filters.keywords:
        haystack = f"{filing.company_name} {filing.description}".lower()
        if not any(k.lower() in haystack for k in filters.keywords):
            return False
    return True


def _archive_cik(cik: str) -> str:
    # Archive paths use the CIK without zero padding.
    return cik.lstrip("0") or "0"


def parse_search_hit(hit: dict[str, Any], archives_url: str = ARCHIVES_URL) -> FilingReference | None:
    """Map one full-text search hit to a FilingReference (None if unusable).

    Hit shape (abridged):
    {
      "_id": "0001193125-24-012345:d123ex961.htm",
      "_source": {"ciks": ["0000123456"], "display_names": ["Acme Gold Corp  (AGC)  (CIK 0000123456)"],
                  "file_date": "2024-02-28", "form": "10-K", "adsh": "0001193125-24-012345",
                  "sics": ["1040"], "file_type": "EX-96.1", "file_description": "Technical report summary"}
    }
    """
    src = hit.get("_source") or {}
    if not isinstance(src, dict):
        return None
    raw_id = str(hit.get("_id") or "")
    adsh, _, filename = raw_id.partition(":")
    accession = str(src.get("adsh") or adsh).strip()
    ciks = src.get("ciks") or []
    if not accession or not ciks:
        return None
    cik = str(ciks[0]).strip()
    if not cik.isdigit():
        logger.debug("Skipping search hit %s with non-numeric CIK %r", raw_id or accession, cik)
        return None

    names = src.get("display_names") or []
    company, ticker = _split_display_name(str(names[0]) if names else "")
    tickers = src.get("tickers") or []
    if tickers and not ticker:
        ticker = str(tickers[0])

    filename = filename or str(src.get("file_name") or "")
    file_type = str(src.get("file_type") or "")
    description = str(src.get("file_description") or src.get("description") or "")

    filing = FilingReference(
        cik=cik,
        company_name=company or f"CIK {cik}",
        filing_date=parse_date(str(src.get("file_date") or src.get("filing_date") or "")),
        form=str(src.get("form") or src.get("root_form") or ""),
        accession_number=accession,
        sic_codes=tuple(str(s) for s in (src.get("sics") or [])),
        ticker=ticker,
        description=description,
    )
    if filename and is_technical_report(filename, file_type, description):
        doc = FilingDocument(
            url=f"{archives_url}/{_archive_cik(cik)}/{accession.replace('-', '')}/{filename}",
            document_type=file_type or exhibit_label(filename, description),
            description=description,
        )
        filing = filing.with_documents([doc])
    return filing


@dataclass
class EdgarClient:
    """Client for the SEC EDGAR APIs used by OreLens.

    Sources:
    - Full-text search: https://efts.sec.gov/LATEST/search-index
    - Filing archive folders: https://www.sec.gov/Archives/edgar/data/<cik>/<accession>/index.json

    Every request, retries included, waits on the shared ``limiter``.
    """

    http: httpx.AsyncClient
    limiter: RateLimiter
    cfg: HttpConfig = field(default_factory=HttpConfig)
    search_url: str = SEARCH_URL
    archives_url: str = ARCHIVES_URL

    @classmethod
    def from_config(cls, cfg: HttpConfig, limiter: RateLimiter) -> "EdgarClient":
        return cls(http=build_async_client(cfg), limiter=limiter, cfg=cfg)

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            return await get_json(self.http, url, limiter=self.limiter, cfg=self.cfg, params=params)
        except (httpx.HTTPError, TransientHttpError) as e:
            raise FilingRequestError(url, str(e) or type(e).__name__, status_code=status_code_of(e)) from e
        except ValueError as e:
            raise FilingRequestError(url, f"invalid JSON: {e}") from e

    def _search_params(self, query: str, filters: FilingFilters, offset: int) -> dict[str, Any]:
        params: dict[str, Any] = {"q": query or DEFAULT_QUERY, "from": offset}
        if filters.forms:
            params["forms"] = ",".join(filters.forms)
        if filters.date_from or filters.date_to:
            params["dateRange"] = "custom"
            params["startdt"] = (filters.date_from or EARLIEST_FULL_TEXT_DATE).isoformat()
            params["enddt"] = (filters.date_to or date.today()).isoformat()
        sics = filters.effective_sic_codes()
        if sics:
            params["sics"] = ",".join(sics)
        if filters.tickers:
            params["tickers"] = ",".join(filters.tickers)
        return params

    async def search_page(
        self, query: str = DEFAULT_QUERY, filters: FilingFilters | None = None, *, offset: int = 0
    ) -> SearchPage:
        """Fetch one page of search results starting at ``offset``.

        Pages carry no hidden state: any ``offset`` (e.g. a previous page's
        ``next_offset``) can be requested again to resume a run.
        """
        filters = filters or FilingFilters()
        data = await self._get_json(self.search_url, self._search_params(query, filters, offset))
        hits_obj = (data or {}).get("hits") if isinstance(data, dict) else None
        hits = (hits_obj or {}).get("hits") or []
        total_obj = (hits_obj or {}).get("total") or {}
        total = int(total_obj.get("value") or 0) if isinstance(total_obj, dict) else int(total_obj or 0)

        by_accession: dict[str, FilingReference] = {}
        for hit in hits:
            if not isinstance(hit, dict):
                continue
            filing = parse_search_hit(hit, self.archives_url)
            if filing is None or not _matches_filters(filing, filters):
                continue
            prev = by_accession.get(filing.accession_number)
            by_accession[filing.accession_number] = prev.with_documents(filing.documents) if prev else filing

        next_offset = offset + len(hits) if hits and offset + len(hits) < total else None
        return SearchPage(filings=tuple(by_accession.values()), offset=offset, next_offset=next_offset, total=total)

    async def search(
        self,
        query: str = DEFAULT_QUERY,
        filters: FilingFilters | None = None,
        *,
        start: int = 0,
        max_pages: int | None = None,
    ) -> AsyncIterator[FilingReference]:
        """Yield filings across pages, starting at offset ``start``."""
        offset: int | None = start
        seen_pages = 0
        while offset is not None:
            page = await self.search_page(query, filters, offset=offset)
            logger.info(
                "EDGAR search offset=%s kept=%s total=%s", page.offset, len(page.filings), page.total
            )
            for filing in page.filings:
                yield filing
            offset = page.next_offset
            seen_pages += 1
            if max_pages is not None and seen_pages >= max_pages:
                return

    async def fetch_index(self, filing: FilingReference) -> list[FilingDocument]:
        """List candidate technical-report documents in a filing's archive folder.

        Index shape:
        {"directory": {"name": "...", "item": [{"name": "d123ex961.htm", "type": "text.gif", "size": "..."}]}}
        """
        if not filing.cik.isdigit():
            raise FilingRequestError(self.archives_url, f"Filing {filing.accession_number} has non-numeric CIK {filing.cik!r}")
        folder = f"{self.archives_url}/{_archive_cik(filing.cik)}/{filing.accession_number.replace('-', '')}"
        data = await self._get_json(f"{folder}/index.json")
        items = ((data or {}).get("directory") or {}).get("item") if isinstance(data, dict) else None
        docs: list[FilingDocument] = []
        for item in items or []:
            if not isinstance(item, dict):
                continue
            name = str(item.get("name") or "").strip()
            item_type = str(item.get("type") or "")
            description = str(item.get("description") or "")
            if not name or not is_technical_report(name, item_type, description):
                continue
            doc_type = item_type if item_type.upper().startswith("EX-") else exhibit_label(name, description)
            docs.append(FilingDocument(url=f"{folder}/{name}", document_type=doc_type, description=description))
        return docs
