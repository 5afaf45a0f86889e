from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from pathlib import Path

import typer

from orelens import __version__
from orelens.api import create_app
from orelens.clients.edgar import DEFAULT_QUERY, EdgarClient, FilingFilters, FilingRequestError
from orelens.clients.http import HttpConfig
from orelens.clients.ratelimit import RateLimiter
from orelens.logging import configure_logging
from orelens.metrics.engine import MetricsEngine
from orelens.metrics.patterns import default_pattern_table
from orelens.pipelines.discover import DiscoveryDeps, run_discovery
from orelens.pipelines.extract_document import extract_file
from orelens.settings import settings
from orelens.storage import StoreError, build_store, get_layout
from orelens.utils import to_json

app = typer.Typer(add_completion=False, no_args_is_help=True)


def _parse_day(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise typer.BadParameter(f"Expected YYYY-MM-DD, got {value!r}") from e


def _filters(
    sic: list[str] | None,
    keyword: list[str] | None,
    form: list[str] | None,
    ticker: list[str] | None,
    date_from: str | None,
    date_to: str | None,
) -> FilingFilters:
    return FilingFilters(
        sic_codes=tuple(sic or ()),
        keywords=tuple(keyword or ()),
        forms=tuple(form or ()),
        tickers=tuple(t.upper() for t in ticker or ()),
        date_from=_parse_day(date_from),
        date_to=_parse_day(date_to),
    )


@app.command()
def init() -> None:
    """Initialize local data folders."""
    configure_logging()
    layout = get_layout()
    typer.echo(f"Initialized data layout at: {layout.root.resolve()}")


@app.command()
def version() -> None:
    """Print the package version."""
    typer.echo(__version__)


@app.command()
def search(
    query: str = typer.Option(DEFAULT_QUERY, help="EDGAR full-text query."),
    sic: list[str] = typer.Option(None, help="Repeatable SIC code filter. Default: mining SIC codes."),
    keyword: list[str] = typer.Option(None, help="Repeatable issuer name/description keyword."),
    form: list[str] = typer.Option(None, help="Repeatable form type. Example: --form 10-K"),
    ticker: list[str] = typer.Option(None, help="Repeatable issuer ticker."),
    date_from: str = typer.Option(None, help="YYYY-MM-DD"),
    date_to: str = typer.Option(None, help="YYYY-MM-DD"),
    start: int = typer.Option(0, help="Result offset to start from."),
    max_pages: int = 1,
    with_index: bool = typer.Option(False, help="Also list candidate documents from each filing index."),
) -> None:
    """List filings matching the query and filters."""
    configure_logging()
    filters = _filters(sic, keyword, form, ticker, date_from, date_to)

    async def _run() -> None:
        cfg = HttpConfig(
            timeout_s=settings.http_timeout_s,
            user_agent=settings.sec_user_agent,
            max_attempts=settings.http_max_attempts,
        )
        client = EdgarClient.from_config(cfg, RateLimiter(settings.sec_min_interval_s))
        try:
            async for f in client.search(query, filters, start=start, max_pages=max_pages):
                filed = f.filing_date.isoformat() if f.filing_date else "?"
                typer.echo(f"{f.accession_number}  {filed}  {f.form:<8} {f.company_name} (CIK {f.cik})")
                docs = list(f.documents)
                if with_index:
                    docs += [d for d in await client.fetch_index(f) if d.url not in {x.url for x in docs}]
                for d in docs:
                    typer.echo(f"    {d.document_type:<8} {d.url}")
        finally:
            await client.aclose()

    try:
        asyncio.run(_run())
    except FilingRequestError as e:
        typer.echo(f"Search failed: {e}", err=True)
        raise typer.Exit(1) from e


@app.command()
def run(
    query: str = typer.Option(DEFAULT_QUERY, help="EDGAR full-text query."),
    sic: list[str] = typer.Option(None, help="Repeatable SIC code filter. Default: mining SIC codes."),
    keyword: list[str] = typer.Option(None, help="Repeatable issuer name/description keyword."),
    form: list[str] = typer.Option(None, help="Repeatable form type. Example: --form 10-K"),
    ticker: list[str] = typer.Option(None, help="Repeatable issuer ticker."),
    date_from: str = typer.Option(None, help="YYYY-MM-DD"),
    date_to: str = typer.Option(None, help="YYYY-MM-DD"),
    start: int = typer.Option(0, help="Result offset to resume from."),
    max_pages: int = 1,
    max_filings: int = typer.Option(None, help="Stop after this many filings."),
    max_workers: int = typer.Option(None, help="Concurrent filings. Default: ORELENS_MAX_WORKERS."),
    enrich: bool = typer.Option(None, help="Polish names with Ollama. Default: ORELENS_ENRICH."),
) -> None:
    """Discover technical reports, extract metrics and reconcile them into the catalog."""
    layout = get_layout()
    configure_logging(log_dir=layout.logs)
    filters = _filters(sic, keyword, form, ticker, date_from, date_to)
    cfg = settings.model_copy(update={"enrich": enrich}) if enrich is not None else settings

    async def _run():
        deps = DiscoveryDeps.from_settings(cfg, build_store(cfg, layout))
        try:
            return await run_discovery(
                deps,
                query=query,
                filters=filters,
                start=start,
                max_pages=max_pages,
                max_filings=max_filings,
                max_workers=max_workers or cfg.max_workers,
                layout=layout,
            )
        finally:
            await deps.aclose()

    try:
        summary = asyncio.run(_run())
    except StoreError as e:
        typer.echo(f"Store unavailable: {e}", err=True)
        raise typer.Exit(1) from e
    for k, v in summary.as_dict().items():
        typer.echo(f"{k:<30} {v}")
    if summary.errors:
        raise typer.Exit(2)


@app.command("extract-file")
def extract_file_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    threshold: float = typer.Option(None, help="Acceptance threshold. Default: ORELENS_ACCEPTANCE_THRESHOLD."),
) -> None:
    """Normalize, extract and classify a local HTML/text/PDF report; print JSON."""
    configure_logging()
    engine = MetricsEngine(
        default_pattern_table(),
        acceptance_threshold=threshold if threshold is not None else settings.acceptance_threshold,
    )
    result = extract_file(path, engine, max_chars=settings.max_text_chars)
    typer.echo(to_json(result.model_dump(mode="json")))


@app.command()
def projects(
    commodity: str = typer.Option(None, help="Only projects with this primary commodity."),
    as_json: bool = typer.Option(False, "--json", help="Print JSON records."),
) -> None:
    """List the project catalog."""
    configure_logging()
    try:
        records = build_store(settings).list_projects()
    except StoreError as e:
        typer.echo(f"Store unavailable: {e}", err=True)
        raise typer.Exit(1) from e
    if commodity:
        records = [r for r in records if (r.primary_commodity or "").lower() == commodity.lower()]
    if as_json:
        typer.echo(to_json([r.model_dump(mode="json") for r in records]))
        return
    for r in records:
        npv = f"{r.post_tax_npv_usd_m:,.1f}" if r.post_tax_npv_usd_m is not None else "-"
        typer.echo(
            f"{r.project_name:<40} {r.company_name:<35} {r.primary_commodity or '-':<12} "
            f"NPV={npv:<10} conf={r.extraction_confidence:.2f}"
        )
    typer.echo(f"{len(records)} projects")


@app.command()
def api(host: str = "127.0.0.1", port: int = 8000, log_level: str = "info") -> None:
    """Run the FastAPI server."""
    import uvicorn

    configure_logging(getattr(logging, log_level.upper(), logging.INFO))
    uvicorn.run(create_app(), host=host, port=port, log_level=log_level)
