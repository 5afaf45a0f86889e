from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Protocol

import httpx
import polars as pl

from orelens.schemas.records import ProjectRecord, normalize_key
from orelens.settings import Settings, settings
from orelens.utils import dump_json, utc_now

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    pass


@dataclass(frozen=True)
class DataLayout:
    root: Path

    @property
    def silver(self) -> Path:
        return self.root / "silver"

    @property
    def gold(self) -> Path:
        return self.root / "gold"

    @property
    def manifests(self) -> Path:
        return self.root / "manifests"

    @property
    def logs(self) -> Path:
        return self.root / "logs"

    def ensure(self) -> None:
        for p in [self.silver, self.gold, self.manifests, self.logs]:
            p.mkdir(parents=True, exist_ok=True)

    @property
    def projects_path(self) -> Path:
        return self.gold / "projects" / "projects.parquet"

    @property
    def filings_path(self) -> Path:
        return self.silver / "filings" / "filings.parquet"


def get_layout(root: Path | None = None) -> DataLayout:
    layout = DataLayout(root or settings.data_dir)
    layout.ensure()
    return layout


def write_manifest(layout: DataLayout, run_id: str, payload: dict[str, Any]) -> Path:
    manifest = {
        "run_id": run_id,
        "created_at": utc_now().isoformat(),
        **payload,
    }
    path = layout.manifests / f"{run_id}.json"
    dump_json(path, manifest)
    return path


class RecordStore(Protocol):
    def get_project(self, project_name: str, company_name: str) -> ProjectRecord | None: ...

    def upsert_project(self, record: ProjectRecord) -> None: ...

    def list_projects(self) -> list[ProjectRecord]: ...

    def has_filing(self, accession_number: str) -> bool: ...

    def mark_filing(self, accession_number: str, **info: Any) -> None: ...


@dataclass
class MemoryStore:
    projects: dict[tuple[str, str], ProjectRecord] = field(default_factory=dict)
    filings: dict[str, dict[str, Any]] = field(default_factory=dict)

    def get_project(self, project_name: str, company_name: str) -> ProjectRecord | None:
        return self.projects.get((normalize_key(project_name), normalize_key(company_name)))

    def upsert_project(self, record: ProjectRecord) -> None:
        self.projects[record.key()] = record

    def list_projects(self) -> list[ProjectRecord]:
        return list(self.projects.values())

    def has_filing(self, accession_number: str) -> bool:
        return accession_number in self.filings

    def mark_filing(self, accession_number: str, **info: Any) -> None:
        self.filings[accession_number] = {"accession_number": accession_number, **info}


PROJECT_SCHEMA: dict[str, Any] = {
    "id": pl.Utf8,
    "project_name": pl.Utf8,
    "company_name": pl.Utf8,
    "primary_commodity": pl.Utf8,
    "stage": pl.Utf8,
    "jurisdiction": pl.Utf8,
    "country": pl.Utf8,
    "post_tax_npv_usd_m": pl.Float64,
    "irr_percent": pl.Float64,
    "capex_usd_m": pl.Float64,
    "opex_usd_per_unit": pl.Float64,
    "opex_unit": pl.Utf8,
    "aisc_usd_per_unit": pl.Float64,
    "aisc_unit": pl.Utf8,
    "payback_years": pl.Float64,
    "mine_life_years": pl.Float64,
    "annual_production_tonnes": pl.Float64,
    "resource_grade": pl.Float64,
    "resource_grade_unit": pl.Utf8,
    "recovery_rate_percent": pl.Float64,
    "resource_tonnage": pl.Float64,
    "description": pl.Utf8,
    "source_url": pl.Utf8,
    "source_date": pl.Date,
    "accession_number": pl.Utf8,
    "cik": pl.Utf8,
    "ticker": pl.Utf8,
    "extraction_confidence": pl.Float64,
    "coverage_fraction": pl.Float64,
    "data_source": pl.Utf8,
    "updated_at": pl.Datetime(time_unit="us", time_zone="UTC"),
}

FILING_SCHEMA: dict[str, Any] = {
    "accession_number": pl.Utf8,
    "cik": pl.Utf8,
    "company_name": pl.Utf8,
    "form": pl.Utf8,
    "filing_date": pl.Utf8,
    "status": pl.Utf8,
    "processed_at": pl.Datetime(time_unit="us", time_zone="UTC"),
}


class ParquetStore:
    """Project catalog and processed-filings ledger as Parquet files on the local data layout.

    Each write rewrites the file; fine at catalog scale (thousands of rows).
    """

    def __init__(self, layout: DataLayout) -> None:
        self.layout = layout

    def _read(self, path: Path, schema: dict[str, Any]) -> pl.DataFrame:
        if not path.exists():
            return pl.DataFrame(schema=schema)
        try:
            df = pl.read_parquet(path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise StoreError(f"Cannot read {path}: {e}") from e
        # Files written before a column existed read it as nulls.
        missing = [pl.lit(None, dtype=dtype).alias(name) for name, dtype in schema.items() if name not in df.columns]
        return df.with_columns(missing).select(list(schema)) if missing else df

    def _write(self, df: pl.DataFrame, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            df.write_parquet(path)
        except (OSError, pl.exceptions.PolarsError) as e:
            raise StoreError(f"Cannot write {path}: {e}") from e

    def get_project(self, project_name: str, company_name: str) -> ProjectRecord | None:
        key = (normalize_key(project_name), normalize_key(company_name))
        for record in self.list_projects():
            if record.key() == key:
                return record
        return None

    def upsert_project(self, record: ProjectRecord) -> None:
        df = self._read(self.layout.projects_path, PROJECT_SCHEMA)
        row = pl.DataFrame([record.model_dump()], schema=PROJECT_SCHEMA)
        if df.height:
            df = df.filter(pl.col("id") != record.id)
        self._write(pl.concat([df, row], how="vertical_relaxed"), self.layout.projects_path)

    def list_projects(self) -> list[ProjectRecord]:
        df = self._read(self.layout.projects_path, PROJECT_SCHEMA)
        return [ProjectRecord.model_validate(row) for row in df.to_dicts()]

    def has_filing(self, accession_number: str) -> bool:
        df = self._read(self.layout.filings_path, FILING_SCHEMA)
        return bool(df.height) and df.filter(pl.col("accession_number") == accession_number).height > 0

    def mark_filing(self, accession_number: str, **info: Any) -> None:
        df = self._read(self.layout.filings_path, FILING_SCHEMA)
        values = {k: _as_text(info.get(k)) for k in FILING_SCHEMA if k not in {"accession_number", "processed_at"}}
        row = pl.DataFrame(
            [{"accession_number": accession_number, **values, "processed_at": utc_now()}], schema=FILING_SCHEMA
        )
        if df.height:
            df = df.filter(pl.col("accession_number") != accession_number)
        self._write(pl.concat([df, row], how="vertical_relaxed"), self.layout.filings_path)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _ilike_literal(value: str) -> str:
    """Escape PostgREST ilike wildcards so the match is a case-insensitive equality."""
    out = value.replace("\\", "\\\\")
    for ch in ("%", "_", "*"):
        out = out.replace(ch, "\\" + ch)
    return out


class SupabaseStore:
    """Record store speaking PostgREST (Supabase REST API).

    Tables:
    - ``projects``: unique (project_name, company_name)
    - ``edgar_filings``: unique accession_number
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        table: str = "projects",
        filings_table: str = "edgar_filings",
        timeout_s: float = 30.0,
        http: httpx.Client | None = None,
    ) -> None:
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.table = table
        self.filings_table = filings_table
        self._http = http or httpx.Client(timeout=httpx.Timeout(timeout_s))
        self._headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            r = self._http.request(method, f"{self.base_url}/{path}", headers=headers, **kwargs)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e
        return r

    def get_project(self, project_name: str, company_name: str) -> ProjectRecord | None:
        params = {
            "select": "*",
            "project_name": f"ilike.{_ilike_literal(project_name.strip())}",
            "company_name": f"ilike.{_ilike_literal(company_name.strip())}",
            "limit": "1",
        }
        rows = self._request("GET", self.table, params=params).json()
        if not rows:
            return None
        return ProjectRecord.model_validate(rows[0])

    def upsert_project(self, record: ProjectRecord) -> None:
        self._request(
            "POST",
            self.table,
            params={"on_conflict": "project_name,company_name"},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            json=[record.model_dump(mode="json")],
        )

    def list_projects(self) -> list[ProjectRecord]:
        rows = self._request("GET", self.table, params={"select": "*", "order": "updated_at.desc"}).json()
        return [ProjectRecord.model_validate(r) for r in rows]

    def has_filing(self, accession_number: str) -> bool:
        params = {"select": "accession_number", "accession_number": f"eq.{accession_number}", "limit": "1"}
        return bool(self._request("GET", self.filings_table, params=params).json())

    def mark_filing(self, accession_number: str, **info: Any) -> None:
        row = {"accession_number": accession_number, **{k: _as_text(v) for k, v in info.items()}}
        row["processed_at"] = utc_now().isoformat()
        self._request(
            "POST",
            self.filings_table,
            params={"on_conflict": "accession_number"},
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            json=[row],
        )


def build_store(cfg: Settings = settings, layout: DataLayout | None = None) -> RecordStore:
    if cfg.store_backend == "memory":
        return MemoryStore()
    if cfg.store_backend == "supabase":
        if not cfg.supabase_url or not cfg.supabase_key:
            raise StoreError("ORELENS_SUPABASE_URL and ORELENS_SUPABASE_KEY are required for the supabase store")
        return SupabaseStore(
            cfg.supabase_url,
            cfg.supabase_key,
            table=cfg.supabase_table,
            filings_table=cfg.supabase_filings_table,
            timeout_s=cfg.http_timeout_s,
        )
    return ParquetStore(layout or get_layout(cfg.data_dir))
