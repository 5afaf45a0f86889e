from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

from orelens.utils import utc_now


class MetricKind(str, Enum):
    NPV = "npv"
    IRR = "irr"
    CAPEX = "capex"
    OPEX = "opex"
    AISC = "aisc"
    PAYBACK_YEARS = "payback_years"
    MINE_LIFE_YEARS = "mine_life_years"
    ANNUAL_PRODUCTION = "annual_production"
    RESOURCE_GRADE = "resource_grade"
    RECOVERY_RATE = "recovery_rate"
    RESOURCE_TONNAGE = "resource_tonnage"


class ExtractedMetric(BaseModel):
    kind: MetricKind
    value: float = Field(gt=0)
    unit: str
    snippet: str = ""


class ExtractionResult(BaseModel):
    """Metrics found in one document, plus what the classifier made of it."""

    metrics: dict[MetricKind, ExtractedMetric] = Field(default_factory=dict)
    kinds_attempted: int = Field(ge=0)
    coverage_fraction: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    sufficient: bool = False

    commodity: str | None = None
    project_name: str | None = None
    stage: str | None = None
    jurisdiction: str | None = None
    country: str | None = None
    text_chars: int = 0

    def metric_value(self, kind: MetricKind) -> float | None:
        m = self.metrics.get(kind)
        return m.value if m else None


# ProjectRecord column per metric kind.
METRIC_FIELDS: dict[MetricKind, str] = {
    MetricKind.NPV: "post_tax_npv_usd_m",
    MetricKind.IRR: "irr_percent",
    MetricKind.CAPEX: "capex_usd_m",
    MetricKind.OPEX: "opex_usd_per_unit",
    MetricKind.AISC: "aisc_usd_per_unit",
    MetricKind.PAYBACK_YEARS: "payback_years",
    MetricKind.MINE_LIFE_YEARS: "mine_life_years",
    MetricKind.ANNUAL_PRODUCTION: "annual_production_tonnes",
    MetricKind.RESOURCE_GRADE: "resource_grade",
    MetricKind.RECOVERY_RATE: "recovery_rate_percent",
    MetricKind.RESOURCE_TONNAGE: "resource_tonnage",
}

UNIT_FIELDS: dict[MetricKind, str] = {
    MetricKind.OPEX: "opex_unit",
    MetricKind.AISC: "aisc_unit",
    MetricKind.RESOURCE_GRADE: "resource_grade_unit",
}

_PROJECT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "https://orelens.dev/projects")


def normalize_key(value: str) -> str:
    return " ".join((value or "").split()).casefold()


def project_id(project_name: str, company_name: str) -> str:
    """Stable id for a (project, company) pair, insensitive to case and spacing."""
    key = f"{normalize_key(project_name)}|{normalize_key(company_name)}"
    return str(uuid.uuid5(_PROJECT_NAMESPACE, key))


class ProjectRecord(BaseModel):
    id: str
    project_name: str = Field(min_length=1)
    company_name: str = Field(min_length=1)
    primary_commodity: str | None = None
    stage: str | None = None
    jurisdiction: str | None = None
    country: str | None = None

    post_tax_npv_usd_m: float | None = None
    irr_percent: float | None = None
    capex_usd_m: float | None = None
    opex_usd_per_unit: float | None = None
    opex_unit: str | None = None
    aisc_usd_per_unit: float | None = None
    aisc_unit: str | None = None
    payback_years: float | None = None
    mine_life_years: float | None = None
    annual_production_tonnes: float | None = None
    resource_grade: float | None = None
    resource_grade_unit: str | None = None
    recovery_rate_percent: float | None = None
    resource_tonnage: float | None = None

    description: str | None = None
    source_url: str | None = None
    source_date: date | None = None
    accession_number: str | None = None
    cik: str | None = None
    ticker: str | None = None

    extraction_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    coverage_fraction: float = Field(default=0.0, ge=0.0, le=1.0)
    data_source: str = "SEC EDGAR"
    updated_at: datetime = Field(default_factory=utc_now)

    def key(self) -> tuple[str, str]:
        return normalize_key(self.project_name), normalize_key(self.company_name)
