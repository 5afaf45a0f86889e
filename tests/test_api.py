from __future__ import annotations

from datetime import date

import pytest
from fastapi.testclient import TestClient

from orelens.api import create_app
from orelens.reconcile import SourceRef, build_record
from orelens.schemas.records import ExtractedMetric, ExtractionResult, MetricKind
from orelens.storage import MemoryStore


def test_health() -> None:
    client = TestClient(create_app(store=MemoryStore()))
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "version" in data


def test_extract_endpoint() -> None:
    client = TestClient(create_app(store=MemoryStore()))
    text = (
        "The project has an after-tax NPV of $485.3 million, an IRR of 22.4%, "
        "initial capital of $320 million and a mine life of 12 years."
    )
    r = client.post("/extract", json={"text": text})
    assert r.status_code == 200
    data = r.json()
    assert set(data["metrics"]) == {"npv", "irr", "capex", "mine_life_years"}
    assert data["metrics"]["npv"]["value"] == pytest.approx(485.3)
    assert data["coverage_fraction"] == pytest.approx(4 / 11)
    assert data["sufficient"] is True


def test_extract_rejects_empty_text() -> None:
    client = TestClient(create_app(store=MemoryStore()))
    assert client.post("/extract", json={"text": ""}).status_code == 422


def test_projects_endpoint() -> None:
    store = MemoryStore()
    result = ExtractionResult(
        metrics={MetricKind.IRR: ExtractedMetric(kind=MetricKind.IRR, value=22.4, unit="%")},
        kinds_attempted=11,
        coverage_fraction=0.5,
        confidence=0.55,
        sufficient=True,
        commodity="Copper",
    )
    source = SourceRef(company_name="Acme Copper Ltd", filing_date=date(2024, 2, 28))
    store.upsert_project(build_record(result, source, project_name="Copper Flat Project"))
    client = TestClient(create_app(store=store))

    rows = client.get("/projects").json()
    assert [r["project_name"] for r in rows] == ["Copper Flat Project"]
    assert rows[0]["irr_percent"] == pytest.approx(22.4)
    assert rows[0]["source_date"] == "2024-02-28"
    assert client.get("/projects", params={"commodity": "gold"}).json() == []
