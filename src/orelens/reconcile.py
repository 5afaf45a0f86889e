"""Decide whether an extraction becomes a new project, an update, or nothing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum

from orelens.schemas.records import (
    METRIC_FIELDS,
    UNIT_FIELDS,
    ExtractionResult,
    ProjectRecord,
    project_id,
)
from orelens.storage import RecordStore, StoreError
from orelens.utils import utc_now

logger = logging.getLogger(__name__)


class Action(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True)
class SourceRef:
    company_name: str
    url: str | None = None
    filing_date: date | None = None
    accession_number: str | None = None
    cik: str | None = None
    ticker: str | None = None
    data_source: str = "SEC EDGAR"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str
    record: ProjectRecord | None = None
    existing: ProjectRecord | None = None


@dataclass(frozen=True)
class ApplyOutcome:
    action: Action
    ok: bool
    error: str | None = None


def build_record(
    result: ExtractionResult,
    source: SourceRef,
    *,
    project_name: str,
    description: str | None = None,
    record_id: str | None = None,
) -> ProjectRecord:
    values: dict[str, object] = {}
    for kind, metric in result.metrics.items():
        values[METRIC_FIELDS[kind]] = metric.value
        if kind in UNIT_FIELDS:
            values[UNIT_FIELDS[kind]] = metric.unit
    return ProjectRecord(
        id=record_id or project_id(project_name, source.company_name),
        project_name=project_name,
        company_name=source.company_name,
        primary_commodity=result.commodity,
        stage=result.stage,
        jurisdiction=result.jurisdiction,
        country=result.country,
        description=description,
        source_url=source.url,
        source_date=source.filing_date,
        accession_number=source.accession_number,
        cik=source.cik,
        ticker=source.ticker,
        extraction_confidence=result.confidence,
        coverage_fraction=result.coverage_fraction,
        data_source=source.data_source,
        updated_at=utc_now(),
        **values,
    )


class Reconciler:
    def __init__(self, store: RecordStore, *, acceptance_threshold: float = 0.30) -> None:
        self.store = store
        self.acceptance_threshold = acceptance_threshold

    def reconcile(
        self,
        result: ExtractionResult,
        source: SourceRef,
        *,
        project_name: str | None = None,
        description: str | None = None,
    ) -> Decision:
        """Compare ``result`` with the stored record for the same (project, company).

        ``project_name`` overrides the name found in the text (e.g. an enriched
        name). Store read failures propagate as ``StoreError``.
        """
        if not result.metrics or result.coverage_fraction < self.acceptance_threshold:
            logger.info(
                "Skipping %s: coverage %.2f below threshold %.2f",
                source.url or source.company_name,
                result.coverage_fraction,
                self.acceptance_threshold,
            )
            return Decision(action=Action.SKIP, reason="below_threshold")

        name = project_name or result.project_name
        if not name:
            return Decision(action=Action.SKIP, reason="no_project_name")

        existing = self.store.get_project(name, source.company_name)
        if existing is None:
            record = build_record(result, source, project_name=name, description=description)
            return Decision(action=Action.INSERT, reason="new_project", record=record)

        if result.confidence > existing.extraction_confidence:
            # Keep the stored identity so the upsert lands on the same row.
            record = build_record(
                result,
                replace(source, company_name=existing.company_name),
                project_name=existing.project_name,
                description=description or existing.description,
                record_id=existing.id,
            )
            return Decision(action=Action.UPDATE, reason="more_confident", record=record, existing=existing)

        return Decision(action=Action.SKIP, reason="not_more_confident", existing=existing)

    def apply(self, decision: Decision) -> ApplyOutcome:
        if decision.action is Action.SKIP or decision.record is None:
            return ApplyOutcome(action=Action.SKIP, ok=True)
        try:
            self.store.upsert_project(decision.record)
        except StoreError as e:
            logger.error("Store write failed for %s: %s", decision.record.project_name, e)
            return ApplyOutcome(action=decision.action, ok=False, error=str(e))
        logger.info("%s %s (%s)", decision.action.value, decision.record.project_name, decision.record.company_name)
        return ApplyOutcome(action=decision.action, ok=True)
