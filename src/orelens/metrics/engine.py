from __future__ import annotations

import logging
from typing import Any

from orelens.metrics.patterns import PatternTable, default_pattern_table
from orelens.schemas.records import ExtractedMetric, ExtractionResult, MetricKind

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTANCE_THRESHOLD = 0.30
MAX_CONFIDENCE = 0.95


def confidence_for(accepted: int) -> float:
    """0 with nothing accepted, else 0.5 plus 0.05 per metric, capped at 0.95."""
    if accepted <= 0:
        return 0.0
    return min(MAX_CONFIDENCE, 0.5 + 0.05 * accepted)


def _snippet(text: str, start: int, end: int, pad: int) -> str:
    return text[max(0, start - pad) : min(len(text), end + pad)].strip()


class MetricsEngine:
    def __init__(
        self,
        table: PatternTable | None = None,
        *,
        acceptance_threshold: float = DEFAULT_ACCEPTANCE_THRESHOLD,
        snippet_pad: int = 40,
    ) -> None:
        if not 0.0 <= acceptance_threshold <= 1.0:
            raise ValueError("acceptance_threshold must be within [0, 1]")
        self.table = table or default_pattern_table()
        self.acceptance_threshold = acceptance_threshold
        self.snippet_pad = snippet_pad

    def _extract_kind(self, kind: MetricKind, text: str) -> ExtractedMetric | None:
        for pattern in self.table.patterns[kind]:
            m = pattern.regex.search(text)
            if m is None:
                continue
            # The first matching pattern decides the kind, even when its value is rejected.
            parsed = pattern.extractor(m)
            if parsed is None:
                return None
            value, unit = parsed
            if not self.table.is_plausible(kind, value, unit):
                logger.debug("Rejected implausible %s=%s %s", kind.value, value, unit)
                return None
            return ExtractedMetric(
                kind=kind, value=value, unit=unit, snippet=_snippet(text, m.start(), m.end(), self.snippet_pad)
            )
        return None

    def extract(self, text: Any) -> ExtractionResult:
        attempted = len(self.table.kinds)
        if not isinstance(text, str):
            logger.info("Cannot extract metrics from %s input", type(text).__name__)
            return self._result({}, attempted, 0)

        metrics: dict[MetricKind, ExtractedMetric] = {}
        for kind in self.table.kinds:
            metric = self._extract_kind(kind, text)
            if metric is not None:
                metrics[kind] = metric
        return self._result(metrics, attempted, len(text))

    def _result(self, metrics: dict[MetricKind, ExtractedMetric], attempted: int, text_chars: int) -> ExtractionResult:
        coverage = len(metrics) / attempted if attempted else 0.0
        return ExtractionResult(
            metrics=metrics,
            kinds_attempted=attempted,
            coverage_fraction=coverage,
            confidence=confidence_for(len(metrics)),
            sufficient=bool(metrics) and coverage >= self.acceptance_threshold,
            text_chars=text_chars,
        )
