from __future__ import annotations

import logging
from pathlib import Path

from orelens.classify import classify
from orelens.documents.fetch import RawDocument
from orelens.documents.normalize import normalize
from orelens.metrics.engine import MetricsEngine
from orelens.schemas.records import ExtractionResult

logger = logging.getLogger(__name__)


def analyze_text(text: str, engine: MetricsEngine) -> ExtractionResult:
    """Metrics plus commodity, project name, stage and location for one normalized text."""
    result = engine.extract(text)
    if not isinstance(text, str) or not text:
        return result
    c = classify(text)
    return result.model_copy(
        update={
            "commodity": c.commodity,
            "project_name": c.project_name,
            "stage": c.stage,
            "jurisdiction": c.jurisdiction,
            "country": c.country,
        }
    )


def normalize_document(raw: RawDocument, *, max_chars: int | None = None) -> str:
    """Normalize a fetched document; unreadable payloads come back as empty text."""
    try:
        return normalize(raw, max_chars=max_chars)
    except (RuntimeError, ValueError) as e:
        # PyMuPDF raises RuntimeError subclasses on corrupt PDFs.
        logger.info("Unreadable document %s: %s", raw.url, e)
        return ""


def extract_file(path: Path, engine: MetricsEngine, *, max_chars: int | None = None) -> ExtractionResult:
    content = path.read_bytes()
    content_type = "application/pdf" if path.suffix.lower() == ".pdf" else "text/html"
    raw = RawDocument(url=path.resolve().as_uri(), content=content, content_type=content_type)
    return analyze_text(normalize_document(raw, max_chars=max_chars), engine)
