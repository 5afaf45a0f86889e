from __future__ import annotations

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from orelens import __version__
from orelens.metrics.engine import MetricsEngine
from orelens.metrics.patterns import default_pattern_table
from orelens.pipelines.extract_document import analyze_text
from orelens.settings import settings
from orelens.storage import RecordStore, StoreError, build_store


class ExtractRequest(BaseModel):
    text: str = Field(min_length=1)


def create_app(store: RecordStore | None = None, engine: MetricsEngine | None = None) -> FastAPI:
    app = FastAPI(title="OreLens", version=__version__)
    engine = engine or MetricsEngine(default_pattern_table(), acceptance_threshold=settings.acceptance_threshold)
    state: dict[str, RecordStore] = {}
    if store is not None:
        state["store"] = store

    def _store() -> RecordStore:
        if "store" not in state:
            state["store"] = build_store(settings)
        return state["store"]

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok", "version": __version__}

    @app.get("/version")
    def version() -> dict:
        return {"version": __version__}

    @app.post("/extract")
    def extract(req: ExtractRequest) -> dict:
        text = req.text[: settings.max_text_chars]
        return analyze_text(text, engine).model_dump(mode="json")

    @app.get("/projects")
    def projects(commodity: str | None = None, limit: int = 100) -> list[dict]:
        try:
            records = _store().list_projects()
        except StoreError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e
        if commodity:
            records = [r for r in records if (r.primary_commodity or "").lower() == commodity.lower()]
        return [r.model_dump(mode="json") for r in records[: max(0, limit)]]

    return app
