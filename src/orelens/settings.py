from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ORELENS_", env_file=".env", extra="ignore")

    data_dir: Path = Path("data")

    # SEC EDGAR
    # EDGAR rejects anonymous clients: the user agent must carry a contact address.
    sec_user_agent: str = "OreLens Mining Analytics contact@orelens.dev"
    sec_min_interval_s: float = 0.1

    # Execution / defaults
    http_timeout_s: float = 30.0
    http_max_attempts: int = 3
    max_workers: int = 4
    max_text_chars: int = 400_000

    # Extraction
    acceptance_threshold: float = 0.30

    # Record store
    store_backend: Literal["parquet", "memory", "supabase"] = "parquet"
    supabase_url: str | None = None
    supabase_key: str | None = None
    supabase_table: str = "projects"
    supabase_filings_table: str = "edgar_filings"

    # Ollama (optional narrative enrichment)
    enrich: bool = False
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:8b"
    ollama_timeout_s: float = 60.0


settings = Settings()
