"""Logging setup shared by the CLI and the API.

``configure_logging()`` is idempotent: if the root logger already has handlers
it does nothing, so calling it from every command is safe.
"""

from __future__ import annotations

import logging
from pathlib import Path

from orelens.settings import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int = logging.INFO, *, log_dir: Path | None = None) -> None:
    root = logging.getLogger()
    if root.handlers:
        return

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    # File handler is optional: skip it if the data folder is not writable.
    target = log_dir or (settings.data_dir / "logs")
    try:
        target.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(target / "orelens.log", mode="a", encoding="utf-8")
        fh.setFormatter(formatter)
        root.addHandler(fh)
    except OSError:
        pass

    root.setLevel(level)
    # httpx logs every request at INFO; keep it for debugging only.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
