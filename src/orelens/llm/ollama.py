from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import orjson

from orelens.settings import settings


@dataclass(frozen=True)
class OllamaResponse:
    model: str
    content: str
    raw: dict[str, Any]


class OllamaClient:
    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        *,
        timeout_s: float | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.ollama_base_url).rstrip("/")
        self.model = model or settings.ollama_model
        # Generation is slower than a filing fetch, so it gets its own timeout.
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s or settings.ollama_timeout_s))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def chat_json(self, *, system: str, user: str, temperature: float = 0.0) -> OllamaResponse:
        """Call Ollama chat API requesting a JSON response."""
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "stream": False,
            "format": "json",
            "options": {"temperature": temperature},
        }
        r = await self._http.post(url, json=payload)
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object from {url}, got {type(data).__name__}")
        message = data.get("message") or {}
        if not isinstance(message, dict):
            raise ValueError(f"Unexpected message shape from {url}")
        content = message.get("content") or ""
        return OllamaResponse(model=data.get("model") or self.model, content=str(content), raw=data)


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse a JSON object from text (robust to extra whitespace or prose around it)."""
    s = text.strip()
    try:
        obj = orjson.loads(s)
    except orjson.JSONDecodeError:
        start = s.find("{")
        end = s.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise
        obj = orjson.loads(s[start : end + 1])
    if not isinstance(obj, dict):
        raise TypeError("Expected a JSON object")
    return obj
