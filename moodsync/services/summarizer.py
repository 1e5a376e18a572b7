"""
External text-completion client (Gemini generateContent over REST).

The core only needs "prompt in, text out, or a SummarizationError".
Callers (compression scheduler, journal analysis, insight generation) catch every
SummarizationError and fall back; nothing here reaches HTTP clients.

Public API
----------
TextCompletionClient.complete(prompt, temperature, json_output) -> str
GeminiClient(api_key, model, base_url, timeout, transport)
build_text_client(settings)                        -> Optional[GeminiClient]
"""
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from moodsync.core.config import Settings
from moodsync.core.errors import (
    SummarizationFailedError,
    SummarizationUnavailableError,
)

logger = logging.getLogger(__name__)


class TextCompletionClient(Protocol):
    async def complete(self, prompt: str, temperature: float = 0.2, json_output: bool = True) -> str: ...


def _candidate_text(payload: Any) -> str:
    """Join candidates[0].content.parts[*].text; "" when the shape is off."""
    if not isinstance(payload, dict):
        return ""
    candidates = payload.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "\n".join(
        str(part.get("text") or "") for part in parts if isinstance(part, dict)
    ).strip()


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    async def complete(self, prompt: str, temperature: float = 0.2, json_output: bool = True) -> str:
        if not self.available:
            raise SummarizationUnavailableError()

        generation_config: dict[str, Any] = {"temperature": temperature}
        if json_output:
            generation_config["responseMimeType"] = "application/json"
        body = {
            "generationConfig": generation_config,
            "contents": [{"parts": [{"text": prompt}]}],
        }
        url = f"{self.base_url}/models/{self.model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as exc:
            raise SummarizationFailedError(f"Text completion request failed: {exc}") from exc

        if response.status_code != 200:
            raise SummarizationFailedError(
                response.text[:200] or "Text completion request failed.",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise SummarizationFailedError("Text completion returned non-JSON body.") from exc

        text = _candidate_text(payload)
        logger.debug("text completion: %d chars from %s", len(text), self.model)
        return text


def build_text_client(settings: Settings) -> Optional[GeminiClient]:
    """None when no API key is configured: callers use their fallbacks."""
    if not settings.GEMINI_API_KEY:
        logger.info("text completion: not configured")
        return None
    return GeminiClient(
        api_key=settings.GEMINI_API_KEY,
        model=settings.GEMINI_MODEL,
        base_url=settings.GEMINI_BASE_URL,
        timeout=settings.GEMINI_TIMEOUT_SECONDS,
    )
