"""Integration helpers for the OpenRouter API."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from ..config import Settings
from ..errors import AIServiceError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a meticulous manga metadata assistant. When asked for JSON you "
    "respond with a single JSON object and never include commentary outside it."
)


class TextService(Protocol):
    """Free-text completion used for translation and unknown-page extraction."""

    async def complete(self, prompt: str, *, system: str | None = None) -> str:
        ...


class OpenRouterClient:
    """Client responsible for talking to OpenRouter."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def complete(self, prompt: str, *, system: str | None = None) -> str:
        """Return the model's text answer for ``prompt``."""

        api_key = self._settings.openrouter_api_key
        if not api_key:
            raise AIServiceError("OpenRouter API key is required for AI completions")

        payload = {
            "model": self._settings.openrouter_model,
            "temperature": 0.2,
            "messages": [
                {"role": "system", "content": system or SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "https://github.com/manga-harvest/manga-harvest",
            "X-Title": self._settings.app_name,
        }

        try:
            response = await self._client.post("/chat/completions", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise AIServiceError(f"OpenRouter request failed: {exc}") from exc
        if response.status_code >= 400:
            raise AIServiceError(response.text[:500])

        try:
            data = response.json()
        except ValueError as exc:
            raise AIServiceError("OpenRouter returned a non-JSON body") from exc

        choices = data.get("choices") or []
        if not choices:
            raise AIServiceError("Model returned no choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not isinstance(content, str) or not content.strip():
            raise AIServiceError("Model response missing content")

        logger.debug("AI completion received (%s chars)", len(content))
        return content.strip()
