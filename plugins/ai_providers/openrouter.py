"""OpenRouter LLM provider -- many models behind one OpenAI-compatible endpoint."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.errors import ProviderError

logger = logging.getLogger(__name__)

_DEFAULT_URL = "https://openrouter.ai/api/v1/chat/completions"


class OpenRouterProvider:
    """LLM provider for OpenRouter's unified API.

    Implements the LLMProvider protocol. OpenRouter reports some failures
    as an `error` object in a 200 response; those raise ProviderError.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "openai/gpt-4o-mini",
        base_url: str = _DEFAULT_URL,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: float = 60.0,
        site_name: str = "Sally",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._url = base_url or _DEFAULT_URL
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                "X-Title": site_name,
            },
            transport=transport,
        )

    @property
    def name(self) -> str:
        return "openrouter"

    async def complete(self, messages: list[dict], **kwargs: Any) -> str:
        """Send messages and return the text response."""
        body = {
            "model": kwargs.get("model", self._model),
            "messages": messages,
            "max_tokens": kwargs.get("max_tokens", self._max_tokens),
            "temperature": kwargs.get("temperature", self._temperature),
        }

        response = await self._client.post(self._url, json=body)
        response.raise_for_status()
        data = response.json()

        if "error" in data:
            error = data["error"] or {}
            raise ProviderError(
                self.name, int(error.get("code") or 0), str(error.get("message", ""))
            )
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self.name, response.status_code, "response has no choices")
        return choices[0].get("message", {}).get("content") or ""

    async def close(self) -> None:
        await self._client.aclose()
