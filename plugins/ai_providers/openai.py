"""OpenAI-compatible LLM provider -- calls a chat completions API via httpx.

No SDK dependency. Works with OpenAI itself and with compatible servers such
as a local Ollama (`base_url: http://localhost:11434/v1`, no API key).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from core.errors import ProviderError

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider:
    """LLM provider for OpenAI-compatible APIs.

    Implements the LLMProvider protocol.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        base_url: str = _DEFAULT_BASE_URL,
        max_tokens: int = 2048,
        temperature: float = 0.3,
        timeout: float = 60.0,
        provider_name: str = "openai",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._name = provider_name
        self._url = base_url.rstrip("/") + "/chat/completions"

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)

    @property
    def name(self) -> str:
        return self._name

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

        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(self._name, response.status_code, "response has no choices")
        return choices[0].get("message", {}).get("content") or ""

    async def close(self) -> None:
        await self._client.aclose()
