import asyncio
import json

import httpx
import pytest

from core.errors import ProviderError
from plugins.ai_providers.openai import OpenAIProvider
from plugins.ai_providers.openrouter import OpenRouterProvider
from plugins.web_search.tavily import MAX_CONTEXT_CHARS, TavilySearch


def _chat_reply(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_openai_compatible_request_and_reply():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_chat_reply("pong"))

    llm = OpenAIProvider(
        api_key="",
        model="llama3.1:8b",
        base_url="http://localhost:11434/v1/",
        provider_name="ollama",
        transport=httpx.MockTransport(handler),
    )
    reply = asyncio.run(llm.complete([{"role": "user", "content": "ping"}], temperature=0.0))

    assert reply == "pong"
    assert llm.name == "ollama"
    request = seen[0]
    assert str(request.url) == "http://localhost:11434/v1/chat/completions"
    assert "authorization" not in request.headers
    body = json.loads(request.content)
    assert body["model"] == "llama3.1:8b"
    assert body["temperature"] == 0.0


def test_openai_without_choices_raises():
    llm = OpenAIProvider(api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    with pytest.raises(ProviderError):
        asyncio.run(llm.complete([{"role": "user", "content": "x"}]))


def test_openrouter_sends_key_and_parses():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=_chat_reply("hello"))

    llm = OpenRouterProvider(api_key="sk-or-1", transport=httpx.MockTransport(handler))
    assert asyncio.run(llm.complete([{"role": "user", "content": "hi"}])) == "hello"
    assert seen[0].headers["authorization"] == "Bearer sk-or-1"


def test_openrouter_error_body_raises():
    def handler(request):
        return httpx.Response(200, json={"error": {"code": 429, "message": "rate limited"}})

    llm = OpenRouterProvider(api_key="k", transport=httpx.MockTransport(handler))
    with pytest.raises(ProviderError) as exc:
        asyncio.run(llm.complete([{"role": "user", "content": "hi"}]))
    assert exc.value.code == 429


def test_tavily_formats_context():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={
            "answer": " BTC rallied on ETF inflows. ",
            "results": [
                {"title": "BTC up", "url": "https://example.com/a", "content": "Bitcoin rose 5%"},
                {"title": "More", "url": "https://example.com/b", "snippet": "snip"},
                {"title": "Dropped", "url": "https://example.com/c", "content": "beyond max_results"},
            ],
        })

    search = TavilySearch(api_key="tvly-1", transport=httpx.MockTransport(handler))
    context = asyncio.run(search.search("bitcoin news", depth="advanced", max_results=2, topic="news"))

    assert context.startswith("Answer: BTC rallied on ETF inflows.")
    assert "Title: BTC up\nURL: https://example.com/a\nContent: Bitcoin rose 5%" in context
    assert "Snippet: snip" in context
    assert "Dropped" not in context
    assert seen[0]["search_depth"] == "advanced"
    assert seen[0]["topic"] == "news"
    assert seen[0]["api_key"] == "tvly-1"


def test_tavily_empty_results_is_none():
    search = TavilySearch(api_key="k", transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"results": []})))
    assert asyncio.run(search.search("nothing")) is None


def test_tavily_truncates_long_context():
    def handler(request):
        return httpx.Response(200, json={"answer": "x" * (MAX_CONTEXT_CHARS * 2)})

    search = TavilySearch(api_key="k", transport=httpx.MockTransport(handler))
    assert len(asyncio.run(search.search("long"))) == MAX_CONTEXT_CHARS
