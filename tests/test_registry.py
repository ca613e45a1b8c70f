import asyncio

import pytest

from core.registry import PluginRegistry


class DummyLLM:
    def __init__(self, name="dummy"):
        self._name = name
        self.closed = False

    @property
    def name(self):
        return self._name

    async def complete(self, messages, **kwargs):
        return "ok"

    async def close(self):
        self.closed = True


def test_register_and_lookup():
    registry = PluginRegistry()
    a, b = DummyLLM("a"), DummyLLM("b")
    registry.register("llm", a)
    registry.register("llm", b)

    assert registry.get("llm", "b") is b
    assert registry.first("llm") is a
    assert registry.get_all("llm") == [a, b]
    assert registry.has("llm", "a")
    assert registry.summary() == {"llm": ["a", "b"]}
    assert registry.first("web_search") is None


def test_rejects_unknown_key_and_wrong_protocol():
    registry = PluginRegistry()
    with pytest.raises(ValueError):
        registry.register("risk_rule", DummyLLM())
    with pytest.raises(TypeError):
        registry.register("fallback", DummyLLM())


def test_missing_plugin_raises_key_error():
    with pytest.raises(KeyError):
        PluginRegistry().get("llm", "nope")


def test_close_all():
    registry = PluginRegistry()
    llm = DummyLLM()
    registry.register("llm", llm)
    asyncio.run(registry.close_all())
    assert llm.closed
