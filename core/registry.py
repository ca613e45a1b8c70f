"""Plugin registry -- stores and retrieves protocol implementations.

At startup, main.py instantiates plugins based on config.yaml and registers
them here. The wiring code queries the registry by protocol type.
"""

from __future__ import annotations

import logging
from typing import Any

from core.protocols import (
    FallbackProvider,
    LivePriceSource,
    LLMProvider,
    MarketDataProvider,
    MemoryStore,
    WebSearchProvider,
)

logger = logging.getLogger(__name__)

# All supported protocol types
PROTOCOL_TYPES = {
    "llm": LLMProvider,
    "market_data": MarketDataProvider,
    "fallback": FallbackProvider,
    "live_price": LivePriceSource,
    "web_search": WebSearchProvider,
    "memory_store": MemoryStore,
}


class PluginRegistry:
    """Central registry for all protocol implementations.

    Usage:
        registry = PluginRegistry()
        registry.register("fallback", binance)
        registry.register("fallback", coinbase)

        providers = registry.get_all("fallback")  # [binance, coinbase]
        llm = registry.get("llm", "openrouter")
    """

    def __init__(self) -> None:
        self._plugins: dict[str, dict[str, Any]] = {key: {} for key in PROTOCOL_TYPES}

    def register(self, protocol_key: str, instance: Any) -> None:
        """Register a plugin instance under a protocol type.

        The instance must have a `name` property and satisfy the protocol.
        """
        if protocol_key not in PROTOCOL_TYPES:
            raise ValueError(
                f"Unknown protocol key '{protocol_key}'. "
                f"Must be one of: {list(PROTOCOL_TYPES.keys())}"
            )
        if not isinstance(instance, PROTOCOL_TYPES[protocol_key]):
            raise TypeError(
                f"{type(instance).__name__} does not implement the {protocol_key} protocol"
            )

        name = instance.name
        if name in self._plugins[protocol_key]:
            logger.warning("Overwriting existing %s plugin '%s'", protocol_key, name)

        self._plugins[protocol_key][name] = instance
        logger.info("Registered %s plugin: %s", protocol_key, name)

    def get(self, protocol_key: str, name: str) -> Any:
        """Get a specific plugin by protocol type and name.

        Raises KeyError if not found.
        """
        if protocol_key not in self._plugins:
            raise KeyError(f"Unknown protocol key: {protocol_key}")
        if name not in self._plugins[protocol_key]:
            available = list(self._plugins[protocol_key].keys())
            raise KeyError(f"No {protocol_key} plugin named '{name}'. Available: {available}")
        return self._plugins[protocol_key][name]

    def first(self, protocol_key: str) -> Any | None:
        """First registered plugin of a type, or None."""
        plugins = self.get_all(protocol_key)
        return plugins[0] if plugins else None

    def get_all(self, protocol_key: str) -> list[Any]:
        """Get all plugins registered for a protocol type."""
        if protocol_key not in self._plugins:
            raise KeyError(f"Unknown protocol key: {protocol_key}")
        return list(self._plugins[protocol_key].values())

    def has(self, protocol_key: str, name: str) -> bool:
        return protocol_key in self._plugins and name in self._plugins[protocol_key]

    def summary(self) -> dict[str, list[str]]:
        """Registered plugin names per protocol type, empty types omitted."""
        return {
            key: list(plugins.keys())
            for key, plugins in self._plugins.items()
            if plugins
        }

    async def close_all(self) -> None:
        """Close every plugin that holds resources (HTTP clients, databases)."""
        for plugins in self._plugins.values():
            for plugin in plugins.values():
                close = getattr(plugin, "close", None)
                if close is None:
                    continue
                try:
                    await close()
                except Exception:
                    logger.exception("Failed to close plugin %s", plugin.name)
