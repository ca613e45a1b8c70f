"""Sally entrypoint -- wires plugins from config and answers market questions.

Usage:
    python main.py "what's the BTC price?"
    python main.py --chat-id demo           # interactive chat session
    python main.py --user-id me --experience-level advanced "ETH outlook"
    python main.py --config /path/to/config.yaml --env /path/to/.env
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import uuid

from core.config import AppConfig, is_unresolved, load_config
from core.data.store import SQLiteMemoryStore
from core.models.query import Query, UserProfile
from core.models.results import AnalysisResult
from core.registry import PluginRegistry
from engine.aggregator import DataAggregator
from engine.fallback_pool import ProviderPool
from engine.fetchers import LivePriceFetcher, MarketFetcher, WebSearchFetcher
from engine.memory import MemoryContextBuilder
from engine.oracles import LLMPlanningOracle, LLMSummarizer
from engine.orchestrator import AnalysisOrchestrator
from engine.planner import Planner

logger = logging.getLogger("sally")

_EXIT_WORDS = {"exit", "quit", ":q"}

EXPERIENCE_LEVELS = ("beginner", "intermediate", "advanced")


def setup_logging(level: str) -> None:
    """Configure logging for the application."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sally crypto market analysis assistant")
    parser.add_argument(
        "query",
        nargs="*",
        help="Question to answer. Omit to start an interactive session.",
    )
    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to config.yaml (default: ~/.sally/config.yaml)",
    )
    parser.add_argument(
        "--env",
        type=str,
        default=None,
        help="Path to .env file (default: ~/.sally/.env)",
    )
    parser.add_argument("--chat-id", type=str, default=None, help="Chat thread to use for memory")
    parser.add_argument("--user-id", type=str, default=None, help="User whose profile to load")
    parser.add_argument(
        "--experience-level",
        choices=EXPERIENCE_LEVELS,
        default=None,
        help="Save this experience level to the --user-id profile",
    )
    parser.add_argument("--log-level", type=str, default=None, help="Override logging.level")
    return parser.parse_args(argv)


def _load_plugins(config: AppConfig, registry: PluginRegistry) -> None:
    """Instantiate and register all plugins enabled in config."""
    plugin_logger = logging.getLogger("sally.plugins")
    network_timeout = config.timeouts.network_seconds

    # 1. LLM providers -- configured when a model or key is present
    for provider_name, provider_config in config.ai.providers.items():
        try:
            if provider_name == "openrouter":
                if is_unresolved(provider_config.api_key):
                    plugin_logger.warning("Skipping openrouter: no API key")
                    continue
                from plugins.ai_providers.openrouter import OpenRouterProvider
                instance = OpenRouterProvider(
                    api_key=provider_config.api_key,
                    model=provider_config.model or "openai/gpt-4o-mini",
                    base_url=provider_config.base_url,
                    max_tokens=provider_config.max_tokens,
                    temperature=provider_config.temperature,
                    timeout=config.timeouts.oracle_seconds,
                )
            elif provider_name in ("openai", "ollama"):
                api_key = "" if is_unresolved(provider_config.api_key) else provider_config.api_key
                if provider_name == "openai" and not api_key:
                    plugin_logger.warning("Skipping openai: no API key")
                    continue
                from plugins.ai_providers.openai import OpenAIProvider
                default_url = (
                    "http://localhost:11434/v1" if provider_name == "ollama"
                    else "https://api.openai.com/v1"
                )
                instance = OpenAIProvider(
                    api_key=api_key,
                    model=provider_config.model or "gpt-4o-mini",
                    base_url=provider_config.base_url or default_url,
                    max_tokens=provider_config.max_tokens,
                    temperature=provider_config.temperature,
                    timeout=config.timeouts.oracle_seconds,
                    provider_name=provider_name,
                )
            else:
                plugin_logger.warning("Unknown AI provider '%s' in config", provider_name)
                continue
            registry.register("llm", instance)
        except Exception as e:
            plugin_logger.error("Failed to load AI provider %s: %s", provider_name, e)

    # 2. Primary market data
    bybit_config = config.market_data.bybit
    if bybit_config.enabled:
        from plugins.market_data.bybit import BybitProvider
        registry.register(
            "market_data",
            BybitProvider(
                testnet=bybit_config.testnet,
                category=bybit_config.category,
                base_url=bybit_config.base_url,
                timeout=network_timeout,
            ),
        )

    # 3. Fallback exchanges
    for provider_name, provider_config in config.fallback.providers.items():
        if not provider_config.enabled:
            continue
        kwargs = {"timeout": network_timeout}
        if provider_config.priority is not None:
            kwargs["priority"] = provider_config.priority
        try:
            if provider_name == "binance":
                from plugins.market_data.binance import BinanceFallback
                instance = BinanceFallback(**kwargs)
            elif provider_name == "coinbase":
                from plugins.market_data.coinbase import CoinbaseFallback
                instance = CoinbaseFallback(**kwargs)
            elif provider_name == "coingecko":
                from plugins.market_data.coingecko import CoinGeckoFallback
                instance = CoinGeckoFallback(**kwargs)
            else:
                plugin_logger.warning("Unknown fallback provider '%s' in config", provider_name)
                continue
            registry.register("fallback", instance)
        except Exception as e:
            plugin_logger.error("Failed to load fallback provider %s: %s", provider_name, e)

    # 4. Live price
    if config.market_data.live_price:
        from plugins.market_data.live_price import MultiExchangeLivePrice
        registry.register("live_price", MultiExchangeLivePrice(timeout=network_timeout))

    # 5. Web search
    tavily_config = config.web_search.tavily
    if is_unresolved(tavily_config.api_key):
        plugin_logger.warning("Web search disabled: no Tavily API key")
    else:
        from plugins.web_search.tavily import TavilySearch
        registry.register(
            "web_search",
            TavilySearch(api_key=tavily_config.api_key, timeout=config.timeouts.web_search_seconds),
        )

    # 6. Memory store
    if config.memory.enabled:
        registry.register(
            "memory_store",
            SQLiteMemoryStore(config.memory_db_path, max_new_facts=config.memory.max_new_facts),
        )


def _select_llm(config: AppConfig, registry: PluginRegistry):
    if registry.has("llm", config.ai.default_provider):
        return registry.get("llm", config.ai.default_provider)
    llm = registry.first("llm")
    if llm is not None:
        logger.warning(
            "Default AI provider %s not loaded, using %s", config.ai.default_provider, llm.name
        )
    return llm


def build_orchestrator(
    config: AppConfig,
    registry: PluginRegistry,
    pool: ProviderPool | None,
) -> AnalysisOrchestrator:
    """Assemble the engine from whatever plugins are registered."""
    timeouts = config.timeouts
    llm = _select_llm(config, registry)
    if llm is None:
        logger.warning("No AI provider loaded: keyword planning and plain-text answers only")

    market = registry.first("market_data")
    live_price = registry.first("live_price")
    web_search = registry.first("web_search")
    tavily = config.web_search.tavily

    aggregator = DataAggregator(
        market=MarketFetcher(market, timeout=timeouts.network_seconds) if market else None,
        fallback_pool=pool,
        live_price=(
            LivePriceFetcher(live_price, timeout=timeouts.network_seconds) if live_price else None
        ),
        web_search=(
            WebSearchFetcher(
                web_search,
                timeout=timeouts.web_search_seconds,
                depth=tavily.depth,
                max_results=tavily.max_results,
            )
            if web_search
            else None
        ),
        max_concurrency=config.aggregator.max_concurrency,
    )

    return AnalysisOrchestrator(
        memory=MemoryContextBuilder(
            registry.first("memory_store"), recent_limit=config.memory.recent_limit
        ),
        planner=Planner(
            oracle=LLMPlanningOracle(llm) if llm else None,
            timeout=timeouts.oracle_seconds,
        ),
        aggregator=aggregator,
        summarizer=LLMSummarizer(llm) if llm else None,
        oracle_timeout=timeouts.oracle_seconds,
    )


async def answer(
    orchestrator: AnalysisOrchestrator,
    store: SQLiteMemoryStore | None,
    query: Query,
) -> AnalysisResult:
    """Answer one query and persist the exchange to the chat thread."""
    if store is not None and query.chat_id:
        await store.append_message(query.chat_id, "user", query.text)

    result, update = await orchestrator.handle(query)

    if store is not None and query.chat_id:
        await store.append_message(query.chat_id, "assistant", result.response)
        if update is not None:
            await store.upsert_long_term(query.chat_id, update)
    return result


async def save_profile(store: SQLiteMemoryStore, user_id: str, experience_level: str) -> None:
    """Set the user's experience level, keeping any stored preferences."""
    current = await store.get_profile(user_id)
    await store.upsert_profile(
        user_id,
        UserProfile(experience_level=experience_level, preferences=current.preferences),
    )
    logger.info("Saved profile for %s: %s", user_id, experience_level)


def _print_result(result: AnalysisResult) -> None:
    print(result.response)
    if result.is_analysis:
        ok = sum(1 for s in result.data_sources if s.ok)
        live = " | live price" if result.has_live_price else ""
        print(
            f"\n[confidence {result.confidence_score}/100 | "
            f"sources {ok}/{len(result.data_sources)} ok{live}]"
        )


async def run(args: argparse.Namespace) -> None:
    """Load config, wire plugins, then answer one query or chat until exit."""
    config = load_config(config_path=args.config, env_path=args.env)
    if args.log_level:
        logging.getLogger().setLevel(args.log_level.upper())
    else:
        logging.getLogger().setLevel(config.logging.level.upper())
    logger.info("Configuration loaded from %s", config.home_path)

    registry = PluginRegistry()
    _load_plugins(config, registry)
    logger.info("Plugin registry: %s", registry.summary())

    try:
        fallback_providers = registry.get_all("fallback")
        pool = None
        if fallback_providers:
            pool = await ProviderPool.probe(
                fallback_providers,
                probe_timeout=config.fallback.probe_timeout_seconds,
                fetch_timeout=config.timeouts.network_seconds,
            )

        orchestrator = build_orchestrator(config, registry, pool)
        store = registry.first("memory_store")
        if args.experience_level:
            if store is None or not args.user_id:
                logger.warning("--experience-level needs --user-id and an enabled memory store")
            else:
                await save_profile(store, args.user_id, args.experience_level)

        if args.query:
            query = Query(text=" ".join(args.query), chat_id=args.chat_id, user_id=args.user_id)
            _print_result(await answer(orchestrator, store, query))
            return

        chat_id = args.chat_id or f"cli-{uuid.uuid4().hex[:8]}"
        print(f"Sally is ready (chat {chat_id}). Type 'exit' to quit.")
        while True:
            try:
                text = (await asyncio.to_thread(input, "\nyou> ")).strip()
            except EOFError:
                break
            if not text:
                continue
            if text.lower() in _EXIT_WORDS:
                break
            query = Query(text=text, chat_id=chat_id, user_id=args.user_id)
            _print_result(await answer(orchestrator, store, query))
    finally:
        await registry.close_all()


def main() -> None:
    args = parse_args()
    setup_logging(args.log_level or "WARNING")
    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
