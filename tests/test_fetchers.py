import asyncio

from core.models.market import LivePrice, ProviderEnvelope
from core.models.plan import MarketDataType, MarketParams
from engine.fetchers import (
    LivePriceFetcher,
    MarketFetcher,
    WebSearchFetcher,
    base_symbol,
    describe_error,
    extract_base_symbol,
)


class DummyMarket:
    name = "bybit"

    def __init__(self, envelope=None, error=None):
        self.envelope = envelope or ProviderEnvelope(data=[{"lastPrice": "1"}])
        self.error = error
        self.calls = []

    async def _answer(self, call):
        self.calls.append(call)
        if self.error:
            raise self.error
        return self.envelope

    async def get_kline(self, symbol, interval, limit):
        return await self._answer(("kline", symbol, interval, limit))

    async def get_tickers(self, symbol):
        return await self._answer(("tickers", symbol))

    async def get_funding_rate_history(self, symbol, limit):
        return await self._answer(("funding", symbol, limit))

    async def get_long_short_ratio(self, symbol, period, limit):
        return await self._answer(("ratio", symbol, period, limit))


class DummyLivePrice:
    name = "dummy"

    def __init__(self, price=None):
        self.price = price
        self.symbols = []

    async def fetch_live_price(self, symbol):
        self.symbols.append(symbol)
        if self.price is None:
            return None
        return LivePrice(symbol=symbol, price=self.price, provider_id="coinbase")


class DummySearch:
    name = "dummy"

    def __init__(self, content="Answer: up"):
        self.content = content
        self.calls = []

    async def search(self, query, depth="basic", max_results=5, topic=None):
        self.calls.append((query, depth, max_results, topic))
        return self.content


def test_symbol_helpers():
    assert base_symbol("BTCUSDT") == "BTC"
    assert base_symbol("ethusd") == "ETH"
    assert base_symbol("USDT") == "USDT"
    assert extract_base_symbol("what's ethereum doing?") == "ETH"
    assert extract_base_symbol("Solana vs the market") == "SOL"
    assert extract_base_symbol("something else") is None
    # word match: "SOLID" is not SOL
    assert extract_base_symbol("a solid week") is None


def test_describe_error():
    assert describe_error(asyncio.TimeoutError()) == "Request timed out"
    assert describe_error(RuntimeError("boom")) == "boom"
    assert describe_error(KeyError()) == "KeyError"


def test_market_fetch_success_dispatches_by_type():
    market = DummyMarket()
    fetcher = MarketFetcher(market)
    params = MarketParams(symbol="BTCUSDT", period="4h", limit=10)

    result = asyncio.run(fetcher.fetch(MarketDataType.LONG_SHORT_RATIO, params))
    assert result.ok
    assert result.source_type == "market"
    assert result.resource == "longShortRatio"
    assert market.calls == [("ratio", "BTCUSDT", "4h", 10)]


def test_market_fetch_non_zero_code_is_failure():
    market = DummyMarket(envelope=ProviderEnvelope(code=10001, message="params error"))
    result = asyncio.run(MarketFetcher(market).fetch(MarketDataType.TICKERS, MarketParams(symbol="BTCUSDT")))
    assert not result.ok
    assert "params error" in result.error
    assert "10001" in result.error


def test_market_fetch_exception_is_failure():
    market = DummyMarket(error=ConnectionError("refused"))
    result = asyncio.run(MarketFetcher(market).fetch(MarketDataType.KLINE, MarketParams(symbol="BTCUSDT")))
    assert not result.ok
    assert result.error == "refused"


def test_live_price_prefers_query_symbol_over_hint():
    source = DummyLivePrice(price=3000.0)
    result = asyncio.run(LivePriceFetcher(source).fetch("ETH price?", "BTCUSDT"))
    assert result.ok
    assert result.resource == "live_price_api"
    assert source.symbols == ["ETH"]


def test_live_price_uses_plan_hint():
    source = DummyLivePrice(price=150.0)
    asyncio.run(LivePriceFetcher(source).fetch("how is it going", "SOLUSDT"))
    assert source.symbols == ["SOL"]


def test_live_price_none_is_recorded_as_failed():
    result = asyncio.run(LivePriceFetcher(DummyLivePrice(price=None)).fetch("btc"))
    assert not result.ok
    assert result.source_type == "live_price"


def test_live_price_without_symbol_fails():
    source = DummyLivePrice(price=1.0)
    result = asyncio.run(LivePriceFetcher(source).fetch("hello there"))
    assert not result.ok
    assert source.symbols == []


def test_web_search_topic_and_empty_results():
    search = DummySearch()
    fetcher = WebSearchFetcher(search, depth="advanced", max_results=3)
    result = asyncio.run(fetcher.fetch("bitcoin market sentiment"))
    assert result.ok
    assert search.calls == [("bitcoin market sentiment", "advanced", 3, "news")]

    asyncio.run(fetcher.fetch("what is a blockchain"))
    assert search.calls[-1][3] == "general"

    empty = asyncio.run(WebSearchFetcher(DummySearch(content=None)).fetch("q"))
    assert not empty.ok
    assert empty.error == "No web results found"
