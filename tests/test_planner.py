import asyncio

import pytest

from core.errors import PlanValidationError
from core.models.plan import IndicatorKind, MarketDataType
from core.models.query import ChatTurn, MemoryContext, Query
from engine.planner import (
    GREETING_RESPONSE,
    Planner,
    fallback_plan,
    is_casual_only,
    is_last_question_query,
    parse_oracle_plan,
)


class DummyOracle:
    def __init__(self, result=None, error=None, delay=0.0):
        self.result = result
        self.error = error
        self.delay = delay
        self.calls = 0

    async def plan(self, query, memory):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


def _plan(planner, text, memory=None):
    return asyncio.run(planner.plan(Query(text=text), memory or MemoryContext()))


def test_greeting_without_history_skips_oracle():
    oracle = DummyOracle(result={"isCasual": True, "response": "x"})
    plan = _plan(Planner(oracle), "hi")
    assert plan.is_casual
    assert plan.casual_response == GREETING_RESPONSE
    assert oracle.calls == 0


def test_greeting_with_history_goes_to_oracle():
    oracle = DummyOracle(result={"isCasual": True, "response": "Welcome back!"})
    memory = MemoryContext(recent_turns=[ChatTurn(role="user", content="btc price")])
    plan = _plan(Planner(oracle), "hello", memory)
    assert plan.casual_response == "Welcome back!"
    assert oracle.calls == 1


def test_stored_current_question_is_not_history():
    oracle = DummyOracle(result={"isCasual": True, "response": "x"})
    memory = MemoryContext(recent_turns=[ChatTurn(role="user", content="hi")])
    plan = _plan(Planner(oracle), "hi", memory)
    assert plan.casual_response == GREETING_RESPONSE
    assert oracle.calls == 0


def test_prior_turns_drops_only_trailing_current_question():
    turns = [
        ChatTurn(role="user", content="hi"),
        ChatTurn(role="assistant", content="hello"),
        ChatTurn(role="user", content="hi"),
    ]
    memory = MemoryContext(recent_turns=turns)
    assert memory.prior_turns("hi") == turns[:2]
    assert memory.prior_turns("btc") == turns
    assert MemoryContext(recent_turns=turns[:2]).prior_turns("hello") == turns[:2]


@pytest.mark.parametrize("text", ["hi", "Hello!", "  thank you. ", "Good Morning!!"])
def test_casual_phrases(text):
    assert is_casual_only(text)


@pytest.mark.parametrize("text", ["hi, what's btc at?", "hello world", "thanks for the btc chart"])
def test_not_casual(text):
    assert not is_casual_only(text)


def test_last_question_phrases():
    assert is_last_question_query("What did I ask just now?")
    assert is_last_question_query("my last question")
    assert not is_last_question_query("what did I ask about ETH")


def test_oracle_failure_falls_back_to_keyword_plan():
    planner = Planner(DummyOracle(error=RuntimeError("LLM down")))
    plan = _plan(planner, "Bitcoin price")
    assert not plan.is_casual
    assert plan.required_market[MarketDataType.TICKERS].symbol == "BTCUSDT"
    assert plan.wants_live_price
    assert plan.web_search_queries == ["BTCUSDT current price"]


def test_oracle_timeout_falls_back():
    planner = Planner(DummyOracle(result={"isCasual": True, "response": "late"}, delay=1.0), timeout=0.05)
    plan = _plan(planner, "ETH technical analysis")
    assert MarketDataType.KLINE in plan.required_market
    assert plan.required_market[MarketDataType.KLINE].symbol == "ETHUSDT"


def test_malformed_oracle_plan_falls_back():
    oracle = DummyOracle(result={"isCasual": False, "requiredData": {"bogus": True}})
    plan = _plan(Planner(oracle), "what about solana")
    assert plan.required_market[MarketDataType.TICKERS].symbol == "SOLUSDT"
    assert plan.web_search_queries == ["what about solana cryptocurrency"]


def test_no_oracle_uses_fallback():
    plan = _plan(Planner(None), "how much does eth cost")
    assert plan.wants_live_price
    assert plan.required_market[MarketDataType.TICKERS].symbol == "ETHUSDT"


def test_valid_oracle_plan_is_used():
    oracle = DummyOracle(result={
        "isCasual": False,
        "requiredData": {
            "market": {"kline": {"symbol": "ethusdt", "interval": "60", "limit": 100}},
            "livePrice": True,
            "webSearch": ["ethereum etf news"],
            "technicalIndicators": ["RSI14", "MACD"],
        },
    })
    plan = _plan(Planner(oracle), "ETH outlook")
    kline = plan.required_market[MarketDataType.KLINE]
    assert (kline.symbol, kline.interval, kline.limit) == ("ETHUSDT", "60", 100)
    assert plan.wants_live_price
    assert plan.web_search_queries == ["ethereum etf news"]
    assert [s.kind for s in plan.requested_indicators] == [IndicatorKind.RSI, IndicatorKind.MACD]


def test_fallback_analysis_plan():
    plan = fallback_plan("technical analysis please")
    assert set(plan.required_market) == {MarketDataType.KLINE, MarketDataType.TICKERS}
    kline = plan.required_market[MarketDataType.KLINE]
    assert (kline.symbol, kline.interval, kline.limit) == ("BTCUSDT", "D", 50)
    assert [s.key for s in plan.requested_indicators] == ["sma20", "rsi14", "macd"]
    assert plan.web_search_queries == ["BTCUSDT technical analysis"]
    assert not plan.wants_live_price


# -- strict oracle schema ------------------------------------------------


def test_parse_casual_plan():
    plan = parse_oracle_plan({"isCasual": True, "response": "DCA means..."})
    assert plan.is_casual
    assert plan.casual_response == "DCA means..."


def test_legacy_bybit_key_accepted():
    plan = parse_oracle_plan({
        "isCasual": False,
        "requiredData": {"bybit": {"tickers": {"symbol": "BTCUSDT"}}},
    })
    assert MarketDataType.TICKERS in plan.required_market


@pytest.mark.parametrize(
    "raw",
    [
        None,
        [],
        {},
        {"isCasual": "false", "requiredData": {}},
        {"isCasual": True},
        {"isCasual": True, "response": ""},
        {"isCasual": True, "response": "hi", "extra": 1},
        {"isCasual": False},
        {"isCasual": False, "requiredData": {}, "response": "x"},
        {"isCasual": False, "requiredData": {"market": {"orderbook": {"symbol": "BTCUSDT"}}}},
        {"isCasual": False, "requiredData": {"technicalIndicators": ["STOCH"]}},
        {"isCasual": False, "requiredData": {"livePrice": True, "news": ["x"]}},
    ],
)
def test_parse_rejects_anything_else(raw):
    with pytest.raises(PlanValidationError):
        parse_oracle_plan(raw)
