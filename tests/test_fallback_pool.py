import asyncio

from core.models.market import BackupQuote, FallbackTicker
from engine.fallback_pool import ProviderPool


class DummyProvider:
    def __init__(self, name, priority, price=None, reachable=True, symbols=None, error=None, delay=0.0):
        self._name = name
        self._priority = priority
        self._price = price
        self._reachable = reachable
        self._symbols = symbols
        self._error = error
        self._delay = delay
        self.fetch_calls = 0
        self.probe_calls = 0

    @property
    def name(self):
        return self._name

    @property
    def priority(self):
        return self._priority

    def map_symbol(self, symbol):
        if self._symbols is not None and symbol not in self._symbols:
            return None
        return symbol.lower()

    async def probe(self):
        self.probe_calls += 1
        if not self._reachable:
            raise ConnectionError("unreachable")
        return True

    async def fetch_ticker(self, provider_symbol):
        self.fetch_calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        if self._price is None:
            return None
        return BackupQuote(provider_id=self._name, price=self._price)


def test_first_active_provider_in_priority_order_wins():
    p1 = DummyProvider("p1", 1, price=1.0, reachable=False)
    p2 = DummyProvider("p2", 2, price=2.0)
    p3 = DummyProvider("p3", 3, price=3.0)

    async def _run():
        pool = await ProviderPool.probe([p3, p1, p2])
        return await pool.get_data("btcusdt")

    ticker = asyncio.run(_run())
    assert isinstance(ticker, FallbackTicker)
    assert ticker.provider_id == "p2"
    assert ticker.last_price == 2.0
    assert ticker.symbol == "BTCUSDT"
    assert ticker.data_quality == "BACKUP_PROVIDER"
    assert p1.fetch_calls == 0
    assert p3.fetch_calls == 0


def test_unmapped_provider_is_skipped():
    p1 = DummyProvider("p1", 1, price=1.0, symbols={"ETHUSDT"})
    p2 = DummyProvider("p2", 2, price=2.0)
    pool = ProviderPool([p1, p2], {"p1": True, "p2": True})

    ticker = asyncio.run(pool.get_data("BTCUSDT"))
    assert ticker.provider_id == "p2"
    assert p1.fetch_calls == 0


def test_errors_and_timeouts_move_to_next_provider():
    p1 = DummyProvider("p1", 1, error=RuntimeError("500"))
    p2 = DummyProvider("p2", 2, price=2.0, delay=1.0)
    p3 = DummyProvider("p3", 3, price=3.0)
    pool = ProviderPool([p1, p2, p3], {"p1": True, "p2": True, "p3": True}, fetch_timeout=0.05)

    ticker = asyncio.run(pool.get_data("BTCUSDT"))
    assert ticker.provider_id == "p3"


def test_all_failing_returns_none():
    p1 = DummyProvider("p1", 1, price=None)
    pool = ProviderPool([p1], {"p1": True})
    assert asyncio.run(pool.get_data("BTCUSDT")) is None


def test_probe_records_activation():
    p1 = DummyProvider("p1", 1, reachable=False)
    p2 = DummyProvider("p2", 2)
    pool = asyncio.run(ProviderPool.probe([p1, p2]))

    assert [(r.id, r.is_active) for r in pool.records] == [("p1", False), ("p2", True)]
    assert pool.active_ids == ["p2"]


def test_refresh_returns_new_pool_and_keeps_old_one():
    p1 = DummyProvider("p1", 1, reachable=False)

    async def _run():
        pool = await ProviderPool.probe([p1])
        p1._reachable = True
        refreshed = await pool.refresh()
        return pool, refreshed

    pool, refreshed = asyncio.run(_run())
    assert pool.active_ids == []
    assert refreshed.active_ids == ["p1"]
    assert refreshed is not pool
    assert p1.probe_calls == 2
