import asyncio

from core.data.store import SQLiteMemoryStore
from core.models.query import ChatTurn, LongTermMemory, MemoryContext, Query, UserProfile
from engine.memory import MemoryContextBuilder, derive_tags


class BrokenStore:
    name = "broken"

    async def get_recent(self, chat_id, limit):
        raise RuntimeError("db locked")

    async def get_long_term(self, chat_id):
        raise RuntimeError("db locked")

    async def get_profile(self, user_id):
        raise RuntimeError("db locked")

    async def upsert_long_term(self, chat_id, update):
        raise RuntimeError("db locked")


class FakeStore:
    name = "fake"

    def __init__(self, turns, facts=None):
        self.turns = turns
        self.facts = facts or []
        self.limits = []

    async def get_recent(self, chat_id, limit):
        self.limits.append(limit)
        return self.turns[-limit:]

    async def get_long_term(self, chat_id):
        return LongTermMemory(summary="s", facts=self.facts, tags=["BTC"])

    async def get_profile(self, user_id):
        return UserProfile(experience_level="expert")

    async def upsert_long_term(self, chat_id, update):
        raise AssertionError("context builder must not write")


def _turn(role, content):
    return ChatTurn(role=role, content=content)


def test_derive_tags():
    assert derive_tags("Bitcoin price prediction") == ["BITCOIN", "price", "prediction"]
    assert derive_tags("btc and sol") == ["BTC", "SOL"]
    assert derive_tags("ETH technical analysis and news") == ["ETH", "technical-analysis", "news"]
    assert derive_tags("hello") == []


def test_no_store_or_chat_gives_empty_context():
    assert asyncio.run(MemoryContextBuilder(None).build(Query(text="x", chat_id="c"))) == MemoryContext()
    store = FakeStore([_turn("user", "hi")])
    assert not asyncio.run(MemoryContextBuilder(store).build(Query(text="x"))).has_history


def test_builds_context_with_limit_and_unique_facts():
    store = FakeStore([_turn("user", f"m{i}") for i in range(20)], facts=["a", "b", "a"])
    builder = MemoryContextBuilder(store, recent_limit=12)
    memory = asyncio.run(builder.build(Query(text="x", chat_id="c", user_id="u")))

    assert len(memory.recent_turns) == 12
    assert memory.recent_turns[-1].content == "m19"
    assert memory.long_term_facts == ["a", "b"]
    assert memory.user_profile.experience_level == "expert"
    assert store.limits == [12]


def test_store_failures_degrade_to_defaults():
    builder = MemoryContextBuilder(BrokenStore())
    memory = asyncio.run(builder.build(Query(text="x", chat_id="c", user_id="u")))
    assert memory == MemoryContext()
    assert asyncio.run(builder.previous_user_message("c")) is None


def test_previous_user_message_skips_current_question():
    store = FakeStore([
        _turn("user", "what's ETH price"),
        _turn("assistant", "ETH is $3000"),
        _turn("user", "analyze BTC"),
        _turn("assistant", "BTC looks strong"),
        _turn("user", "What did I ask just now"),
    ])
    builder = MemoryContextBuilder(store)
    assert asyncio.run(builder.previous_user_message("c")) == "analyze BTC"


def test_previous_user_message_with_sqlite(tmp_path):
    store = SQLiteMemoryStore(tmp_path / "m.db")

    async def _run():
        await store.append_message("c", "user", "only question")
        return await MemoryContextBuilder(store).previous_user_message("c")

    assert asyncio.run(_run()) is None
