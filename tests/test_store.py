import asyncio

from core.data.store import SQLiteMemoryStore
from core.models.query import LongTermMemory, MemoryUpdate, UserProfile


def _store(tmp_path, **kwargs):
    return SQLiteMemoryStore(tmp_path / "memory.db", **kwargs)


def test_recent_turns_oldest_first_and_limited(tmp_path):
    store = _store(tmp_path)

    async def _run():
        for i in range(5):
            await store.append_message("c1", "user", f"q{i}")
            await store.append_message("c1", "assistant", f"a{i}")
        await store.append_message("other", "user", "elsewhere")
        return await store.get_recent("c1", 3)

    turns = asyncio.run(_run())
    assert [(t.role, t.content) for t in turns] == [("assistant", "a3"), ("user", "q4"), ("assistant", "a4")]


def test_long_term_defaults_when_missing(tmp_path):
    store = _store(tmp_path)
    assert asyncio.run(store.get_long_term("nope")) == LongTermMemory()
    assert asyncio.run(store.get_profile("nobody")).experience_level == "beginner"


def test_upsert_merges_memory(tmp_path):
    store = _store(tmp_path)

    async def _run():
        await store.upsert_long_term("c1", MemoryUpdate(
            chat_id="c1", summary="likes BTC", facts=["holds BTC"], tags=["BTC", "price"],
        ))
        await store.upsert_long_term("c1", MemoryUpdate(
            chat_id="c1", summary="", facts=["holds BTC", "risk averse"], tags=["price", "ETH", "price"],
        ))
        return await store.get_long_term("c1")

    memory = asyncio.run(_run())
    # empty summary keeps the stored one
    assert memory.summary == "likes BTC"
    assert memory.facts == ["holds BTC", "risk averse"]
    # tags come from the latest update only
    assert memory.tags == ["price", "ETH"]


def test_summary_is_replaced(tmp_path):
    store = _store(tmp_path)

    async def _run():
        await store.upsert_long_term("c1", MemoryUpdate(chat_id="c1", summary="old"))
        await store.upsert_long_term("c1", MemoryUpdate(chat_id="c1", summary="new"))
        return await store.get_long_term("c1")

    assert asyncio.run(_run()).summary == "new"


def test_only_last_new_facts_accepted(tmp_path):
    store = _store(tmp_path, max_new_facts=3)
    update = MemoryUpdate(chat_id="c1", facts=[f"fact {i}" for i in range(6)])
    asyncio.run(store.upsert_long_term("c1", update))
    assert asyncio.run(store.get_long_term("c1")).facts == ["fact 3", "fact 4", "fact 5"]


def test_profile_round_trip(tmp_path):
    store = _store(tmp_path)
    profile = UserProfile(experience_level="advanced", preferences={"risk": "high"})
    asyncio.run(store.upsert_profile("u1", profile))
    assert asyncio.run(store.get_profile("u1")) == profile


def test_persists_across_connections(tmp_path):
    store = _store(tmp_path)
    asyncio.run(store.append_message("c1", "user", "hello"))
    asyncio.run(store.close())

    reopened = _store(tmp_path)
    assert [t.content for t in asyncio.run(reopened.get_recent("c1", 10))] == ["hello"]
