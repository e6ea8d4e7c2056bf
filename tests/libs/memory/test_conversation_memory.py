"""
Tests for conversation summary memory.

Tests verify:
- Summaries round-trip through the in-memory and Redis stores with TTLs
- Loading never raises (store errors degrade to no summary)
- Summary generation failures keep the previous summary
- Scheduled updates run in the background and drain() waits for them
"""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from libs.memory.conversation_memory import ConversationMemory, InMemorySummaryStore, RedisSummaryStore

MESSAGES = [
    HumanMessage(content="I'm on USA Swimming and wasn't selected for Worlds."),
    AIMessage(content="You can file a grievance under the selection procedures."),
]


class BrokenStore:
    async def get(self, conversation_id):
        raise ConnectionError("redis down")

    async def upsert(self, conversation_id, summary, ttl_seconds):
        raise ConnectionError("redis down")


def summarizer_returning(text):
    calls = []

    async def summarize(messages, existing_summary):
        calls.append((list(messages), existing_summary))
        return text

    summarize.calls = calls
    return summarize


async def failing_summarizer(messages, existing_summary):
    raise RuntimeError("model unavailable")


class TestInMemorySummaryStore:
    @pytest.mark.asyncio
    async def test_round_trip(self):
        store = InMemorySummaryStore()
        await store.upsert("conv-1", "Swimmer asking about selection.", ttl_seconds=60)

        assert await store.get("conv-1") == "Swimmer asking about selection."
        assert await store.get("conv-2") is None

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        now = [100.0]
        store = InMemorySummaryStore(clock=lambda: now[0])
        await store.upsert("conv-1", "summary", ttl_seconds=10)

        now[0] = 110.0

        assert await store.get("conv-1") is None


class TestRedisSummaryStore:
    @pytest.mark.asyncio
    async def test_round_trip_with_ttl(self, redis_client):
        store = RedisSummaryStore(redis_client)
        await store.upsert("conv-1", "Athlete asked about Section 9.", ttl_seconds=3600)

        assert await store.get("conv-1") == "Athlete asked about Section 9."
        ttl = await redis_client.ttl("conversation:conv-1:summary")
        assert 0 < ttl <= 3600


class TestConversationMemory:
    @pytest.mark.asyncio
    async def test_load_without_id(self):
        memory = ConversationMemory(InMemorySummaryStore(), summarizer_returning("x"))

        assert await memory.load(None) is None

    @pytest.mark.asyncio
    async def test_load_error_degrades_to_none(self):
        memory = ConversationMemory(BrokenStore(), summarizer_returning("x"))

        assert await memory.load("conv-1") is None

    @pytest.mark.asyncio
    async def test_update_persists_summary(self):
        store = InMemorySummaryStore()
        summarize = summarizer_returning("Swimmer not selected; discussed grievance.")
        memory = ConversationMemory(store, summarize)

        summary = await memory.update("conv-1", MESSAGES, "Earlier summary")

        assert summary == "Swimmer not selected; discussed grievance."
        assert await store.get("conv-1") == summary
        assert summarize.calls[0][1] == "Earlier summary"

    @pytest.mark.asyncio
    async def test_generation_failure_keeps_previous_summary(self):
        store = InMemorySummaryStore()
        memory = ConversationMemory(store, failing_summarizer)

        assert await memory.update("conv-1", MESSAGES, "Earlier summary") == "Earlier summary"
        assert await store.get("conv-1") == "Earlier summary"

    @pytest.mark.asyncio
    async def test_store_failure_does_not_raise(self):
        memory = ConversationMemory(BrokenStore(), summarizer_returning("summary"))

        assert await memory.update("conv-1", MESSAGES) is None

    @pytest.mark.asyncio
    async def test_schedule_update_and_drain(self):
        store = InMemorySummaryStore()
        memory = ConversationMemory(store, summarizer_returning("background summary"))

        task = memory.schedule_update("conv-1", MESSAGES)
        assert task is not None

        await memory.drain()

        assert await store.get("conv-1") == "background summary"

    def test_schedule_without_id_is_noop(self):
        memory = ConversationMemory(InMemorySummaryStore(), summarizer_returning("x"))

        assert memory.schedule_update(None, MESSAGES) is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self):
        store = InMemorySummaryStore()
        first = ConversationMemory(store, summarizer_returning("first"))
        second = ConversationMemory(store, summarizer_returning("second"))

        await first.update("conv-1", MESSAGES)
        await second.update("conv-1", MESSAGES)

        assert await store.get("conv-1") == "second"
