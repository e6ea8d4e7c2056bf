"""
Conversation summary memory.

Keeps a rolling summary per conversation so follow-up questions can be
classified and answered with context. Persistence is best-effort and never
blocks the answer:
- loading failures degrade to "no summary"
- updates run as fire-and-forget tasks after the answer is produced
- concurrent turns race; the latest write wins
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable

import structlog
from langchain_core.messages import BaseMessage

logger = structlog.get_logger(__name__)

DEFAULT_SUMMARY_TTL_SECONDS = 3600

Summarizer = Callable[[Sequence[BaseMessage], Optional[str]], Awaitable[str]]


@runtime_checkable
class SummaryStore(Protocol):
    async def get(self, conversation_id: str) -> Optional[str]:
        ...

    async def upsert(self, conversation_id: str, summary: str, ttl_seconds: int) -> None:
        ...


class InMemorySummaryStore:
    """Process-local summary store with per-entry expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._clock = clock

    async def get(self, conversation_id: str) -> Optional[str]:
        entry = self._entries.get(conversation_id)
        if entry is None:
            return None
        summary, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[conversation_id]
            return None
        return summary

    async def upsert(self, conversation_id: str, summary: str, ttl_seconds: int) -> None:
        self._entries[conversation_id] = (summary, self._clock() + ttl_seconds)


class RedisSummaryStore:
    """Redis summary store: one string key per conversation with a TTL."""

    def __init__(self, redis_client, key_prefix: str = "conversation"):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:{conversation_id}:summary"

    async def get(self, conversation_id: str) -> Optional[str]:
        return await self.redis.get(self._key(conversation_id))

    async def upsert(self, conversation_id: str, summary: str, ttl_seconds: int) -> None:
        await self.redis.set(self._key(conversation_id), summary, ex=ttl_seconds)


class ConversationMemory:
    """
    Loads and refreshes conversation summaries.

    Usage:
        memory = ConversationMemory(store, summarizer)
        summary = await memory.load(conversation_id)
        memory.schedule_update(conversation_id, messages, previous_summary)
        await memory.drain()  # tests / graceful shutdown
    """

    def __init__(
        self,
        store: SummaryStore,
        summarizer: Summarizer,
        ttl_seconds: int = DEFAULT_SUMMARY_TTL_SECONDS,
    ):
        self.store = store
        self.summarizer = summarizer
        self.ttl_seconds = ttl_seconds
        self._pending: Set[asyncio.Task] = set()

    async def load(self, conversation_id: Optional[str]) -> Optional[str]:
        if not conversation_id:
            return None
        try:
            return await self.store.get(conversation_id)
        except Exception as e:
            logger.warning("Failed to load conversation summary", conversation_id=conversation_id, error=str(e))
            return None

    async def update(
        self,
        conversation_id: str,
        messages: Sequence[BaseMessage],
        existing_summary: Optional[str] = None,
    ) -> Optional[str]:
        """Generate and persist a new summary. Never raises."""
        try:
            summary = await self.summarizer(messages, existing_summary)
        except Exception as e:
            logger.warning("Summary generation failed, keeping previous summary", error=str(e))
            summary = existing_summary or ""

        if not summary:
            return None

        try:
            await self.store.upsert(conversation_id, summary, self.ttl_seconds)
        except Exception as e:
            logger.warning("Failed to persist conversation summary", conversation_id=conversation_id, error=str(e))
            return None

        logger.debug("Conversation summary saved", conversation_id=conversation_id, summary_length=len(summary))
        return summary

    def schedule_update(
        self,
        conversation_id: Optional[str],
        messages: Sequence[BaseMessage],
        existing_summary: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """Fire-and-forget summary refresh."""
        if not conversation_id:
            return None
        task = asyncio.create_task(self.update(conversation_id, list(messages), existing_summary))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for all scheduled updates to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
