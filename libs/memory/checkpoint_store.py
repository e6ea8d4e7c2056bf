"""
Per-step run checkpoints keyed by thread id.

Checkpoints make the prefix of a run inspectable after the fact (audit,
debugging, resumption). Writes are best-effort: the graph engine logs and
ignores failures.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@runtime_checkable
class CheckpointStore(Protocol):
    """Storage interface used by the graph engine."""

    async def setup(self) -> None:
        """Prepare storage. Must be safe to call more than once."""

    async def save(self, thread_id: str, step: int, state: Dict[str, Any]) -> None:
        """Persist the merged state after ``step``."""

    async def load(self, thread_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        """Return ``(step, state)`` pairs in step order."""


class InMemoryCheckpointStore:
    """Process-local checkpoint store for development and tests."""

    def __init__(self):
        self._threads: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._lock = asyncio.Lock()
        self.setup_calls = 0

    async def setup(self) -> None:
        self.setup_calls += 1

    async def save(self, thread_id: str, step: int, state: Dict[str, Any]) -> None:
        async with self._lock:
            self._threads.setdefault(thread_id, {})[step] = state

    async def load(self, thread_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        steps = self._threads.get(thread_id, {})
        return sorted(steps.items())


class RedisCheckpointStore:
    """
    Redis-backed checkpoint store.

    Layout: one hash per thread (``checkpoint:{thread_id}``), field = step
    number, value = JSON-encoded state. The hash expires ``ttl_seconds``
    after the latest write.
    """

    def __init__(self, redis_client, ttl_seconds: int = 86_400, key_prefix: str = "checkpoint"):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix
        self._ready = False

    def _key(self, thread_id: str) -> str:
        return f"{self.key_prefix}:{thread_id}"

    async def setup(self) -> None:
        if self._ready:
            return
        await self.redis.ping()
        self._ready = True
        logger.info("Checkpoint store ready", backend="redis", ttl_seconds=self.ttl_seconds)

    async def save(self, thread_id: str, step: int, state: Dict[str, Any]) -> None:
        key = self._key(thread_id)
        await self.redis.hset(key, str(step), json.dumps(state, default=str))
        await self.redis.expire(key, self.ttl_seconds)

    async def load(self, thread_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        raw: Optional[Dict[str, str]] = await self.redis.hgetall(self._key(thread_id))
        if not raw:
            return []
        return sorted((int(step), json.loads(value)) for step, value in raw.items())
