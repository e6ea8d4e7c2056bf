"""
Memory systems for the athlete support agent.

Provides:
- Conversation summary memory (in-memory or Redis)
- Per-step run checkpoints (in-memory or Redis)
"""

from libs.memory.checkpoint_store import CheckpointStore, InMemoryCheckpointStore, RedisCheckpointStore
from libs.memory.conversation_memory import (
    ConversationMemory,
    InMemorySummaryStore,
    RedisSummaryStore,
    SummaryStore,
)

__all__ = [
    "CheckpointStore",
    "ConversationMemory",
    "InMemoryCheckpointStore",
    "InMemorySummaryStore",
    "RedisCheckpointStore",
    "RedisSummaryStore",
    "SummaryStore",
]
