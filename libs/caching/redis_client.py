"""
Redis client manager for conversation summaries and run checkpoints.

Provides:
- Async Redis client with connection pooling
- Process-scoped client reuse
- Graceful degradation (None when Redis is unavailable)
"""

from typing import Optional

import redis.asyncio as redis
import structlog

logger = structlog.get_logger(__name__)

# Process-scoped client, created lazily by get_redis_client()
_redis_client: Optional[redis.Redis] = None
_connection_failed = False


def _redact(redis_url: str) -> str:
    return redis_url.split("@")[-1] if "@" in redis_url else redis_url.split("//")[-1]


async def get_redis_client(redis_url: Optional[str]) -> Optional[redis.Redis]:
    """
    Get or create the async Redis client.

    Returns the same client for the lifetime of the process. Returns None when
    no URL is configured or the server cannot be reached, so callers fall back
    to in-memory stores.
    """
    global _redis_client, _connection_failed

    if _connection_failed:
        logger.warning("Redis connection previously failed, skipping reconnect attempt")
        return None

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning("Existing Redis connection failed, reconnecting", error=str(e))
            _redis_client = None

    if not redis_url:
        logger.warning(
            "Redis URL not configured, using in-memory stores",
            hint="Set AGENT_REDIS_URL to persist summaries and checkpoints"
        )
        _connection_failed = True
        return None

    try:
        _redis_client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True
        )
        await _redis_client.ping()

        logger.info("Redis client initialized successfully", url=_redact(redis_url), max_connections=20)
        return _redis_client

    except redis.ConnectionError as e:
        logger.error(
            "Redis connection failed",
            error=str(e),
            redis_url=_redact(redis_url),
            hint="Check AGENT_REDIS_URL and ensure Redis server is running"
        )
        _connection_failed = True
        _redis_client = None
        return None

    except Exception as e:
        logger.error("Unexpected error initializing Redis", error=str(e), error_type=type(e).__name__)
        _connection_failed = True
        _redis_client = None
        return None


async def close_redis_client():
    """Close Redis client connection."""
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Redis client closed")
        except Exception as e:
            logger.warning("Error closing Redis client", error=str(e))
        finally:
            _redis_client = None


async def reset_redis_client():
    """Reset Redis client state (after connection failures or between tests)."""
    global _connection_failed

    await close_redis_client()
    _connection_failed = False
    logger.info("Redis client reset")
