"""
Redis connection management for summaries and checkpoints.
"""

from libs.caching.redis_client import close_redis_client, get_redis_client, reset_redis_client

__all__ = ["get_redis_client", "close_redis_client", "reset_redis_client"]
