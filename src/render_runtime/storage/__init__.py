"""
Persistent storage backends for the render runtime.

Provides:
- RedisJobStore: Job store on redis.asyncio with a TTL per record
"""

from .redis import RedisJobStore

__all__ = [
    "RedisJobStore",
]
