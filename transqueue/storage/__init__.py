"""
Storage abstractions.

Integration Points:
- TranslationStore -> Redis (or in-memory for development)
- TaskQueue -> Redis reliable list queue (or in-memory)
"""

from __future__ import annotations

from transqueue.config import Settings
from transqueue.storage.base import (
    Delivery,
    StorageProvider,
    TaskQueue,
    TranslationStore,
)
from transqueue.storage.local import InMemoryTaskQueue, InMemoryTranslationStore


def create_local_storage(request_ttl: int | None = None) -> StorageProvider:
    """Create a StorageProvider with in-memory implementations."""
    return StorageProvider(
        store=InMemoryTranslationStore(request_ttl=request_ttl),
        queue=InMemoryTaskQueue(),
    )


def create_redis_storage(
    redis_url: str,
    queue_name: str = "translation_tasks",
    request_ttl: int | None = 24 * 3600,
) -> StorageProvider:
    """Create a StorageProvider backed by one shared Redis client."""
    import redis.asyncio as redis

    from transqueue.storage.redis_backend import RedisTaskQueue, RedisTranslationStore

    client = redis.from_url(redis_url, decode_responses=True)
    return StorageProvider(
        store=RedisTranslationStore(client, request_ttl=request_ttl),
        queue=RedisTaskQueue(client, queue_name=queue_name),
    )


def create_storage(settings: Settings) -> StorageProvider:
    """Build the backend selected by settings.storage_backend."""
    if settings.storage_backend == "memory":
        return create_local_storage(request_ttl=settings.request_ttl_seconds)
    if settings.storage_backend == "redis":
        return create_redis_storage(
            settings.redis_url,
            queue_name=settings.queue_name,
            request_ttl=settings.request_ttl_seconds,
        )
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")


__all__ = [
    "Delivery",
    "StorageProvider",
    "TaskQueue",
    "TranslationStore",
    "InMemoryTaskQueue",
    "InMemoryTranslationStore",
    "create_local_storage",
    "create_redis_storage",
    "create_storage",
]
