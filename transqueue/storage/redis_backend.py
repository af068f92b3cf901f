"""
Redis-backed storage.

Requests live under ``translation_request:<id>`` with a TTL that is refreshed
on every save; keys live under ``translation_key:<name>`` with no TTL. The
task queue uses the reliable-queue pattern: a message is atomically moved to
a processing list when received and only removed from it on ack.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Callable, Iterator

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from transqueue.core.errors import InfrastructureError
from transqueue.core.models import TranslationKey, TranslationRequest, TranslationTask
from transqueue.storage.base import Delivery, TaskQueue, TranslationStore

logger = logging.getLogger(__name__)

REQUEST_PREFIX = "translation_request:"
KEY_PREFIX = "translation_key:"


@contextmanager
def _redis_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as e:
        raise InfrastructureError(f"Redis error while trying to {action}: {e}") from e


# =============================================================================
# Redis Translation Store
# =============================================================================


class RedisTranslationStore(TranslationStore):
    """Translation store on a shared Redis instance."""

    def __init__(self, client: redis.Redis, request_ttl: int | None = 24 * 3600):
        self.client = client
        self.request_ttl = request_ttl

    async def _scan(self, prefix: str) -> list[str]:
        """Values of every key with the prefix, skipping ones that vanished."""
        names = [name async for name in self.client.scan_iter(match=f"{prefix}*", count=500)]
        if not names:
            return []
        values = await self.client.mget(names)
        return [value for value in values if value is not None]

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    async def save_request(self, request: TranslationRequest) -> None:
        with _redis_errors("save request"):
            await self.client.set(
                f"{REQUEST_PREFIX}{request.id}",
                request.model_dump_json(),
                ex=self.request_ttl,
            )

    def _decode_request(self, request_id: str, data: str) -> TranslationRequest:
        try:
            return TranslationRequest.model_validate_json(data)
        except ValidationError as e:
            raise InfrastructureError(f"Corrupt request record {request_id}: {e}") from e

    async def get_request(self, request_id: str) -> TranslationRequest | None:
        with _redis_errors("get request"):
            data = await self.client.get(f"{REQUEST_PREFIX}{request_id}")
        if data is None:
            return None
        return self._decode_request(request_id, data)

    async def update_request(
        self,
        request_id: str,
        change: Callable[[TranslationRequest], None],
    ) -> TranslationRequest | None:
        """
        Optimistic read-change-write: WATCH the record, apply the change,
        then SET inside MULTI. A concurrent write aborts EXEC and the whole
        step is retried against the new record.
        """
        name = f"{REQUEST_PREFIX}{request_id}"

        async def apply(pipe) -> TranslationRequest | None:
            data = await pipe.get(name)
            if data is None:
                return None
            request = self._decode_request(request_id, data)
            change(request)
            pipe.multi()
            pipe.set(name, request.model_dump_json(), ex=self.request_ttl)
            return request

        with _redis_errors("update request"):
            return await self.client.transaction(apply, name, value_from_callable=True)

    async def list_incomplete_requests(self) -> list[TranslationRequest]:
        with _redis_errors("list requests"):
            raw = await self._scan(REQUEST_PREFIX)

        results = []
        for data in raw:
            try:
                request = TranslationRequest.model_validate_json(data)
            except ValidationError:
                logger.warning("Skipping unreadable request record")
                continue
            if not request.is_terminal:
                results.append(request)
        return results

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    async def save_key(self, key: TranslationKey) -> None:
        with _redis_errors("save translation key"):
            await self.client.set(f"{KEY_PREFIX}{key.key}", key.model_dump_json())

    async def get_key(self, key: str) -> TranslationKey | None:
        with _redis_errors("get translation key"):
            data = await self.client.get(f"{KEY_PREFIX}{key}")
        if data is None:
            return None
        try:
            return TranslationKey.model_validate_json(data)
        except ValidationError as e:
            raise InfrastructureError(f"Corrupt translation key {key}: {e}") from e

    async def delete_key(self, key: str) -> bool:
        with _redis_errors("delete translation key"):
            return await self.client.delete(f"{KEY_PREFIX}{key}") > 0

    async def key_exists(self, key: str) -> bool:
        with _redis_errors("check key existence"):
            return await self.client.exists(f"{KEY_PREFIX}{key}") > 0

    async def list_keys(self) -> list[TranslationKey]:
        with _redis_errors("list translation keys"):
            raw = await self._scan(KEY_PREFIX)

        keys = []
        for data in raw:
            try:
                keys.append(TranslationKey.model_validate_json(data))
            except ValidationError:
                logger.warning("Skipping unreadable translation key record")
        return keys

    async def close(self) -> None:
        await self.client.aclose()


# =============================================================================
# Redis Task Queue
# =============================================================================


class RedisTaskQueue(TaskQueue):
    """
    Reliable list queue.

    publish  -> LPUSH <queue>
    receive  -> BLMOVE <queue> (right) -> <queue>:processing (left)
    ack      -> LREM <queue>:processing
    requeue  -> LREM <queue>:processing + LPUSH <queue>

    The list element itself is the message identity used by LREM. The
    Redis client is shared with the store, which closes it.
    """

    def __init__(self, client: redis.Redis, queue_name: str = "translation_tasks"):
        self.client = client
        self.queue_name = queue_name
        self.processing_name = f"{queue_name}:processing"

    async def publish(self, task: TranslationTask) -> None:
        with _redis_errors("publish task"):
            await self.client.lpush(self.queue_name, task.model_dump_json())

    async def receive(self, wait_seconds: float = 1.0) -> Delivery | None:
        with _redis_errors("receive task"):
            body = await self.client.blmove(
                self.queue_name,
                self.processing_name,
                wait_seconds,
                src="RIGHT",
                dest="LEFT",
            )
        if body is None:
            return None
        return Delivery(message_id=body, body=body)

    async def ack(self, delivery: Delivery) -> None:
        with _redis_errors("ack task"):
            await self.client.lrem(self.processing_name, 1, delivery.message_id)

    async def requeue(self, delivery: Delivery) -> None:
        with _redis_errors("requeue task"):
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.lrem(self.processing_name, 1, delivery.message_id)
                pipe.lpush(self.queue_name, delivery.body)
                await pipe.execute()

    async def restore_unacked(self) -> int:
        restored = 0
        with _redis_errors("restore unacked tasks"):
            while await self.client.lmove(
                self.processing_name, self.queue_name, src="RIGHT", dest="RIGHT"
            ):
                restored += 1
        return restored
