"""
Local storage implementations for development.

These are in-memory implementations that work without any external
services. Records are kept as JSON-compatible dicts so callers never share
mutable state with the store, matching what a networked backend returns.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from transqueue.core.models import TranslationKey, TranslationRequest, TranslationTask
from transqueue.storage.base import Delivery, TaskQueue, TranslationStore


# =============================================================================
# In-Memory Translation Store
# =============================================================================


class InMemoryTranslationStore(TranslationStore):
    """In-memory request/key storage for development and tests."""

    def __init__(self, request_ttl: int | None = None):
        self.request_ttl = request_ttl
        self._requests: dict[str, tuple[dict[str, Any], float | None]] = {}
        self._keys: dict[str, dict[str, Any]] = {}

    def _now(self) -> float:
        return datetime.now(timezone.utc).timestamp()

    def _store_request(self, request: TranslationRequest) -> None:
        expires_at = None
        if self.request_ttl:
            expires_at = self._now() + self.request_ttl
        self._requests[request.id] = (request.model_dump(mode="json"), expires_at)

    def _load_request(self, request_id: str) -> TranslationRequest | None:
        if request_id not in self._requests:
            return None

        data, expires_at = self._requests[request_id]
        if expires_at and self._now() > expires_at:
            del self._requests[request_id]
            return None

        return TranslationRequest.model_validate(data)

    async def save_request(self, request: TranslationRequest) -> None:
        self._store_request(request)

    async def get_request(self, request_id: str) -> TranslationRequest | None:
        return self._load_request(request_id)

    async def update_request(
        self,
        request_id: str,
        change: Callable[[TranslationRequest], None],
    ) -> TranslationRequest | None:
        # No await between load and store, so no other task can interleave
        request = self._load_request(request_id)
        if request is None:
            return None
        change(request)
        self._store_request(request)
        return request

    async def list_incomplete_requests(self) -> list[TranslationRequest]:
        results = []
        for request_id in list(self._requests):
            request = await self.get_request(request_id)
            if request is not None and not request.is_terminal:
                results.append(request)
        return results

    async def save_key(self, key: TranslationKey) -> None:
        self._keys[key.key] = key.model_dump(mode="json")

    async def get_key(self, key: str) -> TranslationKey | None:
        data = self._keys.get(key)
        if data is None:
            return None
        return TranslationKey.model_validate(data)

    async def delete_key(self, key: str) -> bool:
        if key in self._keys:
            del self._keys[key]
            return True
        return False

    async def key_exists(self, key: str) -> bool:
        return key in self._keys

    async def list_keys(self) -> list[TranslationKey]:
        return [TranslationKey.model_validate(data) for data in self._keys.values()]


# =============================================================================
# In-Memory Task Queue
# =============================================================================


class InMemoryTaskQueue(TaskQueue):
    """In-memory queue with ack tracking for development."""

    def __init__(self):
        self._ready: asyncio.Queue[tuple[str, str]] = asyncio.Queue()
        self._unacked: dict[str, str] = {}

    @property
    def size(self) -> int:
        """Messages waiting to be received."""
        return self._ready.qsize()

    @property
    def unacked_count(self) -> int:
        return len(self._unacked)

    async def publish(self, task: TranslationTask) -> None:
        message_id = str(uuid.uuid4())
        await self._ready.put((message_id, task.model_dump_json()))

    async def receive(self, wait_seconds: float = 1.0) -> Delivery | None:
        try:
            message_id, body = await asyncio.wait_for(self._ready.get(), timeout=wait_seconds)
        except asyncio.TimeoutError:
            return None

        # Track pending for ack
        self._unacked[message_id] = body
        return Delivery(message_id=message_id, body=body)

    async def ack(self, delivery: Delivery) -> None:
        self._unacked.pop(delivery.message_id, None)

    async def requeue(self, delivery: Delivery) -> None:
        if self._unacked.pop(delivery.message_id, None) is not None:
            await self._ready.put((delivery.message_id, delivery.body))

    async def restore_unacked(self) -> int:
        restored = list(self._unacked.items())
        self._unacked.clear()
        for message_id, body in restored:
            await self._ready.put((message_id, body))
        return len(restored)
