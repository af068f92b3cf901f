"""
Storage abstraction layer.

All persistence and task delivery goes through these interfaces. This allows
swapping implementations (in-memory -> Redis) without changing the lifecycle
manager or the engine.

Integration Points:
- TranslationStore -> Redis (requests with TTL, keys without)
- TaskQueue -> Redis reliable list queue
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from pydantic import BaseModel

from transqueue.core.models import TranslationKey, TranslationRequest, TranslationTask


# =============================================================================
# Storage Interfaces
# =============================================================================


class TranslationStore(ABC):
    """
    Key-value persistence for translation requests and translation keys.

    Lookups return None for "not found"; backend failures raise
    InfrastructureError. Saves are full-record replaces (last write wins).
    """

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_request(self, request: TranslationRequest) -> None:
        """Insert or replace a request."""
        pass

    @abstractmethod
    async def get_request(self, request_id: str) -> TranslationRequest | None:
        """Get a request by ID."""
        pass

    @abstractmethod
    async def update_request(
        self,
        request_id: str,
        change: Callable[[TranslationRequest], None],
    ) -> TranslationRequest | None:
        """
        Read a request, apply `change` and save it as one atomic step.

        A concurrent writer can never slip in between the read and the save,
        so a status written by one transition is seen by the next. Exceptions
        raised by `change` propagate and nothing is saved.

        Returns the updated request, or None if it does not exist.
        """
        pass

    @abstractmethod
    async def list_incomplete_requests(self) -> list[TranslationRequest]:
        """All requests that are pending or processing."""
        pass

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_key(self, key: TranslationKey) -> None:
        """Insert or replace a translation key."""
        pass

    @abstractmethod
    async def get_key(self, key: str) -> TranslationKey | None:
        """Get a translation key by name."""
        pass

    @abstractmethod
    async def delete_key(self, key: str) -> bool:
        """Delete a key and all its translations."""
        pass

    @abstractmethod
    async def key_exists(self, key: str) -> bool:
        """Check if key exists."""
        pass

    @abstractmethod
    async def list_keys(self) -> list[TranslationKey]:
        """All stored translation keys."""
        pass

    async def close(self) -> None:
        """Release connections. Override if the backend holds any."""
        pass


@dataclass
class Delivery:
    """A message handed out by a TaskQueue, pending ack or requeue."""

    message_id: str
    body: str

    def decode(self) -> TranslationTask:
        """Parse the body; raises pydantic.ValidationError if malformed."""
        return TranslationTask.model_validate_json(self.body)


class TaskQueue(ABC):
    """
    At-least-once queue of translation tasks with manual acknowledgment.

    A received message stays unacked until ack() or requeue(). Messages left
    unacked by a crashed or stopped worker are put back by restore_unacked().
    """

    @abstractmethod
    async def publish(self, task: TranslationTask) -> None:
        """Add a task to the queue."""
        pass

    @abstractmethod
    async def receive(self, wait_seconds: float = 1.0) -> Delivery | None:
        """Get next message, waiting up to wait_seconds. None if idle."""
        pass

    @abstractmethod
    async def ack(self, delivery: Delivery) -> None:
        """Acknowledge message processing complete."""
        pass

    @abstractmethod
    async def requeue(self, delivery: Delivery) -> None:
        """Negative-acknowledge; the message will be delivered again."""
        pass

    @abstractmethod
    async def restore_unacked(self) -> int:
        """Return unacked messages to the queue. Returns how many moved."""
        pass

    async def close(self) -> None:
        """Release connections. Override if the backend holds any."""
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for the storage backends.

    Initialize once at app startup with appropriate implementations.
    """

    model_config = {"arbitrary_types_allowed": True}

    store: TranslationStore
    queue: TaskQueue

    async def close(self) -> None:
        await self.queue.close()
        await self.store.close()
