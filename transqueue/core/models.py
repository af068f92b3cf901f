"""
Core data models for the translation service.

Two persisted entities: TranslationRequest (one batch submission tracked
through its lifecycle) and TranslationKey (a globally shared, named unit of
translatable text with its cached translations). TranslationTask is the queue
message that ties them together.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from transqueue.core.errors import StateConflictError
from transqueue.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class RequestStatus(str, Enum):
    """Status of a translation request."""

    PENDING = "pending"  # Created, task queued
    PROCESSING = "processing"  # A worker is translating its keys
    COMPLETED = "completed"  # All pending keys handled
    FAILED = "failed"  # Could not be queued or processed
    CANCELLED = "cancelled"  # Stopped on user request

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    RequestStatus.COMPLETED,
    RequestStatus.FAILED,
    RequestStatus.CANCELLED,
})

# Allowed source statuses for each target status
ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PROCESSING: frozenset({RequestStatus.PENDING, RequestStatus.PROCESSING}),
    RequestStatus.COMPLETED: frozenset({RequestStatus.PROCESSING}),
    RequestStatus.CANCELLED: frozenset({RequestStatus.PENDING, RequestStatus.PROCESSING}),
    RequestStatus.FAILED: frozenset({RequestStatus.PENDING, RequestStatus.PROCESSING}),
}

# Keys with this prefix are ARB metadata annotations ("@hello", "@@locale")
METADATA_KEY_PREFIX = "@"


def is_metadata_key(key: str) -> bool:
    return key.startswith(METADATA_KEY_PREFIX)


# =============================================================================
# Translation Request
# =============================================================================


class TranslationRequest(BaseModel):
    """
    One batch submission of source text plus target languages.

    Status only changes through the mark_* methods, which enforce the
    lifecycle: nothing leaves a terminal status and nothing returns to
    pending.
    """

    id: str = Field(default_factory=generate_id)
    status: RequestStatus = RequestStatus.PENDING

    source_data: dict[str, str]
    languages: list[str]

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def _transition(self, target: RequestStatus, action: str) -> None:
        if self.status not in ALLOWED_TRANSITIONS[target]:
            raise StateConflictError(self.id, self.status, action)
        self.status = target
        self.updated_at = utc_now()

    def mark_processing(self) -> None:
        """Mark request as being worked on (idempotent while processing)."""
        self._transition(RequestStatus.PROCESSING, "processed")

    def mark_completed(self) -> None:
        """Mark request as completed and stamp completed_at."""
        self._transition(RequestStatus.COMPLETED, "completed")
        self.completed_at = self.updated_at

    def mark_failed(self) -> None:
        self._transition(RequestStatus.FAILED, "failed")

    def mark_cancelled(self) -> None:
        self._transition(RequestStatus.CANCELLED, "cancelled")


# =============================================================================
# Translation Key
# =============================================================================


class TranslationKey(BaseModel):
    """
    A named unit of translatable text, shared by every request that
    mentions the same key name.
    """

    key: str
    value: str
    translations: dict[str, str] = Field(default_factory=dict)

    def missing_languages(self, languages: list[str]) -> list[str]:
        """Languages (in request order) with no cached translation yet."""
        return [lang for lang in languages if lang not in self.translations]

    def update_value(self, value: str) -> bool:
        """
        Replace the source value.

        A changed value invalidates every cached translation. Returns True
        if the value actually changed.
        """
        if value == self.value:
            return False
        self.value = value
        self.translations = {}
        return True


# =============================================================================
# Queue Messages & Results
# =============================================================================


class TranslationTask(BaseModel):
    """Queue message instructing a worker to process one request."""

    request_id: str
    source_data: dict[str, str]
    languages: list[str]

    @classmethod
    def from_request(cls, request: TranslationRequest) -> TranslationTask:
        return cls(
            request_id=request.id,
            source_data=request.source_data,
            languages=request.languages,
        )


class CacheTranslationsResult(BaseModel):
    """Outcome of caching translations directly, without the provider."""

    success_count: int = 0
    skipped_keys: list[str] = Field(default_factory=list)
    total_keys: int = 0
