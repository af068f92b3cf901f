"""
Error taxonomy for the translation service.

Callers catch the specific subclass they can act on:

- NotFoundError: request or key missing, surfaced as a lookup failure
- StateConflictError: operation invalid for the request's current status
- InfrastructureError: store/queue I/O failed, the task gets requeued
- ProviderError: a single translation call failed, logged and skipped
- PublishError: a task could not be enqueued, the request is marked failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from transqueue.core.models import RequestStatus


class TranslationServiceError(Exception):
    """Base class for all service errors."""
    pass


class NotFoundError(TranslationServiceError):
    """Raised when a request or translation key does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class StateConflictError(TranslationServiceError):
    """Raised when a lifecycle transition is not allowed from the current status."""

    def __init__(self, request_id: str, status: RequestStatus, action: str):
        self.request_id = request_id
        self.status = status
        self.action = action
        super().__init__(
            f"Request {request_id} cannot be {action} in status: {status.value}"
        )


class InfrastructureError(TranslationServiceError):
    """Raised when the store or queue backend fails."""
    pass


class ProviderError(TranslationServiceError):
    """Raised when the translation provider fails for one text."""
    pass


class PublishError(TranslationServiceError):
    """Raised when a translation task cannot be published to the queue."""
    pass
