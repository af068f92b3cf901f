"""
Core module - data models, errors and shared utilities.
"""

from transqueue.core.models import (
    TranslationRequest,
    TranslationKey,
    TranslationTask,
    RequestStatus,
    CacheTranslationsResult,
    TERMINAL_STATUSES,
    is_metadata_key,
)

from transqueue.core.errors import (
    TranslationServiceError,
    NotFoundError,
    StateConflictError,
    InfrastructureError,
    ProviderError,
    PublishError,
)

from transqueue.core.utils import (
    generate_id,
    utc_now,
    strip_quotes,
)

__all__ = [
    # Models
    "TranslationRequest",
    "TranslationKey",
    "TranslationTask",
    "RequestStatus",
    "CacheTranslationsResult",
    "TERMINAL_STATUSES",
    "is_metadata_key",
    # Errors
    "TranslationServiceError",
    "NotFoundError",
    "StateConflictError",
    "InfrastructureError",
    "ProviderError",
    "PublishError",
    # Utils
    "generate_id",
    "utc_now",
    "strip_quotes",
]
