"""
Shared utility functions.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def generate_id() -> str:
    """Generate a unique request ID (UUID4 string)."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def strip_quotes(text: str) -> str:
    """Remove quote characters LLM providers sometimes wrap output in."""
    return text.strip().strip("\"'")
