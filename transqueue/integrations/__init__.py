"""External integrations (error tracking)."""

from transqueue.integrations.sentry import init_sentry, capture_exception

__all__ = [
    "init_sentry",
    "capture_exception",
]
