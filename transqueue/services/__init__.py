"""Services - the request lifecycle and the task processing engine."""

from transqueue.services.lifecycle import RequestLifecycleManager
from transqueue.services.engine import TaskProcessingEngine

__all__ = [
    "RequestLifecycleManager",
    "TaskProcessingEngine",
]
