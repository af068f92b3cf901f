"""
Shared fixtures: in-memory storage, a scripted provider, and the services
wired on top of them.
"""

from __future__ import annotations

from typing import Awaitable, Callable

import pytest

from transqueue.core.errors import ProviderError
from transqueue.providers.base import TranslationProvider
from transqueue.services import RequestLifecycleManager, TaskProcessingEngine
from transqueue.storage import InMemoryTaskQueue, InMemoryTranslationStore


class FakeProvider(TranslationProvider):
    """
    Records every call and answers "<lang>:<text>" wrapped in quotes, the
    way LLMs sometimes do. Texts (or (text, lang) pairs) in `fail_for` raise.
    """

    provider_id = "fake"

    def __init__(self, fail_for=()):
        self.calls: list[tuple[str, str, str, str]] = []
        self.fail_for = set(fail_for)
        self.on_call: Callable[[str, str], Awaitable[None]] | None = None

    async def translate(self, text, source_language, target_language, context=""):
        self.calls.append((text, source_language, target_language, context))
        if self.on_call is not None:
            await self.on_call(text, target_language)
        if text in self.fail_for or (text, target_language) in self.fail_for:
            raise ProviderError(f"provider unavailable for {text!r}")
        return f'"{target_language}:{text}"'

    def calls_for(self, target_language: str) -> list[str]:
        return [text for text, _, lang, _ in self.calls if lang == target_language]


@pytest.fixture
def store():
    """Fresh in-memory translation store."""
    return InMemoryTranslationStore()


@pytest.fixture
def queue():
    """Fresh in-memory task queue."""
    return InMemoryTaskQueue()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def lifecycle(store):
    return RequestLifecycleManager(store, source_language="en")


@pytest.fixture
def engine(lifecycle, queue, provider):
    return TaskProcessingEngine(
        lifecycle,
        queue,
        provider,
        source_language="en",
        concurrency=2,
        poll_seconds=0.01,
    )
