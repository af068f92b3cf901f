"""
Request lifecycle manager.

Owns the translation request state machine and the key-level cache logic.
It is the only component that writes requests and keys; the engine goes
through it for every read and write.

Cache coherency rule: whenever a key's source value changes, by whatever
path, its cached translations are cleared so they get regenerated.
"""

from __future__ import annotations

import logging
from typing import Callable

from transqueue.core.errors import NotFoundError
from transqueue.core.models import (
    CacheTranslationsResult,
    RequestStatus,
    TranslationKey,
    TranslationRequest,
    is_metadata_key,
)
from transqueue.storage.base import TranslationStore

logger = logging.getLogger(__name__)


class RequestLifecycleManager:
    """
    Creates requests, moves them through their lifecycle and decides which
    (key, language) pairs still need a translation.

    Usage:
        manager = RequestLifecycleManager(store)
        request = await manager.create_request({"hello": "Hello"}, ["es"])
        pending = await manager.get_pending_keys(request.source_data, request.languages)
    """

    def __init__(self, store: TranslationStore, source_language: str = "en"):
        self.store = store
        self.source_language = source_language

    # =========================================================================
    # Requests
    # =========================================================================

    async def create_request(
        self,
        source_data: dict[str, str],
        languages: list[str],
    ) -> TranslationRequest:
        """Persist a new request in pending status."""
        request = TranslationRequest(source_data=source_data, languages=languages)
        await self.store.save_request(request)
        logger.info(
            f"Created translation request {request.id} "
            f"({len(source_data)} keys, languages={languages})"
        )
        return request

    async def get_request(self, request_id: str) -> TranslationRequest:
        """Get a request by ID, raising NotFoundError if absent."""
        request = await self.store.get_request(request_id)
        if request is None:
            raise NotFoundError("translation request", request_id)
        return request

    async def get_status(self, request_id: str) -> RequestStatus:
        """Current status, read fresh from the store."""
        request = await self.get_request(request_id)
        return request.status

    async def _transition(
        self,
        request_id: str,
        change: Callable[[TranslationRequest], None],
    ) -> TranslationRequest:
        """Apply a mark_* transition atomically against the stored record."""
        request = await self.store.update_request(request_id, change)
        if request is None:
            raise NotFoundError("translation request", request_id)
        return request

    async def mark_processing(self, request_id: str) -> TranslationRequest:
        return await self._transition(request_id, TranslationRequest.mark_processing)

    async def complete_request(self, request_id: str) -> TranslationRequest:
        request = await self._transition(request_id, TranslationRequest.mark_completed)
        logger.info(f"Request {request_id} completed")
        return request

    async def fail_request(self, request_id: str) -> TranslationRequest:
        request = await self._transition(request_id, TranslationRequest.mark_failed)
        logger.warning(f"Request {request_id} marked as failed")
        return request

    async def cancel_request(self, request_id: str) -> TranslationRequest:
        """
        Cancel a pending or processing request.

        Raises StateConflictError (status unchanged) if the request already
        reached a terminal status.
        """
        request = await self._transition(request_id, TranslationRequest.mark_cancelled)
        logger.info(f"Request {request_id} cancelled")
        return request

    async def list_incomplete_requests(self) -> list[TranslationRequest]:
        """All requests not yet completed, failed, or cancelled."""
        return await self.store.list_incomplete_requests()

    # =========================================================================
    # Key extraction & dedup
    # =========================================================================

    def extract_translation_keys(self, source_data: dict[str, str]) -> list[TranslationKey]:
        """Translatable keys of an ARB-style mapping; "@" metadata is skipped."""
        return [
            TranslationKey(key=name, value=value)
            for name, value in source_data.items()
            if not is_metadata_key(name)
        ]

    async def get_pending_keys(
        self,
        source_data: dict[str, str],
        languages: list[str],
    ) -> list[TranslationKey]:
        """
        Keys of this request that still lack a translation for at least one
        of the requested languages.

        - Unknown key: new object, needs every language.
        - Known key with a changed value: translations cleared, needs every
          language.
        - Known key, same value: needs only its missing languages; skipped
          entirely when fully cached.

        Returned keys are not persisted here; the caller saves them once
        translated.
        """
        pending: list[TranslationKey] = []

        for incoming in self.extract_translation_keys(source_data):
            existing = await self.store.get_key(incoming.key)

            if existing is None:
                pending.append(incoming)
                continue

            if existing.update_value(incoming.value):
                logger.info(f"Source value of key {incoming.key} changed, cached translations cleared")

            if existing.missing_languages(languages):
                pending.append(existing)
            else:
                logger.debug(f"Key {incoming.key} already has all required translations")

        return pending

    async def merge_stored_translations(self, key: TranslationKey) -> TranslationKey:
        """
        Adopt translations another task stored for this key since it was
        loaded, as long as the stored source value still matches.
        """
        stored = await self.store.get_key(key.key)
        if stored is not None and stored.value == key.value:
            for language, text in stored.translations.items():
                key.translations.setdefault(language, text)
        return key

    async def save_key(self, key: TranslationKey) -> None:
        await self.store.save_key(key)

    # =========================================================================
    # Translated data
    # =========================================================================

    async def get_translated_data(self, languages: list[str]) -> dict[str, dict[str, str]]:
        """All cached translations for the languages, as {lang: {key: text}}."""
        data: dict[str, dict[str, str]] = {lang: {} for lang in languages}
        for key in await self.store.list_keys():
            for lang in languages:
                if lang in key.translations:
                    data[lang][key.key] = key.translations[lang]
        return data

    async def get_translated_data_for_request_keys(
        self,
        source_data: dict[str, str],
        languages: list[str],
    ) -> dict[str, dict[str, str]]:
        """Like get_translated_data, restricted to the keys of one request."""
        data: dict[str, dict[str, str]] = {lang: {} for lang in languages}
        for name in source_data:
            if is_metadata_key(name):
                continue
            key = await self.store.get_key(name)
            if key is None:
                continue
            for lang in languages:
                if lang in key.translations:
                    data[lang][name] = key.translations[lang]
        return data

    # =========================================================================
    # Key maintenance
    # =========================================================================

    async def update_key_value(self, name: str, value: str) -> TranslationKey:
        """Replace a key's source value; a change clears its translations."""
        key = await self.store.get_key(name)
        if key is None:
            raise NotFoundError("translation key", name)

        if key.update_value(value):
            await self.store.save_key(key)
            logger.info(f"Updated translation key {name}, cached translations cleared")
        return key

    async def delete_key(self, name: str) -> None:
        """Delete a key and all its translations. Irreversible."""
        if not await self.store.key_exists(name):
            raise NotFoundError("translation key", name)
        await self.store.delete_key(name)
        logger.info(f"Deleted translation key {name}")

    async def cache_translations(
        self,
        translations: dict[str, dict[str, str]],
    ) -> CacheTranslationsResult:
        """
        Store ready-made translations without calling the provider.

        Args:
            translations: {language: {key: text}}. Each key needs an entry in
                the source language, which becomes its value.

        Returns:
            Counts of stored keys and the keys skipped for lacking a
            source-language entry.
        """
        by_key: dict[str, dict[str, str]] = {}
        for lang, entries in translations.items():
            for name, text in entries.items():
                by_key.setdefault(name, {})[lang] = text

        result = CacheTranslationsResult(total_keys=len(by_key))

        for name, entries in by_key.items():
            if is_metadata_key(name):
                logger.info(f"Skipping key {name}: metadata annotations are not cached")
                result.skipped_keys.append(name)
                continue

            source_value = entries.get(self.source_language)
            if source_value is None:
                logger.info(f"Skipping key {name}: no {self.source_language} value provided")
                result.skipped_keys.append(name)
                continue

            key = await self.store.get_key(name)
            if key is None:
                key = TranslationKey(key=name, value=source_value)
            else:
                key.update_value(source_value)

            key.translations.update(entries)
            await self.store.save_key(key)
            result.success_count += 1

        return result
