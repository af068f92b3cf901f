"""
Task processing engine.

Submits requests to the task queue, consumes tasks, drives translation of
pending keys through the provider and recovers unfinished requests on
startup.

Retry happens at two levels:
- a task whose processing raises is requeued by the queue
- a single failed (key, language) translation is only logged; the dedup scan
  picks it up again on the next task that mentions the key
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import ValidationError

from transqueue.core.errors import (
    NotFoundError,
    PublishError,
    StateConflictError,
)
from transqueue.core.models import (
    RequestStatus,
    TranslationKey,
    TranslationRequest,
    TranslationTask,
)
from transqueue.core.utils import strip_quotes
from transqueue.integrations.sentry import capture_exception
from transqueue.providers.base import TranslationProvider
from transqueue.services.lifecycle import RequestLifecycleManager
from transqueue.storage.base import Delivery, TaskQueue

logger = logging.getLogger(__name__)


class TaskProcessingEngine:
    """
    Runs translation tasks.

    Within one task keys and languages are translated sequentially, so a
    task never has more than one provider call in flight. Distinct tasks
    run concurrently, up to `concurrency` at a time.

    Cancellation is cooperative: the request status is re-read before each
    key and each language, so at most one more provider call happens after a
    cancel.
    """

    def __init__(
        self,
        lifecycle: RequestLifecycleManager,
        queue: TaskQueue,
        provider: TranslationProvider,
        source_language: str = "en",
        concurrency: int = 4,
        poll_seconds: float = 1.0,
    ):
        self.lifecycle = lifecycle
        self.queue = queue
        self.provider = provider
        self.source_language = source_language
        self.concurrency = concurrency
        self.poll_seconds = poll_seconds

    # =========================================================================
    # Submission & recovery
    # =========================================================================

    async def _publish(self, task: TranslationTask) -> None:
        try:
            await self.queue.publish(task)
        except Exception as e:
            raise PublishError(f"Failed to publish task for request {task.request_id}: {e}") from e
        logger.info(f"Published translation task for request {task.request_id}")

    async def submit(
        self,
        source_data: dict[str, str],
        languages: list[str],
    ) -> TranslationRequest:
        """
        Create a request and queue its task.

        If the task cannot be published the request is marked failed and
        PublishError is raised, so no request is left pending without a task.
        """
        request = await self.lifecycle.create_request(source_data, languages)

        try:
            await self._publish(TranslationTask.from_request(request))
        except PublishError:
            try:
                await self.lifecycle.fail_request(request.id)
            except Exception as e:
                # Left pending; recover() publishes it again on next startup
                logger.error(f"Could not mark request {request.id} as failed: {e}")
            raise

        return request

    async def recover(self) -> int:
        """
        Re-publish a task for every pending or processing request.

        Requests whose task cannot be published are marked failed. Returns
        the number of tasks published.
        """
        logger.info("Starting recovery of incomplete translation requests")

        requests = await self.lifecycle.list_incomplete_requests()
        if not requests:
            logger.info("No incomplete requests found")
            return 0

        logger.info(f"Found {len(requests)} incomplete requests to recover")

        published = 0
        for request in requests:
            try:
                await self._publish(TranslationTask.from_request(request))
            except PublishError as e:
                logger.error(f"Recovery of request {request.id} failed: {e}")
                try:
                    await self.lifecycle.fail_request(request.id)
                except StateConflictError:
                    logger.info(f"Request {request.id} reached a terminal status meanwhile")
                continue
            published += 1

        logger.info(f"Recovery queued {published}/{len(requests)} requests")
        return published

    # =========================================================================
    # Task processing
    # =========================================================================

    async def _is_cancelled(self, request_id: str) -> bool:
        return await self.lifecycle.get_status(request_id) == RequestStatus.CANCELLED

    async def process_task(self, task: TranslationTask) -> None:
        """
        Translate every missing (key, language) pair of one task.

        Lookup and status-update failures propagate so the message gets
        requeued; provider failures for a single pair are logged and skipped.
        """
        request_id = task.request_id
        logger.info(f"Processing translation task for request {request_id}")

        request = await self.lifecycle.get_request(request_id)
        if request.is_terminal:
            # Cancelled before we started, or a duplicate delivery
            logger.info(f"Request {request_id} is {request.status.value}, skipping")
            return

        try:
            await self.lifecycle.mark_processing(request_id)
        except StateConflictError as e:
            logger.info(f"Not processing request {request_id}: {e}")
            return

        pending_keys = await self.lifecycle.get_pending_keys(task.source_data, task.languages)

        if pending_keys:
            logger.info(f"Found {len(pending_keys)} keys that need translation for request {request_id}")
            for i, key in enumerate(pending_keys, start=1):
                if await self._is_cancelled(request_id):
                    logger.info(f"Request {request_id} was cancelled, stopping translation")
                    return

                logger.debug(f"Translating key {i}/{len(pending_keys)}: {key.key}")
                finished = await self._translate_key(key, task.languages, request_id)
                if not finished:
                    logger.info(f"Request {request_id} was cancelled while translating {key.key}")
                    return
        else:
            logger.info(f"All translations for request {request_id} already cached")

        try:
            await self.lifecycle.complete_request(request_id)
        except StateConflictError as e:
            logger.info(f"Request {request_id} not completed: {e}")

    async def _translate_key(
        self,
        key: TranslationKey,
        languages: list[str],
        request_id: str,
    ) -> bool:
        """
        Translate one key into each of its missing languages and persist it.

        Returns False if the request was cancelled part way. Translations
        produced before the cancel are still saved.
        """
        await self.lifecycle.merge_stored_translations(key)
        translated = 0

        for language in languages:
            if await self._is_cancelled(request_id):
                if translated:
                    await self._save_merged(key)
                return False

            if language in key.translations:
                continue

            try:
                result = await self.provider.translate(
                    key.value,
                    self.source_language,
                    language,
                    f"Translation key: {key.key}",
                )
            except Exception as e:
                logger.warning(f"Failed to translate key {key.key} to {language}: {e}")
                continue

            key.translations[language] = strip_quotes(result)
            translated += 1
            logger.debug(f"Translated key {key.key} to {language}")

        await self._save_merged(key)
        return True

    async def _save_merged(self, key: TranslationKey) -> None:
        # Pick up languages other tasks stored while this key was translated
        await self.lifecycle.merge_stored_translations(key)
        await self.lifecycle.save_key(key)

    # =========================================================================
    # Consumer loop
    # =========================================================================

    async def handle_delivery(self, delivery: Delivery) -> None:
        """Process one queue message and ack or requeue it."""
        try:
            task = delivery.decode()
        except ValidationError as e:
            logger.error(f"Dropping malformed task message: {e}")
            await self.queue.ack(delivery)
            return

        try:
            await self.process_task(task)
        except NotFoundError as e:
            logger.warning(f"Dropping task: {e}")
            await self.queue.ack(delivery)
            return
        except Exception as e:
            logger.error(f"Failed to process task for request {task.request_id}: {e}")
            capture_exception(e, request_id=task.request_id)
            await self.queue.requeue(delivery)
            return

        await self.queue.ack(delivery)
        logger.info(f"Successfully processed translation task for request {task.request_id}")

    async def _run_delivery(self, delivery: Delivery, slots: asyncio.Semaphore) -> None:
        try:
            await self.handle_delivery(delivery)
        except Exception as e:
            # ack/requeue itself failed; the message stays unacked for restore
            logger.error(f"Could not settle message {delivery.message_id[:64]}: {e}")
            capture_exception(e)
        finally:
            slots.release()

    async def run_consumer(self, stop: asyncio.Event) -> None:
        """
        Consume tasks until `stop` is set or this coroutine is cancelled.

        In-flight handlers are cancelled on exit. Their messages stay unacked
        and are redelivered after TaskQueue.restore_unacked().
        """
        logger.info(f"Task consumer started (concurrency={self.concurrency})")
        slots = asyncio.Semaphore(self.concurrency)
        in_flight: set[asyncio.Task] = set()

        try:
            while not stop.is_set():
                await slots.acquire()
                try:
                    delivery = await self.queue.receive(self.poll_seconds)
                except Exception as e:
                    slots.release()
                    logger.error(f"Failed to receive from task queue: {e}")
                    await asyncio.sleep(self.poll_seconds)
                    continue

                if delivery is None:
                    slots.release()
                    continue

                handler = asyncio.create_task(self._run_delivery(delivery, slots))
                in_flight.add(handler)
                handler.add_done_callback(in_flight.discard)
        finally:
            for handler in in_flight:
                handler.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)
            logger.info("Task consumer stopped")
