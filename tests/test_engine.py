"""
Tests for the task processing engine.

Covers submission, the dedup-aware translation loop, cancellation,
recovery and the ack/requeue decisions of the consumer.
"""

import asyncio

import pytest

from transqueue.core.errors import InfrastructureError, PublishError
from transqueue.core.models import RequestStatus, TranslationKey, TranslationRequest
from transqueue.services import RequestLifecycleManager, TaskProcessingEngine
from transqueue.storage import Delivery, InMemoryTaskQueue, InMemoryTranslationStore


class BrokenQueue(InMemoryTaskQueue):
    """Queue whose broker is unreachable for publishing."""

    async def publish(self, task):
        raise ConnectionError("broker unreachable")


class FlakyKeyStore(InMemoryTranslationStore):
    """Store whose key lookups fail while `broken` is set."""

    broken = True

    async def get_key(self, key):
        if self.broken:
            raise InfrastructureError("key store timeout")
        return await super().get_key(key)


class LockedRequestStore(InMemoryTranslationStore):
    """Store that can create requests but cannot change their status."""

    async def update_request(self, request_id, change):
        raise InfrastructureError("request store unavailable")


async def run_next(engine, queue):
    """Receive one delivery and handle it the way the consumer does."""
    delivery = await queue.receive(wait_seconds=0.1)
    assert delivery is not None
    await engine.handle_delivery(delivery)
    return delivery


# =============================================================================
# End-to-end processing
# =============================================================================


class TestProcessing:
    @pytest.mark.asyncio
    async def test_translates_every_missing_pair(self, engine, queue, lifecycle, provider, store):
        request = await engine.submit({"hello": "Hello World"}, ["es", "fr"])
        assert request.status == RequestStatus.PENDING
        assert queue.size == 1

        await run_next(engine, queue)

        assert len(provider.calls) == 2
        text, source, target, context = provider.calls[0]
        assert (text, source, target) == ("Hello World", "en", "es")
        assert context == "Translation key: hello"

        key = await store.get_key("hello")
        # Surrounding quotes from the provider are trimmed
        assert key.translations == {"es": "es:Hello World", "fr": "fr:Hello World"}

        done = await lifecycle.get_request(request.id)
        assert done.status == RequestStatus.COMPLETED
        assert done.completed_at is not None
        assert queue.unacked_count == 0

    @pytest.mark.asyncio
    async def test_resubmission_is_served_from_cache(self, engine, queue, lifecycle, provider):
        await engine.submit({"hello": "Hello World"}, ["es", "fr"])
        await run_next(engine, queue)
        provider.calls.clear()

        second = await engine.submit({"hello": "Hello World"}, ["es", "fr"])
        await run_next(engine, queue)

        assert provider.calls == []
        assert await lifecycle.get_status(second.id) == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_precached_key_needs_no_provider_call(self, engine, queue, provider, store):
        await store.save_key(TranslationKey(key="hello", value="Hello", translations={"es": "Hola"}))

        await engine.submit({"hello": "Hello"}, ["es"])
        await run_next(engine, queue)

        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_only_missing_language_is_translated(self, engine, queue, provider, store):
        await store.save_key(TranslationKey(key="hello", value="Hello", translations={"es": "Hola"}))

        await engine.submit({"hello": "Hello"}, ["es", "fr"])
        await run_next(engine, queue)

        assert [c[2] for c in provider.calls] == ["fr"]
        key = await store.get_key("hello")
        assert key.translations == {"es": "Hola", "fr": "fr:Hello"}

    @pytest.mark.asyncio
    async def test_changed_value_retranslates(self, engine, queue, provider, store):
        await store.save_key(TranslationKey(
            key="hello", value="Hello", translations={"es": "Hola", "fr": "Bonjour"}
        ))

        await engine.submit({"hello": "Hi there"}, ["es"])
        await run_next(engine, queue)

        assert provider.calls_for("es") == ["Hi there"]
        key = await store.get_key("hello")
        assert key.value == "Hi there"
        # The stale French translation is gone too
        assert key.translations == {"es": "es:Hi there"}

    @pytest.mark.asyncio
    async def test_metadata_keys_are_not_translated(self, engine, queue, provider, store):
        await engine.submit({"@@locale": "en", "hello": "Hello", "@hello": "greeting"}, ["es"])
        await run_next(engine, queue)

        assert [c[0] for c in provider.calls] == ["Hello"]
        assert not await store.key_exists("@hello")

    @pytest.mark.asyncio
    async def test_provider_failure_skips_only_that_pair(self, engine, queue, lifecycle, provider, store):
        provider.fail_for = {"Alpha"}

        request = await engine.submit({"a": "Alpha", "b": "Beta"}, ["es"])
        await run_next(engine, queue)

        key_a = await store.get_key("a")
        key_b = await store.get_key("b")
        assert key_a.translations == {}
        assert key_b.translations == {"es": "es:Beta"}
        assert await lifecycle.get_status(request.id) == RequestStatus.COMPLETED

        # The failed pair is picked up by the next request mentioning it
        provider.fail_for = set()
        provider.calls.clear()
        await engine.submit({"a": "Alpha", "b": "Beta"}, ["es"])
        await run_next(engine, queue)
        assert [c[0] for c in provider.calls] == ["Alpha"]

    @pytest.mark.asyncio
    async def test_languages_stored_meanwhile_are_kept(self, engine, queue, provider, store):
        async def other_task_stores_german(text, target):
            await store.save_key(TranslationKey(key="hello", value="Hello", translations={"de": "Hallo"}))

        provider.on_call = other_task_stores_german
        await engine.submit({"hello": "Hello"}, ["es"])
        await run_next(engine, queue)

        key = await store.get_key("hello")
        assert key.translations == {"es": "es:Hello", "de": "Hallo"}


# =============================================================================
# Cancellation & duplicate delivery
# =============================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_processing(self, engine, queue, lifecycle, provider):
        request = await engine.submit({"hello": "Hello"}, ["es"])
        await lifecycle.cancel_request(request.id)

        await run_next(engine, queue)

        assert provider.calls == []
        assert await lifecycle.get_status(request.id) == RequestStatus.CANCELLED
        assert queue.unacked_count == 0

    @pytest.mark.asyncio
    async def test_cancel_between_keys(self, engine, queue, lifecycle, provider, store):
        request = await engine.submit({"k1": "one", "k2": "two", "k3": "three"}, ["es"])

        async def cancel_on_first(text, target):
            if text == "one":
                await lifecycle.cancel_request(request.id)

        provider.on_call = cancel_on_first
        await run_next(engine, queue)

        assert len(provider.calls) == 1
        assert await lifecycle.get_status(request.id) == RequestStatus.CANCELLED
        # The translation already produced is kept
        assert (await store.get_key("k1")).translations == {"es": "es:one"}
        assert not await store.key_exists("k2")

    @pytest.mark.asyncio
    async def test_cancel_between_languages_keeps_partial_key(self, engine, queue, lifecycle, provider, store):
        request = await engine.submit({"hello": "Hello"}, ["es", "fr", "de"])

        async def cancel_after_es(text, target):
            if target == "es":
                await lifecycle.cancel_request(request.id)

        provider.on_call = cancel_after_es
        await run_next(engine, queue)

        assert provider.calls_for("fr") == []
        assert (await store.get_key("hello")).translations == {"es": "es:Hello"}
        assert await lifecycle.get_status(request.id) == RequestStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_duplicate_delivery_of_completed_request(self, engine, queue, lifecycle, provider):
        request = await engine.submit({"hello": "Hello"}, ["es"])
        delivery = await run_next(engine, queue)
        completed = await lifecycle.get_request(request.id)
        provider.calls.clear()

        await engine.handle_delivery(Delivery(message_id="dup", body=delivery.body))

        assert provider.calls == []
        again = await lifecycle.get_request(request.id)
        assert again.status == RequestStatus.COMPLETED
        assert again.completed_at == completed.completed_at


# =============================================================================
# Submission & recovery
# =============================================================================


class TestSubmissionAndRecovery:
    @pytest.mark.asyncio
    async def test_publish_failure_marks_request_failed(self, lifecycle, provider, store):
        engine = TaskProcessingEngine(lifecycle, BrokenQueue(), provider)

        with pytest.raises(PublishError):
            await engine.submit({"hello": "Hello"}, ["es"])

        assert await lifecycle.list_incomplete_requests() == []
        statuses = [data["status"] for data, _ in store._requests.values()]
        assert statuses == ["failed"]

    @pytest.mark.asyncio
    async def test_recover_republishes_incomplete_requests(self, engine, queue, lifecycle):
        pending = await lifecycle.create_request({"a": "A"}, ["es"])
        processing = await lifecycle.create_request({"b": "B"}, ["es"])
        await lifecycle.mark_processing(processing.id)
        done = await lifecycle.create_request({"c": "C"}, ["es"])
        await lifecycle.mark_processing(done.id)
        await lifecycle.complete_request(done.id)
        cancelled = await lifecycle.create_request({"d": "D"}, ["es"])
        await lifecycle.cancel_request(cancelled.id)

        published = await engine.recover()

        assert published == 2
        assert queue.size == 2
        recovered = set()
        for _ in range(2):
            delivery = await queue.receive(wait_seconds=0.1)
            recovered.add(delivery.decode().request_id)
        assert recovered == {pending.id, processing.id}
        assert await lifecycle.get_status(done.id) == RequestStatus.COMPLETED
        assert await lifecycle.get_status(cancelled.id) == RequestStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_recover_with_nothing_to_do(self, engine, queue):
        assert await engine.recover() == 0
        assert queue.size == 0

    @pytest.mark.asyncio
    async def test_recover_publish_failure_marks_failed(self, lifecycle, provider):
        request = await lifecycle.create_request({"a": "A"}, ["es"])
        engine = TaskProcessingEngine(lifecycle, BrokenQueue(), provider)

        assert await engine.recover() == 0
        assert await lifecycle.get_status(request.id) == RequestStatus.FAILED

    @pytest.mark.asyncio
    async def test_publish_error_survives_failed_status_update(self, provider):
        store = LockedRequestStore()
        engine = TaskProcessingEngine(RequestLifecycleManager(store), BrokenQueue(), provider)

        with pytest.raises(PublishError):
            await engine.submit({"hello": "Hello"}, ["es"])

        # Still pending, so the next recover() picks it up
        statuses = [data["status"] for data, _ in store._requests.values()]
        assert statuses == ["pending"]


# =============================================================================
# Delivery handling
# =============================================================================


class TestDeliveryHandling:
    @pytest.mark.asyncio
    async def test_malformed_message_is_dropped(self, engine, queue):
        await queue._ready.put(("bad", "not json at all"))
        delivery = await queue.receive(wait_seconds=0.1)

        await engine.handle_delivery(delivery)

        assert queue.unacked_count == 0
        assert queue.size == 0

    @pytest.mark.asyncio
    async def test_unknown_request_is_dropped(self, engine, queue):
        body = '{"request_id": "gone", "source_data": {"a": "A"}, "languages": ["es"]}'
        await queue._ready.put(("orphan", body))
        delivery = await queue.receive(wait_seconds=0.1)

        await engine.handle_delivery(delivery)

        assert queue.unacked_count == 0
        assert queue.size == 0

    @pytest.mark.asyncio
    async def test_infrastructure_failure_requeues(self, provider):
        store = FlakyKeyStore()
        queue = InMemoryTaskQueue()
        lifecycle = RequestLifecycleManager(store)
        engine = TaskProcessingEngine(lifecycle, queue, provider)

        request = await engine.submit({"hello": "Hello"}, ["es"])
        await run_next(engine, queue)

        assert queue.size == 1
        assert queue.unacked_count == 0
        assert await lifecycle.get_status(request.id) == RequestStatus.PROCESSING

        # Redelivery succeeds once the store is back
        store.broken = False
        await run_next(engine, queue)
        assert await lifecycle.get_status(request.id) == RequestStatus.COMPLETED
        assert provider.calls_for("es") == ["Hello"]


# =============================================================================
# Consumer loop
# =============================================================================


class TestConsumer:
    @pytest.mark.asyncio
    async def test_consumer_processes_until_stopped(self, engine, queue, lifecycle):
        requests = [
            await engine.submit({f"key{i}": f"Text {i}"}, ["es", "fr"])
            for i in range(3)
        ]

        stop = asyncio.Event()
        consumer = asyncio.create_task(engine.run_consumer(stop))

        for _ in range(200):
            statuses = [await lifecycle.get_status(r.id) for r in requests]
            if all(s == RequestStatus.COMPLETED for s in statuses):
                break
            await asyncio.sleep(0.01)

        stop.set()
        await asyncio.wait_for(consumer, timeout=1)

        assert all(s == RequestStatus.COMPLETED for s in statuses)
        assert queue.size == 0
        assert queue.unacked_count == 0

    @pytest.mark.asyncio
    async def test_restore_unacked_redelivers(self, engine, queue, lifecycle):
        request = await engine.submit({"hello": "Hello"}, ["es"])
        await queue.receive(wait_seconds=0.1)
        assert queue.unacked_count == 1

        # Worker died before settling the message
        assert await queue.restore_unacked() == 1

        await run_next(engine, queue)
        assert await lifecycle.get_status(request.id) == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_stop_mid_task_leaves_message_for_redelivery(self, engine, queue, lifecycle, provider):
        request = await engine.submit({"hello": "Hello"}, ["es"])
        started = asyncio.Event()
        release = asyncio.Event()

        async def hang(text, target):
            started.set()
            await release.wait()

        provider.on_call = hang
        stop = asyncio.Event()
        consumer = asyncio.create_task(engine.run_consumer(stop))
        await asyncio.wait_for(started.wait(), timeout=1)

        stop.set()
        await asyncio.wait_for(consumer, timeout=1)

        assert consumer.done()
        assert queue.unacked_count == 1
        assert await lifecycle.get_status(request.id) == RequestStatus.PROCESSING

        # Next startup: the message comes back and the request finishes
        assert await queue.restore_unacked() == 1
        provider.on_call = None
        await run_next(engine, queue)
        assert await lifecycle.get_status(request.id) == RequestStatus.COMPLETED
