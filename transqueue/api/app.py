"""
FastAPI application for the translation service.

This is the HTTP surface clients use to submit ARB source data, poll
requests, cancel them and maintain the shared key cache. The lifespan wires
storage, provider, lifecycle manager and engine, recovers unfinished
requests and runs the task consumer in the background.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from transqueue.api.auth import require_api_key
from transqueue.config import Settings, get_settings
from transqueue.core.errors import (
    InfrastructureError,
    NotFoundError,
    PublishError,
    StateConflictError,
)
from transqueue.core.languages import is_valid_language_code, normalize_language_code
from transqueue.core.models import (
    CacheTranslationsResult,
    RequestStatus,
    TranslationRequest,
)
from transqueue.integrations.sentry import init_sentry
from transqueue.logging_config import configure_logging
from transqueue.providers import LLMTranslationProvider, TranslationProvider, lm_from_settings
from transqueue.services import RequestLifecycleManager, TaskProcessingEngine
from transqueue.storage import StorageProvider, create_storage

logger = logging.getLogger(__name__)


# =============================================================================
# Request/Response Models
# =============================================================================


def _clean_languages(languages: list[str]) -> list[str]:
    cleaned: list[str] = []
    for code in languages:
        if not is_valid_language_code(code):
            raise ValueError(f"Invalid language code: {code!r}")
        code = normalize_language_code(code)
        if code not in cleaned:
            cleaned.append(code)
    return cleaned


class CreateTranslationRequest(BaseModel):
    source_data: dict[str, str] = Field(min_length=1)
    languages: list[str] = Field(min_length=1)

    @field_validator("languages")
    @classmethod
    def validate_languages(cls, value: list[str]) -> list[str]:
        return _clean_languages(value)


class CreateTranslationResponse(BaseModel):
    request_id: str
    status: RequestStatus
    message: str = "Translation request created successfully and queued for processing"


class TranslationRequestResponse(BaseModel):
    request_id: str
    status: RequestStatus
    source_data: dict[str, str]
    languages: list[str]
    translated_data: dict[str, dict[str, str]] | None = None
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None

    @classmethod
    def from_request(
        cls,
        request: TranslationRequest,
        translated_data: dict[str, dict[str, str]] | None = None,
    ) -> TranslationRequestResponse:
        return cls(
            request_id=request.id,
            status=request.status,
            source_data=request.source_data,
            languages=request.languages,
            translated_data=translated_data,
            created_at=request.created_at,
            updated_at=request.updated_at,
            completed_at=request.completed_at,
        )


class IncompleteRequestsResponse(BaseModel):
    requests: list[TranslationRequestResponse]
    count: int


class UpdateKeyRequest(BaseModel):
    value: str


class KeyResponse(BaseModel):
    key: str
    value: str
    translations: dict[str, str]


class CacheTranslationsRequest(BaseModel):
    # {language: {key: text}}
    translations: dict[str, dict[str, str]] = Field(min_length=1)


# =============================================================================
# Dependencies
# =============================================================================


def get_lifecycle(request: Request) -> RequestLifecycleManager:
    return request.app.state.lifecycle


def get_engine(request: Request) -> TaskProcessingEngine:
    return request.app.state.engine


# =============================================================================
# App Factory
# =============================================================================


def create_app(
    settings: Settings | None = None,
    storage: StorageProvider | None = None,
    provider: TranslationProvider | None = None,
) -> FastAPI:
    """
    Build the application.

    storage and provider default to what settings select; tests pass
    in-memory storage and a scripted provider instead.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Initialize services, recover work, run the consumer."""
        configure_logging(settings.log_level)
        if init_sentry(settings):
            logger.info("Sentry error tracking enabled")

        if settings.is_production and not settings.api_key:
            raise RuntimeError("API_KEY is required in production")

        app_storage = storage or create_storage(settings)
        app_provider = provider or LLMTranslationProvider(
            lm_from_settings(settings),
            max_attempts=settings.provider_max_attempts,
        )

        lifecycle = RequestLifecycleManager(app_storage.store, settings.source_language)
        engine = TaskProcessingEngine(
            lifecycle,
            app_storage.queue,
            app_provider,
            source_language=settings.source_language,
            concurrency=settings.worker_concurrency,
            poll_seconds=settings.queue_poll_seconds,
        )
        app.state.lifecycle = lifecycle
        app.state.engine = engine

        restored = await app_storage.queue.restore_unacked()
        if restored:
            logger.info(f"Restored {restored} unacknowledged tasks to the queue")

        if settings.recover_on_startup:
            try:
                await engine.recover()
            except Exception as e:
                logger.error(f"Failed to recover incomplete requests: {e}")

        stop = asyncio.Event()
        consumer = asyncio.create_task(engine.run_consumer(stop))
        logger.info(f"Translation service starting in {settings.environment} mode")

        yield

        logger.info("Translation service shutting down")
        stop.set()
        try:
            await asyncio.wait_for(consumer, timeout=settings.queue_poll_seconds + 5)
        except asyncio.TimeoutError:
            logger.warning("Task consumer did not stop in time and was cancelled")
        await app_storage.close()

    app = FastAPI(
        title="Translation Service API",
        description="Queue-backed translation of ARB source strings with a shared key cache",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_routes(app)
    return app


# =============================================================================
# Routes
# =============================================================================


def _register_routes(app: FastAPI) -> None:
    protected = [Depends(require_api_key)]

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @app.get("/api/v1/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "message": "Translation service is running"}

    # -------------------------------------------------------------------------
    # Translation requests
    # -------------------------------------------------------------------------

    @app.post(
        "/api/v1/translations",
        response_model=CreateTranslationResponse,
        status_code=201,
        dependencies=protected,
    )
    async def create_translation_request(
        body: CreateTranslationRequest,
        engine: TaskProcessingEngine = Depends(get_engine),
    ):
        """Create a translation request and queue it for processing."""
        try:
            request = await engine.submit(body.source_data, body.languages)
        except PublishError as e:
            raise HTTPException(status_code=502, detail=f"Failed to queue translation request: {e}")
        except InfrastructureError as e:
            raise HTTPException(status_code=503, detail=str(e))

        return CreateTranslationResponse(request_id=request.id, status=request.status)

    @app.get(
        "/api/v1/translations/incomplete",
        response_model=IncompleteRequestsResponse,
        dependencies=protected,
    )
    async def list_incomplete_requests(
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """List requests that are still pending or processing."""
        requests = await lifecycle.list_incomplete_requests()
        requests.sort(key=lambda r: r.created_at)
        return IncompleteRequestsResponse(
            requests=[TranslationRequestResponse.from_request(r) for r in requests],
            count=len(requests),
        )

    @app.get(
        "/api/v1/translations/{request_id}",
        response_model=TranslationRequestResponse,
        response_model_exclude_none=True,
        dependencies=protected,
    )
    async def get_translation_request(
        request_id: str,
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """Get request status, with translated data once completed."""
        try:
            request = await lifecycle.get_request(request_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Translation request not found")

        translated_data = None
        if request.status == RequestStatus.COMPLETED:
            translated_data = await lifecycle.get_translated_data_for_request_keys(
                request.source_data, request.languages
            )

        return TranslationRequestResponse.from_request(request, translated_data)

    @app.post(
        "/api/v1/translations/{request_id}/cancel",
        response_model=TranslationRequestResponse,
        response_model_exclude_none=True,
        dependencies=protected,
    )
    async def cancel_translation_request(
        request_id: str,
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """Cancel a pending or processing request."""
        try:
            request = await lifecycle.cancel_request(request_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Translation request not found")
        except StateConflictError as e:
            raise HTTPException(status_code=409, detail=str(e))

        return TranslationRequestResponse.from_request(request)

    # -------------------------------------------------------------------------
    # Translation keys
    # -------------------------------------------------------------------------

    @app.get("/api/v1/keys", dependencies=protected)
    async def export_translations(
        languages: str = Query(..., description="Comma-separated language codes"),
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ) -> dict[str, dict[str, str]]:
        """All cached translations for the languages, as {lang: {key: text}}."""
        try:
            codes = _clean_languages([c for c in languages.split(",") if c.strip()])
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return await lifecycle.get_translated_data(codes)

    @app.post(
        "/api/v1/keys/cache",
        response_model=CacheTranslationsResult,
        dependencies=protected,
    )
    async def cache_translations(
        body: CacheTranslationsRequest,
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """Store ready-made translations without running the provider."""
        translations: dict[str, dict[str, str]] = {}
        for lang, entries in body.translations.items():
            if not is_valid_language_code(lang):
                raise HTTPException(status_code=422, detail=f"Invalid language code: {lang!r}")
            translations.setdefault(normalize_language_code(lang), {}).update(entries)
        return await lifecycle.cache_translations(translations)

    @app.put(
        "/api/v1/keys/{key}",
        response_model=KeyResponse,
        dependencies=protected,
    )
    async def update_translation_key(
        key: str,
        body: UpdateKeyRequest,
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """Replace a key's source value; a change clears its translations."""
        try:
            updated = await lifecycle.update_key_value(key, body.value)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Translation key not found")
        return KeyResponse(**updated.model_dump())

    @app.delete("/api/v1/keys/{key}", status_code=204, dependencies=protected)
    async def delete_translation_key(
        key: str,
        lifecycle: RequestLifecycleManager = Depends(get_lifecycle),
    ):
        """Delete a key and all its translations."""
        try:
            await lifecycle.delete_key(key)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="Translation key not found")


app = create_app()
