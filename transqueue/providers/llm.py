"""
LLM-powered translation provider.

Uses a DSPy signature so the prompt is declared, not hand-built. Transient
API failures are retried with exponential backoff; the last failure is
raised as ProviderError.
"""

from __future__ import annotations

import logging

import dspy
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from transqueue.core.errors import ProviderError
from transqueue.core.languages import get_language_name, normalize_language_code
from transqueue.providers.base import TranslationProvider

logger = logging.getLogger(__name__)


# =============================================================================
# DSPy Signature
# =============================================================================


class TranslateText(dspy.Signature):
    """
    You are a professional translator. Translate the given text accurately
    while preserving the meaning, tone and any placeholders such as {name}.
    Return only the translated text without explanations, formatting or quotes.
    """

    text: str = dspy.InputField(desc="Text to translate")
    source_language: str = dspy.InputField(desc="Language the text is written in")
    target_language: str = dspy.InputField(desc="Language to translate into")
    context: str = dspy.InputField(desc="Where the text is used (optional)", default="")

    translated_text: str = dspy.OutputField(desc="Translated text only")


# =============================================================================
# Provider
# =============================================================================


class LLMTranslationProvider(TranslationProvider):
    """
    Translation provider backed by a DSPy language model.

    Usage:
        provider = LLMTranslationProvider(lm_from_settings(settings))
        text = await provider.translate("Hello", "en", "es", "Translation key: hello")
    """

    def __init__(self, lm: dspy.LM, max_attempts: int = 3):
        self.lm = lm
        self.max_attempts = max_attempts
        self._translate_module: dspy.Predict | None = None

    @property
    def provider_id(self) -> str:
        return "llm"

    @property
    def translate_module(self) -> dspy.Predict:
        if self._translate_module is None:
            self._translate_module = dspy.Predict(TranslateText)
        return self._translate_module

    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str = "",
    ) -> str:
        if not text or not text.strip():
            return text

        source = normalize_language_code(source_language)
        target = normalize_language_code(target_language)
        if source == target:
            return text

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=10),
                reraise=True,
            ):
                with attempt:
                    translated = await self._call(text, source, target, context)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Translation {source}->{target} failed: {e}") from e

        return translated

    async def _call(self, text: str, source: str, target: str, context: str) -> str:
        with dspy.context(lm=self.lm):
            result = await self.translate_module.acall(
                text=text,
                source_language=get_language_name(source),
                target_language=get_language_name(target),
                context=context or "general text",
            )

        translated = (result.translated_text or "").strip()
        if not translated:
            raise ProviderError(f"Empty translation {source}->{target}")
        return translated
