"""
Translation providers.

The engine depends only on TranslationProvider; LLMTranslationProvider is
the production implementation built on DSPy.
"""

from transqueue.providers.base import TranslationProvider
from transqueue.providers.client import get_lm, lm_from_settings
from transqueue.providers.llm import LLMTranslationProvider, TranslateText

__all__ = [
    "TranslationProvider",
    "LLMTranslationProvider",
    "TranslateText",
    "get_lm",
    "lm_from_settings",
]
