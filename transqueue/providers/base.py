"""
Translation provider interface.

A provider performs one stateless text -> text translation. It may be slow
and it may fail; failures are raised as ProviderError and handled by the
caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class TranslationProvider(ABC):
    """Base class for translation backends."""

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Unique identifier for this provider."""
        pass

    @abstractmethod
    async def translate(
        self,
        text: str,
        source_language: str,
        target_language: str,
        context: str = "",
    ) -> str:
        """
        Translate text from source_language to target_language.

        Args:
            text: Source text
            source_language: Language code of the text (e.g. "en")
            target_language: Language code to translate into (e.g. "es")
            context: Optional hint, such as the key the text belongs to

        Returns:
            Translated text

        Raises:
            ProviderError: if the translation could not be produced
        """
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(id={self.provider_id})>"
