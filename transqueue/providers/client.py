"""
LLM client configuration using DSPy.

Supports OpenAI, Gemini and Anthropic through litellm model prefixes.
"""

from __future__ import annotations

from functools import lru_cache

import dspy

from transqueue.config import Settings


@lru_cache
def get_lm(
    provider: str,
    model: str,
    api_key: str,
    temperature: float = 0.3,
    max_tokens: int = 1000,
) -> dspy.LM:
    """
    Get configured language model.

    Args:
        provider: 'gemini', 'openai', or 'anthropic'
        model: Provider-specific model name
        api_key: API key for the provider
        temperature: Sampling temperature; low keeps translations consistent
        max_tokens: Completion limit

    Returns:
        Configured DSPy LM instance.
    """
    if provider not in ("gemini", "openai", "anthropic"):
        raise ValueError(f"Unknown provider: {provider}")
    if not api_key:
        raise ValueError(f"API key for provider '{provider}' not set")

    return dspy.LM(
        model=f"{provider}/{model}",
        api_key=api_key,
        temperature=temperature,
        max_tokens=max_tokens,
    )


def lm_from_settings(settings: Settings) -> dspy.LM:
    """Build the LM selected by settings.llm_provider."""
    provider = settings.llm_provider

    if provider == "gemini":
        # Accept both GOOGLE_API_KEY and GEMINI_API_KEY
        model = settings.gemini_model
        api_key = settings.google_api_key or settings.gemini_api_key
    elif provider == "openai":
        model = settings.openai_model
        api_key = settings.openai_api_key
    elif provider == "anthropic":
        model = settings.anthropic_model
        api_key = settings.anthropic_api_key
    else:
        raise ValueError(f"Unknown provider: {provider}")

    return get_lm(
        provider,
        model,
        api_key,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )
