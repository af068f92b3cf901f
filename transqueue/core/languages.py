"""
Language code utilities.

Codes are ISO 639-1/639-2 style ("es", "fil") with an optional region
suffix ("pt-br", "zh-tw"). Names are used to build clearer prompts.
"""

import re


LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "zh": "Chinese (Simplified)",
    "zh-tw": "Chinese (Traditional)",
    "pt": "Portuguese",
    "pt-br": "Portuguese (Brazil)",
    "fr": "French",
    "de": "German",
    "ja": "Japanese",
    "ko": "Korean",
    "it": "Italian",
    "ru": "Russian",
    "nl": "Dutch",
    "pl": "Polish",
    "vi": "Vietnamese",
    "th": "Thai",
    "tr": "Turkish",
    "id": "Indonesian",
    "ms": "Malay",
    "tl": "Tagalog",
    "sv": "Swedish",
    "no": "Norwegian",
    "da": "Danish",
    "fi": "Finnish",
    "el": "Greek",
    "cs": "Czech",
    "sk": "Slovak",
    "hu": "Hungarian",
    "ro": "Romanian",
    "bg": "Bulgarian",
    "hr": "Croatian",
    "sr": "Serbian",
    "uk": "Ukrainian",
    "hi": "Hindi",
    "bn": "Bengali",
    "ar": "Arabic",
    "he": "Hebrew",
    "fa": "Persian",
    "ur": "Urdu",
    "sw": "Swahili",
}

_LANGUAGE_CODE = re.compile(r"^[a-z]{2,3}(-[a-z0-9]{2,4})?$")


def normalize_language_code(code: str) -> str:
    """Lower-case and use '-' as the region separator ("pt_BR" -> "pt-br")."""
    return code.strip().lower().replace("_", "-")


def is_valid_language_code(code: str) -> bool:
    """Check a code is 2-3 letters with an optional region suffix."""
    return bool(_LANGUAGE_CODE.match(normalize_language_code(code)))


def get_language_name(code: str) -> str:
    """Get human-readable language name, falling back to the code itself."""
    return LANGUAGE_NAMES.get(normalize_language_code(code), code)
