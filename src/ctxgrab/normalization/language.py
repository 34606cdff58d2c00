"""Language detection for desktop captures that carry no language metadata."""

from __future__ import annotations

from functools import lru_cache

_LINGUA_TO_ISO: dict[str, str] = {
    "ENGLISH": "en",
    "GERMAN": "de",
    "FRENCH": "fr",
    "SPANISH": "es",
    "ITALIAN": "it",
    "PORTUGUESE": "pt",
    "DUTCH": "nl",
    "RUSSIAN": "ru",
    "JAPANESE": "ja",
    "CHINESE": "zh",
}
MIN_SAMPLE_CHARS = 40


@lru_cache(maxsize=1)
def _get_detector():
    from lingua import Language, LanguageDetectorBuilder

    languages = [getattr(Language, name) for name in _LINGUA_TO_ISO]
    return LanguageDetectorBuilder.from_languages(*languages).with_minimum_relative_distance(0.1).build()


def detect_language(text: str, *, sample_chars: int = 3000) -> str | None:
    """Return an ISO 639-1 code for *text*, or ``None`` when inconclusive.

    Only the first *sample_chars* characters are inspected; samples shorter
    than ``MIN_SAMPLE_CHARS`` are not classified.
    """
    sample = text[:sample_chars].strip()
    if len(sample) < MIN_SAMPLE_CHARS:
        return None

    result = _get_detector().detect_language_of(sample)
    if result is None:
        return None
    return _LINGUA_TO_ISO.get(result.name.upper())
