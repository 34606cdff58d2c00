"""Turn one extraction into a deterministic ``NormalizedContext``."""

from __future__ import annotations

from typing import Sequence
from urllib.parse import urlparse

from ctxgrab.models import (
    ExtractionInput,
    ExtractionMethod,
    NormalizedContext,
    SourceKind,
    SourceType,
)
from ctxgrab.normalization.chunking import build_chunks
from ctxgrab.normalization.language import detect_language
from ctxgrab.normalization.summarize import MAX_KEY_POINTS, MAX_SUMMARY_LINES, summarize
from ctxgrab.normalization.text import (
    MAX_FULL_TEXT_CHARS,
    collapse_whitespace,
    estimate_tokens,
    sanitize_text,
    truncate_text,
    unique_in_order,
)


MAX_RAW_EXCERPT_BYTES = 8_000
OCR_CONFIDENCE_FLOOR = 0.55
UNTITLED = "(untitled)"

METHOD_CONFIDENCE = {
    ExtractionMethod.BROWSER_EXTENSION: 0.92,
    ExtractionMethod.ACCESSIBILITY: 0.85,
    ExtractionMethod.METADATA_ONLY: 0.2,
}
OCR_BASE_CONFIDENCE = 0.3
OCR_CONFIDENCE_SPAN = 0.5
OCR_UNKNOWN_CONFIDENCE = 0.55

_LANGUAGE_DETECTION_METHODS = frozenset({ExtractionMethod.ACCESSIBILITY, ExtractionMethod.OCR})


def truncation_warning(limit: int = MAX_FULL_TEXT_CHARS) -> str:
    return f"Capture text exceeded {limit} characters and was truncated."


def compute_confidence(method: ExtractionMethod, backend_confidence: float | None = None) -> float:
    if method is ExtractionMethod.OCR:
        if backend_confidence is None:
            return OCR_UNKNOWN_CONFIDENCE
        clamped = max(0.0, min(1.0, backend_confidence))
        return round(OCR_BASE_CONFIDENCE + OCR_CONFIDENCE_SPAN * clamped, 4)
    return METHOD_CONFIDENCE[method]


def raw_excerpt(text: str, limit_bytes: int = MAX_RAW_EXCERPT_BYTES) -> str:
    """First *limit_bytes* of UTF-8 text without splitting a code point."""
    encoded = text.encode("utf-8")
    if len(encoded) <= limit_bytes:
        return text
    return encoded[:limit_bytes].decode("utf-8", errors="ignore")


def _url_host(url: str) -> str | None:
    try:
        host = urlparse(url).hostname
    except ValueError:
        return None
    return host or None


def _origin(extraction: ExtractionInput) -> str:
    url = extraction.url.strip()
    if extraction.source is SourceKind.BROWSER:
        return url or "about:blank"
    return url or f"app://{extraction.app_bundle_id or 'unknown'}"


def _app_or_site(extraction: ExtractionInput, title: str) -> str:
    if extraction.source is SourceKind.BROWSER:
        for candidate in (extraction.site_name, _url_host(extraction.url), extraction.browser):
            if candidate and candidate.strip():
                return collapse_whitespace(candidate)
        return "unknown"
    for candidate in (extraction.app_name, title if title != UNTITLED else None):
        if candidate and candidate.strip():
            return collapse_whitespace(candidate)
    return "Unknown App"


def _metadata(extraction: ExtractionInput, language: str | None) -> dict[str, str]:
    if extraction.source is SourceKind.BROWSER:
        values = {
            "browser": extraction.browser,
            "url": extraction.url,
            "meta_description": extraction.meta_description,
            "site_name": extraction.site_name,
            "language": language,
            "author": extraction.author,
            "published_time": extraction.published_time,
            "selection_text": extraction.selection_text,
        }
    else:
        values = {
            "source": "desktop",
            "app_name": extraction.app_name,
            "app_bundle_id": extraction.app_bundle_id,
            "language": language,
            "ocr_confidence": (
                f"{extraction.ocr_confidence:.2f}" if extraction.ocr_confidence is not None else None
            ),
        }
    return {key: values[key].strip() for key in sorted(values) if values[key] and values[key].strip()}


def normalize(
    extraction: ExtractionInput,
    method: ExtractionMethod,
    *,
    context_id: str,
    captured_at: str,
    warnings: Sequence[str] = (),
    summary_limit: int = MAX_SUMMARY_LINES,
    key_point_limit: int = MAX_KEY_POINTS,
) -> NormalizedContext:
    """Clean, truncate, summarize and chunk one extraction.

    Pure: the result depends only on the arguments.  ``context_id`` and
    ``captured_at`` are passed through untouched.
    """
    cleaned = sanitize_text(extraction.full_text)
    text, truncated = truncate_text(cleaned)

    extra_warnings: list[str] = []
    if truncated:
        extra_warnings.append(truncation_warning())

    if method is ExtractionMethod.OCR and extraction.ocr_confidence is not None:
        if extraction.ocr_confidence < OCR_CONFIDENCE_FLOOR:
            extra_warnings.append(
                f"OCR confidence {extraction.ocr_confidence:.2f} is below {OCR_CONFIDENCE_FLOOR:.2f}; "
                "text may contain recognition errors."
            )

    language = extraction.language
    if language is None and method in _LANGUAGE_DETECTION_METHODS:
        language = detect_language(text)

    title = collapse_whitespace(extraction.title) or UNTITLED
    summary, key_points = summarize(
        text,
        extraction.headings,
        summary_limit=summary_limit,
        key_point_limit=key_point_limit,
    )

    return NormalizedContext(
        context_id=context_id,
        captured_at=captured_at,
        source_type=SourceType.WEBPAGE if extraction.source is SourceKind.BROWSER else SourceType.DESKTOP_APP,
        title=title,
        origin=_origin(extraction),
        app_or_site=_app_or_site(extraction, title),
        extraction_method=method,
        confidence=compute_confidence(method, extraction.ocr_confidence),
        truncated=truncated,
        token_estimate=estimate_tokens(text),
        metadata=_metadata(extraction, language),
        warnings=tuple(unique_in_order([*warnings, *extraction.warnings, *extra_warnings])),
        summary=summary,
        key_points=tuple(key_points),
        chunks=tuple(build_chunks(text, extraction.headings)),
        raw_excerpt=raw_excerpt(text),
        app_bundle_id=extraction.app_bundle_id,
    )
