from __future__ import annotations

import pytest

import ctxgrab.normalization.engine as engine
from ctxgrab.models import (
    ExtractionInput,
    ExtractionMethod,
    Heading,
    Link,
    SourceKind,
    SourceType,
)
from ctxgrab.normalization.engine import (
    MAX_RAW_EXCERPT_BYTES,
    compute_confidence,
    normalize,
    raw_excerpt,
    truncation_warning,
)
from ctxgrab.normalization.text import MAX_FULL_TEXT_CHARS


ARTICLE_TEXT = (
    "Getting Started\n\n"
    "Install the command line tool with the package manager. "
    "Configure the API token before running the first sync.\n\n"
    "The sync command uploads changed files and prints a short report."
)


def _browser_extraction(**overrides) -> ExtractionInput:
    values = {
        "source": SourceKind.BROWSER,
        "url": "https://docs.example.com/start",
        "title": "  Getting   Started  ",
        "full_text": ARTICLE_TEXT,
        "headings": [Heading(level=1, text="Getting Started")],
        "links": [Link(text="Home", href="https://docs.example.com")],
        "site_name": "Example Docs",
        "language": "en",
        "browser": "chrome",
        "warnings": ["Readability fallback used."],
    }
    values.update(overrides)
    return ExtractionInput(**values)


def _desktop_extraction(**overrides) -> ExtractionInput:
    values = {
        "source": SourceKind.DESKTOP,
        "url": "app://com.apple.Notes",
        "title": "Groceries",
        "full_text": "Milk and eggs are needed. Bread from the corner bakery.",
        "app_name": "Notes",
        "app_bundle_id": "com.apple.Notes",
    }
    values.update(overrides)
    return ExtractionInput(**values)


@pytest.fixture(autouse=True)
def _fixed_language(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(engine, "detect_language", lambda text: "en" if text else None)


def test_browser_capture_normalization() -> None:
    context = normalize(
        _browser_extraction(),
        ExtractionMethod.BROWSER_EXTENSION,
        context_id="ctx-1",
        captured_at="2026-01-02T03:04:05.000Z",
        warnings=["chrome: slow response"],
    )

    assert context.context_id == "ctx-1"
    assert context.captured_at == "2026-01-02T03:04:05.000Z"
    assert context.source_type is SourceType.WEBPAGE
    assert context.title == "Getting Started"
    assert context.origin == "https://docs.example.com/start"
    assert context.app_or_site == "Example Docs"
    assert context.confidence == 0.92
    assert context.truncated is False
    assert context.token_estimate == -(-len(ARTICLE_TEXT) // 4)
    assert context.warnings == ("chrome: slow response", "Readability fallback used.")
    assert list(context.metadata) == sorted(context.metadata)
    assert context.metadata == {
        "browser": "chrome",
        "language": "en",
        "site_name": "Example Docs",
        "url": "https://docs.example.com/start",
    }
    assert "Getting Started" not in context.summary.split("\n")
    assert context.chunks[0].chunk_id == "chunk-001"
    assert context.raw_excerpt == ARTICLE_TEXT


def test_normalization_is_idempotent() -> None:
    extraction = _browser_extraction()
    kwargs = {"context_id": "ctx-1", "captured_at": "2026-01-02T03:04:05.000Z"}

    first = normalize(extraction, ExtractionMethod.BROWSER_EXTENSION, **kwargs)
    second = normalize(extraction, ExtractionMethod.BROWSER_EXTENSION, **kwargs)

    assert first == second


def test_site_falls_back_to_host() -> None:
    context = normalize(
        _browser_extraction(site_name=None),
        ExtractionMethod.BROWSER_EXTENSION,
        context_id="c",
        captured_at="t",
    )

    assert context.app_or_site == "docs.example.com"


def test_desktop_capture_normalization() -> None:
    context = normalize(
        _desktop_extraction(),
        ExtractionMethod.ACCESSIBILITY,
        context_id="ctx-2",
        captured_at="2026-01-02T03:04:05.000Z",
    )

    assert context.source_type is SourceType.DESKTOP_APP
    assert context.origin == "app://com.apple.Notes"
    assert context.app_or_site == "Notes"
    assert context.app_bundle_id == "com.apple.Notes"
    assert context.confidence == 0.85
    assert context.warnings == ()
    assert context.metadata == {
        "app_bundle_id": "com.apple.Notes",
        "app_name": "Notes",
        "language": "en",
        "source": "desktop",
    }


def test_untitled_capture() -> None:
    context = normalize(
        _desktop_extraction(title="   ", app_name=None),
        ExtractionMethod.METADATA_ONLY,
        context_id="c",
        captured_at="t",
    )

    assert context.title == "(untitled)"
    assert context.app_or_site == "Unknown App"
    assert context.confidence == 0.2


@pytest.mark.parametrize(
    ("method", "backend_confidence", "expected"),
    [
        (ExtractionMethod.BROWSER_EXTENSION, None, 0.92),
        (ExtractionMethod.ACCESSIBILITY, None, 0.85),
        (ExtractionMethod.METADATA_ONLY, None, 0.2),
        (ExtractionMethod.OCR, None, 0.55),
        (ExtractionMethod.OCR, 1.0, 0.8),
        (ExtractionMethod.OCR, 0.4, 0.5),
        (ExtractionMethod.OCR, 7.0, 0.8),
    ],
)
def test_compute_confidence(method: ExtractionMethod, backend_confidence: float | None, expected: float) -> None:
    assert compute_confidence(method, backend_confidence) == pytest.approx(expected)


def test_low_ocr_confidence_adds_warning() -> None:
    context = normalize(
        _desktop_extraction(ocr_confidence=0.4),
        ExtractionMethod.OCR,
        context_id="c",
        captured_at="t",
    )

    assert context.warnings == ("OCR confidence 0.40 is below 0.55; text may contain recognition errors.",)
    assert context.metadata["ocr_confidence"] == "0.40"
    assert context.confidence == pytest.approx(0.5)


def test_truncation_boundary() -> None:
    at_limit = normalize(
        _desktop_extraction(full_text="a" * MAX_FULL_TEXT_CHARS),
        ExtractionMethod.ACCESSIBILITY,
        context_id="c",
        captured_at="t",
    )
    over_limit = normalize(
        _desktop_extraction(full_text="a" * (MAX_FULL_TEXT_CHARS + 1)),
        ExtractionMethod.ACCESSIBILITY,
        context_id="c",
        captured_at="t",
    )

    assert at_limit.truncated is False
    assert truncation_warning() not in at_limit.warnings
    assert over_limit.truncated is True
    assert over_limit.warnings == (truncation_warning(),)
    assert over_limit.token_estimate == MAX_FULL_TEXT_CHARS // 4
    assert sum(len(chunk.text) for chunk in over_limit.chunks) == MAX_FULL_TEXT_CHARS


def test_duplicate_warnings_are_collapsed() -> None:
    context = normalize(
        _browser_extraction(warnings=["Same warning."]),
        ExtractionMethod.BROWSER_EXTENSION,
        context_id="c",
        captured_at="t",
        warnings=["Same warning.", "  Same warning.  "],
    )

    assert context.warnings == ("Same warning.",)


def test_raw_excerpt_caps_utf8_bytes() -> None:
    text = "é" * 5000

    excerpt = raw_excerpt(text)

    assert len(excerpt.encode("utf-8")) <= MAX_RAW_EXCERPT_BYTES
    assert excerpt == "é" * 4000
    assert raw_excerpt("short") == "short"
