"""Builders that turn backend output into an ``ExtractionInput``."""

from __future__ import annotations

import re
from typing import Sequence

from ctxgrab.capture.targets import browser_display_name
from ctxgrab.models import BrowserTarget, ExtractionInput, ForegroundApp, SourceKind, dedupe_links
from ctxgrab.protocol.models import BrowserCapture


_CRLF_RE = re.compile(r"\r\n?")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")

METADATA_ONLY_HINT = "Open Accessibility and Screen Recording settings and retry."


def normalize_desktop_text(text: str) -> str:
    """Line-ending and blank-line cleanup applied before threshold checks."""
    value = _CRLF_RE.sub("\n", text)
    value = _TRAILING_SPACE_RE.sub("\n", value)
    value = _BLANK_RUN_RE.sub("\n\n", value)
    return value.strip()


def app_origin(bundle_id: str | None) -> str:
    return f"app://{bundle_id}" if bundle_id else "app://unknown"


def from_browser_capture(capture: BrowserCapture, *, include_selection_text: bool) -> ExtractionInput:
    return ExtractionInput(
        source=SourceKind.BROWSER,
        url=capture.url,
        title=capture.title,
        full_text=capture.full_text,
        headings=list(capture.headings),
        links=dedupe_links(list(capture.links)),
        meta_description=capture.meta_description,
        site_name=capture.site_name,
        language=capture.language,
        author=capture.author,
        published_time=capture.published_time,
        selection_text=capture.selection_text if include_selection_text else None,
        browser=capture.browser,
        warnings=list(capture.extraction_warnings),
    )


def from_desktop_text(app: ForegroundApp, text: str, *, ocr_confidence: float | None = None) -> ExtractionInput:
    return ExtractionInput(
        source=SourceKind.DESKTOP,
        url=app_origin(app.bundle_id),
        title=app.window_title or app.app_name or "",
        full_text=text,
        app_name=app.app_name,
        app_bundle_id=app.bundle_id,
        ocr_confidence=ocr_confidence,
    )


def metadata_only(
    app: ForegroundApp,
    *,
    browser: BrowserTarget | None,
    partial_text: str | None,
    warnings: Sequence[str],
) -> ExtractionInput:
    """Synthesize a minimal extraction from what the caller already knows.

    Performs no I/O and cannot fail.
    """
    if partial_text:
        excerpt = partial_text
    else:
        detail = " ".join(warnings) if warnings else "No backend returned content."
        excerpt = f"No extractable text captured. {detail} {METADATA_ONLY_HINT}"

    label = app.app_name or (browser_display_name(browser) if browser is not None else None) or "Unknown App"
    title = app.window_title or f"{label} (metadata only)"

    if app.url:
        return ExtractionInput(
            source=SourceKind.BROWSER,
            url=app.url,
            title=title,
            full_text=excerpt,
            browser=browser.value if browser is not None else None,
            app_name=app.app_name,
            app_bundle_id=app.bundle_id,
        )

    return ExtractionInput(
        source=SourceKind.DESKTOP,
        url=app_origin(app.bundle_id),
        title=title,
        full_text=excerpt,
        app_name=app.app_name,
        app_bundle_id=app.bundle_id,
    )
