from __future__ import annotations

import pytest

from ctxgrab.config import CaptureSettings
from ctxgrab.models import BrowserTarget, OutputFormat


def test_defaults_from_empty_environment() -> None:
    settings = CaptureSettings.from_env({})

    assert settings == CaptureSettings()
    assert settings.capture_timeout_ms == 1200
    assert settings.ping_timeout_ms == 800
    assert settings.diagnostics_deadline_ms == 2000
    assert settings.browser_min_text_chars == 1
    assert settings.browser_priority == (BrowserTarget.SAFARI, BrowserTarget.CHROME)
    assert settings.output_format is OutputFormat.FULL
    assert settings.include_selection_text is True
    assert settings.chrome_bridge_command == ()


def test_values_are_parsed_from_environment() -> None:
    settings = CaptureSettings.from_env(
        {
            "CTXGRAB_CAPTURE_TIMEOUT_MS": "2500",
            "CTXGRAB_OCR_RETRY_ATTEMPTS": "3",
            "CTXGRAB_BROWSER_MIN_TEXT_CHARS": "0",
            "CTXGRAB_BROWSER_TARGET": "Chrome",
            "CTXGRAB_BROWSER_PRIORITY": "chrome, safari, chrome",
            "CTXGRAB_OUTPUT_FORMAT": "BRIEF",
            "CTXGRAB_INCLUDE_SELECTION_TEXT": "no",
            "CTXGRAB_CHROME_BRIDGE_COMMAND": "node '/opt/bridges/chrome host.js' --stdio",
            "CTXGRAB_DESKTOP_AX_TEXT": "fixed window text",
            "CTXGRAB_DESKTOP_OCR_TEXT": "   ",
        }
    )

    assert settings.capture_timeout_ms == 2500
    assert settings.ocr_retry_attempts == 3
    assert settings.browser_min_text_chars == 0
    assert settings.browser_target_override is BrowserTarget.CHROME
    assert settings.browser_priority == (BrowserTarget.CHROME, BrowserTarget.SAFARI)
    assert settings.output_format is OutputFormat.BRIEF
    assert settings.include_selection_text is False
    assert settings.chrome_bridge_command == ("node", "/opt/bridges/chrome host.js", "--stdio")
    assert settings.accessibility_text_override == "fixed window text"
    assert settings.ocr_text_override is None


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("CTXGRAB_CAPTURE_TIMEOUT_MS", "0", "CTXGRAB_CAPTURE_TIMEOUT_MS must be >= 1"),
        ("CTXGRAB_CAPTURE_TIMEOUT_MS", " ", "CTXGRAB_CAPTURE_TIMEOUT_MS cannot be empty"),
        ("CTXGRAB_OCR_RETRY_ATTEMPTS", "0", "CTXGRAB_OCR_RETRY_ATTEMPTS must be >= 1"),
        ("CTXGRAB_BROWSER_MIN_TEXT_CHARS", "-1", "CTXGRAB_BROWSER_MIN_TEXT_CHARS must be >= 0"),
        ("CTXGRAB_BROWSER_TARGET", "firefox", "CTXGRAB_BROWSER_TARGET must be one of: safari, chrome"),
        ("CTXGRAB_BROWSER_PRIORITY", ", ,", "CTXGRAB_BROWSER_PRIORITY must name at least one browser"),
        ("CTXGRAB_OUTPUT_FORMAT", "verbose", "CTXGRAB_OUTPUT_FORMAT must be one of: brief, full"),
        ("CTXGRAB_INCLUDE_SELECTION_TEXT", "maybe", "CTXGRAB_INCLUDE_SELECTION_TEXT must be a boolean (true/false)"),
    ],
)
def test_invalid_values_are_rejected(name: str, value: str, message: str) -> None:
    with pytest.raises(ValueError) as exc_info:
        CaptureSettings.from_env({name: value})

    assert str(exc_info.value) == message


def test_non_numeric_timeout_is_rejected() -> None:
    with pytest.raises(ValueError):
        CaptureSettings.from_env({"CTXGRAB_PING_TIMEOUT_MS": "fast"})
