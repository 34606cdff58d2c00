from __future__ import annotations

import asyncio

import pytest

from ctxgrab import app
from ctxgrab.config import CaptureSettings
from ctxgrab.models import CaptureMode, OutputFormat
from ctxgrab.transport import (
    CommandTextExtractor,
    PingStatus,
    StaticTextExtractor,
    TesseractOcrExtractor,
    TransportDispatcher,
)


def test_load_settings_from_mapping() -> None:
    settings = app.load_settings({"CTXGRAB_OUTPUT_FORMAT": "brief"})

    assert settings.output_format is OutputFormat.BRIEF


def test_load_settings_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CTXGRAB_CAPTURE_TIMEOUT_MS", "900")

    assert app.load_settings().capture_timeout_ms == 900


def test_build_dispatcher_registers_configured_backends() -> None:
    settings = CaptureSettings(
        chrome_bridge_command=("chrome-bridge",),
        accessibility_command=("ax-helper", "--json"),
        screenshot_command=("screencapture", "-x", "-"),
    )

    dispatcher = app.build_dispatcher(settings)

    assert dispatcher.bridge_ids == ("chrome",)
    assert dispatcher.extractor_ids == ("desktop-ax", "desktop-ocr")
    assert dispatcher.has_backend("safari") is False


def test_text_overrides_win_over_commands() -> None:
    settings = CaptureSettings(
        accessibility_command=("ax-helper",),
        accessibility_text_override="fixed",
        ocr_command=("ocr-helper",),
        screenshot_command=("screencapture", "-"),
    )

    assert isinstance(app._accessibility_extractor(settings), StaticTextExtractor)
    assert isinstance(app._ocr_extractor(settings), CommandTextExtractor)
    assert isinstance(app._ocr_extractor(CaptureSettings(screenshot_command=("shot",))), TesseractOcrExtractor)
    assert app._ocr_extractor(CaptureSettings()) is None


def test_new_request_uses_settings() -> None:
    settings = CaptureSettings(capture_timeout_ms=3000, include_selection_text=False)

    request = app.new_request(settings, CaptureMode.MANUAL_MENU)

    assert request.mode is CaptureMode.MANUAL_MENU
    assert request.timeout_ms == 3000
    assert request.include_selection_text is False
    assert request.requested_at.endswith("Z")
    request.validate()


def test_build_session_uses_configured_output_format() -> None:
    session = app.build_session(CaptureSettings(output_format=OutputFormat.BRIEF))

    assert session.in_flight is False
    assert session.last_result is None


def test_diagnose_with_nothing_configured() -> None:
    settings = CaptureSettings()

    report = asyncio.run(app.diagnose(settings, TransportDispatcher()))

    assert [item.status for item in report.pings] == [PingStatus.UNREACHABLE, PingStatus.UNREACHABLE]
    assert [item.label for item in report.extractors] == ["not configured", "not configured"]
    assert report.last_capture == "never"
