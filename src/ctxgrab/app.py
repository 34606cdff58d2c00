"""Composition root wiring settings, transport, resolver and session together."""

from __future__ import annotations

import logging
from typing import Mapping

from dotenv import load_dotenv

from ctxgrab.capture.resolver import CaptureResolver
from ctxgrab.capture.session import CaptureSession
from ctxgrab.config import CaptureSettings
from ctxgrab.diagnostics import DiagnosticsReport, run_diagnostics
from ctxgrab.models import CaptureMode, CaptureRequest, ForegroundApp
from ctxgrab.transport.dispatcher import (
    BACKEND_ACCESSIBILITY,
    BACKEND_CHROME,
    BACKEND_OCR,
    BACKEND_SAFARI,
    BridgeCommand,
    TransportDispatcher,
)
from ctxgrab.transport.extractors import (
    CommandScreenshotSource,
    CommandTextExtractor,
    StaticTextExtractor,
    TesseractOcrExtractor,
    TextExtractor,
)


logger = logging.getLogger(__name__)


def load_settings(environ: Mapping[str, str] | None = None) -> CaptureSettings:
    """Read settings from *environ*, or from the process environment plus ``.env``."""
    if environ is None:
        load_dotenv()
    return CaptureSettings.from_env(environ)


def _accessibility_extractor(settings: CaptureSettings) -> TextExtractor | None:
    if settings.accessibility_text_override is not None:
        return StaticTextExtractor(settings.accessibility_text_override)
    if settings.accessibility_command:
        return CommandTextExtractor(settings.accessibility_command, timeout_ms=settings.accessibility_timeout_ms)
    return None


def _ocr_extractor(settings: CaptureSettings) -> TextExtractor | None:
    if settings.ocr_text_override is not None:
        return StaticTextExtractor(settings.ocr_text_override)
    if settings.ocr_command:
        return CommandTextExtractor(settings.ocr_command, timeout_ms=settings.ocr_timeout_ms)
    if settings.screenshot_command:
        return TesseractOcrExtractor(
            CommandScreenshotSource(settings.screenshot_command, timeout_ms=settings.ocr_timeout_ms)
        )
    return None


def build_dispatcher(settings: CaptureSettings) -> TransportDispatcher:
    bridges: dict[str, BridgeCommand] = {}
    if settings.safari_bridge_command:
        bridges[BACKEND_SAFARI] = BridgeCommand(argv=settings.safari_bridge_command)
    if settings.chrome_bridge_command:
        bridges[BACKEND_CHROME] = BridgeCommand(argv=settings.chrome_bridge_command)

    extractors: dict[str, TextExtractor] = {}
    accessibility = _accessibility_extractor(settings)
    if accessibility is not None:
        extractors[BACKEND_ACCESSIBILITY] = accessibility
    ocr = _ocr_extractor(settings)
    if ocr is not None:
        extractors[BACKEND_OCR] = ocr

    logger.info(
        "Configured bridges: %s; desktop extractors: %s",
        ", ".join(bridges) or "none",
        ", ".join(extractors) or "none",
    )
    return TransportDispatcher(bridges, extractors)


def new_request(settings: CaptureSettings, mode: CaptureMode = CaptureMode.MANUAL_HOTKEY) -> CaptureRequest:
    return CaptureRequest.create(
        mode,
        timeout_ms=settings.capture_timeout_ms,
        include_selection_text=settings.include_selection_text,
    )


def build_session(settings: CaptureSettings | None = None) -> CaptureSession:
    resolved = settings or load_settings()
    resolver = CaptureResolver(build_dispatcher(resolved), resolved)
    return CaptureSession(resolver, output_format=resolved.output_format)


async def diagnose(
    settings: CaptureSettings,
    dispatcher: TransportDispatcher,
    *,
    session: CaptureSession | None = None,
    front_app: ForegroundApp | None = None,
) -> DiagnosticsReport:
    return await run_diagnostics(
        dispatcher,
        ping_timeout_ms=settings.ping_timeout_ms,
        deadline_ms=settings.diagnostics_deadline_ms,
        front_app=front_app,
        last_result=session.last_result if session is not None else None,
    )
