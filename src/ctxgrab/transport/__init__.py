"""Backend transport: bounded subprocess calls and desktop text collaborators."""

from ctxgrab.transport.dispatcher import (
    BACKEND_ACCESSIBILITY,
    BACKEND_CHROME,
    BACKEND_OCR,
    BACKEND_SAFARI,
    BackendResult,
    BridgeCommand,
    PingResult,
    PingStatus,
    TransportDispatcher,
)
from ctxgrab.transport.extractors import (
    CommandScreenshotSource,
    CommandTextExtractor,
    ExtractedText,
    ExtractorContext,
    ExtractorError,
    ScreenshotSource,
    StaticTextExtractor,
    TesseractOcrExtractor,
    TextExtractor,
)

__all__ = [
    "BACKEND_ACCESSIBILITY",
    "BACKEND_CHROME",
    "BACKEND_OCR",
    "BACKEND_SAFARI",
    "BackendResult",
    "BridgeCommand",
    "CommandScreenshotSource",
    "CommandTextExtractor",
    "ExtractedText",
    "ExtractorContext",
    "ExtractorError",
    "PingResult",
    "PingStatus",
    "ScreenshotSource",
    "StaticTextExtractor",
    "TesseractOcrExtractor",
    "TextExtractor",
    "TransportDispatcher",
]
