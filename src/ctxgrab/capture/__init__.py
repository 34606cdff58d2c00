"""Capture resolution: browser detection, tier fallback and the capture session."""

from ctxgrab.capture.backends import (
    AccessibilityBackend,
    BackendKind,
    BrowserBackend,
    MetadataOnlyBackend,
    OcrBackend,
)
from ctxgrab.capture.profiles import accessibility_profile
from ctxgrab.capture.resolver import CaptureResolver
from ctxgrab.capture.session import CaptureInProgressError, CaptureOutcome, CaptureSession
from ctxgrab.capture.targets import detect_browser_target

__all__ = [
    "AccessibilityBackend",
    "BackendKind",
    "BrowserBackend",
    "CaptureInProgressError",
    "CaptureOutcome",
    "CaptureResolver",
    "CaptureSession",
    "MetadataOnlyBackend",
    "OcrBackend",
    "accessibility_profile",
    "detect_browser_target",
]
