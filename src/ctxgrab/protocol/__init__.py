"""Versioned envelope codec for browser extension bridges."""

from ctxgrab.protocol.codec import (
    capture_request_envelope,
    decode,
    encode,
    encode_json,
    last_json_line,
    validate,
)
from ctxgrab.protocol.models import (
    MAX_ENVELOPE_CHARS,
    MAX_FULL_TEXT_CHARS,
    PROTOCOL_VERSION,
    BrowserCapture,
    CaptureRequestPayload,
    CaptureResultPayload,
    Envelope,
    ErrorCode,
    ErrorPayload,
    MessageType,
    ProtocolError,
    ValidationIssue,
)

__all__ = [
    "MAX_ENVELOPE_CHARS",
    "MAX_FULL_TEXT_CHARS",
    "PROTOCOL_VERSION",
    "BrowserCapture",
    "CaptureRequestPayload",
    "CaptureResultPayload",
    "Envelope",
    "ErrorCode",
    "ErrorPayload",
    "MessageType",
    "ProtocolError",
    "ValidationIssue",
    "capture_request_envelope",
    "decode",
    "encode",
    "encode_json",
    "last_json_line",
    "validate",
]
