"""Wire message shapes exchanged with browser extension bridges."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from ctxgrab.models import Heading, Link


PROTOCOL_VERSION = "1"
MAX_FULL_TEXT_CHARS = 200_000
MAX_ENVELOPE_CHARS = 250_000


class MessageType(str, Enum):
    HOST_CAPTURE_REQUEST = "host.capture.request"
    EXTENSION_CAPTURE_RESULT = "extension.capture.result"
    EXTENSION_ERROR = "extension.error"


class ErrorCode(str, Enum):
    PROTOCOL_VERSION = "ERR_PROTOCOL_VERSION"
    PAYLOAD_INVALID = "ERR_PAYLOAD_INVALID"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    TIMEOUT = "ERR_TIMEOUT"
    EXTENSION_UNAVAILABLE = "ERR_EXTENSION_UNAVAILABLE"


@dataclass(slots=True)
class ProtocolError(Exception):
    """Domain error raised when a wire message cannot be accepted."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    code: ErrorCode
    message: str


@dataclass(frozen=True, slots=True)
class CaptureRequestPayload:
    request_id: str
    mode: str
    requested_at: str
    timeout_ms: int
    include_selection_text: bool
    protocol_version: str = PROTOCOL_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "protocolVersion": self.protocol_version,
            "requestId": self.request_id,
            "mode": self.mode,
            "requestedAt": self.requested_at,
            "timeoutMs": self.timeout_ms,
            "includeSelectionText": self.include_selection_text,
        }


@dataclass(frozen=True, slots=True)
class BrowserCapture:
    """Browser context as reported by an extension bridge."""

    browser: str
    url: str
    title: str
    full_text: str
    headings: tuple[Heading, ...] = ()
    links: tuple[Link, ...] = ()
    meta_description: str | None = None
    site_name: str | None = None
    language: str | None = None
    author: str | None = None
    published_time: str | None = None
    selection_text: str | None = None
    extraction_warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": "browser",
            "browser": self.browser,
            "url": self.url,
            "title": self.title,
            "fullText": self.full_text,
            "headings": [{"level": item.level, "text": item.text} for item in self.headings],
            "links": [{"text": item.text, "href": item.href} for item in self.links],
        }
        optional = {
            "metaDescription": self.meta_description,
            "siteName": self.site_name,
            "language": self.language,
            "author": self.author,
            "publishedTime": self.published_time,
            "selectionText": self.selection_text,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        if self.extraction_warnings:
            data["extractionWarnings"] = list(self.extraction_warnings)
        return data


@dataclass(frozen=True, slots=True)
class CaptureResultPayload:
    capture: BrowserCapture
    protocol_version: str = PROTOCOL_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {"protocolVersion": self.protocol_version, "capture": self.capture.to_dict()}


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    code: ErrorCode
    message: str
    recoverable: bool
    details: dict[str, str] | None = None
    protocol_version: str = PROTOCOL_VERSION

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "protocolVersion": self.protocol_version,
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
        }
        if self.details is not None:
            data["details"] = dict(self.details)
        return data


Payload = Union[CaptureRequestPayload, CaptureResultPayload, ErrorPayload]


@dataclass(frozen=True, slots=True)
class Envelope:
    id: str
    type: MessageType
    timestamp: str
    payload: Payload

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "payload": self.payload.to_dict(),
        }
