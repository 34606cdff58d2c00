"""Encode, decode and validate versioned capture envelopes."""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Mapping

from ctxgrab.models import CaptureRequest, Heading, Link
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
    Payload,
    ProtocolError,
    ValidationIssue,
)


logger = logging.getLogger(__name__)

_BROWSERS = frozenset({"chrome", "safari"})
_CAPTURE_MODES = frozenset({"manual_hotkey", "manual_menu"})
_OPTIONAL_CAPTURE_FIELDS = {
    "metaDescription": "meta_description",
    "siteName": "site_name",
    "language": "language",
    "author": "author",
    "publishedTime": "published_time",
    "selectionText": "selection_text",
}


def _invalid(message: str) -> ProtocolError:
    return ProtocolError(ErrorCode.PAYLOAD_INVALID, message)


def _require_str(data: Mapping[str, Any], key: str, *, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise _invalid(f"{where}.{key} must be a string")
    return value


def _require_bool(data: Mapping[str, Any], key: str, *, where: str) -> bool:
    value = data.get(key)
    if not isinstance(value, bool):
        raise _invalid(f"{where}.{key} must be a boolean")
    return value


def _optional_str(data: Mapping[str, Any], key: str, *, where: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _invalid(f"{where}.{key} must be a string when present")
    return value


def _parse_headings(raw: Any) -> tuple[Heading, ...]:
    if not isinstance(raw, list):
        raise _invalid("capture.headings must be an array")
    headings: list[Heading] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise _invalid(f"capture.headings[{index}] must be an object")
        level = item.get("level")
        if isinstance(level, bool) or not isinstance(level, int) or not 1 <= level <= 6:
            raise _invalid(f"capture.headings[{index}].level must be an integer between 1 and 6")
        headings.append(Heading(level=level, text=_require_str(item, "text", where=f"capture.headings[{index}]")))
    return tuple(headings)


def _parse_links(raw: Any) -> tuple[Link, ...]:
    if not isinstance(raw, list):
        raise _invalid("capture.links must be an array")
    links: list[Link] = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise _invalid(f"capture.links[{index}] must be an object")
        where = f"capture.links[{index}]"
        links.append(Link(text=_require_str(item, "text", where=where), href=_require_str(item, "href", where=where)))
    return tuple(links)


def _parse_capture(raw: Any) -> BrowserCapture:
    if not isinstance(raw, dict):
        raise _invalid("payload.capture must be an object")
    if raw.get("source") != "browser":
        raise _invalid('capture.source must be "browser"')
    browser = raw.get("browser")
    if browser not in _BROWSERS:
        raise _invalid('capture.browser must be "chrome" or "safari"')

    full_text = _require_str(raw, "fullText", where="capture")
    if len(full_text) > MAX_FULL_TEXT_CHARS:
        raise ProtocolError(
            ErrorCode.PAYLOAD_TOO_LARGE,
            f"capture.fullText exceeds {MAX_FULL_TEXT_CHARS} characters ({len(full_text)})",
        )

    optional = {
        attribute: _optional_str(raw, key, where="capture") for key, attribute in _OPTIONAL_CAPTURE_FIELDS.items()
    }

    warnings_raw = raw.get("extractionWarnings", [])
    if not isinstance(warnings_raw, list) or not all(isinstance(item, str) for item in warnings_raw):
        raise _invalid("capture.extractionWarnings must be an array of strings")

    return BrowserCapture(
        browser=browser,
        url=_require_str(raw, "url", where="capture"),
        title=_require_str(raw, "title", where="capture"),
        full_text=full_text,
        headings=_parse_headings(raw.get("headings")),
        links=_parse_links(raw.get("links")),
        extraction_warnings=tuple(warnings_raw),
        **optional,
    )


def _parse_request_payload(payload: Mapping[str, Any]) -> CaptureRequestPayload:
    mode = payload.get("mode")
    if mode not in _CAPTURE_MODES:
        raise _invalid("payload.mode must be manual_hotkey or manual_menu")
    timeout_ms = payload.get("timeoutMs")
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        raise _invalid("payload.timeoutMs must be a number")
    if not math.isfinite(timeout_ms) or timeout_ms <= 0:
        raise _invalid("payload.timeoutMs must be a positive finite number")
    return CaptureRequestPayload(
        request_id=_require_str(payload, "requestId", where="payload"),
        mode=mode,
        requested_at=_require_str(payload, "requestedAt", where="payload"),
        timeout_ms=timeout_ms,
        include_selection_text=_require_bool(payload, "includeSelectionText", where="payload"),
    )


def _parse_error_payload(payload: Mapping[str, Any]) -> ErrorPayload:
    try:
        code = ErrorCode(payload.get("code"))
    except ValueError as exc:
        raise _invalid("payload.code is not a known error code") from exc

    details_raw = payload.get("details")
    details: dict[str, str] | None = None
    if details_raw is not None:
        if not isinstance(details_raw, dict) or not all(
            isinstance(key, str) and isinstance(value, str) for key, value in details_raw.items()
        ):
            raise _invalid("payload.details must map strings to strings")
        details = dict(details_raw)

    return ErrorPayload(
        code=code,
        message=_require_str(payload, "message", where="payload"),
        recoverable=_require_bool(payload, "recoverable", where="payload"),
        details=details,
    )


def _parse_payload(message_type: MessageType, payload: Mapping[str, Any]) -> Payload:
    if message_type is MessageType.HOST_CAPTURE_REQUEST:
        return _parse_request_payload(payload)
    if message_type is MessageType.EXTENSION_CAPTURE_RESULT:
        return CaptureResultPayload(capture=_parse_capture(payload.get("capture")))
    return _parse_error_payload(payload)


def decode(raw: str | bytes | Mapping[str, Any]) -> Envelope:
    """Parse and validate one wire message.

    The protocol version is checked as soon as the payload object is
    reachable, so version skew is reported even for otherwise broken messages.
    Raises ``ProtocolError`` with a canonical error code.
    """
    if isinstance(raw, (str, bytes)):
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise _invalid(f"Message is not valid JSON: {exc.msg}") from exc
    else:
        data = raw

    if not isinstance(data, dict):
        raise _invalid("Message must be a JSON object")

    payload = data.get("payload")
    if not isinstance(payload, dict):
        raise _invalid("Message payload must be an object")

    version = payload.get("protocolVersion")
    if version != PROTOCOL_VERSION:
        raise ProtocolError(
            ErrorCode.PROTOCOL_VERSION,
            f"Unsupported protocol version {version!r}; expected {PROTOCOL_VERSION!r}",
        )

    for key in ("id", "type", "timestamp"):
        if not isinstance(data.get(key), str) or not data[key]:
            raise _invalid(f"Message field {key!r} is missing or not a string")

    try:
        message_type = MessageType(data["type"])
    except ValueError as exc:
        raise _invalid(f"Unknown message type {data['type']!r}") from exc

    envelope = Envelope(
        id=data["id"],
        type=message_type,
        timestamp=data["timestamp"],
        payload=_parse_payload(message_type, payload),
    )

    # Measured on the canonical form so wire escaping does not change the verdict.
    serialized_length = len(encode_json(envelope))
    if serialized_length > MAX_ENVELOPE_CHARS:
        raise ProtocolError(
            ErrorCode.PAYLOAD_TOO_LARGE,
            f"Envelope exceeds {MAX_ENVELOPE_CHARS} characters ({serialized_length})",
        )
    return envelope


def validate(envelope: Envelope, expected_type: MessageType) -> ValidationIssue | None:
    """Return ``None`` when *envelope* is an acceptable message of *expected_type*."""
    if envelope.payload.protocol_version != PROTOCOL_VERSION:
        return ValidationIssue(
            ErrorCode.PROTOCOL_VERSION,
            f"Unsupported protocol version {envelope.payload.protocol_version!r}",
        )
    if envelope.type is not expected_type:
        return ValidationIssue(
            ErrorCode.PAYLOAD_INVALID,
            f"Expected {expected_type.value} message, got {envelope.type.value}",
        )
    if isinstance(envelope.payload, CaptureResultPayload):
        length = len(envelope.payload.capture.full_text)
        if length > MAX_FULL_TEXT_CHARS:
            return ValidationIssue(
                ErrorCode.PAYLOAD_TOO_LARGE,
                f"capture.fullText exceeds {MAX_FULL_TEXT_CHARS} characters ({length})",
            )
    return None


def _message_type_for(payload: Payload) -> MessageType:
    if isinstance(payload, CaptureRequestPayload):
        return MessageType.HOST_CAPTURE_REQUEST
    if isinstance(payload, CaptureResultPayload):
        return MessageType.EXTENSION_CAPTURE_RESULT
    if isinstance(payload, ErrorPayload):
        return MessageType.EXTENSION_ERROR
    raise TypeError(f"Unsupported payload type: {type(payload).__name__}")


def encode(payload: Payload, *, message_id: str, timestamp: str) -> Envelope:
    """Wrap *payload* in an envelope pinned to the current protocol version."""
    if payload.protocol_version != PROTOCOL_VERSION:
        raise ValueError(f"Payload protocol version must be {PROTOCOL_VERSION!r}")
    return Envelope(id=message_id, type=_message_type_for(payload), timestamp=timestamp, payload=payload)


def encode_json(envelope: Envelope) -> str:
    return json.dumps(envelope.to_dict(), ensure_ascii=False, separators=(",", ":"))


def capture_request_envelope(request: CaptureRequest, *, timestamp: str | None = None) -> Envelope:
    """Build the host request envelope for one capture trigger."""
    payload = CaptureRequestPayload(
        request_id=request.request_id,
        mode=request.mode.value,
        requested_at=request.requested_at,
        timeout_ms=request.timeout_ms,
        include_selection_text=request.include_selection_text,
    )
    return encode(payload, message_id=request.request_id, timestamp=timestamp or request.requested_at)


def last_json_line(text: str) -> dict[str, Any] | None:
    """Return the last line of *text* that parses as a JSON object."""
    for line in reversed(text.splitlines()):
        candidate = line.strip()
        if not candidate.startswith("{"):
            continue
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON line from backend output")
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
