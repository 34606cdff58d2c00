"""Canonical data structures shared by capture, normalization and rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import math
import uuid


MAX_LINKS = 200


class CaptureMode(str, Enum):
    MANUAL_HOTKEY = "manual_hotkey"
    MANUAL_MENU = "manual_menu"


class ExtractionMethod(str, Enum):
    BROWSER_EXTENSION = "browser_extension"
    ACCESSIBILITY = "accessibility"
    OCR = "ocr"
    METADATA_ONLY = "metadata_only"


class SourceType(str, Enum):
    WEBPAGE = "webpage"
    DESKTOP_APP = "desktop_app"


class SourceKind(str, Enum):
    """Which side of the capture produced the raw extraction."""

    BROWSER = "browser"
    DESKTOP = "desktop"


class BrowserTarget(str, Enum):
    SAFARI = "safari"
    CHROME = "chrome"


class OutputFormat(str, Enum):
    BRIEF = "brief"
    FULL = "full"


@dataclass(slots=True)
class CaptureRequestError(ValueError):
    """Raised when a capture trigger is malformed."""

    field_name: str
    message: str

    def __str__(self) -> str:
        return f"Invalid capture request ({self.field_name}): {self.message}"


def parse_iso_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing ``Z``."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def utc_timestamp(moment: datetime | None = None) -> str:
    current = moment or datetime.now(timezone.utc)
    return current.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class CaptureRequest:
    """Trigger metadata created once per user action."""

    request_id: str
    mode: CaptureMode
    requested_at: str
    timeout_ms: int
    include_selection_text: bool = True

    @classmethod
    def create(
        cls,
        mode: CaptureMode = CaptureMode.MANUAL_HOTKEY,
        *,
        timeout_ms: int,
        include_selection_text: bool = True,
        now: datetime | None = None,
    ) -> "CaptureRequest":
        request = cls(
            request_id=str(uuid.uuid4()),
            mode=mode,
            requested_at=utc_timestamp(now),
            timeout_ms=timeout_ms,
            include_selection_text=include_selection_text,
        )
        request.validate()
        return request

    def validate(self) -> None:
        if not isinstance(self.request_id, str) or not self.request_id.strip():
            raise CaptureRequestError("request_id", "must be a non-empty string")
        try:
            CaptureMode(self.mode)
        except ValueError as exc:
            raise CaptureRequestError("mode", f"unsupported trigger mode {self.mode!r}") from exc
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, (int, float)):
            raise CaptureRequestError("timeout_ms", "must be a number")
        if not math.isfinite(self.timeout_ms) or self.timeout_ms <= 0:
            raise CaptureRequestError("timeout_ms", "must be a positive finite number")
        if not isinstance(self.include_selection_text, bool):
            raise CaptureRequestError("include_selection_text", "must be a boolean")
        try:
            parse_iso_timestamp(self.requested_at)
        except (AttributeError, TypeError, ValueError) as exc:
            raise CaptureRequestError("requested_at", "must be an ISO-8601 timestamp") from exc


@dataclass(frozen=True, slots=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True, slots=True)
class Link:
    text: str
    href: str


def dedupe_links(links: list[Link], *, limit: int = MAX_LINKS) -> list[Link]:
    """Drop blank and repeated links (keyed by text and href) and cap the list."""
    seen: set[str] = set()
    result: list[Link] = []
    for link in links:
        text = " ".join(link.text.split())
        href = link.href.strip()
        if not href:
            continue
        key = f"{text}::{href}"
        if key in seen:
            continue
        seen.add(key)
        result.append(Link(text=text, href=href))
        if len(result) >= limit:
            break
    return result


@dataclass(frozen=True, slots=True)
class ForegroundApp:
    """What the caller already knows about the frontmost application."""

    bundle_id: str | None = None
    app_name: str | None = None
    window_title: str | None = None
    url: str | None = None


@dataclass(slots=True)
class ExtractionInput:
    """Backend-agnostic raw capture produced by exactly one backend."""

    source: SourceKind
    url: str
    title: str
    full_text: str
    headings: list[Heading] = field(default_factory=list)
    links: list[Link] = field(default_factory=list)
    meta_description: str | None = None
    site_name: str | None = None
    language: str | None = None
    author: str | None = None
    published_time: str | None = None
    selection_text: str | None = None
    browser: str | None = None
    app_name: str | None = None
    app_bundle_id: str | None = None
    ocr_confidence: float | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TierAttemptRecord:
    """One entry of the resolver's attempt log."""

    backend_id: str
    method: ExtractionMethod
    accepted: bool
    error_code: str | None = None
    text_chars: int = 0


@dataclass(frozen=True, slots=True)
class CaptureResolution:
    method: ExtractionMethod
    extraction: ExtractionInput
    error_code: str | None = None
    warnings: tuple[str, ...] = ()
    attempts: tuple[TierAttemptRecord, ...] = ()
    transport_status: str = "unknown"


@dataclass(frozen=True, slots=True)
class Chunk:
    chunk_id: str
    token_estimate: int
    text: str


@dataclass(frozen=True, slots=True)
class NormalizedContext:
    """Deterministic document derived from one extraction."""

    context_id: str
    captured_at: str
    source_type: SourceType
    title: str
    origin: str
    app_or_site: str
    extraction_method: ExtractionMethod
    confidence: float
    truncated: bool
    token_estimate: int
    metadata: dict[str, str]
    warnings: tuple[str, ...]
    summary: str
    key_points: tuple[str, ...]
    chunks: tuple[Chunk, ...]
    raw_excerpt: str
    app_bundle_id: str | None = None


@dataclass(frozen=True, slots=True)
class AccessibilityProfile:
    """Per-application tuning handed to the accessibility collaborator."""

    name: str
    minimum_chars: int
    attribute_profile: str
    max_depth: int = 2
    max_elements: int = 96
