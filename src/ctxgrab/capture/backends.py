"""The closed set of capture tiers tried by the resolver."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Mapping, Protocol, Union

from ctxgrab.capture.extraction import (
    from_browser_capture,
    from_desktop_text,
    metadata_only,
    normalize_desktop_text,
)
from ctxgrab.capture.targets import chromium_app_name
from ctxgrab.config import CaptureSettings
from ctxgrab.models import (
    AccessibilityProfile,
    BrowserTarget,
    CaptureRequest,
    ExtractionInput,
    ExtractionMethod,
    ForegroundApp,
)
from ctxgrab.protocol.codec import capture_request_envelope
from ctxgrab.protocol.models import CaptureResultPayload, Envelope, ErrorCode
from ctxgrab.transport.dispatcher import BACKEND_ACCESSIBILITY, BACKEND_OCR, BackendResult
from ctxgrab.transport.extractors import ExtractorContext


logger = logging.getLogger(__name__)

CHROME_APP_NAME_ENV = "CTXGRAB_CHROME_APP_NAME"
METADATA_BACKEND_ID = "metadata"


class CaptureDispatcher(Protocol):
    """The slice of ``TransportDispatcher`` the tiers rely on."""

    def has_backend(self, backend_id: str) -> bool:
        ...

    async def invoke(
        self,
        backend_id: str,
        request: Envelope,
        timeout_ms: int,
        *,
        extra_env: Mapping[str, str] | None = None,
    ) -> BackendResult:
        ...

    async def extract_text(self, backend_id: str, context: ExtractorContext, timeout_ms: int) -> BackendResult:
        ...


@dataclass(slots=True)
class ResolutionState:
    """Facts shared between tiers while one capture is being resolved."""

    request: CaptureRequest
    app: ForegroundApp
    settings: CaptureSettings
    profile: AccessibilityProfile
    browser: BrowserTarget | None = None
    warnings: list[str] = field(default_factory=list)
    partial_text: str | None = None
    last_error_code: ErrorCode | None = None
    last_failed_backend: str | None = None

    def extractor_context(self) -> ExtractorContext:
        return ExtractorContext(
            bundle_id=self.app.bundle_id,
            app_name=self.app.app_name,
            window_title=self.app.window_title,
            profile=self.profile,
        )


@dataclass(frozen=True, slots=True)
class TierAttempt:
    backend_id: str
    method: ExtractionMethod
    extraction: ExtractionInput | None = None
    error_code: ErrorCode | None = None
    warning: str | None = None
    text_chars: int = 0
    partial_text: str | None = None

    @property
    def accepted(self) -> bool:
        return self.extraction is not None


@dataclass(frozen=True, slots=True)
class BrowserBackend:
    target: BrowserTarget

    @property
    def backend_id(self) -> str:
        return self.target.value

    @property
    def method(self) -> ExtractionMethod:
        return ExtractionMethod.BROWSER_EXTENSION

    async def attempt(self, dispatcher: CaptureDispatcher, state: ResolutionState) -> TierAttempt:
        extra_env: dict[str, str] = {}
        if self.target is BrowserTarget.CHROME:
            extra_env[CHROME_APP_NAME_ENV] = chromium_app_name(state.app.bundle_id)

        result = await dispatcher.invoke(
            self.backend_id,
            capture_request_envelope(state.request),
            state.request.timeout_ms,
            extra_env=extra_env,
        )
        if not result.ok or result.envelope is None or not isinstance(result.envelope.payload, CaptureResultPayload):
            return TierAttempt(
                backend_id=self.backend_id,
                method=self.method,
                error_code=result.error_code or ErrorCode.PAYLOAD_INVALID,
                warning=f"{self.backend_id}: {result.describe_error()}",
            )

        extraction = from_browser_capture(
            result.envelope.payload.capture,
            include_selection_text=state.request.include_selection_text,
        )
        text_chars = len(extraction.full_text.strip())
        minimum = state.settings.browser_min_text_chars
        if text_chars < minimum:
            return TierAttempt(
                backend_id=self.backend_id,
                method=self.method,
                warning=f"{self.backend_id}: extracted text below threshold ({text_chars}/{minimum} chars).",
                text_chars=text_chars,
            )
        return TierAttempt(backend_id=self.backend_id, method=self.method, extraction=extraction, text_chars=text_chars)


@dataclass(frozen=True, slots=True)
class AccessibilityBackend:
    backend_id: str = BACKEND_ACCESSIBILITY

    @property
    def method(self) -> ExtractionMethod:
        return ExtractionMethod.ACCESSIBILITY

    async def attempt(self, dispatcher: CaptureDispatcher, state: ResolutionState) -> TierAttempt:
        result = await dispatcher.extract_text(
            self.backend_id,
            state.extractor_context(),
            state.settings.accessibility_timeout_ms,
        )
        if not result.ok or result.text is None:
            return TierAttempt(
                backend_id=self.backend_id,
                method=self.method,
                error_code=result.error_code,
                warning=f"AX extraction unavailable ({result.describe_error()})",
            )

        text = normalize_desktop_text(result.text.text)
        minimum = state.profile.minimum_chars
        if len(text) < minimum:
            return TierAttempt(
                backend_id=self.backend_id,
                method=self.method,
                warning=f"AX extraction below threshold ({len(text)}/{minimum} chars)",
                text_chars=len(text),
                partial_text=text or None,
            )
        return TierAttempt(
            backend_id=self.backend_id,
            method=self.method,
            extraction=from_desktop_text(state.app, text),
            text_chars=len(text),
        )


@dataclass(frozen=True, slots=True)
class OcrBackend:
    backend_id: str = BACKEND_OCR

    @property
    def method(self) -> ExtractionMethod:
        return ExtractionMethod.OCR

    async def attempt(self, dispatcher: CaptureDispatcher, state: ResolutionState) -> TierAttempt:
        result: BackendResult | None = None
        for attempt_number in range(1, state.settings.ocr_retry_attempts + 1):
            result = await dispatcher.extract_text(
                self.backend_id,
                state.extractor_context(),
                state.settings.ocr_timeout_ms,
            )
            if result.ok and result.text is not None:
                text = normalize_desktop_text(result.text.text)
                if text:
                    return TierAttempt(
                        backend_id=self.backend_id,
                        method=self.method,
                        extraction=from_desktop_text(state.app, text, ocr_confidence=result.text.confidence),
                        text_chars=len(text),
                    )
            if result.error_code is ErrorCode.TIMEOUT or not dispatcher.has_backend(self.backend_id):
                break
            logger.info("OCR attempt %s of %s produced no text", attempt_number, state.settings.ocr_retry_attempts)

        if result is not None and not result.ok:
            detail = result.describe_error()
            error_code = result.error_code
        else:
            detail = "no text recognized"
            error_code = ErrorCode.EXTENSION_UNAVAILABLE
        return TierAttempt(
            backend_id=self.backend_id,
            method=self.method,
            error_code=error_code,
            warning=f"OCR extraction unavailable ({detail}).",
        )


@dataclass(frozen=True, slots=True)
class MetadataOnlyBackend:
    """Terminal tier: never performs I/O and never fails."""

    backend_id: str = METADATA_BACKEND_ID

    @property
    def method(self) -> ExtractionMethod:
        return ExtractionMethod.METADATA_ONLY

    async def attempt(self, dispatcher: CaptureDispatcher, state: ResolutionState) -> TierAttempt:
        extraction = metadata_only(
            state.app,
            browser=state.browser,
            partial_text=state.partial_text,
            warnings=state.warnings,
        )
        return TierAttempt(
            backend_id=self.backend_id,
            method=self.method,
            extraction=extraction,
            text_chars=len(extraction.full_text),
        )


BackendKind = Union[BrowserBackend, AccessibilityBackend, OcrBackend, MetadataOnlyBackend]
