"""Fallback chain that picks the richest extraction tier that succeeds."""

from __future__ import annotations

import logging

from ctxgrab.capture.backends import (
    AccessibilityBackend,
    BackendKind,
    BrowserBackend,
    CaptureDispatcher,
    MetadataOnlyBackend,
    OcrBackend,
    ResolutionState,
    TierAttempt,
)
from ctxgrab.capture.profiles import accessibility_profile
from ctxgrab.capture.targets import browser_candidates, detect_browser_target
from ctxgrab.config import CaptureSettings
from ctxgrab.models import (
    CaptureRequest,
    CaptureResolution,
    ExtractionMethod,
    ForegroundApp,
    TierAttemptRecord,
)


logger = logging.getLogger(__name__)

_FALLBACK_NOTES = {
    ExtractionMethod.ACCESSIBILITY: "Used accessibility fallback text.",
    ExtractionMethod.OCR: "used OCR fallback text.",
}


def _transport_prefix(backend_id: str | None, method: ExtractionMethod | None) -> str:
    if method is ExtractionMethod.BROWSER_EXTENSION and backend_id:
        return f"{backend_id}_extension"
    return "desktop_capture"


class CaptureResolver:
    """Walk browser, accessibility, OCR and metadata-only tiers in order.

    Tiers run one at a time; the first accepted attempt wins.  Failures of
    earlier tiers become warnings on the resolution instead of errors.
    """

    def __init__(self, dispatcher: CaptureDispatcher, settings: CaptureSettings | None = None) -> None:
        self._dispatcher = dispatcher
        self._settings = settings or CaptureSettings()

    @property
    def settings(self) -> CaptureSettings:
        return self._settings

    def plan(self, app: ForegroundApp) -> list[BackendKind]:
        """Ordered tiers for *app*; metadata-only is always last."""
        targets = browser_candidates(
            app,
            override=self._settings.browser_target_override,
            priority=self._settings.browser_priority,
        )
        chain: list[BackendKind] = [BrowserBackend(target) for target in targets]
        chain.extend([AccessibilityBackend(), OcrBackend(), MetadataOnlyBackend()])
        return chain

    async def resolve(self, request: CaptureRequest, app: ForegroundApp) -> CaptureResolution:
        request.validate()

        chain = self.plan(app)
        first_browser = next((backend.target for backend in chain if isinstance(backend, BrowserBackend)), None)
        state = ResolutionState(
            request=request,
            app=app,
            settings=self._settings,
            profile=accessibility_profile(app.bundle_id, app.app_name),
            browser=first_browser or detect_browser_target(app),
        )

        records: list[TierAttemptRecord] = []
        pending_ax_warning: str | None = None

        for backend in chain:
            logger.info(
                "Capture %s: trying %s tier via %s",
                request.request_id,
                backend.method.value,
                backend.backend_id,
            )
            attempt = await backend.attempt(self._dispatcher, state)
            records.append(
                TierAttemptRecord(
                    backend_id=attempt.backend_id,
                    method=attempt.method,
                    accepted=attempt.accepted,
                    error_code=attempt.error_code.value if attempt.error_code is not None else None,
                    text_chars=attempt.text_chars,
                )
            )

            if attempt.accepted:
                if attempt.method is ExtractionMethod.OCR and pending_ax_warning:
                    state.warnings.append(f"{pending_ax_warning}; {_FALLBACK_NOTES[ExtractionMethod.OCR]}")
                elif attempt.method is ExtractionMethod.ACCESSIBILITY and len(records) > 1:
                    state.warnings.append(_FALLBACK_NOTES[ExtractionMethod.ACCESSIBILITY])
                return self._finish(state, attempt, records)

            logger.info(
                "Capture %s: %s tier rejected (%s)",
                request.request_id,
                attempt.method.value,
                attempt.warning,
            )
            if attempt.error_code is not None:
                state.last_error_code = attempt.error_code
                state.last_failed_backend = attempt.backend_id
            if attempt.partial_text:
                state.partial_text = attempt.partial_text

            if attempt.method is ExtractionMethod.ACCESSIBILITY:
                pending_ax_warning = attempt.warning
            elif attempt.method is ExtractionMethod.OCR and pending_ax_warning:
                state.warnings.append(f"{pending_ax_warning} and {attempt.warning}")
                pending_ax_warning = None
            elif attempt.warning:
                state.warnings.append(attempt.warning)

        raise RuntimeError("metadata-only tier did not produce a result")

    def _finish(
        self,
        state: ResolutionState,
        attempt: TierAttempt,
        records: list[TierAttemptRecord],
    ) -> CaptureResolution:
        if attempt.extraction is None:
            raise RuntimeError(f"{attempt.method.value} tier was accepted without an extraction")

        if attempt.method is ExtractionMethod.METADATA_ONLY and state.last_error_code is not None:
            failed_method = next(
                (record.method for record in records if record.backend_id == state.last_failed_backend),
                None,
            )
            prefix = _transport_prefix(state.last_failed_backend, failed_method)
            transport_status = f"{prefix}_error:{state.last_error_code.value}"
        elif attempt.method is ExtractionMethod.METADATA_ONLY:
            transport_status = "desktop_capture_metadata_only"
        else:
            transport_status = f"{_transport_prefix(attempt.backend_id, attempt.method)}_ok"

        logger.info(
            "Capture %s resolved via %s (%s chars, %s warnings)",
            state.request.request_id,
            attempt.method.value,
            attempt.text_chars,
            len(state.warnings),
        )
        return CaptureResolution(
            method=attempt.method,
            extraction=attempt.extraction,
            error_code=state.last_error_code.value if state.last_error_code is not None else None,
            warnings=tuple(state.warnings),
            attempts=tuple(records),
            transport_status=transport_status,
        )
