"""Single-flight capture session: resolve, normalize, render, remember."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import time
from typing import Callable

from ctxgrab.capture.resolver import CaptureResolver
from ctxgrab.models import (
    CaptureRequest,
    CaptureResolution,
    ForegroundApp,
    NormalizedContext,
    OutputFormat,
)
from ctxgrab.normalization.engine import normalize
from ctxgrab.normalization.summarize import BRIEF_KEY_POINTS, MAX_KEY_POINTS
from ctxgrab.rendering.markdown import render


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CaptureInProgressError(RuntimeError):
    """Raised when a capture is triggered while another one is running."""

    request_id: str

    def __str__(self) -> str:
        return f"Capture already in progress (rejected request {self.request_id})"


@dataclass(frozen=True, slots=True)
class CaptureOutcome:
    request: CaptureRequest
    resolution: CaptureResolution
    context: NormalizedContext
    markdown: str
    latency_ms: int

    @property
    def error_code(self) -> str | None:
        return self.resolution.error_code


class CaptureSession:
    """Owns the in-flight slot and the last completed capture.

    At most one capture runs at a time; a second trigger is rejected rather
    than queued.  ``last_result`` is replaced whole when a capture finishes.
    """

    def __init__(
        self,
        resolver: CaptureResolver,
        *,
        output_format: OutputFormat | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._resolver = resolver
        self._output_format = output_format or resolver.settings.output_format
        self._clock = clock
        self._in_flight: asyncio.Task[CaptureOutcome] | None = None
        self.last_result: CaptureOutcome | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def capture(self, request: CaptureRequest, app: ForegroundApp) -> CaptureOutcome:
        if self.in_flight:
            logger.warning("Rejecting capture %s: another capture is in flight", request.request_id)
            raise CaptureInProgressError(request.request_id)

        request.validate()
        task = asyncio.ensure_future(self._run(request, app))
        self._in_flight = task
        try:
            return await task
        finally:
            if self._in_flight is task:
                self._in_flight = None

    def cancel(self) -> bool:
        """Cancel the running capture, terminating its backend process."""
        task = self._in_flight
        if task is None or task.done():
            return False
        logger.info("Cancelling in-flight capture")
        return task.cancel()

    async def _run(self, request: CaptureRequest, app: ForegroundApp) -> CaptureOutcome:
        started = self._clock()
        resolution = await self._resolver.resolve(request, app)

        key_point_limit = BRIEF_KEY_POINTS if self._output_format is OutputFormat.BRIEF else MAX_KEY_POINTS
        context = normalize(
            resolution.extraction,
            resolution.method,
            context_id=request.request_id,
            captured_at=request.requested_at,
            warnings=resolution.warnings,
            key_point_limit=key_point_limit,
        )
        markdown = render(context, resolution.extraction, self._output_format)

        outcome = CaptureOutcome(
            request=request,
            resolution=resolution,
            context=context,
            markdown=markdown,
            latency_ms=max(0, int((self._clock() - started) * 1000)),
        )
        self.last_result = outcome
        logger.info(
            "Capture %s finished via %s in %sms",
            request.request_id,
            resolution.method.value,
            outcome.latency_ms,
        )
        return outcome
