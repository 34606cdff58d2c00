"""Parallel readiness checks for capture backends."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Sequence

from ctxgrab.capture.session import CaptureOutcome
from ctxgrab.models import ForegroundApp
from ctxgrab.protocol.models import ErrorCode
from ctxgrab.transport.dispatcher import (
    BACKEND_ACCESSIBILITY,
    BACKEND_CHROME,
    BACKEND_OCR,
    BACKEND_SAFARI,
    PingResult,
    PingStatus,
    TransportDispatcher,
)


logger = logging.getLogger(__name__)

DEFAULT_BRIDGE_IDS = (BACKEND_SAFARI, BACKEND_CHROME)
DEFAULT_EXTRACTOR_IDS = (BACKEND_ACCESSIBILITY, BACKEND_OCR)


@dataclass(frozen=True, slots=True)
class ExtractorStatus:
    backend_id: str
    configured: bool

    @property
    def label(self) -> str:
        return "configured" if self.configured else "not configured"


@dataclass(frozen=True, slots=True)
class DiagnosticsReport:
    front_app: str
    pings: tuple[PingResult, ...]
    extractors: tuple[ExtractorStatus, ...]
    last_capture: str
    last_error: str
    latency: str

    def ping(self, backend_id: str) -> PingResult | None:
        return next((item for item in self.pings if item.backend_id == backend_id), None)

    def summary_line(self) -> str:
        parts = [f"Front app: {self.front_app}"]
        parts.extend(f"{item.backend_id}: {item.label}" for item in self.pings)
        parts.extend(f"{item.backend_id}: {item.label}" for item in self.extractors)
        parts.append(f"Last capture: {self.last_capture}")
        parts.append(f"Last error: {self.last_error}")
        parts.append(f"Latency: {self.latency}")
        return " | ".join(parts)


def _deadline_result(backend_id: str, deadline_ms: int) -> PingResult:
    return PingResult(
        backend_id=backend_id,
        status=PingStatus.UNREACHABLE,
        error_code=ErrorCode.TIMEOUT,
        message=f"no answer within diagnostics deadline of {deadline_ms}ms",
    )


async def ping_backends(
    dispatcher: TransportDispatcher,
    backend_ids: Sequence[str],
    *,
    ping_timeout_ms: int,
    deadline_ms: int,
) -> list[PingResult]:
    """Ping every bridge concurrently and return results in *backend_ids* order.

    Pings still running when *deadline_ms* passes are cancelled (which kills
    their processes) and reported as timed out.
    """
    if not backend_ids:
        return []

    tasks = {
        backend_id: asyncio.ensure_future(dispatcher.ping(backend_id, ping_timeout_ms))
        for backend_id in backend_ids
    }
    done, pending = await asyncio.wait(tasks.values(), timeout=deadline_ms / 1000)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)

    results: list[PingResult] = []
    for backend_id, task in tasks.items():
        if task not in done or task.cancelled():
            results.append(_deadline_result(backend_id, deadline_ms))
            continue
        error = task.exception()
        if error is not None:
            logger.warning("Ping for %s failed unexpectedly: %s", backend_id, error)
            results.append(
                PingResult(
                    backend_id=backend_id,
                    status=PingStatus.UNREACHABLE,
                    error_code=ErrorCode.EXTENSION_UNAVAILABLE,
                    message=str(error),
                )
            )
            continue
        results.append(task.result())
    return results


def _describe_app(app: ForegroundApp | None) -> str:
    if app is None:
        return "unknown"
    return app.app_name or app.bundle_id or "unknown"


async def run_diagnostics(
    dispatcher: TransportDispatcher,
    *,
    ping_timeout_ms: int,
    deadline_ms: int,
    backend_ids: Sequence[str] = DEFAULT_BRIDGE_IDS,
    extractor_ids: Sequence[str] = DEFAULT_EXTRACTOR_IDS,
    front_app: ForegroundApp | None = None,
    last_result: CaptureOutcome | None = None,
) -> DiagnosticsReport:
    pings = await ping_backends(
        dispatcher,
        backend_ids,
        ping_timeout_ms=ping_timeout_ms,
        deadline_ms=deadline_ms,
    )
    extractors = tuple(
        ExtractorStatus(backend_id=backend_id, configured=dispatcher.has_backend(backend_id))
        for backend_id in extractor_ids
    )

    if last_result is None:
        last_capture, last_error, latency = "never", "none", "n/a"
    else:
        last_capture = f"{last_result.request.requested_at} ({last_result.resolution.method.value})"
        last_error = last_result.error_code or "none"
        latency = f"{last_result.latency_ms}ms"

    return DiagnosticsReport(
        front_app=_describe_app(front_app),
        pings=tuple(pings),
        extractors=extractors,
        last_capture=last_capture,
        last_error=last_error,
        latency=latency,
    )
