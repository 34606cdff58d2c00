"""Invoke named extraction backends and translate every failure into an error code."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Callable, Mapping

from ctxgrab.protocol.codec import decode, encode_json, last_json_line, validate
from ctxgrab.protocol.models import (
    PROTOCOL_VERSION,
    Envelope,
    ErrorCode,
    ErrorPayload,
    MessageType,
    ProtocolError,
)
from ctxgrab.transport.extractors import ExtractedText, ExtractorContext, TextExtractor
from ctxgrab.transport.process import (
    BackendLaunchError,
    BackendTimeoutError,
    ProcessOutput,
    run_process,
)


logger = logging.getLogger(__name__)

BACKEND_SAFARI = "safari"
BACKEND_CHROME = "chrome"
BACKEND_ACCESSIBILITY = "desktop-ax"
BACKEND_OCR = "desktop-ocr"

PING_ARGUMENT = "--ping"


@dataclass(frozen=True, slots=True)
class BridgeCommand:
    """How to start one envelope-speaking bridge process."""

    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BackendResult:
    backend_id: str
    envelope: Envelope | None = None
    text: ExtractedText | None = None
    error_code: ErrorCode | None = None
    error_message: str | None = None
    exit_code: int | None = None
    latency_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error_code is None

    def describe_error(self) -> str:
        if self.error_code is None:
            return "ok"
        return f"{self.error_code.value}: {self.error_message or 'unknown error'}"


class PingStatus(str, Enum):
    READY = "ready"
    PROTOCOL_MISMATCH = "protocol_mismatch"
    UNREACHABLE = "unreachable"


_PING_LABELS = {
    PingStatus.READY: f"reachable/protocol {PROTOCOL_VERSION}",
    PingStatus.PROTOCOL_MISMATCH: "reachable/protocol mismatch",
    PingStatus.UNREACHABLE: "unreachable",
}
_PING_STATUS_SUFFIXES = {
    PingStatus.READY: "ok",
    PingStatus.PROTOCOL_MISMATCH: "protocol_mismatch",
    PingStatus.UNREACHABLE: "unreachable",
}


@dataclass(frozen=True, slots=True)
class PingResult:
    backend_id: str
    status: PingStatus
    protocol_version: str | None = None
    error_code: ErrorCode | None = None
    message: str | None = None
    latency_ms: int = 0

    @property
    def label(self) -> str:
        return _PING_LABELS[self.status]

    @property
    def transport_status(self) -> str:
        return f"{self.backend_id}_extension_{_PING_STATUS_SUFFIXES[self.status]}"


class TransportDispatcher:
    """The only component that performs backend I/O.

    Bridges are external processes speaking the envelope protocol over
    stdin/stdout; extractors are desktop collaborators returning plain text.
    Every call returns a result object; backend exceptions never escape.
    """

    def __init__(
        self,
        bridges: Mapping[str, BridgeCommand] | None = None,
        extractors: Mapping[str, TextExtractor] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bridges = dict(bridges or {})
        self._extractors = dict(extractors or {})
        self._clock = clock

    @property
    def bridge_ids(self) -> tuple[str, ...]:
        return tuple(self._bridges)

    @property
    def extractor_ids(self) -> tuple[str, ...]:
        return tuple(self._extractors)

    def has_backend(self, backend_id: str) -> bool:
        return backend_id in self._bridges or backend_id in self._extractors

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))

    def _failure(
        self,
        backend_id: str,
        code: ErrorCode,
        message: str,
        started: float,
        *,
        envelope: Envelope | None = None,
        exit_code: int | None = None,
    ) -> BackendResult:
        logger.warning("Backend %s failed: %s: %s", backend_id, code.value, message)
        return BackendResult(
            backend_id=backend_id,
            envelope=envelope,
            error_code=code,
            error_message=message,
            exit_code=exit_code,
            latency_ms=self._elapsed_ms(started),
        )

    async def invoke(
        self,
        backend_id: str,
        request: Envelope,
        timeout_ms: int,
        *,
        extra_env: Mapping[str, str] | None = None,
    ) -> BackendResult:
        """Send *request* to a bridge and return its validated capture result."""
        started = self._clock()
        bridge = self._bridges.get(backend_id)
        if bridge is None:
            return self._failure(
                backend_id,
                ErrorCode.EXTENSION_UNAVAILABLE,
                f"Backend {backend_id!r} is not configured.",
                started,
            )

        request_line = (encode_json(request) + "\n").encode("utf-8")
        env = {**bridge.env, **(extra_env or {})}

        try:
            output = await run_process(bridge.argv, input_data=request_line, timeout_ms=timeout_ms, extra_env=env)
        except BackendTimeoutError:
            return self._failure(
                backend_id,
                ErrorCode.TIMEOUT,
                f"Timed out waiting for {backend_id} bridge response after {timeout_ms}ms.",
                started,
            )
        except BackendLaunchError as exc:
            return self._failure(backend_id, ErrorCode.EXTENSION_UNAVAILABLE, str(exc), started)
        except Exception as exc:
            return self._failure(
                backend_id,
                ErrorCode.EXTENSION_UNAVAILABLE,
                f"Unexpected bridge failure: {exc}",
                started,
            )

        return self._interpret_bridge_output(backend_id, output, started)

    def _interpret_bridge_output(self, backend_id: str, output: ProcessOutput, started: float) -> BackendResult:
        data = last_json_line(output.stdout)
        if data is None:
            if output.returncode != 0:
                message = output.stderr or f"{backend_id} bridge exited with status {output.returncode} and no output."
                return self._failure(
                    backend_id,
                    ErrorCode.EXTENSION_UNAVAILABLE,
                    message,
                    started,
                    exit_code=output.returncode,
                )
            return self._failure(
                backend_id,
                ErrorCode.PAYLOAD_INVALID,
                f"{backend_id} bridge returned no JSON response.",
                started,
                exit_code=output.returncode,
            )

        try:
            envelope = decode(data)
        except ProtocolError as exc:
            return self._failure(backend_id, exc.code, exc.message, started, exit_code=output.returncode)

        if isinstance(envelope.payload, ErrorPayload):
            return self._failure(
                backend_id,
                envelope.payload.code,
                envelope.payload.message,
                started,
                envelope=envelope,
                exit_code=output.returncode,
            )

        issue = validate(envelope, MessageType.EXTENSION_CAPTURE_RESULT)
        if issue is not None:
            return self._failure(backend_id, issue.code, issue.message, started, exit_code=output.returncode)

        if output.returncode != 0:
            logger.info(
                "Backend %s exited with status %s but returned a valid response",
                backend_id,
                output.returncode,
            )
        return BackendResult(
            backend_id=backend_id,
            envelope=envelope,
            exit_code=output.returncode,
            latency_ms=self._elapsed_ms(started),
        )

    async def extract_text(self, backend_id: str, context: ExtractorContext, timeout_ms: int) -> BackendResult:
        """Ask a desktop collaborator for plain text within *timeout_ms*."""
        started = self._clock()
        extractor = self._extractors.get(backend_id)
        if extractor is None:
            return self._failure(
                backend_id,
                ErrorCode.EXTENSION_UNAVAILABLE,
                f"Backend {backend_id!r} is not configured.",
                started,
            )

        try:
            extracted = await asyncio.wait_for(extractor.extract_text(context), timeout=timeout_ms / 1000)
        except (asyncio.TimeoutError, BackendTimeoutError):
            return self._failure(
                backend_id,
                ErrorCode.TIMEOUT,
                f"Timed out waiting for {backend_id} after {timeout_ms}ms.",
                started,
            )
        except Exception as exc:
            return self._failure(backend_id, ErrorCode.EXTENSION_UNAVAILABLE, str(exc) or type(exc).__name__, started)

        if extracted is None:
            return self._failure(
                backend_id,
                ErrorCode.EXTENSION_UNAVAILABLE,
                f"{backend_id} returned no text.",
                started,
            )
        return BackendResult(backend_id=backend_id, text=extracted, latency_ms=self._elapsed_ms(started))

    async def ping(self, backend_id: str, timeout_ms: int) -> PingResult:
        """Check that a bridge is reachable and speaks the pinned protocol version."""
        started = self._clock()
        bridge = self._bridges.get(backend_id)
        if bridge is None:
            return PingResult(
                backend_id=backend_id,
                status=PingStatus.UNREACHABLE,
                error_code=ErrorCode.EXTENSION_UNAVAILABLE,
                message="not configured",
            )

        try:
            output = await run_process(
                (*bridge.argv, PING_ARGUMENT),
                timeout_ms=timeout_ms,
                extra_env=dict(bridge.env),
            )
        except BackendTimeoutError:
            return PingResult(
                backend_id=backend_id,
                status=PingStatus.UNREACHABLE,
                error_code=ErrorCode.TIMEOUT,
                message=f"no response within {timeout_ms}ms",
                latency_ms=self._elapsed_ms(started),
            )
        except Exception as exc:
            return PingResult(
                backend_id=backend_id,
                status=PingStatus.UNREACHABLE,
                error_code=ErrorCode.EXTENSION_UNAVAILABLE,
                message=str(exc),
                latency_ms=self._elapsed_ms(started),
            )

        latency_ms = self._elapsed_ms(started)
        data = last_json_line(output.stdout)
        if data is None or data.get("ok") is not True:
            return PingResult(
                backend_id=backend_id,
                status=PingStatus.UNREACHABLE,
                error_code=ErrorCode.EXTENSION_UNAVAILABLE,
                message=output.stderr or "ping did not report ok",
                latency_ms=latency_ms,
            )

        version = data.get("protocolVersion")
        version_text = version if isinstance(version, str) else None
        if version_text != PROTOCOL_VERSION:
            return PingResult(
                backend_id=backend_id,
                status=PingStatus.PROTOCOL_MISMATCH,
                protocol_version=version_text,
                error_code=ErrorCode.PROTOCOL_VERSION,
                message=f"bridge speaks protocol {version!r}",
                latency_ms=latency_ms,
            )

        return PingResult(
            backend_id=backend_id,
            status=PingStatus.READY,
            protocol_version=version_text,
            latency_ms=latency_ms,
        )
