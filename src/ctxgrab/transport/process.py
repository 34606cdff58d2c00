"""Bounded subprocess execution for backend bridges and helper commands."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
import os
from typing import Mapping, Sequence

from charset_normalizer import from_bytes


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessOutput:
    returncode: int | None
    raw_stdout: bytes
    stderr: str

    @property
    def stdout(self) -> str:
        return decode_output(self.raw_stdout)


@dataclass(slots=True)
class BackendLaunchError(Exception):
    """Raised when a backend command cannot be started at all."""

    command: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} (command={self.command})"


@dataclass(slots=True)
class BackendTimeoutError(Exception):
    """Raised after a backend overran its deadline and was killed."""

    command: str
    timeout_ms: int

    def __str__(self) -> str:
        return f"Timed out after {self.timeout_ms}ms (command={self.command})"


def decode_output(raw: bytes) -> str:
    """Decode backend output, detecting the charset when it is not UTF-8."""
    if not raw:
        return ""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        best = from_bytes(raw).best()
        if best is not None and best.encoding:
            logger.debug("Backend output decoded as %s", best.encoding)
            return str(best)
        return raw.decode("utf-8", errors="replace")


async def _kill_and_reap(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    await proc.communicate()


async def run_process(
    argv: Sequence[str],
    *,
    input_data: bytes | None = None,
    timeout_ms: int,
    extra_env: Mapping[str, str] | None = None,
) -> ProcessOutput:
    """Run *argv*, feed *input_data* to stdin and collect output within *timeout_ms*.

    On timeout or cancellation the process is killed and reaped before the
    error propagates, so no child outlives the call.
    """
    if not argv:
        raise BackendLaunchError(command="", message="No command configured")

    command = " ".join(argv)
    env = {**os.environ, **extra_env} if extra_env else None

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE if input_data is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except OSError as exc:
        raise BackendLaunchError(command=command, message=f"Failed to launch backend: {exc}") from exc

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(input_data),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        logger.warning("Backend command timed out after %sms: %s", timeout_ms, command)
        await _kill_and_reap(proc)
        raise BackendTimeoutError(command=command, timeout_ms=timeout_ms) from None
    except asyncio.CancelledError:
        logger.info("Backend command cancelled, terminating: %s", command)
        await _kill_and_reap(proc)
        raise

    return ProcessOutput(
        returncode=proc.returncode,
        raw_stdout=stdout_bytes or b"",
        stderr=decode_output(stderr_bytes or b"").strip(),
    )
