"""Runtime configuration for capture, transport and rendering."""

from __future__ import annotations

from dataclasses import dataclass
import os
import shlex
from typing import Mapping

from ctxgrab.models import BrowserTarget, OutputFormat


DEFAULT_CAPTURE_TIMEOUT_MS = 1200
DEFAULT_PING_TIMEOUT_MS = 800
DEFAULT_DIAGNOSTICS_DEADLINE_MS = 2000
DEFAULT_AX_TIMEOUT_MS = 1500
DEFAULT_OCR_TIMEOUT_MS = 5000
DEFAULT_OCR_RETRY_ATTEMPTS = 2
DEFAULT_BROWSER_MIN_TEXT_CHARS = 1
DEFAULT_BROWSER_PRIORITY = (BrowserTarget.SAFARI, BrowserTarget.CHROME)

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


def _parse_positive_int(*, name: str, raw_value: str, minimum: int = 1) -> int:
    value = int(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_bool(*, name: str, raw_value: str) -> bool:
    lowered = raw_value.lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false)")


def _parse_browser_target(*, name: str, raw_value: str) -> BrowserTarget:
    try:
        return BrowserTarget(raw_value.lower())
    except ValueError as exc:
        raise ValueError(f"{name} must be one of: safari, chrome") from exc


def _parse_command(raw_value: str | None) -> tuple[str, ...]:
    if raw_value is None or not raw_value.strip():
        return ()
    return tuple(shlex.split(raw_value))


def _optional_text(raw_value: str | None) -> str | None:
    if raw_value is None or not raw_value.strip():
        return None
    return raw_value


@dataclass(frozen=True, slots=True)
class CaptureSettings:
    """Validated runtime settings for one host process."""

    capture_timeout_ms: int = DEFAULT_CAPTURE_TIMEOUT_MS
    ping_timeout_ms: int = DEFAULT_PING_TIMEOUT_MS
    diagnostics_deadline_ms: int = DEFAULT_DIAGNOSTICS_DEADLINE_MS
    accessibility_timeout_ms: int = DEFAULT_AX_TIMEOUT_MS
    ocr_timeout_ms: int = DEFAULT_OCR_TIMEOUT_MS
    ocr_retry_attempts: int = DEFAULT_OCR_RETRY_ATTEMPTS
    browser_min_text_chars: int = DEFAULT_BROWSER_MIN_TEXT_CHARS
    browser_target_override: BrowserTarget | None = None
    browser_priority: tuple[BrowserTarget, ...] = DEFAULT_BROWSER_PRIORITY
    output_format: OutputFormat = OutputFormat.FULL
    include_selection_text: bool = True
    safari_bridge_command: tuple[str, ...] = ()
    chrome_bridge_command: tuple[str, ...] = ()
    accessibility_command: tuple[str, ...] = ()
    ocr_command: tuple[str, ...] = ()
    screenshot_command: tuple[str, ...] = ()
    accessibility_text_override: str | None = None
    ocr_text_override: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "CaptureSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        int_fields = {
            "capture_timeout_ms": ("CTXGRAB_CAPTURE_TIMEOUT_MS", DEFAULT_CAPTURE_TIMEOUT_MS, 1),
            "ping_timeout_ms": ("CTXGRAB_PING_TIMEOUT_MS", DEFAULT_PING_TIMEOUT_MS, 1),
            "diagnostics_deadline_ms": ("CTXGRAB_DIAGNOSTICS_DEADLINE_MS", DEFAULT_DIAGNOSTICS_DEADLINE_MS, 1),
            "accessibility_timeout_ms": ("CTXGRAB_AX_TIMEOUT_MS", DEFAULT_AX_TIMEOUT_MS, 1),
            "ocr_timeout_ms": ("CTXGRAB_OCR_TIMEOUT_MS", DEFAULT_OCR_TIMEOUT_MS, 1),
            "ocr_retry_attempts": ("CTXGRAB_OCR_RETRY_ATTEMPTS", DEFAULT_OCR_RETRY_ATTEMPTS, 1),
            "browser_min_text_chars": ("CTXGRAB_BROWSER_MIN_TEXT_CHARS", DEFAULT_BROWSER_MIN_TEXT_CHARS, 0),
        }
        values: dict[str, int] = {}
        for field_name, (env_name, default, minimum) in int_fields.items():
            raw = source.get(env_name, str(default)).strip()
            if not raw:
                raise ValueError(f"{env_name} cannot be empty")
            values[field_name] = _parse_positive_int(name=env_name, raw_value=raw, minimum=minimum)

        target_raw = source.get("CTXGRAB_BROWSER_TARGET", "").strip()
        target_override = (
            _parse_browser_target(name="CTXGRAB_BROWSER_TARGET", raw_value=target_raw) if target_raw else None
        )

        priority_raw = source.get("CTXGRAB_BROWSER_PRIORITY", "").strip()
        if priority_raw:
            priority: list[BrowserTarget] = []
            for item in priority_raw.split(","):
                if not item.strip():
                    continue
                target = _parse_browser_target(name="CTXGRAB_BROWSER_PRIORITY", raw_value=item.strip())
                if target not in priority:
                    priority.append(target)
            if not priority:
                raise ValueError("CTXGRAB_BROWSER_PRIORITY must name at least one browser")
            browser_priority = tuple(priority)
        else:
            browser_priority = DEFAULT_BROWSER_PRIORITY

        format_raw = source.get("CTXGRAB_OUTPUT_FORMAT", OutputFormat.FULL.value).strip().lower()
        try:
            output_format = OutputFormat(format_raw)
        except ValueError as exc:
            raise ValueError("CTXGRAB_OUTPUT_FORMAT must be one of: brief, full") from exc

        include_selection = _parse_bool(
            name="CTXGRAB_INCLUDE_SELECTION_TEXT",
            raw_value=source.get("CTXGRAB_INCLUDE_SELECTION_TEXT", "").strip() or "true",
        )

        return cls(
            **values,
            browser_target_override=target_override,
            browser_priority=browser_priority,
            output_format=output_format,
            include_selection_text=include_selection,
            safari_bridge_command=_parse_command(source.get("CTXGRAB_SAFARI_BRIDGE_COMMAND")),
            chrome_bridge_command=_parse_command(source.get("CTXGRAB_CHROME_BRIDGE_COMMAND")),
            accessibility_command=_parse_command(source.get("CTXGRAB_DESKTOP_AX_COMMAND")),
            ocr_command=_parse_command(source.get("CTXGRAB_DESKTOP_OCR_COMMAND")),
            screenshot_command=_parse_command(source.get("CTXGRAB_SCREENSHOT_COMMAND")),
            accessibility_text_override=_optional_text(source.get("CTXGRAB_DESKTOP_AX_TEXT")),
            ocr_text_override=_optional_text(source.get("CTXGRAB_DESKTOP_OCR_TEXT")),
        )
