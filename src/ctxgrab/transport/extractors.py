"""Desktop text collaborators: accessibility helpers and Tesseract OCR.

pytesseract and Pillow are soft dependencies: they are imported only inside
``_run_tesseract()``.  If the Tesseract binary is missing the first OCR call
logs a single warning and every later call returns ``None`` immediately, which
the dispatcher reports as an unavailable backend.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import json
import logging
from typing import Protocol, Sequence, runtime_checkable

from ctxgrab.models import AccessibilityProfile
from ctxgrab.protocol.codec import last_json_line
from ctxgrab.transport.process import run_process


logger = logging.getLogger(__name__)

DEFAULT_HELPER_TIMEOUT_MS = 30_000
_TESSERACT_LANG = "eng"
_TESSERACT_CONFIG = "--oem 3 --psm 6"

# Three-state flag tracking Tesseract availability for the current process.
#   None  - not yet probed
#   True  - Tesseract executed successfully at least once
#   False - Tesseract is not installed / not in PATH
_tesseract_available: bool | None = None


@dataclass(frozen=True, slots=True)
class ExtractedText:
    text: str
    confidence: float | None = None


@dataclass(frozen=True, slots=True)
class ExtractorContext:
    """What a desktop collaborator is told about the window to read."""

    bundle_id: str | None = None
    app_name: str | None = None
    window_title: str | None = None
    profile: AccessibilityProfile | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "bundleId": self.bundle_id,
            "appName": self.app_name,
            "windowTitle": self.window_title,
        }
        if self.profile is not None:
            data["profile"] = {
                "name": self.profile.name,
                "minimumChars": self.profile.minimum_chars,
                "attributeProfile": self.profile.attribute_profile,
                "maxDepth": self.profile.max_depth,
                "maxElements": self.profile.max_elements,
            }
        return data


@dataclass(slots=True)
class ExtractorError(Exception):
    """Raised by a collaborator that ran but could not produce text."""

    extractor: str
    message: str

    def __str__(self) -> str:
        return f"{self.extractor}: {self.message}"


@runtime_checkable
class TextExtractor(Protocol):
    """Plain-text desktop collaborator with no knowledge of the fallback chain."""

    async def extract_text(self, context: ExtractorContext) -> ExtractedText | None:
        ...


@runtime_checkable
class ScreenshotSource(Protocol):
    async def capture(self, context: ExtractorContext) -> bytes | None:
        ...


def _clamp_confidence(value: object) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(1.0, float(value)))


class StaticTextExtractor:
    """Serve a fixed text, used for configuration overrides and dry runs."""

    def __init__(self, text: str, *, confidence: float | None = None) -> None:
        self.text = text
        self.confidence = confidence

    async def extract_text(self, context: ExtractorContext) -> ExtractedText | None:
        return ExtractedText(text=self.text, confidence=self.confidence)


class CommandTextExtractor:
    """Run a helper command that prints ``{"text", "confidence"}`` or plain text.

    The extractor context is written to the helper's stdin as one JSON line.
    """

    def __init__(self, argv: Sequence[str], *, timeout_ms: int = DEFAULT_HELPER_TIMEOUT_MS) -> None:
        self.argv = tuple(argv)
        self.timeout_ms = timeout_ms

    async def extract_text(self, context: ExtractorContext) -> ExtractedText | None:
        request = json.dumps(context.to_dict(), ensure_ascii=False) + "\n"
        output = await run_process(
            self.argv,
            input_data=request.encode("utf-8"),
            timeout_ms=self.timeout_ms,
        )
        stdout_text = output.stdout

        parsed = last_json_line(stdout_text)
        if parsed is not None and isinstance(parsed.get("text"), str):
            return ExtractedText(text=parsed["text"], confidence=_clamp_confidence(parsed.get("confidence")))

        if output.returncode != 0:
            message = output.stderr or f"helper exited with status {output.returncode}"
            raise ExtractorError(extractor=self.argv[0], message=message)

        text = stdout_text.strip()
        return ExtractedText(text=text) if text else None


class CommandScreenshotSource:
    """Run a command that writes a PNG screenshot of the front window to stdout."""

    def __init__(self, argv: Sequence[str], *, timeout_ms: int = DEFAULT_HELPER_TIMEOUT_MS) -> None:
        self.argv = tuple(argv)
        self.timeout_ms = timeout_ms

    async def capture(self, context: ExtractorContext) -> bytes | None:
        output = await run_process(self.argv, timeout_ms=self.timeout_ms)
        if output.returncode != 0:
            raise ExtractorError(
                extractor=self.argv[0],
                message=output.stderr or f"screenshot command exited with status {output.returncode}",
            )
        return output.raw_stdout or None


def _is_tesseract_not_found(exc: Exception) -> bool:
    """Return True when *exc* indicates that the Tesseract binary is missing."""
    # Matched by class name so pytesseract stays a soft dependency.
    if "TesseractNotFoundError" in type(exc).__name__:
        return True
    msg = str(exc).lower()
    return "tesseract is not installed" in msg or "tesseract is not in your path" in msg


def _parse_confidence(raw: object) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def _run_tesseract(image_bytes: bytes, *, lang: str, config: str) -> ExtractedText:
    """Run Tesseract on a PNG screenshot and rebuild line-ordered text."""
    import io

    import pytesseract
    from PIL import Image

    image = Image.open(io.BytesIO(image_bytes))
    data = pytesseract.image_to_data(image, lang=lang, config=config, output_type=pytesseract.Output.DICT)

    lines: list[str] = []
    current_words: list[str] = []
    current_key: tuple[int, int, int] | None = None
    confidences: list[float] = []

    for index, word in enumerate(data.get("text", [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (int(data["block_num"][index]), int(data["par_num"][index]), int(data["line_num"][index]))
        if current_key is not None and key != current_key:
            lines.append(" ".join(current_words))
            if key[:2] != current_key[:2]:
                lines.append("")
            current_words = []
        current_words.append(word)
        current_key = key
        confidence = _parse_confidence(data["conf"][index])
        if confidence is not None:
            confidences.append(confidence)

    if current_words:
        lines.append(" ".join(current_words))

    mean_confidence = sum(confidences) / len(confidences) / 100 if confidences else None
    return ExtractedText(text="\n".join(lines).strip(), confidence=_clamp_confidence(mean_confidence))


class TesseractOcrExtractor:
    """OCR the front window using a screenshot collaborator and Tesseract."""

    def __init__(
        self,
        screenshot: ScreenshotSource,
        *,
        lang: str = _TESSERACT_LANG,
        config: str = _TESSERACT_CONFIG,
    ) -> None:
        self.screenshot = screenshot
        self.lang = lang
        self.config = config

    async def extract_text(self, context: ExtractorContext) -> ExtractedText | None:
        global _tesseract_available

        if _tesseract_available is False:
            return None

        image_bytes = await self.screenshot.capture(context)
        if not image_bytes:
            logger.info("Screenshot source returned no image for %s", context.app_name or "front window")
            return None

        try:
            result = await asyncio.to_thread(_run_tesseract, image_bytes, lang=self.lang, config=self.config)
        except Exception as exc:
            if _is_tesseract_not_found(exc):
                _tesseract_available = False
                logger.warning(
                    "Tesseract is not installed or not in PATH; OCR fallback disabled for this run. "
                    "Desktop captures will fall back to metadata only."
                )
                return None
            raise

        _tesseract_available = True
        if not result.text:
            return None
        return result
