"""End-to-end captures through real bridge processes and configured extractors."""

from __future__ import annotations

import asyncio
from pathlib import Path
import sys
import textwrap

import pytest

from ctxgrab import app
from ctxgrab.config import CaptureSettings
from ctxgrab.models import (
    CaptureMode,
    CaptureRequest,
    ExtractionInput,
    ExtractionMethod,
    ForegroundApp,
    OutputFormat,
    SourceKind,
)
from ctxgrab.normalization import normalize
from ctxgrab.rendering import render
from ctxgrab.transport import PingStatus


CHROME_APP = ForegroundApp(bundle_id="company.thebrowser.Browser", app_name="Arc", window_title="Field Guide")
NOTES_APP = ForegroundApp(bundle_id="com.apple.Notes", app_name="Notes", window_title="Trip plan")

AX_TEXT = " ".join(
    [
        "The trip starts in Lisbon on the second of May.",
        "Trains to Porto leave every hour from Santa Apolonia station.",
        "Hotel bookings are confirmed for four nights in the old town.",
        "Pack light because the apartment has no elevator.",
        "Dinner reservations still need to be made for Friday evening.",
    ]
)

BRIDGE_SCRIPT = textwrap.dedent(
    """
    import json
    import os
    import sys
    import time

    mode = sys.argv[1]
    version = "2" if mode == "skew" else "1"

    if "--ping" in sys.argv:
        print(json.dumps({"ok": True, "protocolVersion": version}))
        sys.exit(0)

    request = json.loads(sys.stdin.readline())
    if mode == "slow":
        time.sleep(30)

    full_text = "Birds of the Coast\\n\\nGulls nest on the cliffs. Terns arrive in April."
    if mode == "huge":
        full_text = "a" * 200001

    print("bridge: request received", flush=True)
    capture = {
        "source": "browser",
        "browser": "chrome",
        "url": "https://guide.example.com/birds",
        "title": "Field Guide via " + os.environ.get("CTXGRAB_CHROME_APP_NAME", "?"),
        "fullText": full_text,
        "headings": [{"level": 1, "text": "Birds of the Coast"}],
        "links": [
            {"text": "Index", "href": "https://guide.example.com"},
            {"text": "Index", "href": "https://guide.example.com"},
        ],
        "siteName": "Guide",
        "selectionText": "Terns arrive in April.",
    }
    print(json.dumps({
        "id": "res-" + request["id"],
        "type": "extension.capture.result",
        "timestamp": request["timestamp"],
        "payload": {"protocolVersion": version, "capture": capture},
    }))
    """
)


@pytest.fixture()
def bridge(tmp_path: Path):
    script = tmp_path / "chrome_bridge.py"
    script.write_text(BRIDGE_SCRIPT, encoding="utf-8")

    def _command(mode: str) -> tuple[str, ...]:
        return (sys.executable, str(script), mode)

    return _command


def _capture(settings: CaptureSettings, front_app: ForegroundApp):
    session = app.build_session(settings)
    request = app.new_request(settings, CaptureMode.MANUAL_HOTKEY)
    return asyncio.run(session.capture(request, front_app))


# ---------------------------------------------------------------------------
# Capture scenarios
# ---------------------------------------------------------------------------

def test_browser_capture_through_bridge(bridge) -> None:
    settings = CaptureSettings(chrome_bridge_command=bridge("ok"), capture_timeout_ms=15_000)

    outcome = _capture(settings, CHROME_APP)

    assert outcome.resolution.method is ExtractionMethod.BROWSER_EXTENSION
    assert outcome.resolution.transport_status == "chrome_extension_ok"
    assert outcome.context.title == "Field Guide via Arc"
    assert outcome.context.metadata["selection_text"] == "Terns arrive in April."
    markdown = outcome.markdown
    assert 'source_type: "webpage"' in markdown
    assert 'origin: "https://guide.example.com/birds"' in markdown
    assert 'extraction_method: "browser_extension"' in markdown
    assert "confidence: 0.92" in markdown
    assert "warnings: []" in markdown
    assert markdown.count("- [Index](https://guide.example.com)") == 1
    assert "Birds of the Coast" not in outcome.context.summary.split("\n")


def test_selection_text_can_be_excluded(bridge) -> None:
    settings = CaptureSettings(
        chrome_bridge_command=bridge("ok"),
        capture_timeout_ms=15_000,
        include_selection_text=False,
    )

    outcome = _capture(settings, CHROME_APP)

    assert "selection_text" not in outcome.context.metadata


def test_slow_bridge_falls_back_to_accessibility(bridge) -> None:
    settings = CaptureSettings(
        chrome_bridge_command=bridge("slow"),
        capture_timeout_ms=300,
        accessibility_text_override=AX_TEXT,
    )

    outcome = _capture(settings, CHROME_APP)

    assert outcome.resolution.method is ExtractionMethod.ACCESSIBILITY
    assert outcome.context.warnings == (
        "chrome: ERR_TIMEOUT: Timed out waiting for chrome bridge response after 300ms.",
        "Used accessibility fallback text.",
    )
    assert outcome.error_code == "ERR_TIMEOUT"
    assert 'source_type: "desktop_app"' in outcome.markdown
    assert 'app_bundle_id: "company.thebrowser.Browser"' in outcome.markdown
    assert "confidence: 0.85" in outcome.markdown


def test_short_accessibility_text_falls_back_to_ocr() -> None:
    settings = CaptureSettings(
        accessibility_text_override="Trip plan",
        ocr_text_override="Day one: Lisbon. Day two: Sintra. Day three: Porto.",
    )

    outcome = _capture(settings, NOTES_APP)

    assert outcome.resolution.method is ExtractionMethod.OCR
    assert outcome.context.warnings == ("AX extraction below threshold (9/240 chars); used OCR fallback text.",)
    assert 'extraction_method: "ocr"' in outcome.markdown
    assert "confidence: 0.55" in outcome.markdown


def test_nothing_available_yields_metadata_only() -> None:
    outcome = _capture(CaptureSettings(), NOTES_APP)

    assert outcome.resolution.method is ExtractionMethod.METADATA_ONLY
    assert outcome.resolution.transport_status == "desktop_capture_error:ERR_EXTENSION_UNAVAILABLE"
    assert outcome.context.title == "Trip plan"
    assert outcome.context.confidence == 0.2
    assert "No extractable text captured." in outcome.markdown
    assert 'extraction_method: "metadata_only"' in outcome.markdown
    assert "## Content Chunks\n### chunk-001" in outcome.markdown


def test_protocol_skew_is_rejected(bridge) -> None:
    settings = CaptureSettings(chrome_bridge_command=bridge("skew"), capture_timeout_ms=15_000)

    outcome = _capture(settings, CHROME_APP)

    assert outcome.resolution.method is ExtractionMethod.METADATA_ONLY
    assert outcome.resolution.attempts[0].error_code == "ERR_PROTOCOL_VERSION"
    assert outcome.context.warnings[0].startswith("chrome: ERR_PROTOCOL_VERSION: ")


def test_brief_output_through_the_whole_pipeline(bridge) -> None:
    settings = CaptureSettings(
        chrome_bridge_command=bridge("ok"),
        capture_timeout_ms=15_000,
        output_format=OutputFormat.BRIEF,
    )

    outcome = _capture(settings, CHROME_APP)

    assert "## Raw Excerpt" not in outcome.markdown
    assert outcome.markdown.endswith("\n")


def test_long_repeated_article_is_summarized_and_chunked() -> None:
    sentence = "Context capture keeps the browser text deterministic and ready to paste."
    extraction = ExtractionInput(
        source=SourceKind.BROWSER,
        url="https://example.com/repeat",
        title="Repeated",
        full_text=" ".join([sentence] * 300),
        browser="chrome",
    )

    context = normalize(
        extraction,
        ExtractionMethod.BROWSER_EXTENSION,
        context_id="ctx-a",
        captured_at="2026-01-02T03:04:05.000Z",
    )
    markdown = render(context, extraction)

    assert context.truncated is False
    assert len(context.chunks) >= 1
    assert [chunk.chunk_id for chunk in context.chunks] == [
        f"chunk-{position:03d}" for position in range(1, len(context.chunks) + 1)
    ]
    assert len(context.summary.split("\n")) <= 6
    assert 'extraction_method: "browser_extension"' in markdown
    assert render(context, extraction) == markdown


def test_slow_bridge_with_sparse_desktop_text_ends_metadata_only(bridge) -> None:
    settings = CaptureSettings(
        chrome_bridge_command=bridge("slow"),
        capture_timeout_ms=1200,
        accessibility_text_override="z" * 50,
    )

    outcome = _capture(settings, CHROME_APP)

    assert outcome.resolution.method is ExtractionMethod.METADATA_ONLY
    joined = " ".join(outcome.context.warnings)
    assert "ERR_TIMEOUT" in joined
    assert "AX extraction below threshold (50/240 chars)" in joined
    assert "OCR extraction unavailable" in joined
    assert 'extraction_method: "metadata_only"' in outcome.markdown
    assert outcome.context.raw_excerpt == "z" * 50


def test_oversized_bridge_payload_never_reaches_normalization(bridge) -> None:
    settings = CaptureSettings(chrome_bridge_command=bridge("huge"), capture_timeout_ms=15_000)

    outcome = _capture(settings, CHROME_APP)

    assert outcome.resolution.attempts[0].error_code == "ERR_PAYLOAD_TOO_LARGE"
    assert outcome.resolution.method is ExtractionMethod.METADATA_ONLY
    assert outcome.context.truncated is False


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

def test_diagnostics_ping_real_bridges(bridge) -> None:
    settings = CaptureSettings(
        safari_bridge_command=bridge("skew"),
        chrome_bridge_command=bridge("ok"),
        ping_timeout_ms=15_000,
        diagnostics_deadline_ms=20_000,
    )
    dispatcher = app.build_dispatcher(settings)

    report = asyncio.run(app.diagnose(settings, dispatcher, front_app=CHROME_APP))

    assert report.ping("safari").status is PingStatus.PROTOCOL_MISMATCH
    assert report.ping("chrome").status is PingStatus.READY
    assert report.ping("chrome").transport_status == "chrome_extension_ok"
    assert report.front_app == "Arc"


def test_session_result_feeds_diagnostics() -> None:
    settings = CaptureSettings()
    session = app.build_session(settings)
    request = CaptureRequest.create(CaptureMode.MANUAL_MENU, timeout_ms=500)

    async def _scenario():
        await session.capture(request, NOTES_APP)
        return await app.diagnose(settings, app.build_dispatcher(settings), session=session)

    report = asyncio.run(_scenario())

    assert report.last_capture == f"{request.requested_at} (metadata_only)"
    assert report.last_error == "ERR_EXTENSION_UNAVAILABLE"
