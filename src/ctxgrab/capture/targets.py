"""Foreground application to browser bridge mapping."""

from __future__ import annotations

from ctxgrab.models import BrowserTarget, ForegroundApp


SAFARI_BUNDLE_IDS = frozenset({"com.apple.Safari", "com.apple.SafariTechnologyPreview"})

# Chromium-family bundle ids and the application name the chrome bridge
# should script.
CHROMIUM_APP_NAMES: dict[str, str] = {
    "com.google.Chrome": "Google Chrome",
    "com.google.Chrome.canary": "Google Chrome Canary",
    "company.thebrowser.Browser": "Arc",
    "com.brave.Browser": "Brave Browser",
    "com.brave.Browser.beta": "Brave Browser Beta",
    "com.brave.Browser.nightly": "Brave Browser Nightly",
    "com.microsoft.edgemac": "Microsoft Edge",
    "com.microsoft.edgemac.Beta": "Microsoft Edge Beta",
    "com.microsoft.edgemac.Dev": "Microsoft Edge Dev",
    "com.microsoft.edgemac.Canary": "Microsoft Edge Canary",
    "com.vivaldi.Vivaldi": "Vivaldi",
    "com.operasoftware.Opera": "Opera",
    "com.operasoftware.OperaGX": "Opera GX",
}

DEFAULT_CHROMIUM_APP_NAME = "Google Chrome"

_DISPLAY_NAMES = {
    BrowserTarget.SAFARI: "Safari",
    BrowserTarget.CHROME: "Chrome",
}


def detect_browser_target(app: ForegroundApp) -> BrowserTarget | None:
    """Return the bridge that can read *app*, or ``None`` for non-browser apps."""
    if app.bundle_id in SAFARI_BUNDLE_IDS:
        return BrowserTarget.SAFARI
    if app.bundle_id in CHROMIUM_APP_NAMES:
        return BrowserTarget.CHROME
    return None


def chromium_app_name(bundle_id: str | None) -> str:
    if bundle_id is None:
        return DEFAULT_CHROMIUM_APP_NAME
    return CHROMIUM_APP_NAMES.get(bundle_id, DEFAULT_CHROMIUM_APP_NAME)


def browser_display_name(target: BrowserTarget) -> str:
    return _DISPLAY_NAMES[target]


def browser_candidates(
    app: ForegroundApp,
    *,
    override: BrowserTarget | None,
    priority: tuple[BrowserTarget, ...],
) -> list[BrowserTarget]:
    """Ordered browser bridges to try for *app*.

    The configured override always comes first; remaining candidates follow
    *priority*.  An unrecognized app without an override yields no candidates.
    """
    candidates: set[BrowserTarget] = set()
    detected = detect_browser_target(app)
    if detected is not None:
        candidates.add(detected)

    ordered: list[BrowserTarget] = []
    if override is not None:
        ordered.append(override)
    for target in priority:
        if target in candidates and target not in ordered:
            ordered.append(target)
    for target in BrowserTarget:
        if target in candidates and target not in ordered:
            ordered.append(target)
    return ordered
