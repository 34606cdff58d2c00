"""Per-application accessibility thresholds.

Apps whose accessibility tree under-reports visible text get a lower minimum
and a deeper traversal.  This module is data plus a lookup; the resolver never
branches on application identity itself.
"""

from __future__ import annotations

from ctxgrab.models import AccessibilityProfile


DEFAULT_PROFILE = AccessibilityProfile(
    name="default",
    minimum_chars=240,
    attribute_profile="standard",
    max_depth=2,
    max_elements=96,
)

DENSE_EDITOR_PROFILE = AccessibilityProfile(
    name="dense_editor",
    minimum_chars=220,
    attribute_profile="document",
    max_depth=3,
    max_elements=160,
)

TERMINAL_PROFILE = AccessibilityProfile(
    name="terminal",
    minimum_chars=180,
    attribute_profile="terminal",
    max_depth=3,
    max_elements=128,
)

# Matched against the lowercased bundle id.
BUNDLE_PREFIX_PROFILES: tuple[tuple[str, AccessibilityProfile], ...] = (
    ("com.apple.dt.xcode", DENSE_EDITOR_PROFILE),
    ("com.jetbrains.", DENSE_EDITOR_PROFILE),
    ("com.microsoft.vscode", DENSE_EDITOR_PROFILE),
    ("com.microsoft.vscodeinsiders", DENSE_EDITOR_PROFILE),
    ("org.gnu.emacs", DENSE_EDITOR_PROFILE),
)

BUNDLE_ID_PROFILES: dict[str, AccessibilityProfile] = {
    "com.apple.terminal": TERMINAL_PROFILE,
    "com.googlecode.iterm2": TERMINAL_PROFILE,
    "dev.warp.warp-stable": TERMINAL_PROFILE,
}

# Matched as substrings of the lowercased app name.
APP_NAME_PROFILES: tuple[tuple[str, AccessibilityProfile], ...] = (
    ("terminal", TERMINAL_PROFILE),
    ("iterm", TERMINAL_PROFILE),
    ("warp", TERMINAL_PROFILE),
)


def accessibility_profile(bundle_id: str | None, app_name: str | None = None) -> AccessibilityProfile:
    bundle = (bundle_id or "").lower()
    name = (app_name or "").lower()

    if bundle in BUNDLE_ID_PROFILES:
        return BUNDLE_ID_PROFILES[bundle]
    if bundle:
        for prefix, profile in BUNDLE_PREFIX_PROFILES:
            if bundle.startswith(prefix):
                return profile
    if name:
        for fragment, profile in APP_NAME_PROFILES:
            if fragment in name:
                return profile
    return DEFAULT_PROFILE
