"""Render a normalized capture as YAML frontmatter plus fixed markdown sections."""

from __future__ import annotations

import re
from collections.abc import Sequence

from ctxgrab.models import (
    ExtractionInput,
    Link,
    NormalizedContext,
    OutputFormat,
    SourceType,
    dedupe_links,
)
from ctxgrab.normalization.text import MAX_FULL_TEXT_CHARS, collapse_whitespace


NONE_MARKER = "(none)"
_BACKTICK_RUN_RE = re.compile(r"`+")
# Characters YAML refuses to read inside a double-quoted scalar.
_YAML_UNSAFE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\u2028\u2029]")


def _escape_unsafe(match: re.Match[str]) -> str:
    code = ord(match.group())
    return f"\\x{code:02x}" if code <= 0xFF else f"\\u{code:04x}"


def yaml_quote(value: str) -> str:
    """Double-quoted YAML scalar that cannot terminate the frontmatter block.

    ANSI colour codes from terminal titles or helper stderr, NUL and the C1
    range are written as ``\\xNN`` escapes, line separators as ``\\uNNNN``.
    """
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{_YAML_UNSAFE_RE.sub(_escape_unsafe, escaped)}"'


def _frontmatter(context: NormalizedContext) -> list[str]:
    lines = [
        "---",
        f"id: {yaml_quote(context.context_id)}",
        f"captured_at: {yaml_quote(context.captured_at)}",
        f"source_type: {yaml_quote(context.source_type.value)}",
    ]
    if context.source_type is SourceType.DESKTOP_APP:
        lines.append(f"app_bundle_id: {yaml_quote(context.app_bundle_id or 'unknown')}")
    else:
        lines.append(f"origin: {yaml_quote(context.origin)}")
    lines.extend(
        [
            f"title: {yaml_quote(context.title)}",
            f"app_or_site: {yaml_quote(context.app_or_site)}",
            f"extraction_method: {yaml_quote(context.extraction_method.value)}",
            f"confidence: {context.confidence:.2f}",
            f"truncated: {'true' if context.truncated else 'false'}",
            f"token_estimate: {context.token_estimate}",
        ]
    )
    if context.warnings:
        lines.append("warnings:")
        lines.extend(f"  - {yaml_quote(warning)}" for warning in context.warnings)
    else:
        lines.append("warnings: []")
    lines.append("---")
    return lines


def _bullets(items: Sequence[str]) -> list[str]:
    if not items:
        return [f"- {NONE_MARKER}"]
    return [f"- {collapse_whitespace(item)}" for item in items]


def _code_fence(text: str) -> str:
    longest = max((len(match.group(0)) for match in _BACKTICK_RUN_RE.finditer(text)), default=0)
    return "`" * max(3, longest + 1)


def _escape_link_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")


def _escape_href(href: str) -> str:
    return href.replace(" ", "%20").replace("(", "%28").replace(")", "%29")


def _link_lines(links: Sequence[Link]) -> list[str]:
    if not links:
        return [f"- {NONE_MARKER}"]
    lines: list[str] = []
    for link in links:
        label = link.text or link.href
        lines.append(f"- [{_escape_link_text(label)}]({_escape_href(link.href)})")
    return lines


def _metadata_lines(metadata: dict[str, str]) -> list[str]:
    if not metadata:
        return [f"- {NONE_MARKER}"]
    return [f"- {key}: {collapse_whitespace(metadata[key])}" for key in sorted(metadata)]


def render(
    context: NormalizedContext,
    payload: ExtractionInput,
    output_format: OutputFormat = OutputFormat.FULL,
) -> str:
    """Render *context* (with links from *payload*) to markdown.

    Every section header is emitted even when its body is empty; brief output
    drops only the chunk and raw excerpt sections.
    """
    lines = _frontmatter(context)
    lines.append("")

    if context.truncated:
        lines.append(f"> Warning: capture truncated at {MAX_FULL_TEXT_CHARS} characters.")
        lines.append("")

    lines.append("## Summary")
    lines.append(context.summary or NONE_MARKER)
    lines.append("")

    lines.append("## Key Points")
    lines.extend(_bullets(context.key_points))
    lines.append("")

    if output_format is OutputFormat.FULL:
        lines.append("## Content Chunks")
        if context.chunks:
            for position, chunk in enumerate(context.chunks):
                if position:
                    lines.append("")
                lines.append(f"### {chunk.chunk_id} (tokens: {chunk.token_estimate})")
                lines.append(chunk.text)
        else:
            lines.append(NONE_MARKER)
        lines.append("")

        fence = _code_fence(context.raw_excerpt)
        lines.append("## Raw Excerpt")
        lines.append(f"{fence}text")
        lines.append(context.raw_excerpt)
        lines.append(fence)
        lines.append("")

    lines.append("## Links & Metadata")
    lines.append("### Links")
    lines.extend(_link_lines(dedupe_links(list(payload.links))))
    lines.append("")
    lines.append("### Metadata")
    lines.extend(_metadata_lines(context.metadata))

    return "\n".join(lines) + "\n"
