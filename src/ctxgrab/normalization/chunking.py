"""Split normalized text into token-bounded chunks at paragraph boundaries."""

from __future__ import annotations

import re
from typing import Sequence

from ctxgrab.models import Chunk, Heading
from ctxgrab.normalization.text import (
    CHARS_PER_TOKEN,
    collapse_whitespace,
    estimate_tokens,
    split_sentences,
    tokens_for_length,
)


TARGET_MIN_TOKENS = 1200
TARGET_MAX_TOKENS = 1800
HARD_MAX_TOKENS = 2000

_PARAGRAPH_SPLIT_RE = re.compile(r"\n{2,}")
_MARKDOWN_HEADING_RE = re.compile(r"^#{1,6}\s")


def chunk_id(position: int) -> str:
    return f"chunk-{position:03d}"


def _hard_windows(text: str) -> list[str]:
    size = HARD_MAX_TOKENS * CHARS_PER_TOKEN
    windows = [text[start : start + size].strip() for start in range(0, len(text), size)]
    return [window for window in windows if window]


def _split_oversized(paragraph: str) -> list[str]:
    """Break a paragraph above the hard cap into sentence groups, then raw windows."""
    pieces: list[str] = []
    current = ""

    for sentence in split_sentences(paragraph) or [paragraph]:
        if tokens_for_length(len(sentence)) > HARD_MAX_TOKENS:
            if current:
                pieces.append(current)
                current = ""
            pieces.extend(_hard_windows(sentence))
            continue

        candidate = f"{current} {sentence}" if current else sentence
        if current and tokens_for_length(len(candidate)) > TARGET_MAX_TOKENS:
            pieces.append(current)
            current = sentence
        else:
            current = candidate

    if current:
        pieces.append(current)
    return pieces


def _is_heading(paragraph: str, heading_texts: set[str]) -> bool:
    if _MARKDOWN_HEADING_RE.match(paragraph):
        return True
    return collapse_whitespace(paragraph).lower() in heading_texts


def build_chunks(text: str, headings: Sequence[Heading] = ()) -> list[Chunk]:
    """Chunk *text* in document order.

    A heading paragraph opens a new chunk once the current one reaches the
    lower target; otherwise a chunk is flushed before it would pass the upper
    target.  No chunk exceeds ``HARD_MAX_TOKENS``.
    """
    heading_texts = {collapse_whitespace(item.text).lower() for item in headings if item.text.strip()}
    paragraphs = [part.strip() for part in _PARAGRAPH_SPLIT_RE.split(text) if part.strip()]

    bodies: list[str] = []
    current: list[str] = []
    current_length = 0

    def flush() -> None:
        nonlocal current, current_length
        if current:
            bodies.append("\n\n".join(current))
        current = []
        current_length = 0

    for paragraph in paragraphs:
        is_heading = _is_heading(paragraph, heading_texts)
        pieces = [paragraph] if estimate_tokens(paragraph) <= HARD_MAX_TOKENS else _split_oversized(paragraph)

        for piece in pieces:
            if current and is_heading and tokens_for_length(current_length) >= TARGET_MIN_TOKENS:
                flush()
            prospective = current_length + 2 + len(piece) if current else len(piece)
            if current and tokens_for_length(prospective) > TARGET_MAX_TOKENS:
                flush()
                prospective = len(piece)
            current.append(piece)
            current_length = prospective

    flush()

    return [
        Chunk(chunk_id=chunk_id(position), token_estimate=estimate_tokens(body), text=body)
        for position, body in enumerate(bodies, start=1)
    ]
