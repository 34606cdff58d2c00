"""Whitespace cleanup, truncation, sentence splitting and token estimates."""

from __future__ import annotations

import math
import re
from typing import Iterable

from razdel import sentenize, tokenize


MAX_FULL_TEXT_CHARS = 200_000
CHARS_PER_TOKEN = 4

_CRLF_RE = re.compile(r"\r\n?")
_INLINE_SPACE_RE = re.compile(r"[\t ]+")
_TRAILING_SPACE_RE = re.compile(r" +\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_WORD_RE = re.compile(r"\w+")


def sanitize_text(text: str) -> str:
    """Normalize line endings, collapse inline whitespace and blank-line runs."""
    value = _CRLF_RE.sub("\n", text)
    value = _INLINE_SPACE_RE.sub(" ", value)
    value = _TRAILING_SPACE_RE.sub("\n", value)
    value = _BLANK_RUN_RE.sub("\n\n", value)
    return value.strip()


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def truncate_text(text: str, limit: int = MAX_FULL_TEXT_CHARS) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    return text[:limit], True


def estimate_tokens(text: str) -> int:
    stripped = text.strip()
    if not stripped:
        return 0
    return math.ceil(len(stripped) / CHARS_PER_TOKEN)


def tokens_for_length(length: int) -> int:
    return math.ceil(length / CHARS_PER_TOKEN) if length > 0 else 0


def trim_line(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, ending with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: limit - 1].rstrip() + "…"


def split_sentences(text: str) -> list[str]:
    """Split *text* into sentences, never joining across line breaks."""
    sentences: list[str] = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        for match in sentenize(line):
            value = match.text.strip()
            if value:
                sentences.append(value)
    return sentences


def word_tokens(text: str) -> list[str]:
    """Lowercased alphanumeric tokens of *text*."""
    words: list[str] = []
    for token in tokenize(text.lower()):
        value = token.text.strip()
        if value and _WORD_RE.fullmatch(value):
            words.append(value)
    return words


def overlap_ratio(left: frozenset[str], right: frozenset[str]) -> float:
    """Shared-token ratio relative to the smaller of the two token sets."""
    if not left or not right:
        return 0.0
    return len(left & right) / min(len(left), len(right))


def unique_in_order(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        cleaned = value.strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result
