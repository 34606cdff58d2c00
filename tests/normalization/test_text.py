from __future__ import annotations

import pytest

from ctxgrab.normalization.text import (
    MAX_FULL_TEXT_CHARS,
    estimate_tokens,
    overlap_ratio,
    sanitize_text,
    split_sentences,
    tokens_for_length,
    trim_line,
    truncate_text,
    unique_in_order,
    word_tokens,
)


def test_sanitize_text_normalizes_whitespace() -> None:
    raw = "  Title\r\n\r\n\r\nBody\t\t text  \nnext   line\n\n\n\n"

    assert sanitize_text(raw) == "Title\n\nBody text\nnext line"


def test_truncate_text_boundary() -> None:
    at_limit = "a" * MAX_FULL_TEXT_CHARS
    over_limit = at_limit + "b"

    assert truncate_text(at_limit) == (at_limit, False)
    assert truncate_text(over_limit) == (at_limit, True)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", 0),
        ("   \n ", 0),
        ("abcd", 1),
        ("abcde", 2),
        ("  abcdefgh  ", 2),
    ],
)
def test_estimate_tokens(text: str, expected: int) -> None:
    assert estimate_tokens(text) == expected


def test_tokens_for_length() -> None:
    assert tokens_for_length(0) == 0
    assert tokens_for_length(7) == 2
    assert tokens_for_length(8000) == 2000


def test_trim_line_adds_ellipsis_within_limit() -> None:
    assert trim_line("short", 10) == "short"
    trimmed = trim_line("abcdef ghijkl", 8)
    assert trimmed == "abcdef…"
    assert len(trimmed) <= 8


def test_split_sentences_respects_line_breaks() -> None:
    text = "First point is here. Second point follows!\nA heading without a stop\n\nFinal sentence."

    assert split_sentences(text) == [
        "First point is here.",
        "Second point follows!",
        "A heading without a stop",
        "Final sentence.",
    ]


def test_word_tokens_drop_punctuation() -> None:
    assert word_tokens("Hello, World! Version 2 ships.") == ["hello", "world", "version", "2", "ships"]


def test_overlap_ratio_uses_smaller_set() -> None:
    left = frozenset({"a", "b", "c", "d"})
    right = frozenset({"a", "b"})

    assert overlap_ratio(left, right) == 1.0
    assert overlap_ratio(left, frozenset({"a", "x"})) == 0.5
    assert overlap_ratio(left, frozenset()) == 0.0


def test_unique_in_order() -> None:
    assert unique_in_order(["b", " a ", "", "b", "a"]) == ["b", "a"]
