"""Extractive summary and key-point selection.

Sentences are scored from the document alone (heading words and proximity,
term frequency, length, position) and picked greedily by score with a
novelty filter.  Output keeps original document order so small score
changes never reorder the rendered lines.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Sequence

from ctxgrab.models import Heading
from ctxgrab.normalization.text import collapse_whitespace, overlap_ratio, split_sentences, trim_line, word_tokens


MAX_SUMMARY_LINES = 6
MAX_KEY_POINTS = 8
BRIEF_KEY_POINTS = 5
NEAR_DUPLICATE_OVERLAP = 0.72
MAX_SUMMARY_LINE_CHARS = 280
MAX_KEY_POINT_CHARS = 220

_LENGTH_SATURATION_WORDS = 24
_HEADING_OVERLAP_CAP = 4
_HEADING_OVERLAP_WEIGHT = 0.6
_HEADING_PROXIMITY_WINDOW = 3
_HEADING_PROXIMITY_WEIGHT = 0.5
_MIN_CONTENT_WORD_CHARS = 3

_STOPWORDS = frozenset(
    {
        "about", "after", "also", "and", "are", "because", "been", "but", "can", "could",
        "for", "from", "had", "has", "have", "her", "his", "how", "into", "its", "just",
        "more", "not", "now", "one", "only", "our", "out", "she", "should", "some", "than",
        "that", "the", "their", "them", "then", "there", "these", "they", "this", "those",
        "was", "were", "what", "when", "which", "while", "who", "will", "with", "would",
        "you", "your",
    }
)


@dataclass(frozen=True, slots=True)
class ScoredSentence:
    index: int
    text: str
    tokens: frozenset[str]
    score: float


def _content_words(words: Sequence[str]) -> list[str]:
    return [word for word in words if len(word) >= _MIN_CONTENT_WORD_CHARS and word not in _STOPWORDS]


def score_sentences(text: str, headings: Sequence[Heading] = ()) -> list[ScoredSentence]:
    """Score every non-heading sentence of *text*."""
    sentences = split_sentences(text)
    if not sentences:
        return []

    heading_texts = {collapse_whitespace(item.text).lower() for item in headings if item.text.strip()}
    heading_words: set[str] = set()
    for item in headings:
        heading_words.update(_content_words(word_tokens(item.text)))

    tokenized = [word_tokens(sentence) for sentence in sentences]
    frequencies: Counter[str] = Counter()
    for words in tokenized:
        frequencies.update(_content_words(words))
    max_frequency = max(frequencies.values(), default=0)

    scored: list[ScoredSentence] = []
    last_heading_index: int | None = None

    for index, (sentence, words) in enumerate(zip(sentences, tokenized)):
        if collapse_whitespace(sentence).lower() in heading_texts:
            last_heading_index = index
            continue
        if not words:
            continue

        content = _content_words(words)
        length_score = min(len(words) / _LENGTH_SATURATION_WORDS, 1.0)
        overlap = len(set(content) & heading_words)
        heading_score = min(overlap, _HEADING_OVERLAP_CAP) * _HEADING_OVERLAP_WEIGHT

        proximity_score = 0.0
        if last_heading_index is not None:
            distance = index - last_heading_index
            if distance <= _HEADING_PROXIMITY_WINDOW:
                proximity_score = _HEADING_PROXIMITY_WEIGHT / distance

        if content and max_frequency:
            frequency_score = sum(frequencies[word] for word in content) / (len(content) * max_frequency)
        else:
            frequency_score = 0.0

        position_score = 1.0 / (index + 1)
        score = length_score + heading_score + proximity_score + frequency_score + position_score
        scored.append(
            ScoredSentence(index=index, text=sentence, tokens=frozenset(words), score=round(score, 9))
        )

    return scored


def _ranked(sentences: Sequence[ScoredSentence]) -> list[ScoredSentence]:
    return sorted(sentences, key=lambda item: (-item.score, item.index))


def _is_novel(candidate: ScoredSentence, selected: Sequence[ScoredSentence]) -> bool:
    return all(overlap_ratio(candidate.tokens, item.tokens) < NEAR_DUPLICATE_OVERLAP for item in selected)


def select_summary(sentences: Sequence[ScoredSentence], limit: int = MAX_SUMMARY_LINES) -> list[ScoredSentence]:
    picked: list[ScoredSentence] = []
    for candidate in _ranked(sentences):
        if len(picked) >= limit:
            break
        if _is_novel(candidate, picked):
            picked.append(candidate)
    return sorted(picked, key=lambda item: item.index)


def select_key_points(
    sentences: Sequence[ScoredSentence],
    summary: Sequence[ScoredSentence],
    limit: int = MAX_KEY_POINTS,
) -> list[ScoredSentence]:
    """Pick further high-scoring sentences distinct from each other and from *summary*."""
    summary_indexes = {item.index for item in summary}
    taken: list[ScoredSentence] = list(summary)
    picked: list[ScoredSentence] = []
    for candidate in _ranked(sentences):
        if len(picked) >= limit:
            break
        if candidate.index in summary_indexes:
            continue
        if _is_novel(candidate, taken):
            picked.append(candidate)
            taken.append(candidate)
    return sorted(picked, key=lambda item: item.index)


def summarize(
    text: str,
    headings: Sequence[Heading] = (),
    *,
    summary_limit: int = MAX_SUMMARY_LINES,
    key_point_limit: int = MAX_KEY_POINTS,
) -> tuple[str, list[str]]:
    """Return the summary block and ordered key points for *text*."""
    scored = score_sentences(text, headings)
    summary = select_summary(scored, summary_limit)
    key_points = select_key_points(scored, summary, key_point_limit)
    summary_text = "\n".join(trim_line(item.text, MAX_SUMMARY_LINE_CHARS) for item in summary)
    return summary_text, [trim_line(item.text, MAX_KEY_POINT_CHARS) for item in key_points]
