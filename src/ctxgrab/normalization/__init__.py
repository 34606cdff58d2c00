"""Deterministic normalization of captured text."""

from ctxgrab.normalization.chunking import HARD_MAX_TOKENS, build_chunks
from ctxgrab.normalization.engine import compute_confidence, normalize, truncation_warning
from ctxgrab.normalization.summarize import summarize
from ctxgrab.normalization.text import MAX_FULL_TEXT_CHARS, estimate_tokens, sanitize_text

__all__ = [
    "HARD_MAX_TOKENS",
    "MAX_FULL_TEXT_CHARS",
    "build_chunks",
    "compute_confidence",
    "estimate_tokens",
    "normalize",
    "sanitize_text",
    "summarize",
    "truncation_warning",
]
