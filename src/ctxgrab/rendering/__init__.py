"""Markdown rendering for normalized captures."""

from ctxgrab.rendering.markdown import render, yaml_quote

__all__ = ["render", "yaml_quote"]
