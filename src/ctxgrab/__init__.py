"""Deterministic context capture: resolve, normalize and render the frontmost content."""
