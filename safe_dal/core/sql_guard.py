"""Heuristic denylist for raw SQL strings.

This is defense in depth, not a security boundary. It only catches a few
obviously hostile shapes; bound parameters remain the actual injection
defense, and callers must never interpolate untrusted input into `raw()`.
"""

from __future__ import annotations

import re

from .errors import UnsafeQueryError

SUSPICIOUS_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("stacked destructive statement", re.compile(r";\s*(drop|delete|truncate|alter)\s", re.IGNORECASE)),
    ("union select", re.compile(r"union\s+(all\s+)?select", re.IGNORECASE)),
    ("trailing line comment", re.compile(r"--[^\n]*$")),
    ("block comment", re.compile(r"/\*.*?\*/", re.DOTALL)),
    ("exec call", re.compile(r"exec\s*\(", re.IGNORECASE)),
    ("script tag", re.compile(r"<\s*/?\s*script\b|script\s*>", re.IGNORECASE)),
)


def find_suspicious_pattern(query: str) -> str | None:
    """Return the label of the first denylisted pattern found in `query`."""

    for label, pattern in SUSPICIOUS_PATTERNS:
        if pattern.search(query):
            return label
    return None


def contains_suspicious_sql(query: str) -> bool:
    return find_suspicious_pattern(query) is not None


def ensure_safe_sql(query: str) -> str:
    """Return `query` unchanged or raise `UnsafeQueryError`."""

    if not isinstance(query, str) or not query.strip():
        raise UnsafeQueryError("Raw query must be a non-empty string.")
    label = find_suspicious_pattern(query)
    if label is not None:
        raise UnsafeQueryError(f"Potentially unsafe SQL query detected ({label}).")
    return query
