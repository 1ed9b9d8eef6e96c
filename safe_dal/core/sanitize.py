"""String sanitizers applied to values before they are written.

These are input hygiene rules, not an injection defense: every value still
travels to the store as a bound parameter.
"""

from __future__ import annotations

import re
from typing import Any, Mapping

from .errors import InvalidEmailError

MAX_EMAIL_LENGTH = 254

_TAG_RE = re.compile(r"<[^>]*>")
_SCRIPT_PROTOCOL_RE = re.compile(r"javascript\s*:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_METACHARS_RE = re.compile(r"[<>\"'`;\\]")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def sanitize_string(value: str) -> str:
    """Strip markup, control characters, and quoting metacharacters.

    Removes complete HTML tags (keeping their inner text), `javascript:`
    protocols, inline event handlers (`onclick=`), ASCII control characters
    other than tab/newline/carriage return, and the characters
    ``< > " ' ` ; \\``. Surrounding whitespace is
    trimmed; no other length limit applies.
    """

    if not isinstance(value, str):
        raise TypeError(f"sanitize_string expects str, got {type(value).__name__}.")

    cleaned = _TAG_RE.sub("", value)
    cleaned = _SCRIPT_PROTOCOL_RE.sub("", cleaned)
    cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
    cleaned = _CONTROL_CHARS_RE.sub("", cleaned)
    cleaned = _METACHARS_RE.sub("", cleaned)
    return cleaned.strip()


def sanitize_email(value: str) -> str:
    """Normalize an email address (trim, lowercase) and validate its shape.

    Raises:
        InvalidEmailError: The normalized value is not `local@domain.tld`.
    """

    if not isinstance(value, str):
        raise TypeError(f"sanitize_email expects str, got {type(value).__name__}.")

    normalized = _CONTROL_CHARS_RE.sub("", value).strip().lower()
    if len(normalized) > MAX_EMAIL_LENGTH or not _EMAIL_RE.match(normalized):
        raise InvalidEmailError("Invalid email format.")
    return normalized


def is_email_field(name: str) -> bool:
    return "email" in name.lower()


def sanitize_record(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of `data` with every string value sanitized.

    Keys containing "email" (case-insensitive) go through `sanitize_email`;
    other strings through `sanitize_string`. Non-string values pass through.
    """

    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            value = sanitize_email(value) if is_email_field(key) else sanitize_string(value)
        sanitized[key] = value
    return sanitized
