from __future__ import annotations

import re
from typing import Any, Sequence
from uuid import UUID


MAX_QUESTION_LENGTH = 500
MAX_OPTION_LENGTH = 200
MIN_OPTIONS = 2
MAX_OPTIONS = 10

# Script tags and script-capable URI schemes are rejected outright, before any escaping.
_FORBIDDEN_PATTERN = re.compile(r"<\s*script|javascript\s*:|vbscript\s*:|data\s*:", re.IGNORECASE)
_TAG_PATTERN = re.compile(r"<[^>]*>")
# Ampersands that already start one of the entities emitted below stay untouched.
_BARE_AMPERSAND = re.compile(r"&(?!(?:amp|lt|gt|quot|#x27);)")
_ESCAPES = (("<", "&lt;"), (">", "&gt;"), ('"', "&quot;"), ("'", "&#x27;"))


def contains_forbidden_content(text: str) -> bool:
    return bool(_FORBIDDEN_PATTERN.search(text))


def validate_poll(question: str | None, options: Sequence[str] | None) -> str | None:
    """Check raw poll input and return the first failing rule's message.

    Rules run in a fixed order and the first failure wins: question present,
    question length, forbidden content in the question, option count, then
    each option (present, length, forbidden content), then case-insensitive
    uniqueness of the trimmed options. Lengths are measured on the raw text
    the user typed, so this must run before :func:`sanitize`.
    """
    if not question or not question.strip():
        return "Question is required"
    if len(question) > MAX_QUESTION_LENGTH:
        return f"Question must be {MAX_QUESTION_LENGTH} characters or less"
    if contains_forbidden_content(question):
        return "Question contains invalid content"

    options = list(options or [])
    if len(options) < MIN_OPTIONS:
        return f"At least {MIN_OPTIONS} options are required"
    if len(options) > MAX_OPTIONS:
        return f"Maximum {MAX_OPTIONS} options allowed"

    for position, option in enumerate(options, start=1):
        if not isinstance(option, str) or not option.strip():
            return f"Option {position} cannot be empty"
        if len(option) > MAX_OPTION_LENGTH:
            return f"Option {position} must be {MAX_OPTION_LENGTH} characters or less"
        if contains_forbidden_content(option):
            return f"Option {position} contains invalid content"

    normalized = {option.strip().lower() for option in options}
    if len(normalized) != len(options):
        return "All options must be unique"
    return None


def sanitize(text: str) -> str:
    # Strip tag-like markup, escape the HTML-significant characters, then trim.
    cleaned = _TAG_PATTERN.sub("", text)
    cleaned = _BARE_AMPERSAND.sub("&amp;", cleaned)
    for raw, entity in _ESCAPES:
        cleaned = cleaned.replace(raw, entity)
    return cleaned.strip()


def sanitize_options(options: Sequence[str]) -> list[str]:
    return [sanitize(option) for option in options]


def validate_poll_id(raw: Any) -> str | None:
    # Return the canonical id string, or None when the value is not a UUID.
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        return str(UUID(raw.strip()))
    except ValueError:
        return None


def validate_option_index(raw: Any) -> int | None:
    # bool is an int subclass; True must not be accepted as option 1.
    if isinstance(raw, bool):
        return None
    # JSON clients may send whole numbers as floats (1.0).
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    if not isinstance(raw, int):
        return None
    if raw < 0:
        return None
    return raw
