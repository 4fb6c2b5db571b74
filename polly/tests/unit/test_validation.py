from __future__ import annotations

import pytest

from polly.services.validation import (
    sanitize,
    validate_option_index,
    validate_poll,
    validate_poll_id,
)


@pytest.mark.parametrize(
    ("question", "options", "expected"),
    [
        ("", ["Red", "Blue"], "Question is required"),
        ("   ", ["Red", "Blue"], "Question is required"),
        ("x" * 501, ["Red", "Blue"], "Question must be 500 characters or less"),
        ("<script>alert(1)</script>Best?", ["Red", "Blue"], "Question contains invalid content"),
        ("Visit JAVASCRIPT:alert(1)", ["Red", "Blue"], "Question contains invalid content"),
        ("Best color?", ["Red"], "At least 2 options are required"),
        ("Best color?", [f"o{i}" for i in range(11)], "Maximum 10 options allowed"),
        ("Best color?", ["Red", "  "], "Option 2 cannot be empty"),
        ("Best color?", ["Red", "b" * 201], "Option 2 must be 200 characters or less"),
        ("Best color?", ["data:text/html,hi", "Blue"], "Option 1 contains invalid content"),
        ("Best color?", ["Red", " red "], "All options must be unique"),
    ],
)
def test_validate_poll_rejections(question, options, expected) -> None:
    assert validate_poll(question, options) == expected


def test_validate_poll_accepts_boundary_values() -> None:
    assert validate_poll("q" * 500, ["a" * 200, "b"]) is None
    assert validate_poll("Best color?", [f"o{i}" for i in range(10)]) is None


def test_validate_poll_first_failure_wins() -> None:
    # Oversized and forbidden question with bad options: the length rule fires first.
    question = "<script>" + "x" * 600
    assert validate_poll(question, []) == "Question must be 500 characters or less"


def test_validation_uses_raw_length_not_escaped_length() -> None:
    # 500 ampersands escape to far more than 500 characters but are valid input.
    assert validate_poll("&" * 500, ["Yes", "No"]) is None


def test_sanitize_strips_tags_and_escapes() -> None:
    assert sanitize("  <b>Bold</b> & \"quoted\" 'single'  ") == (
        "Bold &amp; &quot;quoted&quot; &#x27;single&#x27;"
    )
    assert sanitize("a < b") == "a &lt; b"
    assert sanitize("b > c") == "b &gt; c"


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "plain",
        "<i>tag</i>",
        "a < b",
        "Tom & Jerry",
        "&amp; already escaped",
        "&lt;not a tag&gt;",
        "quotes \" and ' mixed",
        "<<b>>nested<</b>>",
        "&&&;;",
        "  padded  ",
    ],
)
def test_sanitize_is_idempotent(raw: str) -> None:
    once = sanitize(raw)
    assert sanitize(once) == once


def test_validate_poll_id() -> None:
    assert validate_poll_id("5b7c6a38-0f7f-4c59-9d9e-8cdb3a7d2f10") == "5b7c6a38-0f7f-4c59-9d9e-8cdb3a7d2f10"
    assert validate_poll_id("not-a-uuid") is None
    assert validate_poll_id("") is None
    assert validate_poll_id(None) is None
    assert validate_poll_id(42) is None


def test_validate_option_index() -> None:
    assert validate_option_index(0) == 0
    assert validate_option_index(3) == 3
    assert validate_option_index(-1) is None
    assert validate_option_index(True) is None
    assert validate_option_index(1.0) == 1
    assert isinstance(validate_option_index(2.0), int)
    assert validate_option_index(1.5) is None
    assert validate_option_index(-1.0) is None
    assert validate_option_index(float("nan")) is None
    assert validate_option_index(float("inf")) is None
    assert validate_option_index("1") is None
    assert validate_option_index(None) is None
