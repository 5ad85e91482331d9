"""Tests for the message length policy."""

from proclog.debug.logger import truncate_message

MARKER = "...[truncated]"


def test_short_message_unchanged():
    assert truncate_message("BAIL = 1", 512, MARKER) == "BAIL = 1"


def test_message_at_limit_unchanged():
    message = "a" * 20
    assert truncate_message(message, 20, MARKER) == message


def test_long_message_cut_to_limit_with_marker():
    result = truncate_message("b" * 30, 20, MARKER)

    assert len(result) == 20
    assert result == "b" * 6 + MARKER


def test_empty_message():
    assert truncate_message("", 512, MARKER) == ""
