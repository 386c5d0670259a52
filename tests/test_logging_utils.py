"""Tests for logging helpers."""

import logging

from common.logging_utils import Timer, configure_logging, extra_context, is_debug_enabled, safe_url


def test_extra_context_drops_none():
    """None values are not emitted."""
    assert extra_context(event="publish", package=None, duration_ms=3) == {
        "event": "publish",
        "duration_ms": 3,
    }


def test_safe_url_strips_credentials():
    """User info is removed from URLs."""
    assert safe_url("https://user:pw@api.github.com/repos/a/b/tags") == "https://api.github.com/repos/a/b/tags"


def test_safe_url_redacts_tokens():
    """Sensitive query values are masked; others are kept."""
    redacted = safe_url("http://localhost:8000/versions?name=a%2Fb&token=abc")
    assert "token=%2A%2A%2A" in redacted
    assert "name=a%2Fb" in redacted
    assert "abc" not in redacted


def test_timer_measures():
    """Timer reports a non-negative duration after exit."""
    with Timer() as t:
        pass
    assert t.duration_ms() >= 0


def test_configure_logging_level(monkeypatch):
    """The level comes from the environment when not given."""
    root = logging.getLogger()
    previous = root.level
    monkeypatch.setenv("PKGCATALOG_LOG_LEVEL", "DEBUG")
    try:
        configure_logging()
        assert is_debug_enabled(logging.getLogger("catalog"))
        configure_logging("warning")
        assert root.level == logging.WARNING
    finally:
        root.setLevel(previous)
