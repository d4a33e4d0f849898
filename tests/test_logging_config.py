"""Tests for log configuration and secret redaction."""

from __future__ import annotations

import logging

from gcal_auth.logging_config import (
    REDACTED,
    SensitiveDataFilter,
    configure_logging,
    sanitize_text,
)


class TestSanitizeText:
    def test_bearer_token(self) -> None:
        assert sanitize_text("Authorization: Bearer abc.def") == f"Authorization: {REDACTED}"

    def test_key_value_pairs(self) -> None:
        text = sanitize_text("access_token=abc123&refresh_token: 'xyz' client_secret=s3cr3t")
        assert "abc123" not in text
        assert "xyz" not in text
        assert "s3cr3t" not in text
        assert f"access_token={REDACTED}" in text

    def test_google_tokens(self) -> None:
        text = sanitize_text("got ya29.a0AfH6SMB and 1//0gLx-refresh")
        assert "ya29" not in text
        assert "1//" not in text

    def test_long_opaque_string(self) -> None:
        assert sanitize_text("state " + "a" * 64) == f"state {REDACTED}"

    def test_plain_text_unchanged(self) -> None:
        message = "OAuth callback server started on localhost:4153"
        assert sanitize_text(message) == message


class TestSensitiveDataFilter:
    def test_rewrites_record(self) -> None:
        record = logging.LogRecord(
            "gcal_auth.test", logging.INFO, __file__, 1,
            "Token response: %s", ("access_token=abc123",), None,
        )
        assert SensitiveDataFilter().filter(record)
        assert record.getMessage() == f"Token response: access_token={REDACTED}"

    def test_leaves_clean_record(self) -> None:
        record = logging.LogRecord(
            "gcal_auth.test", logging.INFO, __file__, 1, "Refreshed for %s", ("u1",), None,
        )
        SensitiveDataFilter().filter(record)
        assert record.args == ("u1",)


class TestConfigureLogging:
    def test_handler_not_stacked(self) -> None:
        configure_logging("DEBUG")
        logger = configure_logging("info")
        tagged = [h for h in logger.handlers if getattr(h, "_gcal_auth", False)]
        assert len(tagged) == 1
        assert logger.level == logging.INFO

    def test_sanitize_toggle(self) -> None:
        logger = configure_logging(sanitize=False)
        handler = next(h for h in logger.handlers if getattr(h, "_gcal_auth", False))
        assert not any(isinstance(f, SensitiveDataFilter) for f in handler.filters)

        logger = configure_logging(sanitize=True)
        handler = next(h for h in logger.handlers if getattr(h, "_gcal_auth", False))
        assert any(isinstance(f, SensitiveDataFilter) for f in handler.filters)
