"""Unit tests for auth/notify.py -- verification links and the logging notifier."""

import logging
from datetime import datetime, timezone
from urllib.parse import parse_qs, urlparse

from auth.notify import LoggingNotifier, build_verification_link

UUID = "5b0c1a62-8f3e-4c7d-9a61-2f4b8e0d7c11"


def test_link_points_at_verify_endpoint():
    link = build_verification_link("https://billing.example.com/", UUID, "abc-_123")
    parsed = urlparse(link)
    assert parsed.netloc == "billing.example.com"
    assert parsed.path == "/api/v1/auth/verify-email"
    assert parse_qs(parsed.query) == {"uuid": [UUID], "token": ["abc-_123"]}


def test_raw_token_only_logged_at_debug(caplog):
    notifier = LoggingNotifier("http://localhost:8000")
    expires = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    with caplog.at_level(logging.INFO, logger="agbilling.auth.notify"):
        notifier.send_verification("alice@example.com", UUID, "secret-raw-token", expires)
    assert "alice@example.com" in caplog.text
    assert "secret-raw-token" not in caplog.text

    caplog.clear()
    with caplog.at_level(logging.DEBUG, logger="agbilling.auth.notify"):
        notifier.send_verification("alice@example.com", UUID, "secret-raw-token", expires)
    assert "secret-raw-token" in caplog.text
