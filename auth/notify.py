"""
auth/notify.py -- Seam to the outbound notification channel.

Delivery transport (e-mail provider, queue, ...) is an external collaborator.
The account service hands each freshly generated raw token to a
VerificationNotifier exactly once; nothing else ever sees the raw value.

LoggingNotifier is the default used when no transport is wired in. It logs
that a link was issued; the link itself (which contains the raw token) is
written at DEBUG level only, for local development.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol
from urllib.parse import urlencode

logger = logging.getLogger("agbilling.auth.notify")


class VerificationNotifier(Protocol):
    def send_verification(self, email: str, account_uuid: str, raw_token: str, expires_at: datetime) -> None:
        ...


def build_verification_link(base_url: str, account_uuid: str, raw_token: str) -> str:
    """Return the link a user clicks to verify: {base}/api/v1/auth/verify-email?uuid=..&token=.."""
    query = urlencode({"uuid": account_uuid, "token": raw_token})
    return f"{base_url.rstrip('/')}/api/v1/auth/verify-email?{query}"


class LoggingNotifier:
    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def send_verification(self, email: str, account_uuid: str, raw_token: str, expires_at: datetime) -> None:
        logger.info("Verification link issued for %s (expires %s)", email, expires_at.isoformat())
        logger.debug("Verification link: %s", build_verification_link(self.base_url, account_uuid, raw_token))
