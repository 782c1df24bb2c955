"""
auth/sweeper.py -- Periodic removal of stale unverified accounts.

The selection and the deletes run in one store transaction
(sweep_expired_unverified), so a failure mid-sweep leaves every account
together with its token. Safe to run repeatedly and alongside consume();
see the isolation notes in auth/store.py.

Scheduled by the API lifespan (api/main.py) and runnable once from the CLI
(`python main.py sweep`).
"""

from __future__ import annotations

import logging

from auth.interfaces import CredentialStore

logger = logging.getLogger("agbilling.auth.sweeper")


class CleanupSweeper:
    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    def run(self) -> int:
        """Delete expired unverified accounts; return how many were removed.

        TransientStorageError propagates -- the scheduler logs it and tries
        again on the next tick.
        """
        logger.info("Starting cleanup of unverified accounts")
        removed = self._store.sweep_expired_unverified()
        if removed:
            logger.info("Cleaned up %d unverified account(s) with expired tokens", removed)
        else:
            logger.info("No expired unverified accounts found")
        return removed
