#!/usr/bin/env python3
"""
AG Billing credential service -- operator CLI.

Usage:
  python main.py sweep                       # one cleanup pass, prints removed count
  python main.py check-email alice@example.com

Intended for cron / one-off maintenance. The API process runs the same sweep
on a timer (SWEEP_INTERVAL_SECONDS).

Environment variables (see core/config.py):
  DATABASE_URL             Store URL. Empty = SQLite file beside auth/store.py.
  AUTH_TOKEN_SIGNING_KEY   Required unless DEBUG=true.
"""

import argparse
import logging
import sys
from typing import Optional

from auth.errors import InvalidInput, TransientStorageError
from auth.store import _DEFAULT_DB_URL, SqlCredentialStore
from auth.sweeper import CleanupSweeper
from auth.verification import normalize_email
from core.config import get_settings


def _open_store() -> SqlCredentialStore:
    settings = get_settings()
    return SqlCredentialStore(settings.database_url or _DEFAULT_DB_URL, timeout=settings.store_timeout_seconds)


def _cmd_sweep(args: argparse.Namespace) -> int:
    store = _open_store()
    try:
        removed = CleanupSweeper(store).run()
    finally:
        store.close()
    print(f"  Removed {removed} unverified account(s) with expired tokens.")
    return 0


def _cmd_check_email(args: argparse.Namespace) -> int:
    try:
        email = normalize_email(args.email)
    except InvalidInput as e:
        print(f"  [!] {e}")
        return 2
    store = _open_store()
    try:
        exists = store.email_exists(email)
    finally:
        store.close()
    print(f"  {email}: {'taken' if exists else 'available'}")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agbilling-auth",
        description="Maintenance commands for the AG Billing credential store.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Delete unverified accounts whose verification token expired")
    sweep.set_defaults(func=_cmd_sweep)

    check = sub.add_parser("check-email", help="Report whether an email is already registered")
    check.add_argument("email")
    check.set_defaults(func=_cmd_check_email)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    try:
        return args.func(args)
    except TransientStorageError as e:
        print(f"  [!] {e} Try again later.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
