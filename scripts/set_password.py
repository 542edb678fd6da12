#!/usr/bin/env python3
"""
Set a new password for an account, looked up by email.

Usage:
  python scripts/set_password.py --email client@example.com [--password NEW]

Without --password a random one is generated and printed.
"""
from __future__ import annotations

import argparse
import asyncio
import secrets
import sys

from clientdesk.core.config import get_settings
from clientdesk.core.logging_config import setup_logging
from clientdesk.repositories import build_gateway
from clientdesk.repositories.entities import AccountRepository, Tables


def gen_password(length: int = 12) -> str:
    return secrets.token_urlsafe(length)[:length]


async def run(email: str, password: str) -> str:
    settings = get_settings()
    gateway = build_gateway(settings)
    try:
        accounts = AccountRepository(gateway, Tables.with_prefix(settings.table_prefix))
        account = await accounts.find_by_email(email)
        if account is None:
            raise SystemExit(f"No account found for '{email}'")
        await accounts.update_password(account.id, password)
        return account.id
    finally:
        await gateway.close()


def main() -> None:
    ap = argparse.ArgumentParser(description="Set an account password")
    ap.add_argument("--email", required=True, help="Account email")
    ap.add_argument("--password", help="New password (default: random)")
    args = ap.parse_args()
    setup_logging(get_settings().log_level)

    email = (args.email or "").strip().lower()
    if not email:
        raise SystemExit("Invalid email")
    password = args.password or gen_password()
    if len(password) < get_settings().min_password_length:
        raise SystemExit("Password too short")

    account_id = asyncio.run(run(email, password))
    print("OK: password updated")
    print(f"  Account: {account_id}")
    if not args.password:
        print(f"  New password: {password}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # pragma: no cover
        sys.stderr.write(f"Error: {exc}\n")
        raise SystemExit(1)
