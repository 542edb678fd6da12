"""
Single-use, time-bound verification codes for password reset.

An identity (email, case-insensitive) has at most one live entry. The
lifecycle is issue -> verify -> consume; an entry found past its expiry is
deleted and treated as if no request had been made. Issuing again replaces
any pending code. Mismatched guesses leave the entry in place and are not
counted.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from clientdesk.core.config import get_settings
from clientdesk.domain.entities import Account
from clientdesk.repositories.entities import AccountRepository
from clientdesk.repositories.gateway import DocumentGateway

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class VerificationError(Exception):
    """Base class for verification workflow failures."""


class UnknownIdentityError(VerificationError):
    pass


class NoActiveRequestError(VerificationError):
    pass


class CodeExpiredError(VerificationError):
    pass


class CodeMismatchError(VerificationError):
    pass


class NotVerifiedError(VerificationError):
    pass


def normalize_identity(identity: str) -> str:
    return (identity or "").strip().lower()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_code() -> str:
    """Uniformly random six digit code in 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class VerificationEntry:
    identity: str
    code: str
    expires_at: datetime
    account_id: str
    verified: bool = False


class VerificationStore(Protocol):
    async def load(self, identity: str) -> Optional[VerificationEntry]: ...

    async def save(self, entry: VerificationEntry) -> None: ...

    async def delete(self, identity: str) -> None: ...


class MemoryVerificationStore:
    """Process-local entries; construct one per application instance."""

    def __init__(self) -> None:
        self._entries: dict[str, VerificationEntry] = {}

    async def load(self, identity: str) -> Optional[VerificationEntry]:
        entry = self._entries.get(identity)
        if entry is None:
            return None
        return VerificationEntry(**vars(entry))

    async def save(self, entry: VerificationEntry) -> None:
        self._entries[entry.identity] = VerificationEntry(**vars(entry))

    async def delete(self, identity: str) -> None:
        self._entries.pop(identity, None)


class DocumentVerificationStore:
    """Entries persisted through the gateway so they survive restarts."""

    def __init__(self, gateway: DocumentGateway, table: str):
        self.gateway = gateway
        self.table = table

    async def load(self, identity: str) -> Optional[VerificationEntry]:
        record = await self.gateway.get(self.table, identity)
        if record is None:
            return None
        expires_at = datetime.fromisoformat(record["expiresAt"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return VerificationEntry(
            identity=record["id"],
            code=str(record.get("code") or ""),
            expires_at=expires_at,
            account_id=record.get("accountId") or "",
            verified=bool(record.get("verified")),
        )

    async def save(self, entry: VerificationEntry) -> None:
        await self.gateway.put(
            self.table,
            {
                "id": entry.identity,
                "code": entry.code,
                "expiresAt": entry.expires_at.astimezone(timezone.utc).isoformat(),
                "accountId": entry.account_id,
                "verified": entry.verified,
            },
        )

    async def delete(self, identity: str) -> None:
        await self.gateway.delete(self.table, identity)


class VerificationWorkflow:
    """Issues, checks and redeems codes bound to an account's email."""

    def __init__(
        self,
        store: VerificationStore,
        accounts: AccountRepository,
        *,
        ttl_seconds: Optional[int] = None,
        clock: Clock = _utc_now,
        code_factory: Callable[[], str] = generate_code,
    ):
        self.store = store
        self.accounts = accounts
        ttl = ttl_seconds if ttl_seconds is not None else get_settings().verification_code_ttl_seconds
        self.ttl = timedelta(seconds=ttl)
        self.clock = clock
        self.code_factory = code_factory

    async def issue(self, identity: str) -> str:
        key = normalize_identity(identity)
        account = await self.accounts.find_by_email(key) if key else None
        if account is None:
            raise UnknownIdentityError(f"no account for {key or '<empty>'}")
        code = self.code_factory()
        await self.store.save(
            VerificationEntry(
                identity=key,
                code=code,
                expires_at=self.clock() + self.ttl,
                account_id=account.id,
            )
        )
        logger.info("Issued verification code for account %s", account.id)
        return code

    async def _live_entry(self, key: str) -> VerificationEntry:
        entry = await self.store.load(key)
        if entry is None:
            raise NoActiveRequestError(f"no verification in progress for {key}")
        if self.clock() > entry.expires_at:
            await self.store.delete(key)
            logger.info("Verification code for account %s expired", entry.account_id)
            raise CodeExpiredError(f"verification code for {key} expired")
        return entry

    async def verify(self, identity: str, code: str) -> bool:
        key = normalize_identity(identity)
        entry = await self._live_entry(key)
        if not secrets.compare_digest(entry.code.encode(), str(code or "").strip().encode()):
            logger.info("Verification code mismatch for account %s", entry.account_id)
            raise CodeMismatchError("verification code does not match")
        entry.verified = True
        await self.store.save(entry)
        logger.info("Verification code accepted for account %s", entry.account_id)
        return True

    async def consume(self, identity: str, new_credential: str) -> Account:
        """Apply the new password for a verified identity and retire its entry."""
        key = normalize_identity(identity)
        entry = await self.store.load(key)
        if entry is None or not entry.verified:
            raise NotVerifiedError(f"{key} has not completed verification")
        account = await self.accounts.update_password(entry.account_id, new_credential)
        await self.store.delete(key)
        logger.info("Password reset completed for account %s", entry.account_id)
        return account
