"""
Authentication and identity related use cases.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from clientdesk.core.config import get_settings
from clientdesk.core.mailer import send_email
from clientdesk.core.security import verify_password
from clientdesk.domain.entities import Account
from clientdesk.repositories.entities import AccountRepository, Tables
from clientdesk.repositories.errors import AlreadyExistsError
from clientdesk.repositories.gateway import DocumentGateway
from clientdesk.services.verification_service import (
    DocumentVerificationStore,
    VerificationStore,
    VerificationWorkflow,
)

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for authentication-related exceptions."""


class RegistrationError(AuthError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AccountExistsError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    pass


class AccountBlockedError(AuthError):
    pass


class WeakPasswordError(AuthError):
    pass


@dataclass
class AuthService:
    """Handles registration, login, password change and password reset flows."""

    gateway: DocumentGateway
    tables: Optional[Tables] = None
    verification_store: Optional[VerificationStore] = field(default=None, repr=False)

    def __post_init__(self):
        self.settings = get_settings()
        if self.tables is None:
            self.tables = Tables.with_prefix(self.settings.table_prefix)
        self.accounts = AccountRepository(self.gateway, self.tables)
        store = self.verification_store or DocumentVerificationStore(self.gateway, self.tables.verification_codes)
        self.verification = VerificationWorkflow(
            store, self.accounts, ttl_seconds=self.settings.verification_code_ttl_seconds
        )

    # -------------------------------------- helpers --------------------------------------
    def _check_password_strength(self, password: str) -> None:
        minimum = self.settings.min_password_length
        if len(password or "") < minimum:
            raise WeakPasswordError(f"Password must be at least {minimum} characters")

    def _reset_email_html(self, code: str) -> str:
        minutes = max(1, self.settings.verification_code_ttl_seconds // 60)
        return f"""
        <p>Hello,</p>
        <p>We received a request to reset your password. Use the code below to verify your identity:</p>
        <p style="font-size:28px;font-weight:bold;letter-spacing:6px;font-family:monospace;">{code}</p>
        <p>This code expires in {minutes} minutes.</p>
        <p>If you didn't request this password reset, please ignore this email.</p>
        """

    # -------------------------------------- registration --------------------------------------
    async def register(self, name: str, email: str, password: str, phone: Optional[str] = None) -> Account:
        if not (name or "").strip() or not (email or "").strip() or not password:
            raise RegistrationError("Please provide name, email and password")
        self._check_password_strength(password)
        try:
            account = await self.accounts.create(name.strip(), email, password, phone)
        except AlreadyExistsError as exc:
            raise AccountExistsError("User with this email already exists") from exc
        logger.info("Registered account %s", account.id)
        return account

    # -------------------------------------- login --------------------------------------
    async def authenticate(self, email: str, password: str) -> Account:
        account = await self.accounts.find_by_email(email)
        if account is None or not verify_password(password or "", account.password_hash):
            raise InvalidCredentialsError("Invalid email or password")
        if account.blocked:
            raise AccountBlockedError("Your account has been blocked. Please contact support.")
        account.password_hash = None
        return account

    async def change_password(self, account_id: str, current_password: str, new_password: str) -> Account:
        self._check_password_strength(new_password)
        account = await self.accounts.get(account_id, with_password=True)
        if account is None or not verify_password(current_password or "", account.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        return await self.accounts.update_password(account_id, new_password)

    # -------------------------------------- password reset --------------------------------------
    async def request_password_reset(self, email: str) -> bool:
        """Issue a code and mail it; returns whether the mail went out."""
        code = await self.verification.issue(email)
        recipient = (email or "").strip()
        return await asyncio.to_thread(
            send_email,
            "Password Reset Code",
            recipient,
            self._reset_email_html(code),
            f"Your password reset code is {code}",
        )

    async def verify_reset_code(self, email: str, code: str) -> bool:
        return await self.verification.verify(email, code)

    async def reset_password(self, email: str, new_password: str) -> Account:
        self._check_password_strength(new_password)
        return await self.verification.consume(email, new_password)
