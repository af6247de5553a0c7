# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Single-use password reset tokens."""

import logging
from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.auth import hash_password
from orgauth_server.config import SecurityPolicy
from orgauth_server.errors import (
    NotFound,
    TokenExpired,
    TokenNotFound,
    TokenUsed,
    UserNotFound,
)
from orgauth_server.models import PasswordResetToken
from orgauth_server.services.notifier import Notifier, deliver
from orgauth_server.stores.base import unit_of_work
from orgauth_server.stores.reset_tokens import ResetTokenStore, SqlResetTokenStore
from orgauth_server.stores.users import CredentialStore, SqlCredentialStore
from orgauth_server.tokens import Clock, generate_token, system_clock

logger = logging.getLogger(__name__)


class PasswordResetFlow:
    """Issues and consumes reset tokens. At most one valid token exists per user.

    ``request_reset`` reports unknown users with ``UserNotFound``; masking that
    for anti-enumeration is left to the HTTP layer.
    """

    def __init__(
        self,
        db: AsyncSession,
        policy: SecurityPolicy,
        notifier: Notifier,
        *,
        users: CredentialStore | None = None,
        tokens: ResetTokenStore | None = None,
        clock: Clock = system_clock,
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self.db = db
        self.policy = policy
        self.notifier = notifier
        self.users = users or SqlCredentialStore(db)
        self.tokens = tokens or SqlResetTokenStore(db)
        self.clock = clock
        self.token_factory = token_factory

    async def request_reset(self, login_name: str, timeout: float | None = None) -> PasswordResetToken:
        async with unit_of_work(self.db, timeout or self.policy.store_timeout):
            user = await self.users.find_by_login_name(login_name)
            if user is None:
                raise UserNotFound()
            replaced = await self.tokens.delete_all_for_user(user.id)
            prt = await self.tokens.create(
                user.id,
                self.token_factory(),
                self.clock.now() + self.policy.password_reset_ttl,
            )
        logger.info(
            "Password reset token issued for user %s (replaced %d, expires %s)",
            user.id,
            replaced,
            prt.expires_at.isoformat(),
        )
        await deliver(
            f"password reset for user {user.id}",
            self.notifier.send_password_reset_email(
                user.login_name, self.policy.password_reset_url(prt.token)
            ),
        )
        return prt

    async def confirm_reset(self, token: str, new_password: str, timeout: float | None = None) -> None:
        """Set a new password. Checks run in order: not found, expired, used."""
        async with unit_of_work(self.db, timeout or self.policy.store_timeout):
            prt = await self.tokens.find_by_token(token) if token else None
            if prt is None:
                raise TokenNotFound()
            now = self.clock.now()
            if prt.is_expired(now):
                raise TokenExpired()
            if prt.is_used:
                raise TokenUsed()

            user = await self.users.find_by_id(prt.user_id)
            if user is None:
                raise NotFound("User not found")
            # Claim first so a concurrent confirmation with the same token loses.
            if not await self.tokens.mark_used(prt.id, now):
                raise TokenUsed()
            await self.users.update_credential_fields(user.id, hash_password(new_password))
        logger.info("Password reset completed for user %s", user.id)
