# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Registration and login verification with progressive account lockout."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.auth import (
    IssuedSession,
    SessionIssuer,
    burn_password_check,
    hash_password,
    verify_password,
)
from orgauth_server.config import SecurityPolicy
from orgauth_server.errors import AccountExists, AccountLocked, InvalidCredentials, StoreConflict
from orgauth_server.models import User
from orgauth_server.models.user import normalize_login_name
from orgauth_server.stores.base import commit_now, unit_of_work
from orgauth_server.stores.users import CredentialStore, SqlCredentialStore
from orgauth_server.tokens import Clock, system_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientContext:
    """Where a login attempt came from; used for audit logging only."""

    ip_address: str | None = None
    user_agent: str | None = None


class AccountGuard:
    """Verifies credentials, applies the lockout policy and issues sessions.

    Each attempt performs at most one write to the user row: an atomic
    failure increment (which may also set ``locked_until``) or a reset on
    success. Attempts against a locked account write nothing and never reach
    the password hash.
    """

    def __init__(
        self,
        db: AsyncSession,
        policy: SecurityPolicy,
        issuer: SessionIssuer,
        *,
        users: CredentialStore | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self.db = db
        self.policy = policy
        self.issuer = issuer
        self.users = users or SqlCredentialStore(db)
        self.clock = clock

    async def authenticate(
        self,
        login_name: str,
        password: str,
        client: ClientContext | None = None,
        timeout: float | None = None,
    ) -> IssuedSession:
        client = client or ClientContext()
        name = normalize_login_name(login_name)
        async with unit_of_work(self.db, timeout or self.policy.store_timeout):
            user = await self.users.find_by_login_name(name)
            if user is None or not user.is_active:
                burn_password_check()
                logger.warning(
                    "Login failed for unknown or inactive account from %s (%s)",
                    client.ip_address,
                    client.user_agent,
                )
                raise InvalidCredentials()

            now = self.clock.now()
            if user.is_locked(now):
                logger.warning(
                    "Login refused for locked user %s from %s (until %s)",
                    user.id,
                    client.ip_address,
                    user.locked_until.isoformat(),
                )
                raise AccountLocked(user.locked_until, user.remaining_lock(now))

            if not verify_password(password, user.password_hash):
                state = await self.users.record_failed_login(
                    user.id,
                    now,
                    self.policy.max_login_attempts,
                    now + self.policy.lockout_duration,
                )
                await commit_now(self.db)
                if state.locked_until is not None and state.locked_until > now:
                    logger.warning(
                        "User %s locked until %s after %d failed logins",
                        user.id,
                        state.locked_until.isoformat(),
                        state.failed_login_attempts,
                    )
                else:
                    logger.info(
                        "Failed login %d/%d for user %s from %s",
                        state.failed_login_attempts,
                        self.policy.max_login_attempts,
                        user.id,
                        client.ip_address,
                    )
                raise InvalidCredentials()

            await self.users.reset_lockout(user.id)
            session = self.issuer.issue(user.id)
        logger.info("User %s logged in from %s (%s)", user.id, client.ip_address, client.user_agent)
        return session

    async def register(
        self,
        login_name: str,
        password: str,
        name: str = "",
        client: ClientContext | None = None,
        timeout: float | None = None,
    ) -> tuple[User, IssuedSession]:
        """Create an account and log it in. Password strength is checked at the API boundary."""
        client = client or ClientContext()
        login = normalize_login_name(login_name)
        async with unit_of_work(self.db, timeout or self.policy.store_timeout):
            if await self.users.find_by_login_name(login) is not None:
                logger.info("Registration refused for existing account from %s", client.ip_address)
                raise AccountExists()
            try:
                user = await self.users.create(login, hash_password(password), name)
            except StoreConflict as e:
                # Lost a race with a concurrent registration of the same login.
                raise AccountExists() from e
            session = self.issuer.issue(user.id)
        logger.info("User %s registered from %s (%s)", user.id, client.ip_address, client.user_agent)
        return user, session
