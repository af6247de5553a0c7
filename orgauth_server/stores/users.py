# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Credential store: user look-ups and the narrow writes the auth flows need."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import case, literal, select, update

from orgauth_server.errors import NotFound
from orgauth_server.models import User
from orgauth_server.models.base import UTCDateTime
from orgauth_server.models.user import normalize_login_name
from orgauth_server.stores.base import SqlStore, store_errors


@dataclass(frozen=True)
class LockoutState:
    failed_login_attempts: int
    locked_until: datetime | None


class CredentialStore(Protocol):
    async def find_by_login_name(self, login_name: str) -> User | None: ...

    async def find_by_id(self, user_id: int) -> User | None: ...

    async def create(self, login_name: str, password_hash: str, name: str = "") -> User: ...

    async def update_credential_fields(self, user_id: int, password_hash: str) -> None: ...

    async def record_failed_login(
        self, user_id: int, now: datetime, max_attempts: int, lock_until: datetime
    ) -> LockoutState: ...

    async def reset_lockout(self, user_id: int) -> None: ...


class SqlCredentialStore(SqlStore):
    """CredentialStore over the ``users`` table. Soft-deleted users are invisible."""

    async def find_by_login_name(self, login_name: str) -> User | None:
        async with store_errors("find_user_by_login_name"):
            result = await self.db.execute(
                select(User).where(
                    User.login_name == normalize_login_name(login_name),
                    User.deleted_at.is_(None),
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def find_by_id(self, user_id: int) -> User | None:
        async with store_errors("find_user_by_id"):
            result = await self.db.execute(
                select(User).where(User.id == user_id, User.deleted_at.is_(None))
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def create(self, login_name: str, password_hash: str, name: str = "") -> User:
        user = User(
            login_name=normalize_login_name(login_name),
            name=name,
            password_hash=password_hash,
            failed_login_attempts=0,
        )
        async with store_errors("create_user"):
            self.db.add(user)
            await self.db.flush()
            await self.db.refresh(user)
        return user

    async def update_credential_fields(self, user_id: int, password_hash: str) -> None:
        """Write the password hash only; other columns of the row are left untouched."""
        async with store_errors("update_credential_fields"):
            result = await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=password_hash)
                .execution_options(synchronize_session=False)
            )
        if result.rowcount != 1:
            raise NotFound("User not found")

    async def record_failed_login(
        self, user_id: int, now: datetime, max_attempts: int, lock_until: datetime
    ) -> LockoutState:
        """Increment the failure counter and lock once it reaches ``max_attempts``.

        One UPDATE; the CASE reads the pre-increment value, so concurrent
        failures never undercount.
        """
        next_count = User.failed_login_attempts + 1
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=next_count,
                last_failed_login_at=now,
                locked_until=case(
                    (next_count >= max_attempts, literal(lock_until, UTCDateTime())),
                    else_=User.locked_until,
                ),
            )
            .returning(User.failed_login_attempts, User.locked_until)
            .execution_options(synchronize_session=False)
        )
        async with store_errors("record_failed_login"):
            row = (await self.db.execute(stmt)).one_or_none()
        if row is None:
            raise NotFound("User not found")
        return LockoutState(failed_login_attempts=row[0], locked_until=row[1])

    async def reset_lockout(self, user_id: int) -> None:
        async with store_errors("reset_lockout"):
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(failed_login_attempts=0, last_failed_login_at=None, locked_until=None)
                .execution_options(synchronize_session=False)
            )
