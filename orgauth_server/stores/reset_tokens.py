# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Reset token store."""

from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, select, update

from orgauth_server.models import PasswordResetToken
from orgauth_server.stores.base import SqlStore, store_errors


class ResetTokenStore(Protocol):
    async def create(self, user_id: int, token: str, expires_at: datetime) -> PasswordResetToken: ...

    async def find_by_token(self, token: str) -> PasswordResetToken | None: ...

    async def mark_used(self, token_id: int, used_at: datetime) -> bool: ...

    async def delete_all_for_user(self, user_id: int) -> int: ...


class SqlResetTokenStore(SqlStore):
    async def create(self, user_id: int, token: str, expires_at: datetime) -> PasswordResetToken:
        prt = PasswordResetToken(user_id=user_id, token=token, expires_at=expires_at)
        async with store_errors("create_reset_token"):
            self.db.add(prt)
            await self.db.flush()
        return prt

    async def find_by_token(self, token: str) -> PasswordResetToken | None:
        async with store_errors("find_reset_token"):
            result = await self.db.execute(
                select(PasswordResetToken).where(PasswordResetToken.token == token)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def mark_used(self, token_id: int, used_at: datetime) -> bool:
        """Consume the token. False when another request consumed it first."""
        async with store_errors("mark_reset_token_used"):
            result = await self.db.execute(
                update(PasswordResetToken)
                .where(PasswordResetToken.id == token_id, PasswordResetToken.used_at.is_(None))
                .values(used_at=used_at)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def delete_all_for_user(self, user_id: int) -> int:
        async with store_errors("delete_reset_tokens"):
            result = await self.db.execute(
                delete(PasswordResetToken)
                .where(PasswordResetToken.user_id == user_id)
            )
        return result.rowcount
