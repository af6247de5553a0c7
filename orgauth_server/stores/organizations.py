# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization store: organizations, memberships and invitations."""

from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import joinedload

from orgauth_server.models import (
    InviteStatus,
    Organization,
    OrganizationInvite,
    OrganizationMember,
    OrganizationRole,
    User,
)
from orgauth_server.stores.base import SqlStore, store_errors


class OrganizationStore(Protocol):
    async def create_organization(
        self, name: str, creator_id: int, description: str | None = None
    ) -> Organization: ...

    async def find_organization(self, org_id: int) -> Organization | None: ...

    async def find_member(self, org_id: int, user_id: int) -> OrganizationMember | None: ...

    async def add_member(
        self, org_id: int, user_id: int, role: OrganizationRole, joined_at: datetime
    ) -> OrganizationMember: ...

    async def update_member(self, member: OrganizationMember, **values: Any) -> OrganizationMember: ...

    async def remove_member(self, org_id: int, user_id: int, now: datetime) -> bool: ...

    async def create_invite(
        self,
        org_id: int,
        email: str,
        role: OrganizationRole,
        invited_by: int,
        token: str,
        expires_at: datetime,
    ) -> OrganizationInvite: ...

    async def find_pending_invite(self, org_id: int, email: str) -> OrganizationInvite | None: ...

    async def find_invite_by_token(self, token: str) -> OrganizationInvite | None: ...

    async def find_invite_by_id(self, invite_id: int) -> OrganizationInvite | None: ...

    async def update_invite(
        self, invite_id: int, expected: InviteStatus, **values: Any
    ) -> bool: ...

    async def list_invites(
        self, org_id: int, limit: int = 50, offset: int = 0
    ) -> tuple[list[OrganizationInvite], int]: ...

    async def bulk_expire_pending(self, now: datetime) -> int: ...


class SqlOrganizationStore(SqlStore):
    async def create_organization(
        self, name: str, creator_id: int, description: str | None = None
    ) -> Organization:
        """Insert the organization and its creator's admin membership."""
        org = Organization(name=name, description=description, created_by=creator_id)
        async with store_errors("create_organization"):
            self.db.add(org)
            await self.db.flush()
            self.db.add(
                OrganizationMember(
                    organization_id=org.id,
                    user_id=creator_id,
                    role=OrganizationRole.ADMIN,
                )
            )
            await self.db.flush()
        return org

    async def find_organization(self, org_id: int) -> Organization | None:
        async with store_errors("find_organization"):
            result = await self.db.execute(
                select(Organization).where(
                    Organization.id == org_id, Organization.deleted_at.is_(None)
                )
            )
            return result.scalar_one_or_none()

    async def find_member(self, org_id: int, user_id: int) -> OrganizationMember | None:
        """Membership row for the pair, soft-deleted rows included."""
        async with store_errors("find_member"):
            result = await self.db.execute(
                select(OrganizationMember).where(
                    OrganizationMember.organization_id == org_id,
                    OrganizationMember.user_id == user_id,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def add_member(
        self, org_id: int, user_id: int, role: OrganizationRole, joined_at: datetime
    ) -> OrganizationMember:
        member = OrganizationMember(
            organization_id=org_id, user_id=user_id, role=role, joined_at=joined_at
        )
        async with store_errors("add_member"):
            self.db.add(member)
            await self.db.flush()
        return member

    async def update_member(self, member: OrganizationMember, **values: Any) -> OrganizationMember:
        for key, value in values.items():
            setattr(member, key, value)
        async with store_errors("update_member"):
            await self.db.flush()
        return member

    async def remove_member(self, org_id: int, user_id: int, now: datetime) -> bool:
        """Soft-delete an active membership. The row is kept so a later invite can restore it."""
        async with store_errors("remove_member"):
            result = await self.db.execute(
                update(OrganizationMember)
                .where(
                    OrganizationMember.organization_id == org_id,
                    OrganizationMember.user_id == user_id,
                    OrganizationMember.deleted_at.is_(None),
                )
                .values(deleted_at=now)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def list_admin_logins(self, org_id: int, exclude_user_id: int | None = None) -> list[str]:
        """Login names of active admins, the creator included."""
        query = (
            select(User.login_name)
            .join(OrganizationMember, OrganizationMember.user_id == User.id)
            .join(Organization, Organization.id == OrganizationMember.organization_id)
            .where(
                OrganizationMember.organization_id == org_id,
                OrganizationMember.deleted_at.is_(None),
                User.deleted_at.is_(None),
                or_(
                    OrganizationMember.role == OrganizationRole.ADMIN,
                    Organization.created_by == User.id,
                ),
            )
            .order_by(User.login_name)
        )
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        async with store_errors("list_admin_logins"):
            result = await self.db.execute(query)
            return list(result.scalars().all())

    async def create_invite(
        self,
        org_id: int,
        email: str,
        role: OrganizationRole,
        invited_by: int,
        token: str,
        expires_at: datetime,
    ) -> OrganizationInvite:
        invite = OrganizationInvite(
            organization_id=org_id,
            email=email,
            role=role,
            invited_by=invited_by,
            token=token,
            status=InviteStatus.PENDING,
            expires_at=expires_at,
        )
        async with store_errors("create_invite"):
            self.db.add(invite)
            await self.db.flush()
        return invite

    async def find_pending_invite(self, org_id: int, email: str) -> OrganizationInvite | None:
        async with store_errors("find_pending_invite"):
            result = await self.db.execute(
                select(OrganizationInvite).where(
                    OrganizationInvite.organization_id == org_id,
                    OrganizationInvite.email == email,
                    OrganizationInvite.status == InviteStatus.PENDING,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def find_invite_by_token(self, token: str) -> OrganizationInvite | None:
        async with store_errors("find_invite_by_token"):
            result = await self.db.execute(
                select(OrganizationInvite)
                .options(joinedload(OrganizationInvite.organization))
                .where(OrganizationInvite.token == token)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def find_invite_by_id(self, invite_id: int) -> OrganizationInvite | None:
        async with store_errors("find_invite_by_id"):
            result = await self.db.execute(
                select(OrganizationInvite)
                .options(joinedload(OrganizationInvite.organization))
                .where(OrganizationInvite.id == invite_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def list_invites(
        self, org_id: int, limit: int = 50, offset: int = 0
    ) -> tuple[list[OrganizationInvite], int]:
        async with store_errors("list_invites"):
            total = await self.db.scalar(
                select(func.count())
                .select_from(OrganizationInvite)
                .where(OrganizationInvite.organization_id == org_id)
            )
            result = await self.db.execute(
                select(OrganizationInvite)
                .where(OrganizationInvite.organization_id == org_id)
                .order_by(OrganizationInvite.created_at.desc(), OrganizationInvite.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all()), total or 0

    async def update_invite(self, invite_id: int, expected: InviteStatus, **values: Any) -> bool:
        """Conditional update: applies only while the row still has status ``expected``.

        Returns False when a concurrent request moved the invitation first.
        """
        async with store_errors("update_invite"):
            result = await self.db.execute(
                update(OrganizationInvite)
                .where(OrganizationInvite.id == invite_id, OrganizationInvite.status == expected)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount == 1

    async def bulk_expire_pending(self, now: datetime) -> int:
        async with store_errors("bulk_expire_pending"):
            result = await self.db.execute(
                update(OrganizationInvite)
                .where(
                    OrganizationInvite.status == InviteStatus.PENDING,
                    OrganizationInvite.expires_at < now,
                )
                .values(status=InviteStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            )
        return result.rowcount
