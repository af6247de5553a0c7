# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization administration: creation, member role changes and removal."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.config import SecurityPolicy
from orgauth_server.errors import CreatorProtected, InsufficientPermissions, NotFound
from orgauth_server.models import Organization, OrganizationMember, OrganizationRole
from orgauth_server.stores.base import unit_of_work
from orgauth_server.stores.organizations import OrganizationStore, SqlOrganizationStore
from orgauth_server.tokens import Clock, system_clock

logger = logging.getLogger(__name__)


async def load_organization(orgs: OrganizationStore, org_id: int) -> Organization:
    org = await orgs.find_organization(org_id)
    if org is None:
        raise NotFound("Organization not found")
    return org


async def is_admin(orgs: OrganizationStore, org: Organization, user_id: int) -> bool:
    # Creator is always admin, whatever the membership row says.
    if org.created_by == user_id:
        return True
    member = await orgs.find_member(org.id, user_id)
    return member is not None and not member.is_deleted and member.is_admin


async def require_admin(orgs: OrganizationStore, org: Organization, user_id: int) -> None:
    if not await is_admin(orgs, org, user_id):
        raise InsufficientPermissions()


class OrganizationAdmin:
    """Membership changes made by organization admins.

    The creator's membership is fixed: it cannot be removed and its role
    stays admin.
    """

    def __init__(
        self,
        db: AsyncSession,
        policy: SecurityPolicy,
        *,
        orgs: OrganizationStore | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self.db = db
        self.policy = policy
        self.orgs = orgs or SqlOrganizationStore(db)
        self.clock = clock

    def _deadline(self, timeout: float | None) -> float | None:
        return timeout or self.policy.store_timeout

    async def _active_member(self, org_id: int, user_id: int) -> OrganizationMember:
        member = await self.orgs.find_member(org_id, user_id)
        if member is None or member.is_deleted:
            raise NotFound("Member not found")
        return member

    async def create_organization(
        self,
        name: str,
        creator_id: int,
        description: str | None = None,
        timeout: float | None = None,
    ) -> Organization:
        async with unit_of_work(self.db, self._deadline(timeout)):
            org = await self.orgs.create_organization(name.strip(), creator_id, description)
        logger.info("Organization %s created by user %s", org.id, creator_id)
        return org

    async def update_member_role(
        self,
        org_id: int,
        member_user_id: int,
        role: OrganizationRole | str,
        requestor_id: int,
        timeout: float | None = None,
    ) -> OrganizationMember:
        role = OrganizationRole(role)
        async with unit_of_work(self.db, self._deadline(timeout)):
            org = await load_organization(self.orgs, org_id)
            await require_admin(self.orgs, org, requestor_id)
            member = await self._active_member(org.id, member_user_id)
            if member_user_id == org.created_by and role != OrganizationRole.ADMIN:
                raise CreatorProtected()
            previous = member.role
            member = await self.orgs.update_member(member, role=role)
        logger.info(
            "User %s changed role of user %s in organization %s: %s -> %s",
            requestor_id,
            member_user_id,
            org_id,
            previous.value,
            role.value,
        )
        return member

    async def remove_member(
        self,
        org_id: int,
        member_user_id: int,
        requestor_id: int,
        timeout: float | None = None,
    ) -> None:
        """Soft-delete a membership. Admins remove anyone but the creator; members may leave."""
        async with unit_of_work(self.db, self._deadline(timeout)):
            org = await load_organization(self.orgs, org_id)
            if member_user_id == org.created_by:
                raise CreatorProtected()
            if member_user_id != requestor_id:
                await require_admin(self.orgs, org, requestor_id)
            if not await self.orgs.remove_member(org.id, member_user_id, self.clock.now()):
                raise NotFound("Member not found")
        logger.info("User %s removed user %s from organization %s", requestor_id, member_user_id, org_id)
