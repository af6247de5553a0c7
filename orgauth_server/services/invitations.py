# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization invitation lifecycle: invite, accept, revoke, resend and expire."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.config import SecurityPolicy
from orgauth_server.errors import (
    AlreadyMember,
    ConflictPendingInvite,
    EmailMismatch,
    InviteExpired,
    InviteNotFound,
    InviteNotPending,
    NotFound,
    StoreConflict,
)
from orgauth_server.models import (
    InviteStatus,
    Organization,
    OrganizationInvite,
    OrganizationMember,
    OrganizationRole,
)
from orgauth_server.models.invitation import can_transition
from orgauth_server.models.user import normalize_login_name
from orgauth_server.services.notifier import Notifier, deliver
from orgauth_server.services.organizations import load_organization, require_admin
from orgauth_server.stores.base import commit_now, unit_of_work
from orgauth_server.stores.organizations import OrganizationStore, SqlOrganizationStore
from orgauth_server.stores.users import CredentialStore, SqlCredentialStore
from orgauth_server.tokens import Clock, generate_token, system_clock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvitePreview:
    """What the invite landing page shows before the invitee signs in."""

    email: str
    organization_id: int
    organization_name: str
    role: OrganizationRole
    expires_at: datetime
    user_exists: bool


class InvitationLifecycle:
    """State machine over ``OrganizationInvite.status``.

    Every status change is a conditional UPDATE on the expected current
    status, so concurrent accept/revoke/resend/sweep calls on the same row
    cannot both win.
    """

    def __init__(
        self,
        db: AsyncSession,
        policy: SecurityPolicy,
        notifier: Notifier,
        *,
        orgs: OrganizationStore | None = None,
        users: CredentialStore | None = None,
        clock: Clock = system_clock,
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self.db = db
        self.policy = policy
        self.notifier = notifier
        self.orgs = orgs or SqlOrganizationStore(db)
        self.users = users or SqlCredentialStore(db)
        self.clock = clock
        self.token_factory = token_factory

    def _deadline(self, timeout: float | None) -> float | None:
        return timeout or self.policy.store_timeout

    async def _load_organization(self, org_id: int) -> Organization:
        return await load_organization(self.orgs, org_id)

    async def _require_admin(self, org: Organization, user_id: int) -> None:
        await require_admin(self.orgs, org, user_id)

    async def _transition(
        self, invite: OrganizationInvite, target: InviteStatus, **values: Any
    ) -> None:
        if not can_transition(invite.status, target):
            raise InviteNotPending()
        if not await self.orgs.update_invite(invite.id, invite.status, status=target, **values):
            # Someone else moved it first.
            raise InviteNotPending()
        logger.info("Invitation %s: %s -> %s", invite.id, invite.status.value, target.value)

    async def invite(
        self,
        org_id: int,
        email: str,
        role: OrganizationRole | str,
        inviter_id: int,
        timeout: float | None = None,
    ) -> OrganizationInvite:
        email = normalize_login_name(email)
        role = OrganizationRole(role)
        async with unit_of_work(self.db, self._deadline(timeout)):
            org = await self._load_organization(org_id)
            await self._require_admin(org, inviter_id)
            org_name = org.name

            existing_user = await self.users.find_by_login_name(email)
            if existing_user is not None:
                member = await self.orgs.find_member(org.id, existing_user.id)
                if member is not None and not member.is_deleted:
                    raise AlreadyMember()

            now = self.clock.now()
            pending = await self.orgs.find_pending_invite(org.id, email)
            if pending is not None:
                if not pending.is_expired(now):
                    raise ConflictPendingInvite()
                # Stale pending row the sweeper has not reached yet.
                await self._transition(pending, InviteStatus.EXPIRED)

            try:
                invite = await self.orgs.create_invite(
                    org.id,
                    email,
                    role,
                    inviter_id,
                    self.token_factory(),
                    now + self.policy.invite_ttl,
                )
            except StoreConflict as e:
                raise ConflictPendingInvite() from e
        logger.info(
            "Invitation %s created for org %s by user %s (role %s, expires %s)",
            invite.id,
            org_id,
            inviter_id,
            role.value,
            invite.expires_at.isoformat(),
        )
        await deliver(f"invitation {invite.id}", self.notifier.send_invite_email(invite, org_name))
        return invite

    async def accept(self, token: str, user_id: int, timeout: float | None = None) -> OrganizationMember:
        async with unit_of_work(self.db, self._deadline(timeout)):
            invite = await self.orgs.find_invite_by_token(token)
            if invite is None:
                raise InviteNotFound()
            if invite.status != InviteStatus.PENDING:
                raise InviteNotPending()

            now = self.clock.now()
            if invite.is_expired(now):
                await self._transition(invite, InviteStatus.EXPIRED)
                await commit_now(self.db)
                raise InviteExpired()

            user = await self.users.find_by_id(user_id)
            if user is None:
                raise NotFound("User not found")
            # Exact comparison; both sides are normalized at write time.
            if user.login_name != invite.email:
                logger.warning(
                    "Email mismatch accepting invitation %s: user %s", invite.id, user_id
                )
                raise EmailMismatch()

            member = await self.orgs.find_member(invite.organization_id, user_id)
            if member is not None and not member.is_deleted:
                raise AlreadyMember()

            await self._transition(invite, InviteStatus.ACCEPTED, accepted_at=now)

            if member is not None:
                member = await self.orgs.update_member(
                    member, role=invite.role, deleted_at=None, joined_at=now
                )
                logger.info("Restored membership of user %s in org %s", user_id, invite.organization_id)
            else:
                try:
                    member = await self.orgs.add_member(
                        invite.organization_id, user_id, invite.role, now
                    )
                except StoreConflict as e:
                    raise AlreadyMember() from e
            org_id = invite.organization_id
            member_name = user.name or user.login_name
        logger.info("User %s joined org %s via invitation", user_id, org_id)
        await deliver(
            f"new-member notice for org {org_id}",
            self.notifier.notify_admins_of_new_member(org_id, member_name, user_id),
        )
        return member

    async def validate(self, token: str, timeout: float | None = None) -> InvitePreview:
        async with unit_of_work(self.db, self._deadline(timeout)):
            invite = await self.orgs.find_invite_by_token(token)
            if invite is None:
                raise InviteNotFound()
            if invite.status != InviteStatus.PENDING:
                raise InviteNotPending()
            if invite.is_expired(self.clock.now()):
                raise InviteExpired()
            user = await self.users.find_by_login_name(invite.email)
            return InvitePreview(
                email=invite.email,
                organization_id=invite.organization_id,
                organization_name=invite.organization.name,
                role=invite.role,
                expires_at=invite.expires_at,
                user_exists=user is not None,
            )

    async def revoke(self, invite_id: int, admin_id: int, timeout: float | None = None) -> None:
        """Only pending invitations can be revoked; terminal ones raise InviteNotPending."""
        async with unit_of_work(self.db, self._deadline(timeout)):
            invite = await self.orgs.find_invite_by_id(invite_id)
            if invite is None:
                raise InviteNotFound()
            org = await self._load_organization(invite.organization_id)
            await self._require_admin(org, admin_id)
            await self._transition(invite, InviteStatus.REVOKED)

    async def resend(self, invite_id: int, admin_id: int, timeout: float | None = None) -> OrganizationInvite:
        async with unit_of_work(self.db, self._deadline(timeout)):
            invite = await self.orgs.find_invite_by_id(invite_id)
            if invite is None:
                raise InviteNotFound()
            org = await self._load_organization(invite.organization_id)
            await self._require_admin(org, admin_id)
            org_name = org.name
            await self._transition(
                invite,
                InviteStatus.PENDING,
                token=self.token_factory(),
                expires_at=self.clock.now() + self.policy.invite_ttl,
            )
            await self.db.refresh(invite, attribute_names=["token", "expires_at", "status"])
        await deliver(f"invitation {invite.id}", self.notifier.send_invite_email(invite, org_name))
        return invite

    async def list_invites(
        self,
        org_id: int,
        user_id: int,
        limit: int = 50,
        offset: int = 0,
        timeout: float | None = None,
    ) -> tuple[list[OrganizationInvite], int]:
        async with unit_of_work(self.db, self._deadline(timeout)):
            org = await self._load_organization(org_id)
            await self._require_admin(org, user_id)
            return await self.orgs.list_invites(org.id, limit=limit, offset=offset)

    async def sweep_expired(self, timeout: float | None = None) -> int:
        """Flip every overdue pending invitation to expired. Idempotent."""
        async with unit_of_work(self.db, self._deadline(timeout)):
            count = await self.orgs.bulk_expire_pending(self.clock.now())
        if count:
            logger.info("Expired %d overdue invitations", count)
        return count
