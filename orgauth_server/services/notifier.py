# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Outbound notifications: invitation, password-reset and new-member e-mails."""

import logging
from collections.abc import Awaitable
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgauth_server.config import SecurityPolicy
from orgauth_server.models import OrganizationInvite
from orgauth_server.services.email import send_email
from orgauth_server.stores.organizations import SqlOrganizationStore

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send_invite_email(self, invite: OrganizationInvite, org_name: str) -> None: ...

    async def send_password_reset_email(self, login_name: str, reset_url: str) -> None: ...

    async def notify_admins_of_new_member(
        self, org_id: int, new_member_name: str, new_member_id: int
    ) -> None: ...


async def deliver(what: str, delivery: Awaitable[None]) -> None:
    """Await a notification; failures are logged and never reach the caller."""
    try:
        await delivery
    except Exception:
        logger.exception("Notification delivery failed: %s", what)


class EmailNotifier:
    """Notifier backed by e-mail. Admin look-ups use their own short session."""

    def __init__(self, policy: SecurityPolicy, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.policy = policy
        self.session_maker = session_maker

    async def send_invite_email(self, invite: OrganizationInvite, org_name: str) -> None:
        link = self.policy.invite_url(invite.token)
        days = self.policy.invite_ttl.days
        await send_email(
            invite.email,
            f"Invitation to join {org_name}",
            f"You have been invited to join {org_name} as {invite.role.value}.\n\n"
            f"Click the link below to accept the invitation:\n\n{link}\n\n"
            f"The link expires in {days} days.",
        )

    async def send_password_reset_email(self, login_name: str, reset_url: str) -> None:
        minutes = int(self.policy.password_reset_ttl.total_seconds() // 60)
        await send_email(
            login_name,
            "Password Reset Request",
            f"We received a request to reset your password.\n\n"
            f"Click the link below to choose a new password:\n\n{reset_url}\n\n"
            f"The link expires in {minutes} minutes. If you did not ask for this, ignore this email.",
        )

    async def notify_admins_of_new_member(
        self, org_id: int, new_member_name: str, new_member_id: int
    ) -> None:
        async with self.session_maker() as db:
            store = SqlOrganizationStore(db)
            org = await store.find_organization(org_id)
            if org is None:
                logger.warning("New-member notification skipped: organization %s not found", org_id)
                return
            admins = await store.list_admin_logins(org_id, exclude_user_id=new_member_id)
        for admin in admins:
            await send_email(
                admin,
                f"New member joined {org.name}",
                f"{new_member_name or 'A new user'} (user #{new_member_id}) accepted an invitation "
                f"and joined {org.name}.",
            )
