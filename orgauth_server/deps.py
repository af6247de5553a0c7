# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""FastAPI dependencies wiring the core components to a request's session."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.auth import SessionIssuer, get_session_issuer
from orgauth_server.config import SecurityPolicy, policy
from orgauth_server.database import async_session_maker, get_db
from orgauth_server.services.account_guard import AccountGuard
from orgauth_server.services.invitations import InvitationLifecycle
from orgauth_server.services.notifier import EmailNotifier, Notifier
from orgauth_server.services.organizations import OrganizationAdmin
from orgauth_server.services.password_reset import PasswordResetFlow
from orgauth_server.tokens import Clock, system_clock

_notifier = EmailNotifier(policy, async_session_maker)


def get_policy() -> SecurityPolicy:
    return policy


def get_clock() -> Clock:
    return system_clock


def get_notifier() -> Notifier:
    return _notifier


def get_account_guard(
    db: AsyncSession = Depends(get_db),
    pol: SecurityPolicy = Depends(get_policy),
    issuer: SessionIssuer = Depends(get_session_issuer),
    clock: Clock = Depends(get_clock),
) -> AccountGuard:
    return AccountGuard(db, pol, issuer, clock=clock)


def get_password_reset_flow(
    db: AsyncSession = Depends(get_db),
    pol: SecurityPolicy = Depends(get_policy),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> PasswordResetFlow:
    return PasswordResetFlow(db, pol, notifier, clock=clock)


def get_invitation_lifecycle(
    db: AsyncSession = Depends(get_db),
    pol: SecurityPolicy = Depends(get_policy),
    notifier: Notifier = Depends(get_notifier),
    clock: Clock = Depends(get_clock),
) -> InvitationLifecycle:
    return InvitationLifecycle(db, pol, notifier, clock=clock)


def get_organization_admin(
    db: AsyncSession = Depends(get_db),
    pol: SecurityPolicy = Depends(get_policy),
    clock: Clock = Depends(get_clock),
) -> OrganizationAdmin:
    return OrganizationAdmin(db, pol, clock=clock)
