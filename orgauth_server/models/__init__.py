# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Database models."""

from orgauth_server.models.base import Base
from orgauth_server.models.user import User
from orgauth_server.models.organization import Organization, OrganizationMember, OrganizationRole
from orgauth_server.models.invitation import InviteStatus, OrganizationInvite
from orgauth_server.models.password_reset import PasswordResetToken

__all__ = [
    "Base",
    "User",
    "Organization",
    "OrganizationMember",
    "OrganizationRole",
    "InviteStatus",
    "OrganizationInvite",
    "PasswordResetToken",
]
