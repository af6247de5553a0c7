# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Repository interfaces and their SQLAlchemy implementations."""

from orgauth_server.stores.organizations import OrganizationStore, SqlOrganizationStore
from orgauth_server.stores.reset_tokens import ResetTokenStore, SqlResetTokenStore
from orgauth_server.stores.users import CredentialStore, LockoutState, SqlCredentialStore

__all__ = [
    "CredentialStore",
    "LockoutState",
    "SqlCredentialStore",
    "ResetTokenStore",
    "SqlResetTokenStore",
    "OrganizationStore",
    "SqlOrganizationStore",
]
