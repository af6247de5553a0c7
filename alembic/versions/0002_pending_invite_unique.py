# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later
"""One pending invitation per organization and e-mail.

Revision ID: 0002_pending_invite_unique
Revises: 0001_user_lockout
Create Date: 2026-10-18

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0002_pending_invite_unique"
down_revision: Union[str, None] = "0001_user_lockout"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Older pending duplicates would block the index; keep the newest one.
    op.execute(
        """
        UPDATE organization_invites AS o SET status = 'revoked'
        WHERE o.status = 'pending' AND EXISTS (
            SELECT 1 FROM organization_invites n
            WHERE n.organization_id = o.organization_id AND n.email = o.email
              AND n.status = 'pending' AND n.id > o.id
        )
        """
    )
    op.create_index(
        "uq_organization_invites_pending_email",
        "organization_invites",
        ["organization_id", "email"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("uq_organization_invites_pending_email", table_name="organization_invites")
