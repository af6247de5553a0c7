# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization invitation model and its status state machine."""

import enum
from datetime import datetime

from sqlalchemy import Enum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orgauth_server.models.base import Base, UTCDateTime
from orgauth_server.models.organization import Organization, OrganizationRole, _enum_values
from orgauth_server.models.timestamp import TimestampMixin


class InviteStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"
    REVOKED = "revoked"


# pending -> pending is a resend: new token and expiry, same status.
INVITE_TRANSITIONS: dict[InviteStatus, frozenset[InviteStatus]] = {
    InviteStatus.PENDING: frozenset(
        {InviteStatus.PENDING, InviteStatus.ACCEPTED, InviteStatus.EXPIRED, InviteStatus.REVOKED}
    ),
    InviteStatus.ACCEPTED: frozenset(),
    InviteStatus.EXPIRED: frozenset(),
    InviteStatus.REVOKED: frozenset(),
}


def can_transition(current: InviteStatus, target: InviteStatus) -> bool:
    return target in INVITE_TRANSITIONS[current]


class OrganizationInvite(Base, TimestampMixin):
    """Pending offer of membership, bound to an e-mail address and a single-use token."""

    __tablename__ = "organization_invites"
    __table_args__ = (
        # At most one pending invitation per (organization, email).
        Index(
            "uq_organization_invites_pending_email",
            "organization_id",
            "email",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    role: Mapped[OrganizationRole] = mapped_column(
        Enum(OrganizationRole, native_enum=False, length=20, values_callable=_enum_values),
        default=OrganizationRole.MEMBER,
        nullable=False,
    )
    invited_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    token: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    status: Mapped[InviteStatus] = mapped_column(
        Enum(InviteStatus, native_enum=False, length=20, values_callable=_enum_values),
        default=InviteStatus.PENDING,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    organization: Mapped["Organization"] = relationship("Organization", lazy="raise")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
