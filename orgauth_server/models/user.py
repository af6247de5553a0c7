# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""User model."""

from datetime import datetime, timedelta

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from orgauth_server.models.base import Base, UTCDateTime
from orgauth_server.models.timestamp import SoftDeleteMixin, TimestampMixin


def normalize_login_name(login_name: str) -> str:
    """Login names are e-mail addresses compared trimmed and lower-cased."""
    return login_name.strip().lower()


class User(Base, TimestampMixin, SoftDeleteMixin):
    """User account with credential and lockout state."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    login_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    failed_login_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_failed_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and now < self.locked_until

    def remaining_lock(self, now: datetime) -> timedelta:
        if not self.is_locked(now):
            return timedelta(0)
        return self.locked_until - now
