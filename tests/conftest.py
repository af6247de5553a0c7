# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pytest fixtures. Tests run against an in-memory SQLite database via aiosqlite."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import orgauth_server.models  # noqa: F401  registers mappers
from orgauth_server.auth import SessionIssuer, hash_password
from orgauth_server.config import SecurityPolicy
from orgauth_server.models import OrganizationInvite
from orgauth_server.models.base import Base
from orgauth_server.stores.organizations import SqlOrganizationStore
from orgauth_server.stores.users import SqlCredentialStore

PASSWORD = "Correct-Horse-9"
START = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current += timedelta(**delta)
        return self.current


class RecordingNotifier:
    """Notifier that keeps what it was asked to send."""

    def __init__(self) -> None:
        self.invites: list[tuple[str, str, str]] = []
        self.resets: list[tuple[str, str]] = []
        self.new_members: list[tuple[int, str, int]] = []

    async def send_invite_email(self, invite: OrganizationInvite, org_name: str) -> None:
        self.invites.append((invite.email, invite.token, org_name))

    async def send_password_reset_email(self, login_name: str, reset_url: str) -> None:
        self.resets.append((login_name, reset_url))

    async def notify_admins_of_new_member(
        self, org_id: int, new_member_name: str, new_member_id: int
    ) -> None:
        self.new_members.append((org_id, new_member_name, new_member_id))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def policy():
    return SecurityPolicy(
        max_login_attempts=3,
        lockout_duration=timedelta(minutes=15),
        session_ttl=timedelta(hours=24),
        password_reset_ttl=timedelta(hours=1),
        invite_ttl=timedelta(days=7),
        store_timeout=5.0,
        app_base_url="https://app.example.com",
    )


@pytest.fixture
def issuer(clock, policy):
    return SessionIssuer("test-secret", policy.session_ttl, clock=clock)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(session_maker):
    """Insert a user in its own committed session and return its id."""

    async def _make(login_name: str, password: str = PASSWORD, name: str = "", **fields) -> int:
        async with session_maker() as session:
            user = await SqlCredentialStore(session).create(login_name, hash_password(password), name=name)
            for key, value in fields.items():
                setattr(user, key, value)
            await session.commit()
            return user.id

    return _make


@pytest.fixture
def make_org(session_maker):
    """Create an organization owned by ``creator_id`` and return its id."""

    async def _make(creator_id: int, name: str = "Acme") -> int:
        async with session_maker() as session:
            org = await SqlOrganizationStore(session).create_organization(name, creator_id)
            await session.commit()
            return org.id

    return _make
