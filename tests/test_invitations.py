# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization invitation lifecycle."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from orgauth_server.errors import (
    AlreadyMember,
    ConflictPendingInvite,
    EmailMismatch,
    InsufficientPermissions,
    InviteExpired,
    InviteNotFound,
    InviteNotPending,
    NotFound,
)
from orgauth_server.models import InviteStatus, OrganizationRole
from orgauth_server.services.invitations import InvitationLifecycle
from orgauth_server.services.organizations import OrganizationAdmin
from orgauth_server.stores.organizations import SqlOrganizationStore

pytestmark = pytest.mark.anyio


@pytest.fixture
def lifecycle(db, policy, notifier, clock):
    return InvitationLifecycle(db, policy, notifier, clock=clock)


@pytest.fixture
async def org(make_user, make_org):
    """(org_id, admin_id) for an organization created by admin@example.com."""
    admin_id = await make_user("admin@example.com", name="Ada Admin")
    return await make_org(admin_id), admin_id


async def _invite_row(session_maker, invite_id):
    async with session_maker() as session:
        return await SqlOrganizationStore(session).find_invite_by_id(invite_id)


async def _member_row(session_maker, org_id, user_id):
    async with session_maker() as session:
        return await SqlOrganizationStore(session).find_member(org_id, user_id)


async def test_invite_creates_pending_and_sends_email(lifecycle, org, notifier, clock):
    org_id, admin_id = org
    invite = await lifecycle.invite(org_id, " Bob@Example.com ", "member", admin_id)
    assert invite.status == InviteStatus.PENDING
    assert invite.email == "bob@example.com"
    assert invite.role == OrganizationRole.MEMBER
    assert invite.invited_by == admin_id
    assert invite.expires_at == clock.now() + timedelta(days=7)
    assert len(invite.token) == 64
    assert notifier.invites == [("bob@example.com", invite.token, "Acme")]


async def test_invite_requires_admin(lifecycle, org, make_user, notifier):
    org_id, _ = org
    outsider = await make_user("eve@example.com")
    with pytest.raises(InsufficientPermissions):
        await lifecycle.invite(org_id, "bob@example.com", "member", outsider)
    assert notifier.invites == []


async def test_plain_member_cannot_invite(lifecycle, org, make_user, db, clock):
    org_id, _ = org
    member_id = await make_user("carol@example.com")
    await SqlOrganizationStore(db).add_member(org_id, member_id, OrganizationRole.MEMBER, clock.now())
    await db.commit()
    with pytest.raises(InsufficientPermissions):
        await lifecycle.invite(org_id, "bob@example.com", "member", member_id)


async def test_admin_member_can_invite(lifecycle, org, make_user, db, clock):
    org_id, _ = org
    second_admin = await make_user("carol@example.com")
    await SqlOrganizationStore(db).add_member(org_id, second_admin, OrganizationRole.ADMIN, clock.now())
    await db.commit()
    invite = await lifecycle.invite(org_id, "bob@example.com", "admin", second_admin)
    assert invite.role == OrganizationRole.ADMIN


async def test_invite_unknown_organization(lifecycle, org):
    _, admin_id = org
    with pytest.raises(NotFound):
        await lifecycle.invite(9999, "bob@example.com", "member", admin_id)


async def test_second_pending_invite_conflicts(lifecycle, org):
    org_id, admin_id = org
    await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    with pytest.raises(ConflictPendingInvite):
        await lifecycle.invite(org_id, "BOB@example.com", "admin", admin_id)


async def test_invite_after_expiry_replaces_stale_pending(lifecycle, org, clock, session_maker):
    org_id, admin_id = org
    first = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    clock.advance(days=8)
    second = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    assert second.id != first.id
    assert (await _invite_row(session_maker, first.id)).status == InviteStatus.EXPIRED


async def test_invite_existing_member(lifecycle, org):
    org_id, admin_id = org
    with pytest.raises(AlreadyMember):
        await lifecycle.invite(org_id, "admin@example.com", "member", admin_id)


async def test_accept(lifecycle, org, make_user, notifier, clock, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com", name="Bob")
    invite = await lifecycle.invite(org_id, "bob@example.com", "admin", admin_id)
    clock.advance(days=1)

    member = await lifecycle.accept(invite.token, bob_id)
    assert member.organization_id == org_id
    assert member.user_id == bob_id
    assert member.role == OrganizationRole.ADMIN
    assert member.joined_at == clock.now()

    row = await _invite_row(session_maker, invite.id)
    assert row.status == InviteStatus.ACCEPTED
    assert row.accepted_at == clock.now()
    assert notifier.new_members == [(org_id, "Bob", bob_id)]


async def test_accept_twice(lifecycle, org, make_user):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    await lifecycle.accept(invite.token, bob_id)
    with pytest.raises(InviteNotPending):
        await lifecycle.accept(invite.token, bob_id)


async def test_accept_unknown_token(lifecycle, make_user):
    bob_id = await make_user("bob@example.com")
    with pytest.raises(InviteNotFound):
        await lifecycle.accept("f" * 64, bob_id)


async def test_accept_email_mismatch(lifecycle, org, make_user, session_maker):
    org_id, admin_id = org
    eve_id = await make_user("eve@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    invite_id, token = invite.id, invite.token
    with pytest.raises(EmailMismatch):
        await lifecycle.accept(token, eve_id)
    assert (await _invite_row(session_maker, invite_id)).status == InviteStatus.PENDING
    assert await _member_row(session_maker, org_id, eve_id) is None


async def test_accept_after_expiry_marks_expired(lifecycle, org, make_user, clock, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    invite_id, token = invite.id, invite.token
    clock.advance(days=8)
    with pytest.raises(InviteExpired):
        await lifecycle.accept(token, bob_id)
    assert (await _invite_row(session_maker, invite_id)).status == InviteStatus.EXPIRED
    assert await _member_row(session_maker, org_id, bob_id) is None
    with pytest.raises(InviteNotPending):
        await lifecycle.accept(token, bob_id)


async def test_accept_restores_removed_member(lifecycle, org, make_user, clock, db, policy, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    first = await lifecycle.invite(org_id, "bob@example.com", "admin", admin_id)
    await lifecycle.accept(first.token, bob_id)

    clock.advance(days=2)
    await OrganizationAdmin(db, policy, clock=clock).remove_member(org_id, bob_id, admin_id)

    clock.advance(days=1)
    second = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    member = await lifecycle.accept(second.token, bob_id)
    assert member.role == OrganizationRole.MEMBER
    assert member.deleted_at is None
    assert member.joined_at == clock.now()

    row = await _member_row(session_maker, org_id, bob_id)
    assert row.id == member.id
    assert not row.is_deleted


async def test_accept_tolerates_notifier_failure(db, policy, clock, org, make_user, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    broken = AsyncMock()
    broken.notify_admins_of_new_member.side_effect = RuntimeError("smtp down")
    lifecycle = InvitationLifecycle(db, policy, broken, clock=clock)

    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    member = await lifecycle.accept(invite.token, bob_id)
    assert member.user_id == bob_id
    broken.notify_admins_of_new_member.assert_awaited_once()
    assert (await _invite_row(session_maker, invite.id)).status == InviteStatus.ACCEPTED


async def test_validate(lifecycle, org, make_user, clock):
    org_id, admin_id = org
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    preview = await lifecycle.validate(invite.token)
    assert preview.email == "bob@example.com"
    assert preview.organization_id == org_id
    assert preview.organization_name == "Acme"
    assert preview.role == OrganizationRole.MEMBER
    assert preview.user_exists is False

    await make_user("bob@example.com")
    assert (await lifecycle.validate(invite.token)).user_exists is True

    clock.advance(days=7)
    with pytest.raises(InviteExpired):
        await lifecycle.validate(invite.token)


async def test_revoke(lifecycle, org, make_user, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    invite_id, token = invite.id, invite.token
    await lifecycle.revoke(invite_id, admin_id)
    assert (await _invite_row(session_maker, invite_id)).status == InviteStatus.REVOKED
    with pytest.raises(InviteNotPending):
        await lifecycle.accept(token, bob_id)
    with pytest.raises(InviteNotPending):
        await lifecycle.revoke(invite_id, admin_id)


async def test_revoke_accepted_invite(lifecycle, org, make_user):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    invite_id = invite.id
    await lifecycle.accept(invite.token, bob_id)
    with pytest.raises(InviteNotPending):
        await lifecycle.revoke(invite_id, admin_id)


async def test_revoke_requires_admin(lifecycle, org, make_user):
    org_id, admin_id = org
    eve_id = await make_user("eve@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    with pytest.raises(InsufficientPermissions):
        await lifecycle.revoke(invite.id, eve_id)


async def test_resend_rotates_token(lifecycle, org, make_user, notifier, clock):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    old_token = invite.token

    clock.advance(days=6)
    resent = await lifecycle.resend(invite.id, admin_id)
    new_token = resent.token
    assert resent.id == invite.id
    assert new_token != old_token
    assert resent.status == InviteStatus.PENDING
    assert resent.expires_at == clock.now() + timedelta(days=7)
    assert notifier.invites[-1] == ("bob@example.com", new_token, "Acme")

    with pytest.raises(InviteNotFound):
        await lifecycle.accept(old_token, bob_id)
    # Past the first expiry but inside the new one.
    clock.advance(days=3)
    member = await lifecycle.accept(new_token, bob_id)
    assert member.user_id == bob_id


async def test_resend_terminal_invite(lifecycle, org):
    org_id, admin_id = org
    invite = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    invite_id = invite.id
    await lifecycle.revoke(invite_id, admin_id)
    with pytest.raises(InviteNotPending):
        await lifecycle.resend(invite_id, admin_id)


async def test_list_invites(lifecycle, org, make_user, clock):
    org_id, admin_id = org
    for name in ("a", "b", "c"):
        await lifecycle.invite(org_id, f"{name}@example.com", "member", admin_id)
        clock.advance(minutes=1)

    invites, total = await lifecycle.list_invites(org_id, admin_id, limit=2)
    assert total == 3
    assert len(invites) == 2

    eve_id = await make_user("eve@example.com")
    with pytest.raises(InsufficientPermissions):
        await lifecycle.list_invites(org_id, eve_id)


async def test_sweep_expired_is_idempotent(lifecycle, org, clock, session_maker):
    org_id, admin_id = org
    old = await lifecycle.invite(org_id, "old@example.com", "member", admin_id)
    clock.advance(days=3)
    fresh = await lifecycle.invite(org_id, "fresh@example.com", "member", admin_id)

    clock.advance(days=5)
    assert await lifecycle.sweep_expired() == 1
    assert await lifecycle.sweep_expired() == 0
    assert (await _invite_row(session_maker, old.id)).status == InviteStatus.EXPIRED
    assert (await _invite_row(session_maker, fresh.id)).status == InviteStatus.PENDING


async def test_sweep_leaves_terminal_invites(lifecycle, org, make_user, clock, session_maker):
    org_id, admin_id = org
    bob_id = await make_user("bob@example.com")
    accepted = await lifecycle.invite(org_id, "bob@example.com", "member", admin_id)
    await lifecycle.accept(accepted.token, bob_id)
    revoked = await lifecycle.invite(org_id, "carol@example.com", "member", admin_id)
    await lifecycle.revoke(revoked.id, admin_id)

    clock.advance(days=30)
    assert await lifecycle.sweep_expired() == 0
    assert (await _invite_row(session_maker, accepted.id)).status == InviteStatus.ACCEPTED
    assert (await _invite_row(session_maker, revoked.id)).status == InviteStatus.REVOKED
