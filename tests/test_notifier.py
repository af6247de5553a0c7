# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""E-mail notifier: message content and admin fan-out."""

from unittest.mock import AsyncMock, patch

import pytest

from orgauth_server.models import OrganizationRole
from orgauth_server.services.email import wrap_body_html
from orgauth_server.services.invitations import InvitationLifecycle
from orgauth_server.services.notifier import EmailNotifier, deliver
from orgauth_server.stores.organizations import SqlOrganizationStore

pytestmark = pytest.mark.anyio


@pytest.fixture
def email_notifier(policy, session_maker):
    return EmailNotifier(policy, session_maker)


async def test_invite_email_carries_accept_link(email_notifier, db, policy, clock, make_user, make_org):
    admin_id = await make_user("admin@example.com")
    org_id = await make_org(admin_id, name="Acme")
    invite = await InvitationLifecycle(db, policy, AsyncMock(), clock=clock).invite(
        org_id, "bob@example.com", "member", admin_id
    )
    with patch("orgauth_server.services.notifier.send_email", new=AsyncMock()) as send:
        await email_notifier.send_invite_email(invite, "Acme")
    to, subject, body = send.await_args.args
    assert to == "bob@example.com"
    assert subject == "Invitation to join Acme"
    assert f"https://app.example.com/organizations/invites/{invite.token}/accept" in body
    assert "7 days" in body


async def test_reset_email(email_notifier):
    with patch("orgauth_server.services.notifier.send_email", new=AsyncMock()) as send:
        await email_notifier.send_password_reset_email("alice@example.com", "https://x/reset?token=t")
    to, subject, body = send.await_args.args
    assert to == "alice@example.com"
    assert "https://x/reset?token=t" in body
    assert "60 minutes" in body


async def test_new_member_notice_goes_to_admins(email_notifier, db, clock, make_user, make_org):
    creator_id = await make_user("creator@example.com")
    org_id = await make_org(creator_id)
    admin_id = await make_user("second-admin@example.com")
    member_id = await make_user("member@example.com")
    store = SqlOrganizationStore(db)
    await store.add_member(org_id, admin_id, OrganizationRole.ADMIN, clock.now())
    await store.add_member(org_id, member_id, OrganizationRole.MEMBER, clock.now())
    await db.commit()

    with patch("orgauth_server.services.notifier.send_email", new=AsyncMock()) as send:
        await email_notifier.notify_admins_of_new_member(org_id, "Newbie", 99)
    recipients = sorted(call.args[0] for call in send.await_args_list)
    assert recipients == ["creator@example.com", "second-admin@example.com"]
    assert "Newbie" in send.await_args_list[0].args[2]


async def test_new_member_joining_as_admin_is_not_notified(email_notifier, db, clock, make_user, make_org):
    creator_id = await make_user("creator@example.com")
    org_id = await make_org(creator_id)
    joiner_id = await make_user("joiner@example.com")
    await SqlOrganizationStore(db).add_member(org_id, joiner_id, OrganizationRole.ADMIN, clock.now())
    await db.commit()

    with patch("orgauth_server.services.notifier.send_email", new=AsyncMock()) as send:
        await email_notifier.notify_admins_of_new_member(org_id, "Joiner", joiner_id)
    assert [call.args[0] for call in send.await_args_list] == ["creator@example.com"]


async def test_new_member_notice_unknown_org(email_notifier):
    with patch("orgauth_server.services.notifier.send_email", new=AsyncMock()) as send:
        await email_notifier.notify_admins_of_new_member(404, "Newbie", 1)
    send.assert_not_awaited()


async def test_deliver_swallows_failures():
    failing = AsyncMock(side_effect=OSError("connection refused"))
    await deliver("test", failing())
    failing.assert_awaited_once()


def test_wrap_body_html_escapes():
    html = wrap_body_html("a < b & c\nnext")
    assert "a &lt; b &amp; c<br>" in html
