# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Invite API - validate and accept via token from e-mail link; revoke and resend by id."""

from dataclasses import asdict

from fastapi import APIRouter, Depends

from orgauth_server.api.schemas import InvitePreviewResponse, InviteResponse, MemberResponse
from orgauth_server.auth import get_current_user_id
from orgauth_server.deps import get_invitation_lifecycle
from orgauth_server.services.invitations import InvitationLifecycle

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("/{token}", response_model=InvitePreviewResponse)
async def invite_status(
    token: str,
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> InvitePreviewResponse:
    """Public look-up for the invite landing page."""
    preview = await lifecycle.validate(token)
    return InvitePreviewResponse(**asdict(preview))


@router.post("/{token}/accept", response_model=MemberResponse)
async def accept_invite(
    token: str,
    user_id: int = Depends(get_current_user_id),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> MemberResponse:
    """Accept an invitation as the signed-in user."""
    member = await lifecycle.accept(token, user_id)
    return MemberResponse.model_validate(member)


@router.post("/{invite_id}/revoke", status_code=204)
async def revoke_invite(
    invite_id: int,
    user_id: int = Depends(get_current_user_id),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> None:
    """Revoke a pending invitation. Admin only."""
    await lifecycle.revoke(invite_id, user_id)


@router.post("/{invite_id}/resend", response_model=InviteResponse)
async def resend_invite(
    invite_id: int,
    user_id: int = Depends(get_current_user_id),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> InviteResponse:
    """Issue a fresh token and expiry for a pending invitation and e-mail it again. Admin only."""
    invite = await lifecycle.resend(invite_id, user_id)
    return InviteResponse.model_validate(invite)
