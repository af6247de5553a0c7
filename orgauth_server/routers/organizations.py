# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Organization API: creation, member management and admin-side invitation management."""

from fastapi import APIRouter, Depends, Query

from orgauth_server.api.schemas import (
    InviteCreate,
    InviteListResponse,
    InviteResponse,
    MemberResponse,
    MemberRoleUpdate,
    OrganizationCreate,
    OrganizationResponse,
)
from orgauth_server.auth import get_current_user_id
from orgauth_server.deps import get_invitation_lifecycle, get_organization_admin
from orgauth_server.services.invitations import InvitationLifecycle
from orgauth_server.services.organizations import OrganizationAdmin

router = APIRouter(prefix="/organizations", tags=["organizations"])


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    body: OrganizationCreate,
    user_id: int = Depends(get_current_user_id),
    admin: OrganizationAdmin = Depends(get_organization_admin),
) -> OrganizationResponse:
    """Create an organization. The creator becomes its permanent admin."""
    org = await admin.create_organization(body.name, user_id, body.description)
    return OrganizationResponse.model_validate(org)


@router.patch("/{org_id}/members/{member_user_id}", response_model=MemberResponse)
async def update_member_role(
    org_id: int,
    member_user_id: int,
    body: MemberRoleUpdate,
    user_id: int = Depends(get_current_user_id),
    admin: OrganizationAdmin = Depends(get_organization_admin),
) -> MemberResponse:
    """Change a member's role. Admin only; the creator stays admin."""
    member = await admin.update_member_role(org_id, member_user_id, body.role, user_id)
    return MemberResponse.model_validate(member)


@router.delete("/{org_id}/members/{member_user_id}", status_code=204)
async def remove_member(
    org_id: int,
    member_user_id: int,
    user_id: int = Depends(get_current_user_id),
    admin: OrganizationAdmin = Depends(get_organization_admin),
) -> None:
    """Remove a member. Admins remove others; any member may remove themselves."""
    await admin.remove_member(org_id, member_user_id, user_id)


@router.post("/{org_id}/invites", response_model=InviteResponse, status_code=201)
async def create_invite(
    org_id: int,
    body: InviteCreate,
    user_id: int = Depends(get_current_user_id),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> InviteResponse:
    """Invite an e-mail address to the organization. Admin only."""
    invite = await lifecycle.invite(org_id, body.email, body.role, user_id)
    return InviteResponse.model_validate(invite)


@router.get("/{org_id}/invites", response_model=InviteListResponse)
async def list_invites(
    org_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: int = Depends(get_current_user_id),
    lifecycle: InvitationLifecycle = Depends(get_invitation_lifecycle),
) -> InviteListResponse:
    """List the organization's invitations, newest first. Admin only."""
    invites, total = await lifecycle.list_invites(org_id, user_id, limit=limit, offset=offset)
    return InviteListResponse(
        invites=[InviteResponse.model_validate(inv) for inv in invites],
        total=total,
    )
