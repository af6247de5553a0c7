# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from orgauth_server.models import InviteStatus, OrganizationRole

_SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"


def check_password_strength(password: str) -> str:
    """At least 8 characters with upper, lower, digit and symbol."""
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", password):
        raise ValueError("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        raise ValueError("Password must contain a lowercase letter")
    if not re.search(r"[0-9]", password):
        raise ValueError("Password must contain a digit")
    if not any(c in _SYMBOLS for c in password):
        raise ValueError("Password must contain a symbol")
    return password


# Auth
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    name: str = Field(default="", max_length=100)

    @field_validator("password")
    @classmethod
    def _strong(cls, v: str) -> str:
        return check_password_strength(v)


class UserLogin(BaseModel):
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _strong(cls, v: str) -> str:
        return check_password_strength(v)


class UserResponse(BaseModel):
    id: int
    login_name: str
    name: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RegisterResponse(Token):
    """Registration logs the new account straight in."""

    user: UserResponse


# Organizations
class OrganizationCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: str | None = None


class OrganizationResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_by: int

    model_config = ConfigDict(from_attributes=True)


class MemberRoleUpdate(BaseModel):
    role: OrganizationRole


class MemberResponse(BaseModel):
    id: int
    organization_id: int
    user_id: int
    role: OrganizationRole
    joined_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Invitations
class InviteCreate(BaseModel):
    email: EmailStr
    role: OrganizationRole = OrganizationRole.MEMBER


class InviteResponse(BaseModel):
    """Invitation as shown to admins. The token travels only by e-mail."""

    id: int
    organization_id: int
    email: str
    role: OrganizationRole
    status: InviteStatus
    invited_by: int
    expires_at: datetime
    accepted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class InviteListResponse(BaseModel):
    invites: list[InviteResponse]
    total: int


class InvitePreviewResponse(BaseModel):
    valid: bool = True
    email: str
    organization_id: int
    organization_name: str
    role: OrganizationRole
    expires_at: datetime
    user_exists: bool

    model_config = ConfigDict(from_attributes=True)
