# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication API routes."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.api.schemas import (
    ForgotPasswordRequest,
    RegisterResponse,
    ResetPasswordRequest,
    Token,
    UserCreate,
    UserLogin,
    UserResponse,
)
from orgauth_server.auth import get_current_user_id
from orgauth_server.database import get_db
from orgauth_server.deps import get_account_guard, get_password_reset_flow
from orgauth_server.errors import UserNotFound
from orgauth_server.services.account_guard import AccountGuard, ClientContext
from orgauth_server.services.password_reset import PasswordResetFlow
from orgauth_server.stores.users import SqlCredentialStore

router = APIRouter(prefix="/auth", tags=["auth"])


def _client_context(request: Request) -> ClientContext:
    """Prefer X-Forwarded-For when behind a proxy."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else None
    return ClientContext(ip_address=ip, user_agent=request.headers.get("user-agent"))


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserCreate,
    request: Request,
    guard: AccountGuard = Depends(get_account_guard),
) -> RegisterResponse:
    """Create an account and return a bearer token for it."""
    user, session = await guard.register(data.email, data.password, data.name, _client_context(request))
    return RegisterResponse(
        access_token=session.access_token,
        token_type=session.token_type,
        expires_at=session.expires_at,
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=Token)
async def login(
    data: UserLogin,
    request: Request,
    guard: AccountGuard = Depends(get_account_guard),
) -> Token:
    """Authenticate and return a bearer token."""
    session = await guard.authenticate(data.email, data.password, _client_context(request))
    return Token(
        access_token=session.access_token,
        token_type=session.token_type,
        expires_at=session.expires_at,
    )


@router.post("/forgot-password")
async def forgot_password(
    data: ForgotPasswordRequest,
    flow: PasswordResetFlow = Depends(get_password_reset_flow),
) -> dict:
    """Request password reset. Same answer whether or not the account exists."""
    try:
        await flow.request_reset(data.email)
    except UserNotFound:
        pass
    return {"message": "If an account exists, you will receive a password reset link."}


@router.post("/reset-password")
async def reset_password(
    data: ResetPasswordRequest,
    flow: PasswordResetFlow = Depends(get_password_reset_flow),
) -> dict:
    """Reset password with the token from the e-mailed link."""
    await flow.confirm_reset(data.token, data.new_password)
    return {"message": "Password reset successfully."}


@router.get("/me", response_model=UserResponse)
async def get_me(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get current user profile."""
    user = await SqlCredentialStore(db).find_by_id(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserResponse.model_validate(user)
