# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Error kinds raised by the authentication, reset and invitation flows.

Every failure leaving the core is a ``SecurityError`` subclass carrying a
stable ``kind``. The HTTP layer maps ``status_code`` onto responses; nothing
here depends on FastAPI.
"""

from datetime import datetime, timedelta


class SecurityError(Exception):
    """Base class for all core failures."""

    kind: str = "SecurityError"
    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(SecurityError):
    kind = "InvalidCredentials"
    status_code = 401
    default_message = "Invalid login name or password"


class AccountLocked(SecurityError):
    """Login refused while ``locked_until`` lies in the future."""

    kind = "AccountLocked"
    status_code = 423
    default_message = "Account is temporarily locked"

    def __init__(self, locked_until: datetime, remaining: timedelta) -> None:
        super().__init__()
        self.locked_until = locked_until
        self.remaining = remaining

    @property
    def retry_after_seconds(self) -> int:
        return max(1, int(self.remaining.total_seconds() + 0.999))


class InvalidToken(SecurityError):
    """Session token malformed, expired or mis-signed. Deliberately uninformative."""

    kind = "InvalidToken"
    status_code = 401
    default_message = "Invalid or expired token"


class UserNotFound(SecurityError):
    kind = "UserNotFound"
    status_code = 404
    default_message = "User not found"


class TokenNotFound(SecurityError):
    kind = "TokenNotFound"
    status_code = 400
    default_message = "Reset token not found"


class TokenExpired(SecurityError):
    kind = "TokenExpired"
    status_code = 400
    default_message = "Reset token has expired"


class TokenUsed(SecurityError):
    kind = "TokenUsed"
    status_code = 400
    default_message = "Reset token has already been used"


class InviteNotFound(SecurityError):
    kind = "InviteNotFound"
    status_code = 404
    default_message = "Invitation not found"


class InviteNotPending(SecurityError):
    kind = "InviteNotPending"
    status_code = 409
    default_message = "Invitation is no longer valid"


class InviteExpired(SecurityError):
    kind = "InviteExpired"
    status_code = 410
    default_message = "Invitation has expired"


class EmailMismatch(SecurityError):
    kind = "EmailMismatch"
    status_code = 403
    default_message = "Invitation email does not match your account"


class AlreadyMember(SecurityError):
    kind = "AlreadyMember"
    status_code = 409
    default_message = "User is already a member of this organization"


class ConflictPendingInvite(SecurityError):
    kind = "ConflictPendingInvite"
    status_code = 409
    default_message = "An invitation is already pending for this email"


class InsufficientPermissions(SecurityError):
    kind = "InsufficientPermissions"
    status_code = 403
    default_message = "Only organization admins can perform this action"


class NotFound(SecurityError):
    kind = "NotFound"
    status_code = 404
    default_message = "Not found"


class StoreUnavailable(SecurityError):
    """The relational store failed or missed the caller's deadline."""

    kind = "StoreUnavailable"
    status_code = 503
    default_message = "Storage temporarily unavailable"


class StoreConflict(StoreUnavailable):
    """A unique or foreign-key constraint rejected the write."""

    kind = "StoreConflict"
    status_code = 409
    default_message = "Conflicting write"


class AccountExists(SecurityError):
    kind = "AccountExists"
    status_code = 409
    default_message = "An account with this email already exists"


class CreatorProtected(SecurityError):
    """The organization creator stays an admin member for the organization's lifetime."""

    kind = "CreatorProtected"
    status_code = 409
    default_message = "The organization creator cannot be removed or demoted"
