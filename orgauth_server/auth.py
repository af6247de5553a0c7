# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Authentication: password hashing, signed session tokens and request dependencies."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from orgauth_server.config import policy, settings
from orgauth_server.errors import InvalidToken
from orgauth_server.tokens import Clock, system_clock

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

# Only symmetric HMAC algorithms are accepted; "none" and asymmetric algorithms never are.
SUPPORTED_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})


def hash_password(password: str) -> str:
    """Hash a password for storage."""
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its hash (constant-time comparison)."""
    return pwd_context.verify(plain, hashed)


def burn_password_check() -> None:
    """Spend the same hashing time as a real verification, for unknown users."""
    pwd_context.dummy_verify()


@dataclass(frozen=True)
class IssuedSession:
    access_token: str
    user_id: int
    expires_at: datetime
    token_type: str = "bearer"


class SessionIssuer:
    """Mints and validates HMAC-signed bearer tokens with a pinned algorithm."""

    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        algorithm: str = "HS256",
        clock: Clock = system_clock,
    ) -> None:
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"Unsupported session signing algorithm: {algorithm}")
        if not secret:
            raise ValueError("Session signing secret must not be empty")
        self._secret = secret
        self._algorithm = algorithm
        self.ttl = ttl
        self.clock = clock

    def issue(self, user_id: int) -> IssuedSession:
        now = self.clock.now()
        expires_at = now + self.ttl
        claims = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(claims, self._secret, algorithm=self._algorithm)
        return IssuedSession(access_token=token, user_id=user_id, expires_at=expires_at)

    def validate(self, token: str) -> int:
        """Return the subject's user id, or raise InvalidToken whatever the cause."""
        try:
            header = jwt.get_unverified_header(token)
            if header.get("alg") != self._algorithm:
                raise InvalidToken()
            # Expiry is checked below against the injected clock. No require_* options:
            # python-jose turns verify_exp back on for require_exp. A missing exp or
            # sub raises KeyError.
            claims: dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
            if self.clock.now() >= expires_at:
                raise InvalidToken()
            return int(claims["sub"])
        except (JWTError, KeyError, TypeError, ValueError) as e:
            raise InvalidToken() from e


session_issuer = SessionIssuer(
    settings.jwt_secret, policy.session_ttl, algorithm=settings.jwt_algorithm
)


def get_session_issuer() -> SessionIssuer:
    return session_issuer


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> int:
    """Extract and validate user ID from the bearer token. Raises 401 if invalid."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return issuer.validate(credentials.credentials)
    except InvalidToken as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
