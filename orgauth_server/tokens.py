# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Single-use token generation and the injectable clock."""

import secrets
from datetime import datetime, timezone
from typing import Protocol

# 32 random bytes, hex-encoded to 64 characters
TOKEN_BYTES = 32


def generate_token(nbytes: int = TOKEN_BYTES) -> str:
    """Return an unguessable opaque token for reset and invitation links."""
    return secrets.token_hex(nbytes)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


system_clock = SystemClock()
