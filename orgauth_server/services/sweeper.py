# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Periodic invitation expiry sweep."""

import asyncio
import logging
import time

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgauth_server.config import SecurityPolicy
from orgauth_server.errors import SecurityError
from orgauth_server.services.invitations import InvitationLifecycle
from orgauth_server.services.notifier import Notifier
from orgauth_server.tokens import Clock, system_clock

logger = logging.getLogger(__name__)


async def sweep_once(
    session_maker: async_sessionmaker[AsyncSession],
    policy: SecurityPolicy,
    notifier: Notifier,
    clock: Clock = system_clock,
) -> int | None:
    """One tick in a fresh session. Returns the number expired, or None when the tick failed."""
    start = time.monotonic()
    try:
        async with session_maker() as db:
            lifecycle = InvitationLifecycle(db, policy, notifier, clock=clock)
            count = await lifecycle.sweep_expired()
    except SecurityError as e:
        logger.error("Invitation expiry sweep failed (%s); retrying next tick", e.kind)
        return None
    except Exception:
        logger.exception("Invitation expiry sweep failed; retrying next tick")
        return None
    logger.debug("Invitation expiry sweep took %.1fms", (time.monotonic() - start) * 1000)
    return count


async def run_invite_sweeper(
    session_maker: async_sessionmaker[AsyncSession],
    policy: SecurityPolicy,
    notifier: Notifier,
    interval_seconds: float,
    clock: Clock = system_clock,
) -> None:
    """Sweep now, then every ``interval_seconds`` until cancelled."""
    logger.info("Invitation expiry sweeper started (every %.0fs)", interval_seconds)
    try:
        while True:
            await sweep_once(session_maker, policy, notifier, clock)
            await asyncio.sleep(interval_seconds)
    finally:
        logger.info("Invitation expiry sweeper stopped")
