# Copyright (C) 2024 OrgAuth Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Shared store plumbing: driver-error translation and deadlines."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orgauth_server.errors import StoreConflict, StoreUnavailable

logger = logging.getLogger(__name__)


@asynccontextmanager
async def store_errors(operation: str) -> AsyncIterator[None]:
    """Translate SQLAlchemy and driver errors into core error kinds."""
    try:
        yield
    except IntegrityError as e:
        logger.info("Constraint violation in %s: %s", operation, e.orig)
        raise StoreConflict() from e
    except SQLAlchemyError as e:
        logger.error("Store failure in %s: %s", operation, e)
        raise StoreUnavailable() from e


@asynccontextmanager
async def unit_of_work(db: AsyncSession, timeout: float | None) -> AsyncIterator[AsyncSession]:
    """Run a core operation under a deadline; commit on success, roll back on any failure."""
    try:
        async with asyncio.timeout(timeout):
            yield db
            async with store_errors("commit"):
                await db.commit()
    except TimeoutError as e:
        await db.rollback()
        logger.warning("Store deadline of %ss exceeded", timeout)
        raise StoreUnavailable("Storage deadline exceeded") from e
    except BaseException:
        await db.rollback()
        raise


class SqlStore:
    """Base for stores bound to the caller's session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db


async def commit_now(db: AsyncSession) -> None:
    """Commit mid-operation, for writes that must survive the failure raised next."""
    async with store_errors("commit"):
        await db.commit()
