"""Sync lease: keeps pump, pull and clear runs from overlapping.

A process-local ``asyncio.Lock`` serializes requests inside one worker, and a
row in ``sync_locks`` extends the guarantee across processes.  An expired row
(holder crashed mid-run) may be taken over.
"""

from __future__ import annotations

import asyncio
import logging
import os
import socket
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from langcms.exceptions import SyncInProgressError
from langcms.models.sync import SyncLock
from langcms.services.datetime_service import ensure_aware, expires_after, format_iso, now_utc

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

PUMP_LOCK_NAME = "pump"

_local_locks: dict[str, asyncio.Lock] = {}


def _local_lock(name: str) -> asyncio.Lock:
    if name not in _local_locks:
        _local_locks[name] = asyncio.Lock()
    return _local_locks[name]


def make_holder_id() -> str:
    """Identify this process and attempt, e.g. ``web-1:4242:9f1c2a``."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:6]}"


async def try_acquire(session: AsyncSession, name: str, holder: str, ttl_seconds: int) -> bool:
    """Take the named lease if it is free or expired.  Commits on success."""
    now = now_utc()
    session.add(
        SyncLock(
            name=name,
            holder=holder,
            acquired_at=now,
            expires_at=expires_after(ttl_seconds, now),
        )
    )
    try:
        await session.commit()
        return True
    except IntegrityError:
        await session.rollback()

    existing = await session.get(SyncLock, name)
    if existing is None:
        # Released between our insert and our read; let the caller retry later.
        return False
    if ensure_aware(existing.expires_at) > now:
        return False

    result = await session.execute(
        update(SyncLock)
        .where(SyncLock.name == name, SyncLock.holder == existing.holder)
        .values(holder=holder, acquired_at=now, expires_at=expires_after(ttl_seconds, now))
    )
    await session.commit()
    if result.rowcount == 1:
        logger.warning("Took over expired sync lease %s from %s", name, existing.holder)
        return True
    return False


async def release(session: AsyncSession, name: str, holder: str) -> None:
    """Drop the lease if this holder still owns it."""
    await session.execute(delete(SyncLock).where(SyncLock.name == name, SyncLock.holder == holder))
    await session.commit()


async def lock_status(session: AsyncSession, name: str = PUMP_LOCK_NAME) -> dict[str, Any]:
    """Describe the current lease for status endpoints."""
    result = await session.execute(select(SyncLock).where(SyncLock.name == name))
    row = result.scalar_one_or_none()
    if row is None or ensure_aware(row.expires_at) <= now_utc():
        return {"locked": False, "holder": None, "expires_at": None}
    return {"locked": True, "holder": row.holder, "expires_at": format_iso(row.expires_at)}


@asynccontextmanager
async def sync_lease(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    ttl_seconds: int,
    name: str = PUMP_LOCK_NAME,
) -> AsyncGenerator[str]:
    """Hold the sync lease for the duration of the block.

    Raises SyncInProgressError immediately if another run holds it; callers
    are expected to report that rather than wait.
    """
    local = _local_lock(name)
    if local.locked():
        raise SyncInProgressError(f"A sync run is already in progress ({name})")

    async with local:
        holder = make_holder_id()
        async with session_factory() as session:
            acquired = await try_acquire(session, name, holder, ttl_seconds)
        if not acquired:
            raise SyncInProgressError(f"A sync run is already in progress ({name})")
        logger.info("Acquired sync lease %s as %s", name, holder)
        try:
            yield holder
        finally:
            async with session_factory() as session:
                await release(session, name, holder)
            logger.info("Released sync lease %s", name)
