"""Tests for the sync lease."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import update

from langcms.exceptions import SyncInProgressError
from langcms.models.sync import SyncLock
from langcms.services.datetime_service import now_utc
from langcms.services.lock_service import (
    PUMP_LOCK_NAME,
    lock_status,
    release,
    sync_lease,
    try_acquire,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class TestTryAcquire:
    async def test_acquire_and_release(self, db_session: AsyncSession) -> None:
        assert await try_acquire(db_session, "pump", "a", 60)
        status = await lock_status(db_session, "pump")
        assert status["locked"] is True
        assert status["holder"] == "a"

        await release(db_session, "pump", "a")
        assert (await lock_status(db_session, "pump"))["locked"] is False

    async def test_second_holder_is_refused(self, db_session: AsyncSession) -> None:
        assert await try_acquire(db_session, "pump", "a", 60)
        assert not await try_acquire(db_session, "pump", "b", 60)

    async def test_expired_lease_is_taken_over(self, db_session: AsyncSession) -> None:
        assert await try_acquire(db_session, "pump", "crashed", 60)
        await db_session.execute(
            update(SyncLock)
            .where(SyncLock.name == "pump")
            .values(expires_at=now_utc() - timedelta(seconds=1))
        )
        await db_session.commit()

        assert await try_acquire(db_session, "pump", "b", 60)
        db_session.expire_all()
        assert (await lock_status(db_session, "pump"))["holder"] == "b"

    async def test_release_ignores_other_holder(self, db_session: AsyncSession) -> None:
        assert await try_acquire(db_session, "pump", "a", 60)
        await release(db_session, "pump", "b")
        assert (await lock_status(db_session, "pump"))["locked"] is True


class TestSyncLease:
    async def test_lease_is_released_after_block(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with sync_lease(session_factory, ttl_seconds=60) as holder:
            assert holder
            async with session_factory() as session:
                assert (await lock_status(session))["locked"] is True
        async with session_factory() as session:
            assert (await lock_status(session))["locked"] is False

    async def test_nested_lease_is_refused(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with sync_lease(session_factory, ttl_seconds=60):
            with pytest.raises(SyncInProgressError):
                async with sync_lease(session_factory, ttl_seconds=60):
                    pass

    async def test_lease_held_elsewhere_is_refused(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        async with session_factory() as session:
            assert await try_acquire(session, PUMP_LOCK_NAME, "other-process", 60)
        with pytest.raises(SyncInProgressError):
            async with sync_lease(session_factory, ttl_seconds=60):
                pass

    async def test_lease_released_on_error(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        with pytest.raises(RuntimeError):
            async with sync_lease(session_factory, ttl_seconds=60):
                raise RuntimeError("boom")
        async with session_factory() as session:
            assert (await lock_status(session))["locked"] is False
