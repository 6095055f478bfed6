"""Tests for the sync endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from langcms.database import create_engine
from langcms.services.lock_service import PUMP_LOCK_NAME, release, try_acquire

if TYPE_CHECKING:
    from httpx import AsyncClient

    from langcms.config import Settings


@pytest.mark.parametrize(
    "path", ["/api/sync/diff", "/api/sync/pump", "/api/sync/pull", "/api/sync/clear"]
)
async def test_requires_token(client: AsyncClient, path: str) -> None:
    resp = await client.post(path)
    assert resp.status_code == 401


async def test_rejects_garbage_token(client: AsyncClient) -> None:
    resp = await client.post("/api/sync/pump", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401


async def test_pump_loads_every_table(client: AsyncClient, admin_headers: dict[str, str]) -> None:
    resp = await client.post("/api/sync/pump", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["files_scanned"] == 9
    assert data["errors"] == []
    assert data["tables_loaded"] == {
        "collections": 3,
        "config_files": 1,
        "data_files": 1,
        "static_files": 1,
        "javascript_files": 1,
        "images": 1,
        "resumes": 1,
    }
    assert data["finished_at"] is not None


async def test_diff_then_pull(client: AsyncClient, admin_headers: dict[str, str]) -> None:
    before = await client.post("/api/sync/diff", headers=admin_headers)
    assert len(before.json()["new"]) == 9

    pulled = await client.post("/api/sync/pull", headers=admin_headers)
    assert pulled.status_code == 200
    assert pulled.json()["applied"] == 9
    assert pulled.json()["failed"] == 0

    after = await client.post("/api/sync/diff", headers=admin_headers)
    assert after.json()["new"] == []
    assert after.json()["unchanged_count"] == 9


async def test_status_reports_last_run(client: AsyncClient, admin_headers: dict[str, str]) -> None:
    empty = await client.get("/api/sync/status", headers=admin_headers)
    assert empty.json()["last_result"] is None
    assert empty.json()["lock"]["locked"] is False

    await client.post("/api/sync/pump", headers=admin_headers)
    resp = await client.get("/api/sync/status", headers=admin_headers)
    assert resp.json()["last_result"]["operation"] == "pump"
    assert resp.json()["lock"]["locked"] is False


async def test_clear_empties_store(client: AsyncClient, admin_headers: dict[str, str]) -> None:
    await client.post("/api/sync/pump", headers=admin_headers)
    resp = await client.post("/api/sync/clear", headers=admin_headers)
    assert resp.status_code == 200
    data = resp.json()
    assert data["rows_deleted"]["collections"] == 3
    assert data["rows_deleted"]["sync_manifest"] == 9
    assert data["cache_flushed"] is True

    tables = await client.get("/api/admin/tables", headers=admin_headers)
    assert all(count == 0 for count in tables.json()["tables"].values())

    # Reads fall back to the filesystem once the store is empty.
    read = await client.get("/api/collections/en/data/skills")
    assert read.json()["source_tier"] == "filesystem"


async def test_conflicting_run_gets_409(
    client: AsyncClient, admin_headers: dict[str, str], test_settings: Settings
) -> None:
    engine, session_factory = create_engine(test_settings)
    try:
        async with session_factory() as session:
            assert await try_acquire(session, PUMP_LOCK_NAME, "other-worker", 600)

        resp = await client.post("/api/sync/pump", headers=admin_headers)
        assert resp.status_code == 409

        status = await client.get("/api/sync/status", headers=admin_headers)
        assert status.json()["lock"] == {
            "locked": True,
            "holder": "other-worker",
            "expires_at": status.json()["lock"]["expires_at"],
        }

        async with session_factory() as session:
            await release(session, PUMP_LOCK_NAME, "other-worker")
        resp = await client.post("/api/sync/pump", headers=admin_headers)
        assert resp.status_code == 200
    finally:
        await engine.dispose()
