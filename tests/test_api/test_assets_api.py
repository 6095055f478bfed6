"""Tests for the asset and flat-file read endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from httpx import AsyncClient


class TestAssets:
    async def test_image_from_source_folder(self, client: AsyncClient) -> None:
        resp = await client.get("/api/assets/images/logo.png")
        assert resp.status_code == 200
        assert resp.content == b"\x89PNG\r\n\x1a\nfake"
        assert resp.headers["content-type"] == "image/png"
        assert resp.headers["cache-control"] == "public, max-age=31536000, immutable"
        assert resp.headers["x-source-tier"] == "filesystem"

    async def test_resume_from_database(
        self, client: AsyncClient, admin_headers: dict[str, str]
    ) -> None:
        await client.post("/api/sync/pump", headers=admin_headers)
        resp = await client.get("/api/assets/resumes/cv.pdf")
        assert resp.status_code == 200
        assert resp.content == b"%PDF-1.4 fake"
        assert resp.headers["content-type"] == "application/pdf"
        assert resp.headers["x-source-tier"] == "database"

    async def test_missing_asset_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/assets/images/nope.png")
        assert resp.status_code == 404
        assert resp.json()["path"] == "image/nope.png"

    async def test_dotted_name_rejected(self, client: AsyncClient) -> None:
        resp = await client.get("/api/assets/images/..logo.png")
        assert resp.status_code == 422

    async def test_unknown_table_rejected(self, client: AsyncClient) -> None:
        resp = await client.get("/api/assets/collections/skills")
        assert resp.status_code == 422
        assert "Invalid table" in resp.json()["detail"]


class TestFlatFiles:
    async def test_data_file_without_suffix(self, client: AsyncClient) -> None:
        resp = await client.get("/api/files/data_files/items")
        assert resp.status_code == 200
        data = resp.json()
        assert data["filename"] == "items.json"
        assert data["file_type"] == "json"
        assert data["content"] == [1, 2, 3]
        assert data["source_tier"] == "filesystem"

    async def test_script_from_database(
        self, client: AsyncClient, admin_headers: dict[str, str]
    ) -> None:
        await client.post("/api/sync/pump", headers=admin_headers)
        resp = await client.get("/api/files/javascript_files/app.js")
        assert resp.status_code == 200
        data = resp.json()
        assert data["source_tier"] == "database"
        assert data["text_content"] == "console.log('hi');\n"
        assert data["content"] is None

    async def test_missing_file_is_404(self, client: AsyncClient) -> None:
        resp = await client.get("/api/files/config_files/nope")
        assert resp.status_code == 404
        assert resp.json()["tiers_tried"] == ["cache", "database", "filesystem"]

    async def test_binary_table_rejected(self, client: AsyncClient) -> None:
        resp = await client.get("/api/files/images/logo.png")
        assert resp.status_code == 422
