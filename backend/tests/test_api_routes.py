"""
Notekeeper Backend - JSON API Route Tests
==========================================

What:  /api/notes CRUD, pagination tokens and error bodies, plus /health.
How:   httpx AsyncClient over ASGITransport against the in-memory store.
"""

import pytest
from unittest.mock import AsyncMock

from notekeeper.exceptions import StorageUnavailableError


async def _create(client, title, **extra):
    response = await client.post("/api/notes", json={"title": title, **extra})
    assert response.status_code == 200
    return response.json()


class TestNotesApi:

    @pytest.mark.asyncio
    async def test_create_returns_note_with_string_id(self, test_client):
        body = await _create(test_client, "Groceries", description="milk")

        assert isinstance(body["id"], str)
        assert body["title"] == "Groceries"
        assert body["description"] == "milk"
        assert body["createdAt"] == body["updatedAt"]

    @pytest.mark.asyncio
    async def test_get_returns_created_note(self, test_client):
        created = await _create(test_client, "A")

        response = await test_client.get(f"/api/notes/{created['id']}")

        assert response.status_code == 200
        assert response.json()["title"] == "A"

    @pytest.mark.asyncio
    async def test_get_missing_is_404_with_internal_code(self, test_client):
        response = await test_client.get("/api/notes/999")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["internalCode"] == 404
        assert "request_id" in body

    @pytest.mark.asyncio
    async def test_get_non_numeric_id_is_404(self, test_client):
        response = await test_client.get("/api/notes/not-a-number")
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("note_id", ["\u00b2", "\u0661", "99999999999999999999"])
    async def test_unusable_ids_are_404_not_server_errors(self, test_client, note_id):
        for method in ("GET", "PUT", "DELETE"):
            kwargs = {"json": {"title": "x"}} if method == "PUT" else {}
            response = await test_client.request(method, f"/api/notes/{note_id}", **kwargs)
            assert response.status_code == 404, method
            assert response.json()["internalCode"] == 404

    @pytest.mark.asyncio
    async def test_put_overwrites(self, test_client):
        created = await _create(test_client, "old")

        response = await test_client.put(
            f"/api/notes/{created['id']}",
            json={"title": "new", "createdAt": created["createdAt"]},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == created["id"]
        assert body["title"] == "new"
        assert body["createdAt"] == created["createdAt"]

    @pytest.mark.asyncio
    async def test_delete_returns_ok_text(self, test_client):
        created = await _create(test_client, "bye")

        response = await test_client.delete(f"/api/notes/{created['id']}")

        assert response.status_code == 200
        assert response.text == "OK"
        assert (await test_client.get(f"/api/notes/{created['id']}")).status_code == 404

    @pytest.mark.asyncio
    async def test_api_is_not_owner_scoped(self, test_client):
        """Any caller may read notes created by anyone."""
        created = await _create(test_client, "shared", createdById="someone")
        assert (await test_client.get(f"/api/notes/{created['id']}")).status_code == 200


class TestNotesApiPagination:

    @pytest.mark.asyncio
    async def test_pages_of_ten_ordered_by_title(self, test_client):
        for i in range(12):
            await _create(test_client, f"t{i:02d}")

        first = (await test_client.get("/api/notes")).json()
        assert [n["title"] for n in first["items"]] == [f"t{i:02d}" for i in range(10)]
        assert first["nextPageToken"]

        second = (
            await test_client.get("/api/notes", params={"pageToken": first["nextPageToken"]})
        ).json()
        assert [n["title"] for n in second["items"]] == ["t10", "t11"]
        assert second["nextPageToken"] is None

    @pytest.mark.asyncio
    async def test_empty_listing(self, test_client):
        body = (await test_client.get("/api/notes")).json()
        assert body == {"items": [], "nextPageToken": None}

    @pytest.mark.asyncio
    async def test_bad_page_token_is_400(self, test_client):
        response = await test_client.get("/api/notes", params={"pageToken": "garbage!"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_cursor"


class TestApiErrors:

    @pytest.mark.asyncio
    async def test_invalid_field_type_is_400(self, test_client):
        response = await test_client.post("/api/notes", json={"title": {"nested": True}})

        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_storage_outage_is_503(self, test_client, note_store):
        note_store.client.get = AsyncMock(side_effect=StorageUnavailableError(operation="get"))

        response = await test_client.get("/api/notes/1")

        assert response.status_code == 503
        assert response.json()["error"] == "storage_unavailable"

    @pytest.mark.asyncio
    async def test_request_id_header_is_echoed(self, test_client):
        response = await test_client.get("/api/notes", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client):
        response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["storage"] == "connected"
        assert body["backend"] == "memory"

    @pytest.mark.asyncio
    async def test_unreachable_storage_is_503(self, test_client, memory_client):
        memory_client.health_check = AsyncMock(return_value=False)

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
