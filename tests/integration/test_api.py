"""Integration tests for the HTTP API."""

import httpx
import pytest
import pytest_asyncio

from readingsync.application.api import create_app
from readingsync.application.config import Settings
from readingsync.infrastructure.local_cover_resolver import LocalCoverResolver

TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TOKEN}"}
T0 = 1_700_000_000


def make_client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def settings(database_url):
    return Settings(auth_token=TOKEN, database_url=database_url, cover_lookup_enabled=False)


@pytest_asyncio.fixture
async def client(settings, store):
    """API client over an app wired to the test store."""
    app = create_app(settings=settings, state_store=store, cover_resolver=LocalCoverResolver())
    async with make_client(app) as http_client:
        yield http_client


def event(page, timestamp, **extra):
    return {"title": "Dune", "author": "Frank Herbert", "current_page": page, "timestamp": timestamp, **extra}


class TestAuth:
    """Test the bearer token check."""

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.post("/events", json=event(1, T0))

        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized"}

    @pytest.mark.asyncio
    async def test_wrong_token(self, client):
        response = await client.post("/events", json=event(1, T0), headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_no_configured_token_rejects_everything(self, database_url, store):
        app = create_app(
            settings=Settings(auth_token=None, database_url=database_url, cover_lookup_enabled=False),
            state_store=store,
        )
        async with make_client(app) as http_client:
            response = await http_client.post("/events", json=event(1, T0), headers={"Authorization": "Bearer "})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_reads_are_public(self, client):
        response = await client.get("/books")

        assert response.status_code == 200
        assert response.json() == {"books": []}


class TestIngestion:
    """Test POST /events and /sync-stats."""

    @pytest.mark.asyncio
    async def test_single_event(self, client):
        response = await client.post("/events", json=event(1, T0), headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_invalid_single_event_persists_nothing(self, client):
        response = await client.post("/events", json={"current_page": 1}, headers=AUTH)

        assert response.status_code == 400
        assert response.json() == {"error": "title is required"}
        assert (await client.get("/books")).json() == {"books": []}

    @pytest.mark.asyncio
    async def test_malformed_json(self, client):
        response = await client.post("/events", content=b"{oops", headers={**AUTH, "Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["error"].startswith("invalid JSON")

    @pytest.mark.asyncio
    async def test_batch_counts_failed_items(self, client):
        response = await client.post(
            "/events",
            json=[event(1, T0), {"author": "nobody"}, event(2, T0 + 30)],
            headers=AUTH,
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "processed": 3, "succeeded": 2, "failed": 1}

    @pytest.mark.asyncio
    async def test_out_of_range_single_event_rejected(self, client):
        response = await client.post("/events", json=event(2**70, T0), headers=AUTH)

        assert response.status_code == 400
        assert response.json()["error"].startswith("current_page:")
        assert (await client.get("/books")).json() == {"books": []}

    @pytest.mark.asyncio
    async def test_out_of_range_item_fails_alone(self, client):
        response = await client.post("/events", json=[event(3, T0), event(2**70, T0 + 1)], headers=AUTH)

        assert response.status_code == 200
        assert response.json() == {"ok": True, "processed": 2, "succeeded": 1, "failed": 1}
        current = (await client.get("/books/current")).json()
        assert current["current_page"] == 3

    @pytest.mark.asyncio
    async def test_sync_stats_shape(self, client):
        body = {
            "book": {"md5": "f00d", "title": "Dune", "authors": "Frank Herbert", "pages": 412},
            "page_stats": [
                {"page": 1, "start_time": T0, "duration": 30, "total_pages": 412},
                {"page": 2, "start_time": T0 + 30, "duration": 45, "total_pages": 412},
            ],
            "last_sync_time": T0 + 30,
        }

        response = await client.post("/sync-stats", json=body, headers=AUTH)
        replay = await client.post("/sync-stats", json=body, headers=AUTH)

        assert response.json() == {"ok": True, "processed": 2, "succeeded": 2, "failed": 0}
        assert replay.status_code == 200

        detail = (await client.get("/books/f00d")).json()
        assert detail["stats"]["total_page_events"] == 2
        assert detail["stats"]["total_read_time"] == 75
        assert [e["page"] for e in detail["recent_events"]] == [2, 1]

        sync_state = (await client.get("/books/f00d/sync-state")).json()
        assert sync_state == {"book_key": "f00d", "last_sync_time": T0 + 30}


class TestReads:
    """Test the read endpoints."""

    @pytest.mark.asyncio
    async def test_current_book_empty(self, client):
        response = await client.get("/books/current")

        assert response.status_code == 404
        assert response.json() == {"error": "no book data yet"}

    @pytest.mark.asyncio
    async def test_current_book(self, client):
        await client.post("/events", json=event(100, T0, total_pages=400), headers=AUTH)

        current = (await client.get("/books/current")).json()

        assert current["title"] == "Dune"
        assert current["author"] == "Frank Herbert"
        assert (current["current_page"], current["total_pages"], current["progress_percent"]) == (100, 400, 25.0)

    @pytest.mark.asyncio
    async def test_unknown_book(self, client):
        response = await client.get("/books/nope")

        assert response.status_code == 404
        assert response.json() == {"error": "book not found"}

    @pytest.mark.asyncio
    async def test_book_detail_sessions(self, client):
        base = {"title": "Dune", "session_id": "s-1"}
        await client.post("/events", json=[
            {**base, "event_type": "session_start", "current_page": 5, "timestamp": T0},
            {**base, "event_type": "session_end", "current_page": 9, "timestamp": T0 + 600},
        ], headers=AUTH)
        key = (await client.get("/books")).json()["books"][0]["id"]

        detail = (await client.get(f"/books/{key}")).json()

        assert detail["stats"]["total_sessions"] == 1
        assert detail["sessions"][0]["pages_read"] == 4

    @pytest.mark.asyncio
    async def test_activity(self, client):
        await client.post("/events", json=event(1, T0, duration=30), headers=AUTH)

        response = await client.get("/activity", params={"days": 3660, "tz": "UTC"})

        assert response.status_code == 200
        assert response.json()["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_activity_bad_timezone(self, client):
        response = await client.get("/activity", params={"tz": "Nowhere/Land"})

        assert response.status_code == 400
        assert response.json() == {"error": "invalid tz: Nowhere/Land"}

    @pytest.mark.asyncio
    async def test_activity_bad_days(self, client):
        assert (await client.get("/activity", params={"days": 0})).status_code == 400
        assert (await client.get("/activity", params={"days": "many"})).status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "not found"}

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.json() == {
            "status": "healthy",
            "providers": {"state_store": "SqlStateStore", "cover_resolver": "LocalCoverResolver"},
        }
