"""Tests for the HTTP surface: /api/scrape, /api/init and /api/posts.

Settings, store and source are replaced through FastAPI dependency overrides
so the tests run without a database server or network access.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

from mentionfeed.config import Settings, get_settings
from mentionfeed.dependencies import get_source, get_store
from mentionfeed.errors import ConfigError, StorageError
from mentionfeed.main import app
from mentionfeed.models.post import CanonicalPost, SourceFailure, SourceResult
from mentionfeed.services.store import SQLitePostStore

client = TestClient(app)

_SECRET = "s3cret"


def _post(i: int) -> CanonicalPost:
    return CanonicalPost(
        external_id=str(i),
        content=f"post {i} about @zora",
        author_handle="alice",
        author_name="Alice",
        like_count=i,
        created_at=datetime(2024, 10, 5, 15, i, tzinfo=timezone.utc),
    )


class StubSource:
    name = "socialdata.tools"

    def __init__(self, posts: List[CanonicalPost], error: Optional[SourceFailure] = None):
        self.posts = posts
        self.error = error

    async def search(self, keyword, max_results=None):
        if self.error:
            return SourceResult(source=self.name, error=self.error)
        return SourceResult(source=self.name, posts=self.posts[:max_results], credits_used=len(self.posts))


@pytest.fixture(autouse=True)
def reset_state():
    """Clear the slowapi in-memory counter and dependency overrides around every test."""
    app.state.limiter._storage.reset()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def store():
    s = SQLitePostStore.open(":memory:")
    app.dependency_overrides[get_store] = lambda: s
    yield s
    asyncio.run(s.close())


def _configure(source=None, secret: Optional[str] = _SECRET):
    settings = Settings(database_url="sqlite://:memory:", cron_secret=secret, max_results=20)
    app.dependency_overrides[get_settings] = lambda: settings
    if source is not None:
        app.dependency_overrides[get_source] = lambda: source


def _auth(secret: str = _SECRET) -> dict:
    return {"Authorization": f"Bearer {secret}"}


# ---------------------------------------------------------------------------
# /api/scrape
# ---------------------------------------------------------------------------

class TestScrapeEndpoint:
    def test_success_returns_summary(self, store):
        _configure(StubSource([_post(1), _post(2)]))
        resp = client.get("/api/scrape", headers=_auth())

        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["source"] == "socialdata.tools"
        assert data["scraped"] == 2
        assert data["saved"] == 2
        assert data["credits_used"] == 2
        assert "timestamp" in data
        assert asyncio.run(store.count()) == 2

    def test_wrong_secret_is_401(self, store):
        _configure(StubSource([_post(1)]))
        resp = client.get("/api/scrape", headers=_auth("nope"))
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    def test_missing_header_is_401(self, store):
        _configure(StubSource([_post(1)]))
        assert client.get("/api/scrape").status_code == 401

    def test_no_secret_configured_allows_request(self, store):
        _configure(StubSource([_post(1)]), secret=None)
        assert client.get("/api/scrape").status_code == 200

    def test_source_failure_is_503_without_writes(self, store):
        failure = SourceFailure(kind="api_error", message="API error: 402 - no credits", status=402)
        _configure(StubSource([], error=failure))
        resp = client.get("/api/scrape", headers=_auth())

        assert resp.status_code == 503
        assert resp.json() == {"error": "API error: 402 - no credits", "posts": 0}
        assert asyncio.run(store.count()) == 0

    def test_schema_failure_is_500(self, store):
        _configure(StubSource([_post(1)]))

        async def broken():
            raise StorageError("database unavailable")

        store.ensure_schema = broken
        resp = client.get("/api/scrape", headers=_auth())
        assert resp.status_code == 500
        assert resp.json()["error"] == "Internal server error"

    def test_missing_configuration_is_500(self):
        def missing():
            raise ConfigError("DATABASE_URL is not set.")

        app.dependency_overrides[get_settings] = missing
        resp = client.get("/api/scrape")
        assert resp.status_code == 500
        assert resp.json()["error"] == "Server misconfigured"

    def test_rate_limited_after_five_calls(self, store):
        _configure(StubSource([_post(1)]))
        codes = [client.get("/api/scrape", headers=_auth()).status_code for _ in range(6)]
        assert codes[:5] == [200] * 5
        assert codes[5] == 429


# ---------------------------------------------------------------------------
# /api/init and /api/posts
# ---------------------------------------------------------------------------

class TestReadEndpoints:
    def test_init_creates_schema(self, store):
        _configure()
        resp = client.get("/api/init")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "message": "Database initialized"}
        assert asyncio.run(store.count()) == 0

    def test_posts_newest_first(self, store):
        _configure()
        asyncio.run(store.ensure_schema())
        for i in range(3):
            asyncio.run(store.upsert(_post(i)))

        resp = client.get("/api/posts", params={"limit": 2})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert [p["external_id"] for p in data["posts"]] == ["2", "1"]
        assert data["posts"][0]["post_url"] == "https://x.com/alice/status/2"

    def test_posts_limit_validated(self, store):
        _configure()
        assert client.get("/api/posts", params={"limit": 0}).status_code == 422

    def test_health(self):
        assert client.get("/").status_code == 200
