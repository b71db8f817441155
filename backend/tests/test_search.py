"""Tests for the search and health endpoints."""

from fastapi.testclient import TestClient

from main import app
from models.schemas import SearchResultItem
from routers import search as search_router
from services.youtube import SearchError

client = TestClient(app)


class FakeYouTube:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.queries = []

    def search(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.items


def test_health_endpoint():
    """Test that health endpoint returns successfully."""
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "ytdlp_version" in data
    assert "ffmpeg_version" in data


def test_search_without_query(monkeypatch):
    """Missing query is a client error and never reaches the provider."""
    fake = FakeYouTube()
    monkeypatch.setattr(search_router, "youtube", fake)

    for params in ({}, {"q": ""}, {"q": "   "}):
        response = client.get("/api/search", params=params)
        assert response.status_code == 400
        assert response.json()["detail"] == {
            "error": "Missing query parameter q",
            "code": "MISSING_QUERY",
            "retry_after": None,
        }
    assert fake.queries == []


def test_search_returns_items(monkeypatch):
    item = SearchResultItem(
        id="dQw4w9WgXcQ",
        title="Never Gonna Give You Up",
        duration="3:32",
        views=1600000000,
        uploaded_at="2009-10-25",
        url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        author={"name": "Rick Astley", "url": "https://www.youtube.com/@RickAstleyYT"},
        thumbnails=[{"url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hq720.jpg", "width": 720, "height": 404}],
    )
    fake = FakeYouTube(items=[item])
    monkeypatch.setattr(search_router, "youtube", fake)

    response = client.get("/api/search", params={"q": "  never gonna give you up "})
    assert response.status_code == 200
    assert fake.queries == ["never gonna give you up"]

    items = response.json()["items"]
    assert len(items) == 1
    assert items[0]["id"] == "dQw4w9WgXcQ"
    assert items[0]["duration"] == "3:32"
    assert items[0]["uploaded_at"] == "2009-10-25"
    assert items[0]["author"]["name"] == "Rick Astley"
    assert items[0]["thumbnails"][0] == {
        "url": "https://i.ytimg.com/vi/dQw4w9WgXcQ/hq720.jpg",
        "width": 720,
        "height": 404,
    }


def test_search_provider_failure(monkeypatch):
    """Provider errors are reported with a generic message."""
    monkeypatch.setattr(search_router, "youtube", FakeYouTube(error=SearchError("yt-dlp failed: 429")))

    response = client.get("/api/search", params={"q": "test"})
    assert response.status_code == 500
    assert response.json()["detail"]["error"] == "Search failed"
    assert "429" not in response.text


def test_search_accepts_long_query(monkeypatch):
    fake = FakeYouTube()
    monkeypatch.setattr(search_router, "youtube", fake)

    query = "never gonna give you up " * 20
    response = client.get("/api/search", params={"q": query})
    assert response.status_code == 200
    assert response.json() == {"items": []}
    assert fake.queries == [query.strip()]
