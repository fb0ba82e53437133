"""
Tests for the HTTP API, using fake fetchers in place of the network.
"""

import importlib
import json
import typing

import pytest

from harvester.config import config, state
from harvester.exceptions import RetrievalExhausted
from harvester.harvest import Harvester
from harvester.models import HarvestedPost
from harvester.rate_limit import get_rate_limit, limiter
from harvester.registry import SourceRegistry

BLOG_URL = "https://blog.naver.com/bakery_diary"


def parse_frames(body: str) -> list[tuple[str, dict]]:
    """Split a server-sent event body into (event, data) pairs."""
    frames = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        fields = dict(line.split(": ", 1) for line in block.splitlines())
        frames.append((fields["event"], json.loads(fields["data"])))
    return frames


class ExhaustedFetcher:
    async def retrieve(self, post_url, cancel=None):
        raise RetrievalExhausted(post_url)


class TestStatus:
    """Tests for the health check."""

    def test_status(self, client):
        """Health check should report version and activity."""
        response = client.get("/status")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["active_harvests"] == 0
        assert "version" in data


class TestStreamingHarvest:
    """Tests for GET /harvest/stream."""

    def test_event_order(self, client):
        """A harvest should stream start, blog, count, progress/post pairs, complete."""
        response = client.get("/harvest/stream", params={"url": BLOG_URL})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = parse_frames(response.text)
        assert [name for name, _ in frames] == [
            "start", "blog", "count",
            "progress", "post",
            "progress", "post",
            "progress", "post",
            "complete",
        ]
        assert frames[1][1] == {"sourceDisplayName": "Bakery Diary"}
        assert frames[2][1]["total"] == 3
        assert frames[3][1]["percent"] == 33
        assert frames[4][1]["postUrl"] == f"{BLOG_URL}/223000000001"
        assert len(frames[-1][1]["posts"]) == 3

    def test_filters_from_query(self, client):
        """Keywords and date should be read from the query string."""
        response = client.get(
            "/harvest/stream",
            params={"url": BLOG_URL, "keywords": '["post 2", "post 3"]', "since": "2024-01-03"},
        )
        frames = parse_frames(response.text)
        posts = [data for name, data in frames if name == "post"]
        assert [p["title"] for p in posts] == ["Post 3"]

    def test_comma_separated_keywords(self, client):
        """Comma-separated keywords should also be accepted."""
        response = client.get("/harvest/stream", params={"url": BLOG_URL, "keywords": "post 1,post 2"})
        frames = parse_frames(response.text)
        assert dict(frames)["count"]["total"] == 2

    def test_invalid_url_rejected_before_network(self, client, feed_fetcher, post_fetcher):
        """An unrecognized URL should produce a single error event with status 400."""
        response = client.get("/harvest/stream", params={"url": "https://example.com/bakery"})

        assert response.status_code == 400
        assert response.headers["content-type"].startswith("text/event-stream")
        frames = parse_frames(response.text)
        assert [name for name, _ in frames] == ["error"]
        assert feed_fetcher.fetched == []
        assert post_fetcher.calls == []

    def test_invalid_since_rejected(self, client):
        """A malformed date should be rejected the same way."""
        response = client.get("/harvest/stream", params={"url": BLOG_URL, "since": "yesterday"})
        assert response.status_code == 400
        assert parse_frames(response.text)[0][0] == "error"

    def test_feed_error_streams_error_event(self, client, make_feed_fetcher, post_fetcher):
        """A broken feed should end the stream with an error event."""
        state.harvester = Harvester(
            make_feed_fetcher(error=ValueError("Failed to parse feed")), post_fetcher, pacing_delay_ms=0
        )
        response = client.get("/harvest/stream", params={"url": BLOG_URL})

        frames = parse_frames(response.text)
        assert [name for name, _ in frames] == ["start", "error"]
        assert frames[-1][1]["error"] == "Failed to parse feed"


class TestHarvest:
    """Tests for POST /harvest."""

    def test_harvest_returns_camel_case(self, client):
        """One-shot harvests should return every post at once."""
        response = client.post("/harvest", json={"url": BLOG_URL, "keywords": ["post 2"]})

        assert response.status_code == 200
        data = response.json()
        assert data["sourceId"] == "bakery_diary"
        assert data["sourceDisplayName"] == "Bakery Diary"
        assert [p["title"] for p in data["posts"]] == ["Post 2"]
        assert data["posts"][0]["postUrl"] == f"{BLOG_URL}/223000000002"
        assert data["posts"][0]["date"] == "2024-01-02"

    def test_harvest_invalid_url(self, client):
        """Unrecognized URLs should be rejected."""
        response = client.post("/harvest", json={"url": "https://example.com/x"})
        assert response.status_code == 400

    def test_harvest_feed_error(self, client, make_feed_fetcher, post_fetcher):
        """Feed failures should surface as a bad gateway."""
        state.harvester = Harvester(
            make_feed_fetcher(error=ValueError("bad feed")), post_fetcher, pacing_delay_ms=0
        )
        response = client.post("/harvest", json={"url": BLOG_URL})
        assert response.status_code == 502
        assert response.json()["detail"] == "bad feed"

    def test_harvest_degraded_has_warning(self, client, make_feed_fetcher, post_fetcher):
        """A missing feed should still succeed, with a warning."""
        state.harvester = Harvester(
            make_feed_fetcher(unavailable=True), post_fetcher, pacing_delay_ms=0, placeholder_count=2
        )
        response = client.post("/harvest", json={"url": BLOG_URL})

        assert response.status_code == 200
        data = response.json()
        assert "RSS feed" in data["warning"]
        assert len(data["posts"]) == 2


class TestContent:
    """Tests for POST /content."""

    def test_content(self, client, post_fetcher):
        """A post URL should return its body."""
        url = f"{BLOG_URL}/223000000001"
        response = client.post("/content", json={"url": url})

        assert response.status_code == 200
        assert response.json() == {"content": f"Body of {url}", "error": None}

    def test_content_query_form(self, client):
        """Query-string post URLs should be accepted."""
        url = "https://blog.naver.com/PostView.naver?blogId=bakery_diary&logNo=223000000001"
        response = client.post("/content", json={"url": url})
        assert response.status_code == 200

    def test_content_bad_host(self, client, post_fetcher):
        """URLs on other hosts should be rejected without a request."""
        response = client.post("/content", json={"url": "https://example.com/bakery_diary/1"})
        assert response.status_code == 400
        assert post_fetcher.calls == []

    def test_content_placeholder(self, client):
        """Placeholder entries should be accepted even without a post number."""
        response = client.post("/content", json={"url": f"{BLOG_URL}#placeholder-1"})
        assert response.status_code == 200

    def test_content_exhausted(self, client):
        """An unretrievable post should return 200 with the failure message."""
        state.post_fetcher = ExhaustedFetcher()
        url = f"{BLOG_URL}/223000000001"
        response = client.post("/content", json={"url": url})

        assert response.status_code == 200
        data = response.json()
        assert url in data["content"]
        assert data["error"]


class TestSources:
    """Tests for the source registry routes."""

    def test_add_and_list(self, client):
        """Added sources should be listed, named from the blog when unnamed."""
        response = client.post("/sources", json={"url": f"{BLOG_URL}/223000000001"})
        assert response.status_code == 200
        assert response.json() == {
            "id": "bakery_diary",
            "displayName": "Bakery Diary (home page)",
            "canonicalUrl": BLOG_URL,
            "feedUrl": "https://rss.blog.naver.com/bakery_diary",
        }

        response = client.get("/sources")
        assert [s["id"] for s in response.json()] == ["bakery_diary"]

    def test_add_with_name(self, client):
        """An explicit name should be kept."""
        response = client.post("/sources", json={"url": BLOG_URL, "name": "My Bakery"})
        assert response.json()["displayName"] == "My Bakery"

    def test_add_invalid(self, client):
        """Invalid URLs should be rejected."""
        response = client.post("/sources", json={"url": "https://blog.naver.com/PostList.naver"})
        assert response.status_code == 400

    def test_info(self, client):
        """Info should resolve the display name and canonical URL."""
        response = client.get("/sources/info", params={"url": f"{BLOG_URL}/223000000001"})
        assert response.status_code == 200
        assert response.json() == {
            "id": "bakery_diary",
            "displayName": "Bakery Diary (home page)",
            "url": BLOG_URL,
        }

    def test_batch_harvest_records_posts(self, client, feed_fetcher):
        """Harvesting registered sources should record their posts."""
        client.post("/sources", json={"url": BLOG_URL, "name": "Bakery"})
        client.post("/sources", json={"url": "https://blog.naver.com/coffee_notes", "name": "Coffee"})

        response = client.post("/harvest/sources", json={})
        assert response.status_code == 200
        assert [r["sourceId"] for r in response.json()] == ["bakery_diary", "coffee_notes"]
        assert feed_fetcher.fetched == [
            "https://rss.blog.naver.com/bakery_diary",
            "https://rss.blog.naver.com/coffee_notes",
        ]

        response = client.get("/sources/bakery_diary/posts")
        assert response.status_code == 200
        assert len(response.json()) == 3

    def test_remove_cascades(self, client):
        """Removing a source should drop it and its posts."""
        client.post("/sources", json={"url": BLOG_URL, "name": "Bakery"})
        client.post("/harvest/sources", json={})

        response = client.delete("/sources/bakery_diary")
        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get("/sources/bakery_diary/posts").status_code == 404
        assert client.get("/sources").json() == []

    def test_remove_unknown(self, client):
        """Unknown sources should be 404."""
        assert client.delete("/sources/nobody").status_code == 404


class TestRateLimit:
    """Tests for the shared harvest budget."""

    @pytest.fixture
    def limited(self, client):
        limiter.reset()
        limiter.enabled = True
        yield client
        limiter.enabled = False
        limiter.reset()

    def test_budget_shared_across_harvest_routes(self, limited):
        """Exhausting the budget on one harvest route should block the others."""
        budget = int(get_rate_limit().split("/")[0])
        for _ in range(budget):
            assert limited.post("/harvest", json={"url": BLOG_URL}).status_code == 200

        response = limited.post("/harvest", json={"url": BLOG_URL})
        assert response.status_code == 429
        assert response.json()["retry_after"] == 60
        assert response.headers["Retry-After"] == "60"
        assert limited.get("/harvest/stream", params={"url": BLOG_URL}).status_code == 429

        # Single-post retrieval is not a harvest
        assert limited.post("/content", json={"url": f"{BLOG_URL}/223000000001"}).status_code == 200

    def test_zero_disables_budget(self, limited, monkeypatch):
        """A non-positive limit should exempt every request."""
        monkeypatch.setattr(config, "RATE_LIMIT_PER_MINUTE", 0)
        budget = int(get_rate_limit().split("/")[0])
        for _ in range(budget + 2):
            assert limited.post("/harvest", json={"url": BLOG_URL}).status_code == 200


class TestAppImport:
    """Tests for the application module itself."""

    def test_server_imports_cleanly(self):
        """The app, its routers and the registry should import without error."""
        server = importlib.import_module("harvester.server")

        paths = {route.path for route in server.app.routes}
        assert {"/status", "/harvest", "/harvest/stream", "/content", "/sources"} <= paths
        hints = typing.get_type_hints(SourceRegistry.record)
        assert hints["posts"] == list[HarvestedPost]
