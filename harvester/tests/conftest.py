"""
Pytest fixtures for harvester tests.
"""

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from harvester.config import state
from harvester.exceptions import FeedUnavailable
from harvester.feeds import ParsedFeed
from harvester.harvest import Harvester
from harvester.models import BlogSource, FeedEntry
from harvester.rate_limit import limiter
from harvester.registry import SourceRegistry
from harvester.server import app

BLOG_URL = "https://blog.naver.com/bakery_diary"


class FakeFeedFetcher:
    """Feed fetcher serving canned entries."""

    def __init__(self, entries=None, title="Bakery Diary", unavailable=False, error=None):
        self.entries = entries or []
        self.title = title
        self.unavailable = unavailable
        self.error = error
        self.fetched = []

    async def fetch(self, source, cancel=None):
        self.fetched.append(source.feed_url)
        if self.unavailable:
            raise FeedUnavailable(source.feed_url, "HTTP 404")
        if self.error:
            raise self.error
        return ParsedFeed(title=self.title, entries=list(self.entries))

    async def lookup_display_name(self, source, cancel=None):
        return "Bakery Diary (home page)"


class FakePostFetcher:
    """Post fetcher returning a body per URL and recording every call."""

    def __init__(self):
        self.calls = []

    async def fetch_post_body(self, post_url, cancel=None):
        self.calls.append(post_url)
        return f"Body of {post_url}"

    async def retrieve(self, post_url, cancel=None):
        return await self.fetch_post_body(post_url, cancel)


def _make_entries(count, start=date(2024, 1, 1), title="Post"):
    return [
        FeedEntry(
            title=f"{title} {n}",
            post_url=f"{BLOG_URL}/22300000000{n}",
            published_at=start + timedelta(days=n - 1),
            summary=f"Summary of {title.lower()} {n}",
        )
        for n in range(1, count + 1)
    ]


@pytest.fixture
def make_entries():
    """Factory for feed entries one day apart, oldest first."""
    return _make_entries


@pytest.fixture
def make_feed_fetcher():
    """Factory for fake feed fetchers."""
    return FakeFeedFetcher


@pytest.fixture
def source():
    return BlogSource.from_url(BLOG_URL)


@pytest.fixture
def post_fetcher():
    return FakePostFetcher()


@pytest.fixture
def feed_fetcher():
    return FakeFeedFetcher(entries=_make_entries(3))


@pytest.fixture
def harvester(feed_fetcher, post_fetcher):
    """Harvester over fake fetchers with no pacing delay."""
    return Harvester(feed_fetcher, post_fetcher, pacing_delay_ms=0, placeholder_count=10)


@pytest.fixture
def client(harvester, feed_fetcher, post_fetcher):
    """Create a test client wired to fake fetchers."""
    # Store original state
    original_harvester = state.harvester
    original_feed_fetcher = state.feed_fetcher
    original_post_fetcher = state.post_fetcher
    original_registry = state.registry

    # Set up test state with fresh instances
    state.harvester = harvester
    state.feed_fetcher = feed_fetcher
    state.post_fetcher = post_fetcher
    state.registry = SourceRegistry()
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    # Restore original state
    limiter.enabled = True
    state.harvester = original_harvester
    state.feed_fetcher = original_feed_fetcher
    state.post_fetcher = original_post_fetcher
    state.registry = original_registry
