"""
Feed Fetcher - Fetch and parse a blog's syndication feed.

Handles:
- RSS 2.0 feeds via feedparser
- Retry with exponential backoff on timeouts and server errors
- Missing feeds (404/410) and unreachable hosts, reported as FeedUnavailable
- Publish dates normalized to the source's own calendar date
- Blog display-name lookup and placeholder entries for degraded mode
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from email.utils import parsedate_to_datetime

import aiohttp
import feedparser
from bs4 import BeautifulSoup
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .cancellation import CancellationToken
from .exceptions import FeedUnavailable, TransportAborted
from .models import DEFAULT_DISPLAY_NAME, PLACEHOLDER_MARKER, BlogSource, FeedEntry
from .normalizer import collapse_whitespace, decode_entities, strip_tags

logger = logging.getLogger(__name__)

FEED_UNAVAILABLE_MESSAGE = (
    "The RSS feed for this blog could not be found. The blog may have its "
    "feed disabled, or the blog id may be wrong. Placeholder entries are shown instead."
)

# "<blog name> : 네이버 블로그" and similar title suffixes
_TITLE_SUFFIX_RE = re.compile(r"\s*[:|\-]\s*네이버\s*블로그.*$")
_DOTTED_DATE_RE = re.compile(r"^(\d{4})\.\s*(\d{1,2})\.\s*(\d{1,2})\.?")

MISSING_STATUSES = (404, 410)


@dataclass
class ParsedFeed:
    """Title and entries of a fetched feed."""
    title: str | None
    entries: list[FeedEntry]


def _is_transient(exc: BaseException) -> bool:
    """Timeouts and server-side errors are worth another attempt."""
    if isinstance(exc, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        return True
    if isinstance(exc, aiohttp.ClientResponseError):
        return exc.status >= 500
    return False


def entry_date(entry) -> date | None:
    """
    Calendar date of a feed entry.

    The raw RFC 822 string is preferred so the date stays in the source's
    own timezone; feedparser's parsed tuples are converted to UTC.
    """
    raw = entry.get("published") or entry.get("updated")
    if raw:
        try:
            return parsedate_to_datetime(raw).date()
        except (TypeError, ValueError):
            pass
        match = _DOTTED_DATE_RE.match(raw.strip())
        if match:
            try:
                return date(*(int(part) for part in match.groups()))
            except ValueError:
                pass

    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return date(*parsed[:3])
            except (TypeError, ValueError):
                pass
    return None


def _entry_link(entry) -> str:
    link = entry.get("link", "")
    if not link and hasattr(entry, "links"):
        for candidate in entry.links:
            if candidate.get("rel") == "alternate" or candidate.get("type") == "text/html":
                link = candidate.get("href", "")
                break
    return link.strip()


def parse_feed(content: str) -> ParsedFeed:
    """Parse feed content using feedparser."""
    parsed = feedparser.parse(content)

    # Check for parse errors
    if parsed.bozo and not parsed.entries:
        raise ValueError(f"Failed to parse feed: {parsed.bozo_exception}")

    entries = []
    for entry in parsed.entries:
        link = _entry_link(entry)
        if not link:
            continue
        summary = entry.get("summary") or entry.get("description") or ""
        entries.append(FeedEntry(
            title=collapse_whitespace(entry.get("title", "Untitled")),
            post_url=link,
            published_at=entry_date(entry),
            summary=collapse_whitespace(decode_entities(strip_tags(summary))),
        ))

    return ParsedFeed(title=parsed.feed.get("title"), entries=entries)


def clean_blog_title(title: str | None) -> str:
    """Strip the platform suffix from a blog page title."""
    if not title:
        return DEFAULT_DISPLAY_NAME
    cleaned = _TITLE_SUFFIX_RE.sub("", title).strip()
    return cleaned or DEFAULT_DISPLAY_NAME


def placeholder_entries(source: BlogSource, count: int, today: date | None = None) -> list[FeedEntry]:
    """Entries standing in for a missing feed, newest first."""
    today = today or date.today()
    return [
        FeedEntry(
            title=f"Feed unavailable: placeholder post {n}",
            post_url=f"{source.canonical_url}{PLACEHOLDER_MARKER}{n}",
            published_at=today - timedelta(days=n - 1),
            summary=FEED_UNAVAILABLE_MESSAGE,
        )
        for n in range(1, count + 1)
    ]


class FeedFetcher:
    """Fetches blog feeds and blog metadata."""

    def __init__(self, timeout: int = 10, user_agent: str | None = None, info_timeout: int = 5):
        self.timeout = timeout
        self.info_timeout = info_timeout
        self.user_agent = user_agent or (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        )

    async def fetch(self, source: BlogSource, cancel: CancellationToken | None = None) -> ParsedFeed:
        """
        Fetch and parse a source's feed.

        Raises:
            FeedUnavailable: If the feed is missing or its host is unreachable
            TransportAborted: If `cancel` fired
        """
        cancel = cancel or CancellationToken()
        logger.info(f"Fetching feed {source.feed_url}")
        try:
            content = await cancel.run(self._download(source.feed_url))
        except aiohttp.ClientConnectorError as e:
            raise FeedUnavailable(source.feed_url, str(e)) from e

        feed = parse_feed(content)
        logger.info(f"Feed {source.feed_url} listed {len(feed.entries)} entries")
        return feed

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _download(self, url: str) -> str:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "application/rss+xml, application/xml, text/xml, */*",
        }
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as resp:
                if resp.status in MISSING_STATUSES:
                    raise FeedUnavailable(url, f"HTTP {resp.status}")
                resp.raise_for_status()
                return await resp.text()

    async def lookup_display_name(
        self,
        source: BlogSource,
        cancel: CancellationToken | None = None,
    ) -> str:
        """Blog name from the home page title, or the default name on any failure."""
        cancel = cancel or CancellationToken()
        try:
            html = await cancel.run(self._download_page(source.canonical_url))
        except TransportAborted:
            raise
        except Exception as e:
            logger.warning(f"Could not look up blog name for {source.canonical_url}: {e}")
            return DEFAULT_DISPLAY_NAME

        soup = BeautifulSoup(html, "html.parser")
        title = soup.title.get_text() if soup.title else None
        return clean_blog_title(title)

    async def _download_page(self, url: str) -> str:
        headers = {"User-Agent": self.user_agent}
        async with aiohttp.ClientSession(headers=headers) as session:
            async with session.get(
                url,
                timeout=aiohttp.ClientTimeout(total=self.info_timeout),
                allow_redirects=True
            ) as resp:
                resp.raise_for_status()
                return await resp.text()
