"""
Core data types shared by the feed, retrieval and harvest layers.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import date

from .url_validator import parse_source_url

BLOG_BASE_URL = "https://blog.naver.com"
FEED_BASE_URL = "https://rss.blog.naver.com"
DEFAULT_DISPLAY_NAME = "Naver Blog"

# Fragment marking entries generated when the feed is missing
PLACEHOLDER_MARKER = "#placeholder-"


@dataclass(frozen=True)
class BlogSource:
    """A blog whose feed can be harvested."""
    id: str
    display_name: str
    canonical_url: str
    feed_url: str

    @classmethod
    def from_url(cls, url: str, display_name: str | None = None) -> "BlogSource":
        """
        Build a source from any blog or post URL.

        Raises:
            ValidationError: If the URL is not a recognized blog URL
        """
        handle = parse_source_url(url)
        return cls(
            id=handle,
            display_name=display_name or DEFAULT_DISPLAY_NAME,
            canonical_url=f"{BLOG_BASE_URL}/{handle}",
            feed_url=f"{FEED_BASE_URL}/{handle}",
        )

    def with_display_name(self, display_name: str) -> "BlogSource":
        return BlogSource(
            id=self.id,
            display_name=display_name,
            canonical_url=self.canonical_url,
            feed_url=self.feed_url,
        )


@dataclass
class FeedEntry:
    """One entry listed by a source's feed."""
    title: str
    post_url: str
    published_at: date | None
    summary: str = ""

    @property
    def is_placeholder(self) -> bool:
        return PLACEHOLDER_MARKER in self.post_url


def post_id(post_url: str) -> str:
    """Stable identifier derived from a post URL."""
    return hashlib.sha256(post_url.encode()).hexdigest()[:16]


@dataclass
class HarvestedPost:
    """A feed entry together with its retrieved body text."""
    id: str
    source_id: str
    title: str
    post_url: str
    published_at: date | None
    content: str

    @classmethod
    def from_entry(cls, source: BlogSource, entry: FeedEntry, content: str) -> "HarvestedPost":
        return cls(
            id=post_id(entry.post_url),
            source_id=source.id,
            title=entry.title,
            post_url=entry.post_url,
            published_at=entry.published_at,
            content=content,
        )

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "postUrl": self.post_url,
            "date": self.published_at.isoformat() if self.published_at else None,
            "content": self.content,
        }


@dataclass
class HarvestResult:
    """Outcome of a non-streaming harvest of one source."""
    source: BlogSource
    posts: list[HarvestedPost] = field(default_factory=list)
    warning: str | None = None
    error: str | None = None
