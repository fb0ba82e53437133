"""
Pydantic models for API request/response validation.

Field names are snake_case in Python and camelCase on the wire, matching
the payloads of the streaming endpoint.
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import BlogSource, HarvestedPost, HarvestResult


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ─────────────────────────────────────────────────────────────
# Harvest Schemas
# ─────────────────────────────────────────────────────────────

class HarvestRequest(CamelModel):
    """Harvest one blog by URL."""
    url: str
    keywords: list[str] = Field(default_factory=list)
    since: date | None = None


class SourcesHarvestRequest(CamelModel):
    """Harvest every registered source with shared filters."""
    keywords: list[str] = Field(default_factory=list)
    since: date | None = None


class PostResponse(CamelModel):
    """A harvested post."""
    id: str
    title: str
    post_url: str
    date: str | None
    content: str

    @classmethod
    def from_post(cls, post: HarvestedPost) -> "PostResponse":
        return cls(
            id=post.id,
            title=post.title,
            post_url=post.post_url,
            date=post.published_at.isoformat() if post.published_at else None,
            content=post.content,
        )


class HarvestResponse(CamelModel):
    """Outcome of a non-streaming harvest."""
    source_id: str
    source_display_name: str
    posts: list[PostResponse]
    warning: str | None = None
    error: str | None = None

    @classmethod
    def from_result(cls, result: HarvestResult) -> "HarvestResponse":
        return cls(
            source_id=result.source.id,
            source_display_name=result.source.display_name,
            posts=[PostResponse.from_post(p) for p in result.posts],
            warning=result.warning,
            error=result.error,
        )


# ─────────────────────────────────────────────────────────────
# Content Schemas
# ─────────────────────────────────────────────────────────────

class ContentRequest(CamelModel):
    """Fetch the body of one already-known post."""
    url: str


class ContentResponse(CamelModel):
    content: str
    error: str | None = None


# ─────────────────────────────────────────────────────────────
# Source Schemas
# ─────────────────────────────────────────────────────────────

class AddSourceRequest(CamelModel):
    """Register a blog for batch harvesting."""
    url: str
    name: str | None = None


class SourceResponse(CamelModel):
    id: str
    display_name: str
    canonical_url: str
    feed_url: str

    @classmethod
    def from_source(cls, source: BlogSource) -> "SourceResponse":
        return cls(
            id=source.id,
            display_name=source.display_name,
            canonical_url=source.canonical_url,
            feed_url=source.feed_url,
        )


class SourceInfoResponse(CamelModel):
    """Display name and canonical address of a blog."""
    id: str
    display_name: str
    url: str
