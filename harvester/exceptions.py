"""
Error taxonomy for harvesting, plus HTTP helpers for common route errors.
"""

from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class HarvestError(Exception):
    """Base class for harvesting failures."""

    pass


class ValidationError(HarvestError):
    """Raised when a source or post URL has an unrecognized shape."""

    pass


class FeedUnavailable(HarvestError):
    """Raised when the source's feed is missing or its host is unreachable."""

    def __init__(self, feed_url: str, reason: str = ""):
        self.feed_url = feed_url
        self.reason = reason
        super().__init__(f"Feed unavailable: {feed_url}" + (f" ({reason})" if reason else ""))


class RetrievalExhausted(HarvestError):
    """Raised when every retrieval step failed for a post."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            "Could not retrieve the post content. Access to the blog was "
            f"restricted or blocked. Open the original post: {url}"
        )


class TransportAborted(HarvestError):
    """Raised when a harvest session is cancelled mid-flight."""

    pass


class ChannelClosed(HarvestError):
    """Raised when writing to a progress channel after teardown."""

    pass


def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        source = require_resource(registry.get(source_id), "Source not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_source(source: T | None) -> T:
    """Raise 404 if source is None."""
    return require_resource(source, "Source not found")
