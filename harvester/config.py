"""
Configuration and application state management.
"""

import asyncio
import os
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .feeds import FeedFetcher
    from .fetcher import PostFetcher
    from .harvest import Harvester
    from .registry import SourceRegistry

# Load environment variables
load_dotenv()


def _parse_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable, ignoring junk."""
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


class Config:
    """Application configuration from environment."""
    PORT: int = _parse_int(os.getenv("PORT"), 5005)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Harvest pacing between consecutive post fetches
    PACING_DELAY_MS: int = _parse_int(os.getenv("PACING_DELAY_MS"), 500)

    # Timeouts in seconds
    FEED_TIMEOUT: int = _parse_int(os.getenv("FEED_TIMEOUT"), 10)
    POST_TIMEOUT: int = _parse_int(os.getenv("POST_TIMEOUT"), 15)
    BLOG_INFO_TIMEOUT: int = _parse_int(os.getenv("BLOG_INFO_TIMEOUT"), 5)

    # Entries generated when a feed is missing
    PLACEHOLDER_COUNT: int = _parse_int(os.getenv("PLACEHOLDER_COUNT"), 10)

    # Relay prefix for the last retrieval step; empty disables it
    PROXY_RELAY_URL: str = os.getenv("PROXY_RELAY_URL", "https://cors-anywhere.herokuapp.com/")

    # Harvest-launching requests per client per minute; 0 disables
    RATE_LIMIT_PER_MINUTE: int = _parse_int(os.getenv("RATE_LIMIT_PER_MINUTE"), 30)


config = Config()


class AppState:
    """Shared application state."""
    post_fetcher: "PostFetcher | None" = None
    feed_fetcher: "FeedFetcher | None" = None
    harvester: "Harvester | None" = None
    registry: "SourceRegistry | None" = None
    # Producer tasks of live streaming sessions
    running: "set[asyncio.Task]" = set()


state = AppState()


def get_harvester() -> "Harvester":
    """Dependency to get the harvester."""
    if state.harvester is None:
        raise HTTPException(status_code=500, detail="Harvester not initialized")
    return state.harvester


def get_post_fetcher() -> "PostFetcher":
    """Dependency to get the post fetcher."""
    if state.post_fetcher is None:
        raise HTTPException(status_code=500, detail="Post fetcher not initialized")
    return state.post_fetcher


def get_registry() -> "SourceRegistry":
    """Dependency to get the source registry."""
    if state.registry is None:
        raise HTTPException(status_code=500, detail="Source registry not initialized")
    return state.registry


def get_feed_fetcher() -> "FeedFetcher":
    """Dependency to get the feed fetcher."""
    if state.feed_fetcher is None:
        raise HTTPException(status_code=500, detail="Feed fetcher not initialized")
    return state.feed_fetcher
