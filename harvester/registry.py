"""
In-memory registry of blog sources and the posts harvested from them.
"""

import logging
import threading

from .models import BlogSource, HarvestedPost

logger = logging.getLogger(__name__)


class SourceRegistry:
    """
    Configured sources keyed by blog id.

    Posts are owned by their source: removing a source drops its posts.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sources: dict[str, BlogSource] = {}
        self._posts: dict[str, dict[str, HarvestedPost]] = {}

    def add(self, source: BlogSource) -> BlogSource:
        """Register a source. Re-adding an id replaces its display name only."""
        with self._lock:
            self._sources[source.id] = source
            self._posts.setdefault(source.id, {})
        logger.info(f"Registered source {source.id}")
        return source

    def get(self, source_id: str) -> BlogSource | None:
        return self._sources.get(source_id)

    def all(self) -> list[BlogSource]:
        return list(self._sources.values())

    def remove(self, source_id: str) -> bool:
        with self._lock:
            if source_id not in self._sources:
                return False
            del self._sources[source_id]
            dropped = self._posts.pop(source_id, {})
        logger.info(f"Removed source {source_id} and {len(dropped)} posts")
        return True

    def record(self, posts: list[HarvestedPost]) -> int:
        """Keep posts for registered sources, one per post id. Returns how many were new."""
        added = 0
        with self._lock:
            for post in posts:
                bucket = self._posts.get(post.source_id)
                if bucket is None:
                    continue
                if post.id not in bucket:
                    added += 1
                bucket[post.id] = post
        return added

    def posts(self, source_id: str) -> list[HarvestedPost]:
        return list(self._posts.get(source_id, {}).values())
