"""
Harvest orchestrator: feed → filters → per-post retrieval, as a stream of events.

One session handles one source, strictly sequentially and in feed order,
with a pacing delay between consecutive retrievals. A session always ends
with exactly one terminal event: Complete (possibly carrying a degraded-mode
warning, or a partial list after cancellation) or Error.
"""

import logging
from datetime import date
from enum import Enum
from typing import AsyncIterator

from .cancellation import CancellationToken
from .events import (
    Complete,
    Count,
    Error,
    FeedMetadata,
    ItemProgress,
    ItemResult,
    ProgressChannel,
    ProgressEvent,
    Start,
)
from .exceptions import FeedUnavailable, TransportAborted
from .feeds import FEED_UNAVAILABLE_MESSAGE, FeedFetcher, placeholder_entries
from .fetcher import PostFetcher
from .filters import KeywordFilter, apply_filters
from .models import BlogSource, HarvestedPost, HarvestResult

logger = logging.getLogger(__name__)


class HarvestState(str, Enum):
    IDLE = "idle"
    FETCHING_FEED = "fetching_feed"
    FILTERING = "filtering"
    FETCHING_ITEM = "fetching_item"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"


class HarvestSession:
    """State of one harvest run over one source."""

    def __init__(
        self,
        harvester: "Harvester",
        source: BlogSource,
        keywords: KeywordFilter,
        since: date | None,
        cancel: CancellationToken,
    ):
        self.harvester = harvester
        self.source = source
        self.keywords = keywords
        self.since = since
        self.cancel = cancel
        self.state = HarvestState.IDLE
        self.current = 0
        self.display_name = source.display_name
        self.posts: list[HarvestedPost] = []
        self.warning: str | None = None

    async def events(self) -> AsyncIterator[ProgressEvent]:
        feeds = self.harvester.feed_fetcher
        fetcher = self.harvester.post_fetcher
        cancel = self.cancel

        yield Start()
        try:
            self.state = HarvestState.FETCHING_FEED
            try:
                feed = await feeds.fetch(self.source, cancel)
                self.display_name = feed.title or self.source.display_name
                entries = feed.entries
            except FeedUnavailable as e:
                logger.warning(f"{e}; continuing with placeholder entries")
                self.display_name = await feeds.lookup_display_name(self.source, cancel)
                entries = placeholder_entries(self.source, self.harvester.placeholder_count)
                self.warning = FEED_UNAVAILABLE_MESSAGE

            self.state = HarvestState.FILTERING
            survivors = apply_filters(entries, self.keywords, self.since)
            total = len(survivors)
            logger.info(f"{self.source.id}: {total} of {len(entries)} entries passed filters")

            yield FeedMetadata(source_display_name=self.display_name)
            yield Count(total=total, message=f"Found {total} posts to harvest")

            for index, entry in enumerate(survivors, start=1):
                cancel.raise_if_cancelled()
                if index > 1 and not entry.is_placeholder:
                    await cancel.sleep(self.harvester.pacing_delay)
                cancel.raise_if_cancelled()

                self.state = HarvestState.FETCHING_ITEM
                self.current = index
                yield ItemProgress(current=index, total=total, title=entry.title)

                content = await fetcher.fetch_post_body(entry.post_url, cancel)
                cancel.raise_if_cancelled()

                post = HarvestedPost.from_entry(self.source, entry, content)
                self.posts.append(post)
                yield ItemResult(post=post)

            self.state = HarvestState.COMPLETE
            yield Complete(
                source_display_name=self.display_name,
                posts=list(self.posts),
                message=f"Harvested {len(self.posts)} posts",
                warning=self.warning,
            )
        except TransportAborted:
            self.state = HarvestState.ABORTED
            logger.info(f"{self.source.id}: harvest cancelled after {len(self.posts)} posts")
            yield Complete(
                source_display_name=self.display_name,
                posts=list(self.posts),
                message="Harvest cancelled",
                warning=self.warning,
                cancelled=True,
            )
        except Exception as e:
            self.state = HarvestState.FAILED
            logger.error(f"{self.source.id}: harvest failed: {e}")
            yield Error(message="Failed to harvest the blog feed", error=str(e))


class Harvester:
    """Runs harvest sessions against the feed and post fetchers."""

    def __init__(
        self,
        feed_fetcher: FeedFetcher,
        post_fetcher: PostFetcher,
        pacing_delay_ms: int = 500,
        placeholder_count: int = 10,
    ):
        self.feed_fetcher = feed_fetcher
        self.post_fetcher = post_fetcher
        self.pacing_delay = pacing_delay_ms / 1000
        self.placeholder_count = placeholder_count

    def session(
        self,
        source: BlogSource,
        keywords: list[str] | None = None,
        since: date | None = None,
        cancel: CancellationToken | None = None,
        match_summary: bool = False,
    ) -> HarvestSession:
        return HarvestSession(
            harvester=self,
            source=source,
            keywords=KeywordFilter(keywords or [], match_summary=match_summary),
            since=since,
            cancel=cancel or CancellationToken(),
        )

    def events(
        self,
        source: BlogSource,
        keywords: list[str] | None = None,
        since: date | None = None,
        cancel: CancellationToken | None = None,
        match_summary: bool = False,
    ) -> AsyncIterator[ProgressEvent]:
        """Event stream of a new session over `source`."""
        return self.session(source, keywords, since, cancel, match_summary).events()

    async def stream(
        self,
        channel: ProgressChannel,
        source: BlogSource,
        keywords: list[str] | None = None,
        since: date | None = None,
    ) -> None:
        """Run a session into `channel`, sharing its cancellation token."""
        await channel.pump(self.events(source, keywords, since, channel.cancel))

    async def harvest(
        self,
        source: BlogSource,
        keywords: list[str] | None = None,
        since: date | None = None,
        cancel: CancellationToken | None = None,
    ) -> HarvestResult:
        """
        Non-streaming harvest of one source.

        Keywords match titles and summaries. Feed failures are reported in
        `HarvestResult.error` rather than raised.
        """
        result = HarvestResult(source=source)
        async for event in self.events(source, keywords, since, cancel, match_summary=True):
            if isinstance(event, FeedMetadata):
                result.source = source.with_display_name(event.source_display_name)
            elif isinstance(event, Complete):
                result.posts = event.posts
                result.warning = event.warning
            elif isinstance(event, Error):
                result.error = event.error or event.message
        return result

    async def harvest_sources(
        self,
        sources: list[BlogSource],
        keywords: list[str] | None = None,
        since: date | None = None,
        cancel: CancellationToken | None = None,
    ) -> list[HarvestResult]:
        """Harvest several sources one after another."""
        cancel = cancel or CancellationToken()
        results = []
        for source in sources:
            if cancel.cancelled:
                break
            results.append(await self.harvest(source, keywords, since, cancel.child()))
        return results
