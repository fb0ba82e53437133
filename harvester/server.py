"""
Blog Harvester API Server

FastAPI application providing endpoints for:
- Streaming harvest of a blog feed (server-sent events)
- One-shot and batch harvests
- On-demand retrieval of a single post
- Source registration
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .config import config, state
from .feeds import FeedFetcher
from .fetcher import PostFetcher
from .harvest import Harvester
from .rate_limit import setup_rate_limiting
from .registry import SourceRegistry
from .routes import (
    harvest_router,
    content_router,
    sources_router,
    misc_router,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if state.harvester is None:
        state.feed_fetcher = FeedFetcher(
            timeout=config.FEED_TIMEOUT,
            info_timeout=config.BLOG_INFO_TIMEOUT,
        )
        state.post_fetcher = PostFetcher(
            timeout=config.POST_TIMEOUT,
            proxy_relay_url=config.PROXY_RELAY_URL,
        )
        state.harvester = Harvester(
            feed_fetcher=state.feed_fetcher,
            post_fetcher=state.post_fetcher,
            pacing_delay_ms=config.PACING_DELAY_MS,
            placeholder_count=config.PLACEHOLDER_COUNT,
        )
        state.registry = SourceRegistry()
        logger.info(
            f"Harvester initialized (pacing: {config.PACING_DELAY_MS}ms, "
            f"relay: {'on' if config.PROXY_RELAY_URL else 'off'})"
        )

    yield

    # Shutdown
    running = list(state.running)
    for task in running:
        task.cancel()
    if running:
        await asyncio.gather(*running, return_exceptions=True)
        logger.info(f"Stopped {len(running)} running harvests")


app = FastAPI(
    title="Blog Harvester API",
    version=__version__,
    lifespan=lifespan
)

setup_rate_limiting(app)

# Include routers
app.include_router(misc_router)
app.include_router(harvest_router)
app.include_router(content_router)
app.include_router(sources_router)


def main():
    import uvicorn

    configure_logging()
    uvicorn.run("harvester.server:app", host="127.0.0.1", port=config.PORT)


if __name__ == "__main__":
    main()
