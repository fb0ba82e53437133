"""
Source routes: register, inspect and remove blogs for batch harvesting.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..config import get_feed_fetcher, get_registry
from ..exceptions import ValidationError, require_source
from ..feeds import FeedFetcher
from ..models import BlogSource
from ..registry import SourceRegistry
from ..schemas import (
    AddSourceRequest,
    PostResponse,
    SourceInfoResponse,
    SourceResponse,
)

router = APIRouter(prefix="/sources", tags=["sources"])


def _source_from_url(url: str) -> BlogSource:
    try:
        return BlogSource.from_url(url)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ─────────────────────────────────────────────────────────────
# Source Management
# ─────────────────────────────────────────────────────────────

@router.get("")
async def list_sources(
    registry: Annotated[SourceRegistry, Depends(get_registry)]
) -> list[SourceResponse]:
    """List registered sources."""
    return [SourceResponse.from_source(s) for s in registry.all()]


@router.post("")
async def add_source(
    payload: AddSourceRequest,
    registry: Annotated[SourceRegistry, Depends(get_registry)],
    feeds: Annotated[FeedFetcher, Depends(get_feed_fetcher)],
) -> SourceResponse:
    """Register a blog. Without a name, the blog's own title is used."""
    source = _source_from_url(payload.url)
    name = payload.name or await feeds.lookup_display_name(source)
    source = registry.add(source.with_display_name(name))
    return SourceResponse.from_source(source)


@router.get("/info")
async def source_info(
    url: str,
    feeds: Annotated[FeedFetcher, Depends(get_feed_fetcher)],
) -> SourceInfoResponse:
    """Look up a blog's display name from its URL."""
    source = _source_from_url(url)
    name = await feeds.lookup_display_name(source)
    return SourceInfoResponse(id=source.id, display_name=name, url=source.canonical_url)


@router.get("/{source_id}/posts")
async def list_source_posts(
    source_id: str,
    registry: Annotated[SourceRegistry, Depends(get_registry)],
) -> list[PostResponse]:
    """Posts recorded by batch harvests of a source."""
    require_source(registry.get(source_id))
    return [PostResponse.from_post(p) for p in registry.posts(source_id)]


@router.delete("/{source_id}")
async def remove_source(
    source_id: str,
    registry: Annotated[SourceRegistry, Depends(get_registry)],
) -> dict:
    """Remove a source along with its recorded posts."""
    require_source(registry.get(source_id))
    registry.remove(source_id)
    return {"success": True}
