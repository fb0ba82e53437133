"""
Harvest routes: live streaming harvest, one-shot harvest, batch harvest.
"""

import asyncio
import json
import logging
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..cancellation import CancellationToken
from ..config import get_harvester, get_registry, state
from ..events import Error, ProgressChannel
from ..exceptions import ValidationError
from ..harvest import Harvester
from ..models import BlogSource
from ..rate_limit import harvest_limit
from ..registry import SourceRegistry
from ..schemas import HarvestRequest, HarvestResponse, SourcesHarvestRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/harvest", tags=["harvest"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def parse_keywords(raw: str | None) -> list[str]:
    """
    Keywords from a query parameter.

    Accepts a JSON list of strings or a comma-separated string.
    """
    if not raw or not raw.strip():
        return []
    raw = raw.strip()
    if raw.startswith("["):
        try:
            values = json.loads(raw)
        except ValueError as e:
            raise ValidationError(f"Invalid keywords: {e}")
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise ValidationError("Keywords must be a list of strings")
        return values
    return [part for part in raw.split(",")]


def parse_since(raw: str | None) -> date | None:
    if not raw or not raw.strip():
        return None
    try:
        return date.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError(f"Invalid date '{raw}', expected YYYY-MM-DD")


def error_stream(message: str, error: str) -> StreamingResponse:
    """A 400 event stream carrying a single error event."""
    frame = Error(message=message, error=error).to_sse()
    return StreamingResponse(
        iter([frame]),
        status_code=400,
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ─────────────────────────────────────────────────────────────
# Streaming Harvest
# ─────────────────────────────────────────────────────────────

@router.get("/stream")
@harvest_limit
async def harvest_stream(
    request: Request,
    harvester: Annotated[Harvester, Depends(get_harvester)],
    url: str = "",
    keywords: str | None = None,
    since: str | None = None,
) -> StreamingResponse:
    """
    Harvest a blog as a server-sent event stream.

    Invalid input is rejected before any request to the blog platform.
    Disconnecting cancels the session.
    """
    try:
        source = BlogSource.from_url(url)
        keyword_list = parse_keywords(keywords)
        since_date = parse_since(since)
    except ValidationError as e:
        return error_stream("Invalid harvest request", str(e))

    cancel = CancellationToken()
    channel = ProgressChannel(cancel)

    task = asyncio.create_task(harvester.stream(channel, source, keyword_list, since_date))
    state.running.add(task)
    task.add_done_callback(state.running.discard)

    async def frames():
        try:
            async for frame in channel.sse():
                yield frame
        finally:
            if not channel.closed:
                cancel.cancel("client disconnected")

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)


# ─────────────────────────────────────────────────────────────
# One-shot Harvest
# ─────────────────────────────────────────────────────────────

@router.post("")
@harvest_limit
async def harvest(
    request: Request,
    payload: HarvestRequest,
    harvester: Annotated[Harvester, Depends(get_harvester)],
) -> HarvestResponse:
    """Harvest a blog and return every post at once."""
    try:
        source = BlogSource.from_url(payload.url)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = await harvester.harvest(source, payload.keywords, payload.since)
    if result.error:
        raise HTTPException(status_code=502, detail=result.error)
    return HarvestResponse.from_result(result)


@router.post("/sources")
@harvest_limit
async def harvest_registered_sources(
    request: Request,
    payload: SourcesHarvestRequest,
    harvester: Annotated[Harvester, Depends(get_harvester)],
    registry: Annotated[SourceRegistry, Depends(get_registry)],
) -> list[HarvestResponse]:
    """Harvest every registered source in turn."""
    results = await harvester.harvest_sources(registry.all(), payload.keywords, payload.since)
    for result in results:
        added = registry.record(result.posts)
        logger.info(f"Recorded {added} new posts for {result.source.id}")
    return [HarvestResponse.from_result(r) for r in results]
