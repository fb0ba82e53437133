"""
Content routes: on-demand retrieval of a single post body.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ..config import get_post_fetcher
from ..exceptions import RetrievalExhausted
from ..fetcher import PostFetcher
from ..models import PLACEHOLDER_MARKER
from ..schemas import ContentRequest, ContentResponse
from ..url_validator import parse_post_url_or_raise_http, parse_source_url_or_raise_http

router = APIRouter(tags=["content"])


@router.post("/content")
async def fetch_content(
    payload: ContentRequest,
    fetcher: Annotated[PostFetcher, Depends(get_post_fetcher)],
) -> ContentResponse:
    """
    Fetch the body of one post without harvesting its feed.

    A post that could not be retrieved still returns 200, with the failure
    message as content and `error` set.
    """
    if PLACEHOLDER_MARKER in payload.url:
        parse_source_url_or_raise_http(payload.url)
    else:
        parse_post_url_or_raise_http(payload.url)

    try:
        content = await fetcher.retrieve(payload.url)
    except RetrievalExhausted as e:
        return ContentResponse(content=str(e), error="Could not retrieve the post content")
    return ContentResponse(content=content)
