"""
URL Validator - Recognize blog and post URLs before anything is fetched.

Only the blog platform's own hosts are accepted, which also keeps the
harvester from being pointed at internal network addresses. Supported shapes:
- https://blog.naver.com/<blog>
- https://blog.naver.com/<blog>/<post>
- https://blog.naver.com/PostView.naver?blogId=<blog>&logNo=<post>
- the same three on m.blog.naver.com
"""

import re
from urllib.parse import parse_qs, urlparse

from fastapi import HTTPException

from .exceptions import ValidationError

ALLOWED_HOSTS = {"blog.naver.com", "m.blog.naver.com"}
ALLOWED_SCHEMES = {"http", "https"}

# Path segments that are endpoints, not blog handles
RESERVED_SEGMENTS = {
    "PostView.naver",
    "PostView.nhn",
    "PostList.naver",
    "PostList.nhn",
    "PostViewNoFrame.naver",
    "PostViewAsync.naver",
    "api",
}

_HANDLE_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
_POST_NUMBER_RE = re.compile(r"^\d+$")


def _parse(url: str):
    if not url or not isinstance(url, str):
        raise ValidationError("URL is required")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValidationError(f"URL scheme '{parsed.scheme}' not allowed")

    hostname = (parsed.hostname or "").lower()
    if hostname not in ALLOWED_HOSTS:
        raise ValidationError(f"Not a Naver blog URL: {url}")

    return parsed


def _segments(parsed) -> list[str]:
    return [segment for segment in parsed.path.split("/") if segment]


def parse_source_url(url: str) -> str:
    """
    Extract the blog handle from a blog or post URL.

    Raises:
        ValidationError: If the URL is not a recognized blog URL
    """
    parsed = _parse(url)

    query = parse_qs(parsed.query)
    if query.get("blogId"):
        handle = query["blogId"][0]
    else:
        segments = _segments(parsed)
        if not segments or segments[0] in RESERVED_SEGMENTS:
            raise ValidationError(f"Could not find a blog id in {url}")
        handle = segments[0]

    if not _HANDLE_RE.match(handle):
        raise ValidationError(f"Invalid blog id '{handle}'")
    return handle


def parse_post_url(url: str) -> tuple[str, str]:
    """
    Extract (blog handle, post number) from a post URL.

    Query-string tracking suffixes are ignored.

    Raises:
        ValidationError: If the URL does not identify a single post
    """
    parsed = _parse(url)

    query = parse_qs(parsed.query)
    if query.get("blogId") and query.get("logNo"):
        handle, number = query["blogId"][0], query["logNo"][0]
    else:
        segments = _segments(parsed)
        if len(segments) < 2 or segments[0] in RESERVED_SEGMENTS:
            raise ValidationError(f"Could not find a post number in {url}")
        handle, number = segments[0], segments[1]

    if not _HANDLE_RE.match(handle) or not _POST_NUMBER_RE.match(number):
        raise ValidationError(f"Unrecognized post URL: {url}")
    return handle, number


def parse_source_url_or_raise_http(url: str) -> str:
    """
    Parse a blog URL, raising HTTPException on failure.

    Use this in FastAPI route handlers for automatic 400 responses.
    """
    try:
        return parse_source_url(url)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


def parse_post_url_or_raise_http(url: str) -> tuple[str, str]:
    """Parse a post URL, raising HTTPException on failure."""
    try:
        return parse_post_url(url)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
