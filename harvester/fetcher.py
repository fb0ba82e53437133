"""
Post Fetcher - Retrieve a post body through a cascade of endpoint variants.

The blog platform serves the same post from many URLs, and which one
answers depends on the post's age, editor version and the platform's
current blocking rules. Each variant is a strategy in one ordered list;
the first strategy producing usable text wins.

Handles:
- Browser-like headers and referrers on every request
- Frame, no-frame, JSON API, desktop, mobile and async view endpoints
- Following the embedded main frame of the desktop page
- Referrer priming through the blog home page
- An optional relay as the last resort
- Cancellation of in-flight requests via CancellationToken
"""

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import urljoin

import aiohttp

from .cancellation import CancellationToken
from .exceptions import HarvestError, RetrievalExhausted, TransportAborted
from .extractors import extract_document, extract_mobile_document, find_main_frame_src
from .models import BLOG_BASE_URL, PLACEHOLDER_MARKER
from .normalizer import NOT_FOUND
from .url_validator import parse_post_url

logger = logging.getLogger(__name__)

MOBILE_BASE_URL = "https://m.blog.naver.com"

REDIRECT_MARKERS = ("location.replace", "location.href=", "location.href =")

# Keys that carry post HTML in JSON responses, checked in order
JSON_CONTENT_PATHS = [
    ("html",),
    ("innerHtml",),
    ("result", "contentHtml"),
    ("contents",),
    ("result", "contents"),
]
BLOCK_MARKERS = ("<div", "<p")

PLACEHOLDER_CONTENT = (
    "This is placeholder content generated because the blog's feed could "
    "not be loaded. Open the original blog to read its posts."
)


@dataclass
class PageResponse:
    """Body and status of one HTTP response."""
    url: str
    status: int
    text: str

    def json(self):
        return json.loads(self.text)


@dataclass
class RetrievalContext:
    """Everything a strategy needs to address one post."""
    post_url: str
    blog_id: str
    log_no: str
    session: aiohttp.ClientSession
    cancel: CancellationToken

    @property
    def desktop_url(self) -> str:
        return f"{BLOG_BASE_URL}/{self.blog_id}/{self.log_no}"

    @property
    def home_url(self) -> str:
        return f"{BLOG_BASE_URL}/{self.blog_id}"

    @property
    def query(self) -> str:
        return f"blogId={self.blog_id}&logNo={self.log_no}"

    @property
    def dlog_url(self) -> str:
        return (
            f"{BLOG_BASE_URL}/PostView.naver?{self.query}"
            "&redirect=Dlog&widgetTypeCall=true&directAccess=false"
        )


@dataclass
class Strategy:
    """One named retrieval step."""
    name: str
    run: Callable[[RetrievalContext], Awaitable[str | None]]


def _usable(text: str | None) -> bool:
    return bool(text) and text != NOT_FOUND


def _lookup(data, path: tuple[str, ...]):
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def find_json_html(data) -> str | None:
    """
    Find post HTML in a JSON payload.

    Known keys first, then any long string holding block markup at the top
    level or one level down.
    """
    for path in JSON_CONTENT_PATHS:
        value = _lookup(data, path)
        if isinstance(value, str) and value.strip():
            return value

    if not isinstance(data, dict):
        return None

    candidates = list(data.values())
    for value in data.values():
        if isinstance(value, dict):
            candidates.extend(value.values())

    for value in candidates:
        if (
            isinstance(value, str)
            and len(value) > 500
            and any(marker in value for marker in BLOCK_MARKERS)
        ):
            return value
    return None


def _from_fragment(markup: str) -> str:
    # Fragments have no page around them, so the page locators may miss
    text = extract_document(markup)
    if not _usable(text):
        text = extract_document(f"<body>{markup}</body>")
    return text


class PostFetcher:
    """Retrieves post bodies by trying each endpoint variant in turn."""

    def __init__(
        self,
        timeout: int = 15,
        user_agent: str | None = None,
        mobile_user_agent: str | None = None,
        proxy_relay_url: str | None = None,
    ):
        self.timeout = timeout
        self.user_agent = user_agent or (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/120.0.0.0 Safari/537.36"
        )
        self.mobile_user_agent = mobile_user_agent or (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/17.0 Mobile/15E148 Safari/604.1"
        )
        self.proxy_relay_url = proxy_relay_url or ""
        self.headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
            "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
            "Accept-Encoding": "gzip, deflate",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        self.strategies: list[Strategy] = [
            Strategy("frame_view", self._frame_view),
            Strategy("no_frame_view", self._no_frame_view),
            Strategy("redirect_view", self._redirect_view),
            Strategy("json_api", self._json_api),
            Strategy("desktop_page", self._desktop_page),
            Strategy("legacy_desktop", self._legacy_desktop),
            Strategy("mobile_page", self._mobile_page),
            Strategy("async_view", self._async_view),
            Strategy("home_primed_view", self._home_primed_view),
            Strategy("proxy_relay", self._proxy_relay),
        ]

    async def fetch_post_body(self, post_url: str, cancel: CancellationToken | None = None) -> str:
        """
        Retrieve a post's text, or a failure message embedding its URL.

        Only cancellation propagates; every other failure is reported as text.
        """
        try:
            return await self.retrieve(post_url, cancel)
        except TransportAborted:
            raise
        except RetrievalExhausted as e:
            return str(e)
        except HarvestError as e:
            logger.warning(f"Skipping retrieval for {post_url}: {e}")
            return str(RetrievalExhausted(post_url))

    async def retrieve(self, post_url: str, cancel: CancellationToken | None = None) -> str:
        """
        Retrieve a post's text.

        Raises:
            ValidationError: If the URL does not identify a post
            RetrievalExhausted: If every strategy failed
            TransportAborted: If `cancel` fired
        """
        cancel = cancel or CancellationToken()
        cancel.raise_if_cancelled()

        if PLACEHOLDER_MARKER in post_url:
            return PLACEHOLDER_CONTENT

        blog_id, log_no = parse_post_url(post_url)

        async with aiohttp.ClientSession(headers=self.headers) as session:
            ctx = RetrievalContext(
                post_url=post_url,
                blog_id=blog_id,
                log_no=log_no,
                session=session,
                cancel=cancel,
            )
            for strategy in self.strategies:
                cancel.raise_if_cancelled()
                try:
                    text = await strategy.run(ctx)
                except TransportAborted:
                    raise
                except Exception as e:
                    logger.warning(f"Strategy {strategy.name} failed for {post_url}: {e}")
                    continue

                if _usable(text):
                    logger.info(f"Retrieved {post_url} via {strategy.name}")
                    return text
                logger.debug(f"Strategy {strategy.name} found nothing for {post_url}")

        raise RetrievalExhausted(post_url)

    async def _get(
        self,
        ctx: RetrievalContext,
        url: str,
        referer: str | None = None,
        accept: str | None = None,
        mobile: bool = False,
    ) -> PageResponse:
        """Issue one GET through the context's session, honouring cancellation."""
        headers = {"Referer": referer or ctx.desktop_url}
        if accept:
            headers["Accept"] = accept
        if mobile:
            headers["User-Agent"] = self.mobile_user_agent

        async def request() -> PageResponse:
            async with ctx.session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                allow_redirects=True,
            ) as resp:
                text = await resp.text(errors="replace")
                return PageResponse(url=str(resp.url), status=resp.status, text=text)

        return await ctx.cancel.run(request())

    # ─────────────────────────────────────────────────────────────
    # Strategies, in chain order
    # ─────────────────────────────────────────────────────────────

    async def _frame_view(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(
            ctx, f"{BLOG_BASE_URL}/PostView.naver?{ctx.query}&iframe=postView"
        )
        if len(resp.text) < 500:
            return None
        return extract_document(resp.text)

    async def _no_frame_view(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(ctx, f"{BLOG_BASE_URL}/PostViewNoFrame.naver?{ctx.query}")
        if resp.status != 200 or len(resp.text) < 1000:
            return None
        return extract_document(resp.text)

    async def _redirect_view(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(ctx, f"{BLOG_BASE_URL}/PostView.naver?{ctx.query}")
        if any(marker in resp.text for marker in REDIRECT_MARKERS):
            logger.debug(f"Redirect script found for {ctx.post_url}, retrying Dlog view")
            resp = await self._get(ctx, ctx.dlog_url)
        if len(resp.text) < 1000:
            return None
        return extract_document(resp.text)

    async def _json_api(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(
            ctx,
            f"{BLOG_BASE_URL}/api/blogs/{ctx.blog_id}/posts/{ctx.log_no}",
            accept="application/json, text/plain, */*",
        )
        if resp.status != 200 or len(resp.text) < 500:
            return None
        data = resp.json()
        markup = _lookup(data, ("result", "contentHtml")) or _lookup(data, ("result", "contents"))
        if not isinstance(markup, str):
            return None
        return _from_fragment(markup)

    async def _desktop_page(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(ctx, f"{ctx.desktop_url}?from=postView", referer=ctx.home_url)
        if resp.status == 404 or len(resp.text) < 500:
            return None

        text = extract_document(resp.text)
        if _usable(text):
            return text

        frame_src = find_main_frame_src(resp.text)
        if not frame_src:
            return None
        frame = await self._get(ctx, urljoin(BLOG_BASE_URL, frame_src), referer=ctx.desktop_url)
        if len(frame.text) < 500:
            return None
        return extract_document(frame.text)

    async def _legacy_desktop(self, ctx: RetrievalContext) -> str | None:
        for url in (ctx.dlog_url, f"{BLOG_BASE_URL}/PostView.nhn?{ctx.query}"):
            resp = await self._get(ctx, url)
            if len(resp.text) < 500:
                continue
            text = extract_document(resp.text)
            if _usable(text):
                return text
        return None

    async def _mobile_page(self, ctx: RetrievalContext) -> str | None:
        base = f"{MOBILE_BASE_URL}/PostView.naver?{ctx.query}"
        referer = f"{MOBILE_BASE_URL}/{ctx.blog_id}"
        for url in (base, f"{base}&navType=tl"):
            resp = await self._get(ctx, url, referer=referer, mobile=True)
            if len(resp.text) < 500:
                continue
            text = extract_mobile_document(resp.text)
            if _usable(text):
                return text
        return None

    async def _async_view(self, ctx: RetrievalContext) -> str | None:
        resp = await self._get(
            ctx,
            f"{BLOG_BASE_URL}/PostViewAsync.naver?{ctx.query}&viewType=pc",
            accept="application/json, text/html, */*",
        )
        if len(resp.text) < 500:
            return None
        try:
            data = resp.json()
        except ValueError:
            return extract_document(resp.text)

        markup = find_json_html(data)
        if not markup:
            return None
        return _from_fragment(markup)

    async def _home_primed_view(self, ctx: RetrievalContext) -> str | None:
        # Cookies from the home page stay in the session jar for the retry
        await self._get(ctx, ctx.home_url, referer=BLOG_BASE_URL)
        resp = await self._get(ctx, ctx.dlog_url, referer=ctx.home_url)
        if len(resp.text) < 500:
            return None
        return extract_document(resp.text)

    async def _proxy_relay(self, ctx: RetrievalContext) -> str | None:
        if not self.proxy_relay_url:
            return None
        resp = await self._get(ctx, f"{self.proxy_relay_url}{ctx.desktop_url}")
        if len(resp.text) < 1000:
            return None
        return extract_document(resp.text)
