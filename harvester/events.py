"""
Progress events and the per-session channel that carries them.

Events serialize to the server-sent-events wire format:

    event: <type>
    data: <json>

The channel preserves send order, closes after the terminal event, and
becomes a silent sink once the session's cancellation token fires.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, ClassVar

from .cancellation import CancellationToken
from .exceptions import ChannelClosed, TransportAborted
from .models import HarvestedPost

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """Base class for everything a harvest session reports."""
    event_type: ClassVar[str] = "event"
    terminal: ClassVar[bool] = False

    def payload(self) -> dict:
        raise NotImplementedError

    def to_sse(self) -> str:
        data = json.dumps(self.payload(), ensure_ascii=False)
        return f"event: {self.event_type}\ndata: {data}\n\n"


@dataclass
class Start(ProgressEvent):
    event_type: ClassVar[str] = "start"
    message: str = "Starting blog harvest"

    def payload(self) -> dict:
        return {"message": self.message}


@dataclass
class FeedMetadata(ProgressEvent):
    event_type: ClassVar[str] = "blog"
    source_display_name: str = ""

    def payload(self) -> dict:
        return {"sourceDisplayName": self.source_display_name}


@dataclass
class Count(ProgressEvent):
    event_type: ClassVar[str] = "count"
    total: int = 0
    message: str = ""

    def payload(self) -> dict:
        return {"total": self.total, "message": self.message}


@dataclass
class ItemProgress(ProgressEvent):
    event_type: ClassVar[str] = "progress"
    current: int = 0
    total: int = 0
    title: str = ""

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.current / self.total * 100)

    def payload(self) -> dict:
        return {
            "current": self.current,
            "total": self.total,
            "percent": self.percent,
            "title": self.title,
        }


@dataclass
class ItemResult(ProgressEvent):
    event_type: ClassVar[str] = "post"
    post: HarvestedPost | None = None

    def payload(self) -> dict:
        return self.post.to_dict() if self.post else {}


@dataclass
class Complete(ProgressEvent):
    event_type: ClassVar[str] = "complete"
    terminal: ClassVar[bool] = True
    source_display_name: str = ""
    posts: list[HarvestedPost] = field(default_factory=list)
    message: str | None = None
    warning: str | None = None
    cancelled: bool = False

    def payload(self) -> dict:
        data = {
            "sourceDisplayName": self.source_display_name,
            "posts": [post.to_dict() for post in self.posts],
        }
        if self.message:
            data["message"] = self.message
        if self.warning:
            data["warning"] = self.warning
        return data


@dataclass
class Error(ProgressEvent):
    event_type: ClassVar[str] = "error"
    terminal: ClassVar[bool] = True
    message: str = ""
    error: str = ""

    def payload(self) -> dict:
        return {"message": self.message, "error": self.error}


_CLOSED = object()


class ProgressChannel:
    """
    Ordered, one-way event stream for a single harvest session.

    Writes after closure or cancellation are dropped. Iteration ends at
    closure, or as soon as cancellation is observed even if events are
    still buffered.
    """

    def __init__(self, cancel: CancellationToken | None = None):
        self.cancel = cancel or CancellationToken()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _put(self, event: ProgressEvent) -> None:
        if self._closed or self.cancel.cancelled:
            raise ChannelClosed(f"Channel closed, dropping {event.event_type} event")
        self._queue.put_nowait(event)

    def send(self, event: ProgressEvent) -> bool:
        """Queue an event. Returns False if the channel no longer accepts writes."""
        try:
            self._put(event)
        except ChannelClosed as e:
            self.dropped += 1
            logger.debug(str(e))
            return False
        if event.terminal:
            self.close()
        return True

    def close(self) -> None:
        """Release the channel. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    async def pump(self, events: AsyncIterator[ProgressEvent]) -> None:
        """Forward a session's events into the channel, then close it."""
        try:
            async for event in events:
                self.send(event)
        except TransportAborted:
            logger.info("Harvest session aborted while streaming")
        finally:
            self.close()

    async def __aiter__(self):
        while not self.cancel.cancelled:
            try:
                item = await self.cancel.run(self._queue.get())
            except TransportAborted:
                return
            if item is _CLOSED:
                return
            yield item

    async def sse(self) -> AsyncIterator[str]:
        """Iterate the channel as server-sent-event frames."""
        async for event in self:
            yield event.to_sse()
