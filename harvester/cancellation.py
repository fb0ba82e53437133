"""
Cancellation token threaded through every await of a harvest session.

A token is checked at the top of each loop iteration and around every
network call. Firing it interrupts pacing sleeps and in-flight requests
immediately rather than at the next check.
"""

import asyncio
import logging
from typing import Awaitable, TypeVar

from .exceptions import TransportAborted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Signals that a harvest session should stop issuing work."""

    def __init__(self):
        self._event = asyncio.Event()
        self._children: list["CancellationToken"] = []
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token and every token linked to it. Repeat calls are no-ops."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested: {reason}")
        for child in self._children:
            child.cancel(reason)

    def child(self) -> "CancellationToken":
        """Create a token that is cancelled whenever this one is."""
        token = CancellationToken()
        if self.cancelled:
            token.cancel(self.reason or "cancelled")
        else:
            self._children.append(token)
        return token

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TransportAborted(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early with TransportAborted if the token fires."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, abandoning it if the token fires first.

        The in-flight task is cancelled and TransportAborted is raised. An
        awaitable refused because the token already fired is closed unstarted.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task.done() and not task.cancelled():
            return task.result()

        await asyncio.gather(task, return_exceptions=True)
        raise TransportAborted(self.reason or "cancelled")
