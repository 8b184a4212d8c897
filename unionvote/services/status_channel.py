import asyncio
import time
from collections.abc import Callable

import structlog

from ..models.vote_models import StatusKind, TransactionStatus

logger = structlog.stdlib.get_logger()


class TransactionStatusChannel:
    """
    Holds the last transaction status event and fans it out to subscribers.
    Success and error events expire after a fixed display window; pending
    events stay until the next transition.
    """

    _last: TransactionStatus
    _subscribers: list[asyncio.Queue[TransactionStatus]]

    def __init__(
        self,
        success_ttl: float = 2.0,
        error_ttl: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        max_queued: int = 32,
    ):
        self.success_ttl = success_ttl
        self.error_ttl = error_ttl
        self.clock = clock
        self.max_queued = max_queued
        self._last = TransactionStatus()
        self._subscribers = []

    def _publish(
        self, kind: StatusKind, message: str, ttl: float | None
    ) -> TransactionStatus:
        now = self.clock()
        event = TransactionStatus(
            kind=kind,
            message=message,
            issued_at=now,
            expires_at=now + ttl if ttl is not None else None,
        )
        self._last = event
        logger.debug("status.published", kind=kind.value, message=message)
        for queue in self._subscribers:
            self._offer(queue, event)
        return event

    @staticmethod
    def _offer(
        queue: asyncio.Queue[TransactionStatus], event: TransactionStatus
    ) -> None:
        # A stalled subscriber loses its oldest events, never the newest.
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            queue.get_nowait()
            queue.put_nowait(event)
            logger.debug("status.subscriber_lagging", dropped=1)

    def pending(self, message: str) -> TransactionStatus:
        return self._publish(StatusKind.PENDING, message, None)

    def success(self, message: str) -> TransactionStatus:
        return self._publish(StatusKind.SUCCESS, message, self.success_ttl)

    def error(self, message: str) -> TransactionStatus:
        return self._publish(StatusKind.ERROR, message, self.error_ttl)

    def current(self) -> TransactionStatus:
        """The visible status, or idle once the last event has expired."""
        last = self._last
        if last.expires_at is not None and self.clock() >= last.expires_at:
            return TransactionStatus()
        return last

    def register(self) -> asyncio.Queue[TransactionStatus]:
        queue: asyncio.Queue[TransactionStatus] = asyncio.Queue(
            maxsize=self.max_queued
        )
        self._subscribers.append(queue)
        return queue

    def unregister(self, queue: asyncio.Queue[TransactionStatus]) -> None:
        try:
            self._subscribers.remove(queue)
        except ValueError:
            pass

    def clear(self):
        """Helper for testing to reset state."""
        self._last = TransactionStatus()
        self._subscribers.clear()
