"""
Live update fan-out.

One ``UpdateBroadcaster`` is created at startup and closed at shutdown. Each
connected dashboard holds a ``Subscription`` with its own bounded queue.
``publish`` never blocks and never raises: a subscriber whose queue is full
misses that event (delivery is at-most-once) and is expected to re-fetch
state when it reconnects.
"""

import asyncio
import itertools
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncIterator, Dict, Literal, Optional

from pydantic import BaseModel, Field

from utils import log

logger = log.get_logger(__name__)

EventKind = Literal["bidUpdate", "auctionStarted", "auctionClosed"]


class UpdateEvent(BaseModel):
    kind: EventKind
    auction_id: str
    item_id: Optional[str] = None
    new_floor: Optional[Decimal] = None
    status: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_sse(self) -> str:
        return f"event: {self.kind}\ndata: {self.model_dump_json(exclude_none=True)}\n\n"


class _Closed:
    pass


_CLOSED = _Closed()


class Subscription:
    def __init__(self, subscription_id: int, auction_id: Optional[str], queue_size: int):
        self.id = subscription_id
        self.auction_id = auction_id
        self.dropped = 0
        self._queue: "asyncio.Queue" = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: UpdateEvent) -> bool:
        return self.auction_id is None or self.auction_id == event.auction_id

    def offer(self, event: UpdateEvent) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Make room for the sentinel so a blocked reader always wakes up
        while True:
            try:
                self._queue.put_nowait(_CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def next(self, timeout: Optional[float] = None) -> Optional[UpdateEvent]:
        """Next event, or None if ``timeout`` elapsed first.

        Raises ``StopAsyncIteration`` once the subscription is closed.
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> UpdateEvent:
        event = await self.next()
        while event is None:
            event = await self.next()
        return event


class UpdateBroadcaster:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @asynccontextmanager
    async def subscribe(self, auction_id: Optional[str] = None) -> AsyncIterator[Subscription]:
        """Register a subscriber for the duration of the ``async with`` block."""
        subscription = Subscription(next(self._ids), auction_id, self.queue_size)
        if self._closed:
            subscription.close()
        else:
            self._subscriptions[subscription.id] = subscription
            logger.info(
                f"SSE client connected: {subscription.id} "
                f"(auction={auction_id or '*'}, total {self.subscriber_count})"
            )
        try:
            yield subscription
        finally:
            self._unsubscribe(subscription)

    def _unsubscribe(self, subscription: Subscription) -> None:
        subscription.close()
        if self._subscriptions.pop(subscription.id, None) is not None:
            logger.info(
                f"SSE client disconnected: {subscription.id} "
                f"(dropped {subscription.dropped}, total {self.subscriber_count})"
            )

    def publish(self, event: UpdateEvent) -> int:
        """Deliver ``event`` to every interested subscriber. Returns the number of deliveries."""
        delivered = 0
        try:
            for subscription in list(self._subscriptions.values()):
                if not subscription.wants(event):
                    continue
                if subscription.offer(event):
                    delivered += 1
                else:
                    logger.warning(
                        f"Subscriber {subscription.id} is lagging; dropped {event.kind} "
                        f"for auction {event.auction_id}"
                    )
        except Exception as e:
            logger.error(f"Broadcast of {event.kind} for auction {event.auction_id} failed: {e}", exc_info=True)
        logger.debug(f"Broadcasted {event.kind} for auction {event.auction_id} to {delivered} subscribers")
        return delivered

    def close(self) -> None:
        """End every subscription; later subscribers end immediately."""
        self._closed = True
        for subscription in list(self._subscriptions.values()):
            subscription.close()
        logger.info("Update broadcaster closed")
