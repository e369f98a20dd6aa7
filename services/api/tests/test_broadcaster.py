import asyncio
import json
from decimal import Decimal

import pytest

from bidding import UpdateBroadcaster, UpdateEvent


def bid_update(auction_id="a1", item_id="i1", floor="900"):
    return UpdateEvent(kind="bidUpdate", auction_id=auction_id, item_id=item_id, new_floor=Decimal(floor))


async def test_publish_fans_out_to_every_subscriber():
    broadcaster = UpdateBroadcaster(queue_size=5)

    async with broadcaster.subscribe() as first, broadcaster.subscribe() as second:
        assert broadcaster.publish(bid_update()) == 2

        assert (await first.next(timeout=1)).new_floor == Decimal("900")
        assert (await second.next(timeout=1)).new_floor == Decimal("900")


async def test_publish_without_subscribers_is_fine():
    assert UpdateBroadcaster().publish(bid_update()) == 0


async def test_auction_filter():
    broadcaster = UpdateBroadcaster()

    async with broadcaster.subscribe("a1") as only_a1, broadcaster.subscribe() as everything:
        broadcaster.publish(bid_update(auction_id="a2"))
        broadcaster.publish(bid_update(auction_id="a1"))

        assert (await only_a1.next(timeout=1)).auction_id == "a1"
        assert await only_a1.next(timeout=0.01) is None
        assert [(await everything.next(timeout=1)).auction_id for _ in range(2)] == ["a2", "a1"]


async def test_events_arrive_in_publish_order():
    broadcaster = UpdateBroadcaster()

    async with broadcaster.subscribe() as subscription:
        for floor in ("950", "900", "850"):
            broadcaster.publish(bid_update(floor=floor))

        floors = [(await subscription.next(timeout=1)).new_floor for _ in range(3)]

    assert floors == [Decimal("950"), Decimal("900"), Decimal("850")]


async def test_slow_subscriber_drops_events_without_blocking_others():
    broadcaster = UpdateBroadcaster(queue_size=2)

    async with broadcaster.subscribe() as slow, broadcaster.subscribe() as fast:
        delivered = []
        for n in range(4):
            delivered.append(broadcaster.publish(bid_update(floor=str(900 - n))))
            await fast.next(timeout=1)

        assert delivered == [2, 2, 1, 1]
        assert slow.dropped == 2
        assert fast.dropped == 0
        assert (await slow.next(timeout=1)).new_floor == Decimal("900")
        assert (await slow.next(timeout=1)).new_floor == Decimal("899")


async def test_leaving_the_block_unsubscribes():
    broadcaster = UpdateBroadcaster()

    async with broadcaster.subscribe() as subscription:
        assert broadcaster.subscriber_count == 1

    assert broadcaster.subscriber_count == 0
    assert subscription.closed
    assert broadcaster.publish(bid_update()) == 0


async def test_cancelled_reader_is_unsubscribed():
    broadcaster = UpdateBroadcaster()
    subscribed = asyncio.Event()

    async def reader():
        async with broadcaster.subscribe() as subscription:
            subscribed.set()
            async for _ in subscription:
                pass

    task = asyncio.create_task(reader())
    await subscribed.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert broadcaster.subscriber_count == 0


async def test_close_ends_iteration():
    broadcaster = UpdateBroadcaster()
    received = []

    async def reader(subscription):
        async for event in subscription:
            received.append(event.new_floor)

    async with broadcaster.subscribe() as subscription:
        task = asyncio.create_task(reader(subscription))
        broadcaster.publish(bid_update(floor="900"))
        await asyncio.sleep(0.01)
        broadcaster.close()
        await asyncio.wait_for(task, timeout=1)

    assert received == [Decimal("900")]


async def test_close_wakes_reader_even_with_full_queue():
    broadcaster = UpdateBroadcaster(queue_size=1)

    async with broadcaster.subscribe() as subscription:
        broadcaster.publish(bid_update())
        broadcaster.close()

        with pytest.raises(StopAsyncIteration):
            await subscription.next(timeout=1)


async def test_subscribe_after_close_ends_immediately():
    broadcaster = UpdateBroadcaster()
    broadcaster.close()

    async with broadcaster.subscribe() as subscription:
        assert broadcaster.subscriber_count == 0
        with pytest.raises(StopAsyncIteration):
            await subscription.next(timeout=1)


def test_sse_frame():
    event = UpdateEvent(kind="auctionClosed", auction_id="a1", status="CLOSED")

    frame = event.to_sse()

    assert frame.startswith("event: auctionClosed\ndata: ")
    assert frame.endswith("\n\n")
    payload = json.loads(frame.split("data: ", 1)[1])
    assert payload["auction_id"] == "a1"
    assert payload["status"] == "CLOSED"
    assert "item_id" not in payload
    assert "new_floor" not in payload
