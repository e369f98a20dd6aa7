from datetime import datetime, timezone
from decimal import Decimal

import pytest
from couchbase.exceptions import CouchbaseException, DocumentExistsException

from bidding import Conflict, NotFound, UpstreamUnavailable
from bidding.couchbase_ledger import CouchbaseLedger
from models.entities.couchbase.auctions import Auction, AuctionData
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.items import Item
from models.operations import auctions as auction_ops
from models.operations import bids as bid_ops

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger() -> CouchbaseLedger:
    return CouchbaseLedger()


async def append(ledger, expected_count=0):
    return await ledger.append_bid(
        item_id="item-1",
        auction_id="auction-1",
        supplier_id="supplier-a",
        value=Decimal("900"),
        submitted_at=NOW,
        expected_count=expected_count,
    )


async def test_append_uses_the_next_slot(ledger, monkeypatch):
    calls = []

    async def fake_append(**kwargs):
        calls.append(kwargs)
        return Bid(id=Bid.slot_key(kwargs["item_id"], kwargs["seq"]), data=BidData(**kwargs))

    monkeypatch.setattr(bid_ops, "bid_append", fake_append)

    bid = await append(ledger, expected_count=3)

    assert calls[0]["seq"] == 4
    assert bid.id == "bid::item-1::000004"


async def test_taken_slot_is_a_conflict(ledger, monkeypatch):
    async def taken(**kwargs):
        raise DocumentExistsException()

    monkeypatch.setattr(bid_ops, "bid_append", taken)

    with pytest.raises(Conflict):
        await append(ledger)


async def test_backend_failure_on_append_is_upstream_unavailable(ledger, monkeypatch):
    async def down(**kwargs):
        raise CouchbaseException(message="cluster unreachable")

    monkeypatch.setattr(bid_ops, "bid_append", down)

    with pytest.raises(UpstreamUnavailable) as exc_info:
        await append(ledger)
    assert isinstance(exc_info.value.cause, CouchbaseException)


async def test_backend_failure_on_read_is_upstream_unavailable(ledger, monkeypatch):
    async def down(auction_id):
        raise CouchbaseException(message="timeout")

    monkeypatch.setattr(auction_ops, "auction_get", down)

    with pytest.raises(UpstreamUnavailable):
        await ledger.get_auction("auction-1")


def _live_auction() -> Auction:
    return Auction(id="auction-1", data=AuctionData(
        buyer_id="buyer-1",
        title="Steel pipes",
        start_price=Decimal("1000"),
        decrement_step=Decimal("50"),
        duration_minutes=30,
        status="LIVE",
        start_time=NOW,
        end_time=NOW,
    ))


async def test_status_mismatch_returns_none(ledger, monkeypatch):
    async def transition(*args):
        return None, auction_ops.STATUS_MISMATCH

    monkeypatch.setattr(auction_ops, "auction_transition", transition)

    assert await ledger.update_auction_status("auction-1", "LIVE", "CLOSED", NOW, NOW) is None


async def test_status_update_maps_errors(ledger, monkeypatch):
    async def missing(*args):
        return None, auction_ops.AUCTION_NOT_FOUND

    async def contended(*args):
        return None, auction_ops.CAS_CONFLICT

    monkeypatch.setattr(auction_ops, "auction_transition", missing)
    with pytest.raises(NotFound):
        await ledger.update_auction_status("auction-1", "LIVE", "CLOSED", NOW, NOW)

    monkeypatch.setattr(auction_ops, "auction_transition", contended)
    with pytest.raises(Conflict):
        await ledger.update_auction_status("auction-1", "LIVE", "CLOSED", NOW, NOW)


async def test_status_update_returns_the_new_state(ledger, monkeypatch):
    auction = _live_auction()

    async def transition(*args):
        return auction, None

    monkeypatch.setattr(auction_ops, "auction_transition", transition)

    assert await ledger.update_auction_status("auction-1", "SCHEDULED", "LIVE", NOW, NOW) is auction


def test_slot_keys_sort_in_arrival_order():
    keys = [Bid.slot_key("item-1", seq) for seq in (1, 2, 10, 100)]

    assert keys == sorted(keys)


async def test_items_are_read_with_request_plus_consistency(ledger, monkeypatch):
    queries = []

    async def query(where, order_by, consistent=False, **params):
        queries.append((order_by, consistent, params))
        return []

    monkeypatch.setattr(Item, "query", query)

    assert await ledger.list_items_for_auction("auction-1") == []
    assert queries == [("position ASC", True, {"auction_id": "auction-1"})]
