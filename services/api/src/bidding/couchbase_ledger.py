"""Ledger backed by Couchbase through the ``models.operations`` layer.

Compare-and-append maps onto a plain insert: the ``n``-th bid of an item is
stored under a deterministic slot key, so two writers that both read ``n-1``
bids collide on the key and only one insert succeeds.

Only per-item appends are linearised across API processes. The ordering
between a close and in-flight admissions comes from ``AdmissionGate`` and so
holds within one process; an admission already past its status check in
another process can still land after a buyer close. Deadline closes are
unaffected, since every admission also rejects once ``end_time`` has passed.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from couchbase.exceptions import CouchbaseException, DocumentExistsException

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.items import Item, ItemData
from models.operations import auctions as auction_ops
from models.operations import bids as bid_ops
from models.operations import items as item_ops
from utils import log

from .errors import Conflict, NotFound, UpstreamUnavailable
from .ledger import Ledger

logger = log.get_logger(__name__)


@asynccontextmanager
async def _upstream(operation: str):
    try:
        yield
    except CouchbaseException as e:
        logger.error(f"Couchbase {operation} failed: {e}")
        raise UpstreamUnavailable(f"Ledger unavailable during {operation}", cause=e) from e


class CouchbaseLedger(Ledger):
    name = "couchbase"

    async def create_auction(self, auction: AuctionData, items: List[ItemData]) -> Tuple[Auction, List[Item]]:
        async with _upstream("create_auction"):
            return await auction_ops.auction_create(auction, items)

    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        async with _upstream("get_auction"):
            return await auction_ops.auction_get(auction_id)

    async def list_auctions(self, status: Optional[AuctionStatus] = None) -> List[Auction]:
        async with _upstream("list_auctions"):
            return await auction_ops.auction_search(status=status)

    async def get_item(self, item_id: str) -> Optional[Item]:
        async with _upstream("get_item"):
            return await item_ops.item_get(item_id)

    async def list_items_for_auction(self, auction_id: str) -> List[Item]:
        async with _upstream("list_items_for_auction"):
            return await item_ops.item_get_by_auction(auction_id)

    async def list_bids_for_item(self, item_id: str) -> List[Bid]:
        async with _upstream("list_bids_for_item"):
            return await bid_ops.bid_get_by_item(item_id)

    async def append_bid(
        self,
        item_id: str,
        auction_id: str,
        supplier_id: str,
        value: Decimal,
        submitted_at: datetime,
        expected_count: int,
    ) -> Bid:
        seq = expected_count + 1
        try:
            return await bid_ops.bid_append(
                item_id=item_id,
                auction_id=auction_id,
                supplier_id=supplier_id,
                bid_value=value,
                submitted_at=submitted_at,
                seq=seq,
            )
        except DocumentExistsException as e:
            raise Conflict(f"Bid slot {seq} on item {item_id} already taken") from e
        except CouchbaseException as e:
            logger.error(f"Couchbase append_bid failed: {e}")
            raise UpstreamUnavailable("Ledger unavailable during append_bid", cause=e) from e

    async def update_auction_status(
        self,
        auction_id: str,
        expected: AuctionStatus,
        new: AuctionStatus,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
    ) -> Optional[Auction]:
        async with _upstream("update_auction_status"):
            auction, err = await auction_ops.auction_transition(
                auction_id, expected, new, start_time, end_time
            )
        if auction:
            return auction
        if err == auction_ops.AUCTION_NOT_FOUND:
            raise NotFound(f"Auction {auction_id} not found")
        if err == auction_ops.CAS_CONFLICT:
            raise Conflict(f"Auction {auction_id} is being updated concurrently")
        return None

    async def close(self) -> None:
        from clients.couchbase import close_cluster

        await close_cluster()
