"""
Floor tracking.

The floor of an item is the lowest bid on it, or the auction's start price
while it has none. It is always derived from the ledger; nothing here is
cached between calls.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from models.entities.couchbase.auctions import Auction
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.items import Item

from .ledger import Ledger


def floor_from_bids(start_price: Decimal, bids: List[Bid]) -> Decimal:
    return min((b.data.bid_value for b in bids), default=start_price)


def lowest_bid(bids: List[Bid]) -> Optional[Bid]:
    """The L1 bid: lowest value, earliest arrival among equals."""
    if not bids:
        return None
    return min(bids, key=lambda b: (b.data.bid_value, b.data.seq))


def standing_bid(bids: List[Bid], supplier_id: str) -> Optional[Bid]:
    """A supplier's most recent bid on an item."""
    own = [b for b in bids if b.data.supplier_id == supplier_id]
    if not own:
        return None
    return max(own, key=lambda b: b.data.seq)


@dataclass
class ItemFloor:
    item: Item
    floor: Decimal
    bid_count: int
    l1: Optional[Bid]
    bids: List[Bid]


class FloorTracker:
    def __init__(self, ledger: Ledger):
        self.ledger = ledger

    async def floor(self, auction: Auction, item_id: str) -> Decimal:
        bids = await self.ledger.list_bids_for_item(item_id)
        return floor_from_bids(auction.data.start_price, bids)

    async def item_floor(self, auction: Auction, item: Item) -> ItemFloor:
        bids = await self.ledger.list_bids_for_item(item.id)
        return ItemFloor(
            item=item,
            floor=floor_from_bids(auction.data.start_price, bids),
            bid_count=len(bids),
            l1=lowest_bid(bids),
            bids=bids,
        )

    async def snapshot(self, auction: Auction) -> Dict[str, ItemFloor]:
        """Floor of every item of the auction, keyed by item id, in listing order."""
        items = await self.ledger.list_items_for_auction(auction.id)
        return {item.id: await self.item_floor(auction, item) for item in items}
