"""In-process ledger, used by the test-suite and by ``LEDGER_BACKEND=memory`` runs.

Every method runs without awaiting anything in between its read and its
write, so under a single event loop each call is atomic. Entities are
copied on the way in and out; callers never share state with the store.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid, BidData
from models.entities.couchbase.items import Item, ItemData

from .errors import Conflict, NotFound
from .ledger import Ledger


class InMemoryLedger(Ledger):
    name = "memory"

    def __init__(self):
        self._auctions: Dict[str, Auction] = {}
        self._items: Dict[str, Item] = {}
        self._bids: Dict[str, List[Bid]] = {}  # item id -> bids in arrival order

    @staticmethod
    def _stamp(data, user_id: Optional[str] = None):
        now = datetime.now(timezone.utc)
        data.created_at = data.created_at or now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id
        return data

    async def create_auction(self, auction: AuctionData, items: List[ItemData]) -> Tuple[Auction, List[Item]]:
        auction_id = str(uuid.uuid4())
        stored = Auction(id=auction_id, data=self._stamp(auction.model_copy(deep=True), auction.buyer_id))

        created = []
        for position, item in enumerate(items):
            data = self._stamp(item.model_copy(update={"auction_id": auction_id, "position": position}), auction.buyer_id)
            created.append(Item(id=str(uuid.uuid4()), data=data))

        self._auctions[auction_id] = stored
        for item in created:
            self._items[item.id] = item
            self._bids[item.id] = []
        return stored.model_copy(deep=True), [item.model_copy(deep=True) for item in created]

    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        auction = self._auctions.get(auction_id)
        return auction.model_copy(deep=True) if auction else None

    async def list_auctions(self, status: Optional[AuctionStatus] = None) -> List[Auction]:
        auctions = [
            a for a in self._auctions.values()
            if status is None or a.data.status == status
        ]
        auctions.sort(key=lambda a: a.data.created_at, reverse=True)
        return [a.model_copy(deep=True) for a in auctions]

    async def get_item(self, item_id: str) -> Optional[Item]:
        item = self._items.get(item_id)
        return item.model_copy(deep=True) if item else None

    async def list_items_for_auction(self, auction_id: str) -> List[Item]:
        items = [i for i in self._items.values() if i.data.auction_id == auction_id]
        items.sort(key=lambda i: i.data.position)
        return [i.model_copy(deep=True) for i in items]

    async def list_bids_for_item(self, item_id: str) -> List[Bid]:
        bids = sorted(self._bids.get(item_id, []), key=lambda b: (b.data.bid_value, b.data.seq))
        return [b.model_copy(deep=True) for b in bids]

    async def append_bid(
        self,
        item_id: str,
        auction_id: str,
        supplier_id: str,
        value: Decimal,
        submitted_at: datetime,
        expected_count: int,
    ) -> Bid:
        if item_id not in self._items:
            raise NotFound(f"Item {item_id} not found")

        log = self._bids[item_id]
        if len(log) != expected_count:
            raise Conflict(
                f"Item {item_id} has {len(log)} bids, expected {expected_count}"
            )

        seq = expected_count + 1
        data = self._stamp(
            BidData(
                item_id=item_id,
                auction_id=auction_id,
                supplier_id=supplier_id,
                bid_value=value,
                submitted_at=submitted_at,
                seq=seq,
            ),
            supplier_id,
        )
        bid = Bid(id=Bid.slot_key(item_id, seq), data=data)
        log.append(bid)
        return bid.model_copy(deep=True)

    async def update_auction_status(
        self,
        auction_id: str,
        expected: AuctionStatus,
        new: AuctionStatus,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
    ) -> Optional[Auction]:
        auction = self._auctions.get(auction_id)
        if auction is None:
            raise NotFound(f"Auction {auction_id} not found")
        if auction.data.status != expected:
            return None

        data = auction.data.model_copy(update={
            "status": new,
            "start_time": start_time,
            "end_time": end_time,
            "updated_at": datetime.now(timezone.utc),
        })
        # Re-validate so the schedule invariant holds for every stored state
        updated = Auction(id=auction_id, data=AuctionData.model_validate(data.model_dump()))
        self._auctions[auction_id] = updated
        return updated.model_copy(deep=True)
