"""
Process-scoped owner of the bidding engine.

``AuctionService`` is built once in the application lifespan, stored on
``app.state`` and handed to request handlers through a dependency. It wires
the ledger, broadcaster, state machine, bid desk and deadline scheduler
together and carries the read/create operations that need more than one of
them.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from models.entities.couchbase.auctions import LIVE, Auction, AuctionData
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.items import Item, ItemData

from utils import log

from .broadcaster import UpdateBroadcaster
from .desk import BidDesk, BidOutcome
from .errors import NotFound
from .floor import FloorTracker, ItemFloor, standing_bid
from .ledger import Ledger
from .scheduler import DeadlineScheduler
from .state_machine import AuctionStateMachine, Clock, utcnow

logger = log.get_logger(__name__)


@dataclass
class AuctionView:
    auction: Auction
    items: List[ItemFloor]


def parse_items_text(text: str) -> List[ItemData]:
    """Parse the buyer's plain-text item list.

    One item per line as ``description, quantity, uom``; quantity defaults to
    1 and uom to ``NOS``. Blank lines are skipped.
    """
    items = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        parts = [p.strip() for p in line.split(",")]
        quantity = parts[1] if len(parts) > 1 and parts[1] else "1"
        uom = parts[2] if len(parts) > 2 and parts[2] else "NOS"
        items.append(ItemData(
            auction_id="",
            description=parts[0],
            quantity=Decimal(quantity),
            uom=uom,
        ))
    return items


class AuctionService:
    def __init__(
        self,
        ledger: Ledger,
        broadcaster: Optional[UpdateBroadcaster] = None,
        clock: Clock = utcnow,
        max_append_retries: int = 5,
        sweep_seconds: float = 15.0,
    ):
        self.ledger = ledger
        self.broadcaster = broadcaster or UpdateBroadcaster()
        self.state_machine = AuctionStateMachine(ledger, self.broadcaster, clock=clock)
        self.desk = BidDesk(ledger, self.state_machine, self.broadcaster, max_retries=max_append_retries)
        self.floors = FloorTracker(ledger)
        self.deadlines = DeadlineScheduler(self.state_machine, ledger, sweep_seconds=sweep_seconds)

    #### Lifecycle ####

    async def startup(self) -> None:
        await self.deadlines.start()

    async def shutdown(self) -> None:
        await self.deadlines.shutdown()
        self.broadcaster.close()
        await self.ledger.close()

    #### Commands ####

    async def create_auction(
        self,
        buyer_id: str,
        title: str,
        start_price: Decimal,
        decrement_step: Decimal,
        duration_minutes: int,
        items: List[ItemData],
    ) -> AuctionView:
        data = AuctionData(
            buyer_id=buyer_id,
            title=title,
            start_price=start_price,
            decrement_step=decrement_step,
            duration_minutes=duration_minutes,
        )
        auction, created = await self.ledger.create_auction(data, items)
        logger.info(f"Auction {auction.id} '{title}' created by {buyer_id} with {len(created)} item(s)")
        return AuctionView(
            auction=auction,
            items=[ItemFloor(item=i, floor=start_price, bid_count=0, l1=None, bids=[]) for i in created],
        )

    async def start(self, auction_id: str) -> Auction:
        return await self.state_machine.start(auction_id)

    async def close(self, auction_id: str) -> Auction:
        return await self.state_machine.close(auction_id)

    async def submit_bid(self, item_id: str, supplier_id: str, value: Any) -> Bid:
        return await self.desk.submit(item_id, supplier_id, value)

    async def submit_bids(self, supplier_id: str, bids: List[Tuple[str, Any]]) -> List[BidOutcome]:
        return await self.desk.submit_many(supplier_id, bids)

    #### Queries ####

    async def get_auction(self, auction_id: str) -> Auction:
        auction = await self.ledger.get_auction(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        return auction

    async def view(self, auction_id: str) -> AuctionView:
        """The auction with every item's current floor computed from the ledger."""
        auction = await self.get_auction(auction_id)
        return await self._view(auction)

    async def _view(self, auction: Auction) -> AuctionView:
        snapshot = await self.floors.snapshot(auction)
        return AuctionView(auction=auction, items=list(snapshot.values()))

    async def list_views(self, live_only: bool = False) -> List[AuctionView]:
        auctions = await self.ledger.list_auctions(status=LIVE if live_only else None)
        return [await self._view(a) for a in auctions]

    async def item_bids(self, auction_id: str, item_id: str) -> List[Bid]:
        """Bid history of an item, in arrival order."""
        item = await self._item_of(auction_id, item_id)
        bids = await self.ledger.list_bids_for_item(item.id)
        return sorted(bids, key=lambda b: b.data.seq)

    async def standing_bids(self, auction_id: str, supplier_id: str) -> Dict[str, Optional[Bid]]:
        """The supplier's most recent bid per item (None where they have not bid)."""
        view = await self.view(auction_id)
        return {f.item.id: standing_bid(f.bids, supplier_id) for f in view.items}

    async def _item_of(self, auction_id: str, item_id: str) -> Item:
        item = await self.ledger.get_item(item_id)
        if not item or item.data.auction_id != auction_id:
            raise NotFound(f"Item {item_id} not found in auction {auction_id}")
        return item
