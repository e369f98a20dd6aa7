"""
Bid admission pipeline.

For one bid:
1. Hold the auction open (state machine admission, shared gate)
2. Lock the item
3. Read the floor from the ledger
4. Validate against floor - decrement_step
5. Compare-and-append to the ledger
6. After the locks are released, publish the new floor

A ``Conflict`` from the ledger means another process appended first; the
floor is re-read and the bid re-validated, with exponential backoff
(10 ms, 20 ms, 40 ms, …).
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from models.entities.couchbase.bids import Bid

from utils import log

from .broadcaster import UpdateBroadcaster, UpdateEvent
from .errors import AuctionError, BidRejected, Conflict, NotFound
from .floor import floor_from_bids
from .ledger import Ledger
from .locks import KeyedLocks
from .state_machine import AuctionStateMachine
from .validator import to_bid_value, validate_bid

logger = log.get_logger(__name__)


@dataclass
class BidOutcome:
    item_id: str
    accepted: bool
    bid: Optional[Bid] = None
    error: Optional[AuctionError] = None


class BidDesk:
    def __init__(
        self,
        ledger: Ledger,
        state_machine: AuctionStateMachine,
        broadcaster: UpdateBroadcaster,
        max_retries: int = 5,
    ):
        self.ledger = ledger
        self.state_machine = state_machine
        self.broadcaster = broadcaster
        self.max_retries = max_retries
        self.item_locks = KeyedLocks()

    async def _admit(self, auction_id: str, item_id: str, supplier_id: str, value: Decimal) -> Bid:
        async with self.state_machine.admission(auction_id) as auction:
            async with self.item_locks.hold(item_id):
                bids = await self.ledger.list_bids_for_item(item_id)
                floor = floor_from_bids(auction.data.start_price, bids)
                validate_bid(auction.data.decrement_step, floor, value)
                return await self.ledger.append_bid(
                    item_id=item_id,
                    auction_id=auction_id,
                    supplier_id=supplier_id,
                    value=value,
                    submitted_at=self.state_machine.clock(),
                    expected_count=len(bids),
                )

    async def submit(self, item_id: str, supplier_id: str, raw_value: Any) -> Bid:
        """Submit one bid. Returns the accepted bid or raises an ``AuctionError``."""
        value = to_bid_value(raw_value)

        item = await self.ledger.get_item(item_id)
        if not item:
            raise NotFound(f"Item {item_id} not found")
        auction_id = item.data.auction_id

        backoff_ms = 10
        for attempt in range(self.max_retries + 1):
            try:
                bid = await self._admit(auction_id, item_id, supplier_id, value)
                break
            except Conflict:
                if attempt == self.max_retries:
                    logger.warning(f"Bid on item {item_id} lost {attempt + 1} append races; giving up")
                    raise
                await asyncio.sleep(backoff_ms / 1000)
                backoff_ms *= 2
            except BidRejected as e:
                logger.info(f"Bid {value} by {supplier_id} on item {item_id} rejected: {e.reason.value}")
                raise

        logger.info(f"Bid {value} by {supplier_id} accepted on item {item_id} (seq {bid.data.seq})")

        # The accepted bid is the new floor by construction
        self.broadcaster.publish(UpdateEvent(
            kind="bidUpdate",
            auction_id=auction_id,
            item_id=item_id,
            new_floor=bid.data.bid_value,
            timestamp=bid.data.submitted_at,
        ))
        return bid

    async def submit_many(self, supplier_id: str, bids: List[Tuple[str, Any]]) -> List[BidOutcome]:
        """Submit several bids; each item is decided independently, in order."""
        outcomes = []
        for item_id, raw_value in bids:
            try:
                bid = await self.submit(item_id, supplier_id, raw_value)
                outcomes.append(BidOutcome(item_id=item_id, accepted=True, bid=bid))
            except (BidRejected, NotFound, Conflict) as e:
                outcomes.append(BidOutcome(item_id=item_id, accepted=False, error=e))
        return outcomes
