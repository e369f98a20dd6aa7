"""
The ledger: durable record of auctions, items and bids.

The engine only talks to this interface. Its consistency contract:

- ``append_bid`` is a compare-and-append. The caller passes the number of
  bids it saw when it read the floor; if the item has a different number of
  bids by the time of the write, nothing is written and ``Conflict`` is
  raised.
- ``update_auction_status`` is a compare-and-set on the current status.
- Backend failures surface as ``UpstreamUnavailable``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.items import Item, ItemData


class Ledger(ABC):
    name = "ledger"

    @abstractmethod
    async def create_auction(self, auction: AuctionData, items: List[ItemData]) -> Tuple[Auction, List[Item]]:
        ...

    @abstractmethod
    async def get_auction(self, auction_id: str) -> Optional[Auction]:
        ...

    @abstractmethod
    async def list_auctions(self, status: Optional[AuctionStatus] = None) -> List[Auction]:
        """Auctions newest first, optionally only those with ``status``."""

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[Item]:
        ...

    @abstractmethod
    async def list_items_for_auction(self, auction_id: str) -> List[Item]:
        """Items in the order the buyer listed them."""

    @abstractmethod
    async def list_bids_for_item(self, item_id: str) -> List[Bid]:
        """Every bid on the item, lowest value first, ties by arrival order."""

    @abstractmethod
    async def append_bid(
        self,
        item_id: str,
        auction_id: str,
        supplier_id: str,
        value: Decimal,
        submitted_at: datetime,
        expected_count: int,
    ) -> Bid:
        ...

    @abstractmethod
    async def update_auction_status(
        self,
        auction_id: str,
        expected: AuctionStatus,
        new: AuctionStatus,
        start_time: Optional[datetime],
        end_time: Optional[datetime],
    ) -> Optional[Auction]:
        """Set status and schedule if the status is still ``expected``.

        Returns the updated auction, ``None`` if the status had changed, and
        raises ``NotFound`` if the auction does not exist.
        """

    async def close(self) -> None:
        """Release backend resources."""
