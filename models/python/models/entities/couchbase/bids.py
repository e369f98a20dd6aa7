from datetime import datetime
from decimal import Decimal

from pydantic import Field

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class BidData(BaseCouchbaseEntityData):
    item_id: str
    auction_id: str
    supplier_id: str
    bid_value: Decimal = Field(gt=0)
    submitted_at: datetime
    seq: int = Field(ge=1)  # position in the item's append-only bid log


class Bid(BaseModelCouchbase[BidData]):
    _collection_name = "bids"

    @staticmethod
    def slot_key(item_id: str, seq: int) -> str:
        """Document key of the ``seq``-th bid on an item.

        Two writers racing for the same slot collide on insert, which is
        what makes appending a bid a compare-and-append.
        """
        return f"bid::{item_id}::{seq:06d}"
