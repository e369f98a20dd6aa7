"""
Bid log operations.

Bids are append-only. Each bid occupies a numbered slot per item
(``Bid.slot_key``); inserting into a slot that is already taken raises
``DocumentExistsException``, which callers treat as a lost race.
"""

from datetime import datetime
from decimal import Decimal
from typing import List

from models.entities.couchbase.bids import Bid, BidData


async def bid_append(
    item_id: str,
    auction_id: str,
    supplier_id: str,
    bid_value: Decimal,
    submitted_at: datetime,
    seq: int,
) -> Bid:
    data = BidData(
        item_id=item_id,
        auction_id=auction_id,
        supplier_id=supplier_id,
        bid_value=bid_value,
        submitted_at=submitted_at,
        seq=seq,
    )
    return await Bid.create(data, key=Bid.slot_key(item_id, seq), user_id=supplier_id)


async def bid_get_by_item(item_id: str) -> List[Bid]:
    """All bids on an item, lowest value first, ties by arrival order.

    Request-plus consistency: the admission path reads this right before
    appending, so it must see every bid already written.
    """
    return await Bid.query(
        "item_id = $item_id",
        "TONUMBER(bid_value) ASC, seq ASC",
        consistent=True,
        item_id=item_id,
    )
