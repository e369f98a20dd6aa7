"""
Auction persistence with CAS-guarded atomic operations.

- _auction_cas_retry for atomic read-modify-write
- Exponential backoff on CASMismatchException
- auction_transition is the status compare-and-set used by the state machine
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from couchbase.exceptions import CASMismatchException

from models.entities.couchbase.auctions import Auction, AuctionData, AuctionStatus
from models.entities.couchbase.items import Item, ItemData
from models.operations.items import item_create_many, item_delete_many

logger = logging.getLogger(__name__)

AUCTION_NOT_FOUND = "Auction not found"
STATUS_MISMATCH = "Auction status changed"
CAS_CONFLICT = "Concurrent update conflict"


# ---------------------------------------------------------------------------
# CAS-retry helper
# ---------------------------------------------------------------------------

async def _auction_cas_retry(
    auction_id: str,
    mutator: Callable[[AuctionData], Optional[str]],
    max_retries: int = 5,
) -> Tuple[Optional[Auction], Optional[str]]:
    """Read-modify-write an auction with CAS-guarded retry.

    *mutator* receives ``AuctionData`` and mutates it in place.  It returns
    ``None`` on success or an error string to abort early.  On
    ``CASMismatchException`` the helper re-reads and retries with
    exponential backoff (10 ms, 20 ms, 40 ms, …).

    Returns ``(auction, None)`` on success and ``(None, error)`` otherwise.
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        auction = await Auction.get(auction_id)
        if not auction:
            return None, AUCTION_NOT_FOUND

        error = mutator(auction.data)
        if error is not None:
            return None, error

        try:
            return await Auction.update(auction), None
        except CASMismatchException:
            if attempt == max_retries:
                break
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    return None, CAS_CONFLICT


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

async def auction_create(data: AuctionData, items: List[ItemData]) -> Tuple[Auction, List[Item]]:
    """Create an auction together with its items.

    Items reference the auction, so the auction is written first; if any
    item write fails, everything written so far is removed again.
    """
    auction = await Auction.create(data, user_id=data.buyer_id)
    for item in items:
        item.auction_id = auction.id

    try:
        created = await item_create_many(items, user_id=data.buyer_id)
    except Exception:
        logger.error(f"Item creation failed for auction {auction.id}; rolling back")
        await item_delete_many(auction.id)
        await Auction.delete(auction.id)
        raise

    return auction, created


async def auction_get(auction_id: str) -> Optional[Auction]:
    return await Auction.get(auction_id)


async def auction_search(status: Optional[AuctionStatus] = None) -> List[Auction]:
    """List auctions, newest first, optionally filtered by status.

    Uses request-plus consistency so a status written just before (e.g. by
    another process closing an auction) is reflected.
    """
    if status:
        return await Auction.query(
            "status = $status", "created_at DESC", consistent=True, status=status
        )
    return await Auction.query("1=1", "created_at DESC", consistent=True)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

async def auction_transition(
    auction_id: str,
    expected_status: AuctionStatus,
    new_status: AuctionStatus,
    start_time: Optional[datetime],
    end_time: Optional[datetime],
) -> Tuple[Optional[Auction], Optional[str]]:
    """Compare-and-set the auction status together with its schedule."""

    def _mutate(d: AuctionData) -> Optional[str]:
        # Re-validated on every CAS retry against the freshly read document
        if d.status != expected_status:
            return STATUS_MISMATCH
        d.status = new_status
        d.start_time = start_time
        d.end_time = end_time
        return None

    auction, err = await _auction_cas_retry(auction_id, _mutate)
    if auction:
        logger.info(f"Auction {auction_id} {expected_status} -> {new_status}")
    return auction, err
