"""
API endpoints for bid submission.

POST   /bids/        - submit one bid (supplier)
POST   /bids/batch   - submit several bids, one outcome per bid (supplier)
"""

from decimal import Decimal
from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from bidding import AuctionService, BidRejected
from utils import log

from .auctions import BidResponse, bid_to_response
from .dependencies import get_auction_service, require_supplier

logger = log.get_logger(__name__)

router = APIRouter(prefix="/bids", tags=["bids"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class PlaceBidRequest(BaseModel):
    item_id: str
    # Non-numeric strings are passed through so the engine can report INVALID_VALUE
    bid_value: Union[Decimal, str]


class PlaceBidsRequest(BaseModel):
    bids: List[PlaceBidRequest] = Field(min_length=1)


class BidOutcomeResponse(BaseModel):
    item_id: str
    accepted: bool
    bid: Optional[BidResponse] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    detail: Optional[str] = None


# ---------------------------------------------------------------------------
# POST /bids/ - place a bid
# ---------------------------------------------------------------------------

@router.post("/", response_model=BidResponse, status_code=201)
async def route_place_bid(
    body: PlaceBidRequest,
    user: dict = Depends(require_supplier),
    service: AuctionService = Depends(get_auction_service),
):
    """Place a bid on an item of a LIVE auction.

    The bid must be at most the item's current floor minus the auction's
    decrement step. Rejections come back as 400 with a ``reason``.
    """
    bid = await service.submit_bid(body.item_id, user["sub"], body.bid_value)
    return bid_to_response(bid)


# ---------------------------------------------------------------------------
# POST /bids/batch - place several bids
# ---------------------------------------------------------------------------

@router.post("/batch", response_model=List[BidOutcomeResponse])
async def route_place_bids(
    body: PlaceBidsRequest,
    user: dict = Depends(require_supplier),
    service: AuctionService = Depends(get_auction_service),
):
    """Place bids on several items at once. Each bid is decided on its own."""
    outcomes = await service.submit_bids(
        user["sub"], [(b.item_id, b.bid_value) for b in body.bids]
    )
    return [
        BidOutcomeResponse(
            item_id=o.item_id,
            accepted=o.accepted,
            bid=bid_to_response(o.bid) if o.bid else None,
            error=o.error.kind if o.error else None,
            reason=o.error.reason.value if isinstance(o.error, BidRejected) else None,
            detail=o.error.message if o.error else None,
        )
        for o in outcomes
    ]
