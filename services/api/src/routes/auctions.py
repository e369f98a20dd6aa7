"""
API endpoints for reverse auctions.

POST   /auctions/                              - create auction with items (buyer)
GET    /auctions/                              - list auctions, ?live=true for LIVE only
GET    /auctions/stream                        - SSE stream of updates for all auctions
GET    /auctions/{id}                          - auction detail with per-item floor
GET    /auctions/{id}/summary                  - L1 report: lowest bid per item
GET    /auctions/{id}/items/{item_id}/bids     - bid history of an item
GET    /auctions/{id}/standing                 - caller's standing bid per item (supplier)
POST   /auctions/{id}/start                    - SCHEDULED → LIVE (owning buyer)
POST   /auctions/{id}/close                    - LIVE → CLOSED (owning buyer)
GET    /auctions/{id}/stream                   - SSE stream for one auction
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

import conf
from bidding import AuctionService, AuctionView, ItemFloor, UpdateBroadcaster, parse_items_text
from models.entities.couchbase.auctions import Auction
from models.entities.couchbase.bids import Bid
from models.entities.couchbase.items import ItemData
from utils import log

from .dependencies import get_auction_service, get_broadcaster, require_buyer, require_supplier

logger = log.get_logger(__name__)

router = APIRouter(prefix="/auctions", tags=["auctions"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------

class ItemRequest(BaseModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(default=Decimal(1), gt=0)
    uom: str = "NOS"


class CreateAuctionRequest(BaseModel):
    title: str = Field(min_length=1)
    start_price: Decimal = Field(gt=0)
    decrement_step: Decimal = Field(gt=0)
    duration_minutes: int = Field(gt=0)
    items: List[ItemRequest] = []
    # Alternative plain-text list, one "description, quantity, uom" per line
    items_text: Optional[str] = None


class ItemResponse(BaseModel):
    id: str
    description: str
    quantity: Decimal
    uom: str
    floor: Decimal
    bid_count: int


class AuctionResponse(BaseModel):
    id: str
    buyer_id: str
    title: str
    start_price: Decimal
    decrement_step: Decimal
    duration_minutes: int
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    items: List[ItemResponse] = []


class BidResponse(BaseModel):
    id: str
    item_id: str
    auction_id: str
    supplier_id: str
    bid_value: Decimal
    submitted_at: datetime
    seq: int


class L1Response(BaseModel):
    item_id: str
    description: str
    quantity: Decimal
    uom: str
    bid_count: int
    floor: Decimal
    l1_value: Optional[Decimal] = None
    l1_supplier_id: Optional[str] = None
    l1_submitted_at: Optional[datetime] = None


class SummaryResponse(BaseModel):
    auction_id: str
    title: str
    status: str
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    items: List[L1Response]


class StandingResponse(BaseModel):
    item_id: str
    bid: Optional[BidResponse] = None


def _item_to_response(f: ItemFloor) -> ItemResponse:
    d = f.item.data
    return ItemResponse(
        id=f.item.id,
        description=d.description,
        quantity=d.quantity,
        uom=d.uom,
        floor=f.floor,
        bid_count=f.bid_count,
    )


def _auction_to_response(auction: Auction, items: List[ItemFloor]) -> AuctionResponse:
    d = auction.data
    return AuctionResponse(
        id=auction.id,
        buyer_id=d.buyer_id,
        title=d.title,
        start_price=d.start_price,
        decrement_step=d.decrement_step,
        duration_minutes=d.duration_minutes,
        status=d.status,
        start_time=d.start_time,
        end_time=d.end_time,
        created_at=d.created_at,
        items=[_item_to_response(f) for f in items],
    )


def _view_to_response(view: AuctionView) -> AuctionResponse:
    return _auction_to_response(view.auction, view.items)


def bid_to_response(bid: Bid) -> BidResponse:
    d = bid.data
    return BidResponse(
        id=bid.id,
        item_id=d.item_id,
        auction_id=d.auction_id,
        supplier_id=d.supplier_id,
        bid_value=d.bid_value,
        submitted_at=d.submitted_at,
        seq=d.seq,
    )


def _l1_to_response(f: ItemFloor) -> L1Response:
    d = f.item.data
    return L1Response(
        item_id=f.item.id,
        description=d.description,
        quantity=d.quantity,
        uom=d.uom,
        bid_count=f.bid_count,
        floor=f.floor,
        l1_value=f.l1.data.bid_value if f.l1 else None,
        l1_supplier_id=f.l1.data.supplier_id if f.l1 else None,
        l1_submitted_at=f.l1.data.submitted_at if f.l1 else None,
    )


async def _owned_auction(service: AuctionService, auction_id: str, user: dict) -> Auction:
    auction = await service.get_auction(auction_id)
    if auction.data.buyer_id != user["sub"]:
        raise HTTPException(status_code=403, detail="Not your auction")
    return auction


# ---------------------------------------------------------------------------
# POST /auctions/ - create auction
# ---------------------------------------------------------------------------

@router.post("/", response_model=AuctionResponse, status_code=201)
async def route_auction_create(
    body: CreateAuctionRequest,
    user: dict = Depends(require_buyer),
    service: AuctionService = Depends(get_auction_service),
):
    """Create a SCHEDULED auction from a structured and/or plain-text item list."""
    items = [
        ItemData(auction_id="", description=i.description, quantity=i.quantity, uom=i.uom)
        for i in body.items
    ]
    try:
        items.extend(parse_items_text(body.items_text or ""))
    except (InvalidOperation, ValueError) as e:
        raise HTTPException(status_code=400, detail=f"Invalid items_text: {e}")

    if not items:
        raise HTTPException(status_code=400, detail="An auction needs at least one item")

    view = await service.create_auction(
        buyer_id=user["sub"],
        title=body.title,
        start_price=body.start_price,
        decrement_step=body.decrement_step,
        duration_minutes=body.duration_minutes,
        items=items,
    )
    return _view_to_response(view)


# ---------------------------------------------------------------------------
# GET /auctions/ - list auctions
# ---------------------------------------------------------------------------

@router.get("/", response_model=List[AuctionResponse])
async def route_auctions_list(
    live: bool = False,
    service: AuctionService = Depends(get_auction_service),
):
    """List auctions, newest first, each item with its current floor."""
    views = await service.list_views(live_only=live)
    return [_view_to_response(v) for v in views]


# ---------------------------------------------------------------------------
# GET /auctions/stream, /auctions/{id}/stream - SSE for live updates
# ---------------------------------------------------------------------------

def _event_stream(request: Request, broadcaster: UpdateBroadcaster, auction_id: Optional[str]) -> StreamingResponse:
    stream_conf = conf.get_stream_conf()

    async def event_generator():
        async with broadcaster.subscribe(auction_id) as subscription:
            yield f"retry: {stream_conf.retry_ms}\n\n"
            while not await request.is_disconnected():
                try:
                    event = await subscription.next(timeout=stream_conf.keepalive_seconds)
                except StopAsyncIteration:
                    break
                if event is None:
                    yield ": ping\n\n"
                else:
                    yield event.to_sse()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache, no-transform",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/stream")
async def route_stream_all(
    request: Request,
    broadcaster: UpdateBroadcaster = Depends(get_broadcaster),
):
    """Server-Sent Events for every auction: bidUpdate, auctionStarted, auctionClosed.

    Events are pushed as they happen. A client that reconnects must re-fetch
    auction state; missed events are not replayed.
    """
    return _event_stream(request, broadcaster, None)


@router.get("/{auction_id}/stream")
async def route_stream_auction(
    auction_id: str,
    request: Request,
    service: AuctionService = Depends(get_auction_service),
):
    """Server-Sent Events restricted to one auction."""
    await service.get_auction(auction_id)
    return _event_stream(request, service.broadcaster, auction_id)


# ---------------------------------------------------------------------------
# GET /auctions/{id} - auction detail
# ---------------------------------------------------------------------------

@router.get("/{auction_id}", response_model=AuctionResponse)
async def route_auction_detail(
    auction_id: str,
    service: AuctionService = Depends(get_auction_service),
):
    """Get a single auction with each item's current floor."""
    return _view_to_response(await service.view(auction_id))


# ---------------------------------------------------------------------------
# GET /auctions/{id}/summary - L1 report
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/summary", response_model=SummaryResponse)
async def route_auction_summary(
    auction_id: str,
    service: AuctionService = Depends(get_auction_service),
):
    """Lowest bid and its supplier for every item (final once the auction is CLOSED)."""
    view = await service.view(auction_id)
    d = view.auction.data
    return SummaryResponse(
        auction_id=view.auction.id,
        title=d.title,
        status=d.status,
        start_time=d.start_time,
        end_time=d.end_time,
        items=[_l1_to_response(f) for f in view.items],
    )


# ---------------------------------------------------------------------------
# GET /auctions/{id}/items/{item_id}/bids - bid history
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/items/{item_id}/bids", response_model=List[BidResponse])
async def route_item_bids(
    auction_id: str,
    item_id: str,
    service: AuctionService = Depends(get_auction_service),
):
    """Every bid on an item, in arrival order."""
    bids = await service.item_bids(auction_id, item_id)
    return [bid_to_response(b) for b in bids]


# ---------------------------------------------------------------------------
# GET /auctions/{id}/standing - supplier's standing bids
# ---------------------------------------------------------------------------

@router.get("/{auction_id}/standing", response_model=List[StandingResponse])
async def route_standing_bids(
    auction_id: str,
    user: dict = Depends(require_supplier),
    service: AuctionService = Depends(get_auction_service),
):
    """The caller's most recent bid on each item of the auction."""
    standing = await service.standing_bids(auction_id, user["sub"])
    return [
        StandingResponse(item_id=item_id, bid=bid_to_response(bid) if bid else None)
        for item_id, bid in standing.items()
    ]


# ---------------------------------------------------------------------------
# POST /auctions/{id}/start, /auctions/{id}/close - lifecycle
# ---------------------------------------------------------------------------

@router.post("/{auction_id}/start", response_model=AuctionResponse)
async def route_auction_start(
    auction_id: str,
    user: dict = Depends(require_buyer),
    service: AuctionService = Depends(get_auction_service),
):
    """Open the auction for bidding; it closes itself after duration_minutes."""
    await _owned_auction(service, auction_id, user)
    await service.start(auction_id)
    return _view_to_response(await service.view(auction_id))


@router.post("/{auction_id}/close", response_model=AuctionResponse)
async def route_auction_close(
    auction_id: str,
    user: dict = Depends(require_buyer),
    service: AuctionService = Depends(get_auction_service),
):
    """Close a LIVE auction before its deadline. Closing twice is an error."""
    await _owned_auction(service, auction_id, user)
    await service.close(auction_id)
    return _view_to_response(await service.view(auction_id))
