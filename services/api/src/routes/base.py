from fastapi import APIRouter, Depends

from bidding import AuctionService
from utils import log

from .auctions import router as auctions_router
from .bids import router as bids_router
from .dependencies import get_auction_service

logger = log.get_logger(__name__)

router = APIRouter(prefix="/api")
router.include_router(auctions_router)
router.include_router(bids_router)


@router.get("/health", tags=["ops"])
async def route_health(service: AuctionService = Depends(get_auction_service)):
    """Liveness plus a few engine gauges."""
    return {
        "status": "ok",
        "ledger": service.ledger.name,
        "scheduler_running": service.deadlines.running,
        "pending_deadlines": service.deadlines.pending(),
        "subscribers": service.broadcaster.subscriber_count,
    }
