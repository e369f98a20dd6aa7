from .broadcaster import Subscription, UpdateBroadcaster, UpdateEvent
from .desk import BidDesk, BidOutcome
from .errors import (
    AuctionError,
    BidRejected,
    Conflict,
    InvalidTransition,
    NotFound,
    RejectReason,
    UpstreamUnavailable,
)
from .floor import FloorTracker, ItemFloor, floor_from_bids
from .ledger import Ledger
from .memory_ledger import InMemoryLedger
from .scheduler import DeadlineScheduler
from .service import AuctionService, AuctionView, parse_items_text
from .state_machine import AuctionStateMachine
from .validator import BidDecision, check_bid, validate_bid

__all__ = [
    "AuctionError",
    "AuctionService",
    "AuctionStateMachine",
    "AuctionView",
    "BidDecision",
    "BidDesk",
    "BidOutcome",
    "BidRejected",
    "Conflict",
    "DeadlineScheduler",
    "FloorTracker",
    "InMemoryLedger",
    "InvalidTransition",
    "ItemFloor",
    "Ledger",
    "NotFound",
    "RejectReason",
    "Subscription",
    "UpdateBroadcaster",
    "UpdateEvent",
    "UpstreamUnavailable",
    "check_bid",
    "floor_from_bids",
    "parse_items_text",
    "validate_bid",
]
