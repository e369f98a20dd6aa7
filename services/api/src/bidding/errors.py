from enum import Enum
from typing import Optional


class RejectReason(str, Enum):
    NON_POSITIVE = "NON_POSITIVE"
    TOO_HIGH = "TOO_HIGH"
    AUCTION_NOT_LIVE = "AUCTION_NOT_LIVE"
    INVALID_VALUE = "INVALID_VALUE"


class AuctionError(Exception):
    """Base exception for the bidding engine."""

    kind = "AuctionError"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(AuctionError):
    """Raised when an auction or item does not exist."""

    kind = "NotFound"
    status_code = 404


class InvalidTransition(AuctionError):
    """Raised when a lifecycle operation is not allowed from the current status."""

    kind = "InvalidTransition"
    status_code = 409


class BidRejected(AuctionError):
    """Raised when a bid is not admissible. ``reason`` says why."""

    kind = "BidRejected"
    status_code = 400

    def __init__(self, reason: RejectReason, message: str):
        super().__init__(message)
        self.reason = reason


class Conflict(AuctionError):
    """Raised when a concurrent writer won the race; re-read and retry."""

    kind = "Conflict"
    status_code = 409


class UpstreamUnavailable(AuctionError):
    """Raised when the ledger backend cannot be reached or fails."""

    kind = "UpstreamUnavailable"
    status_code = 503

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
