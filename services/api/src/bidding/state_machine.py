"""
Auction lifecycle: SCHEDULED → LIVE → CLOSED.

Every transition runs under the auction's exclusive admission gate and
lands through the ledger's status compare-and-set. Bid admission runs under
the same gate in shared mode (``admission``), so once a close has taken
effect no later admission can observe the auction as LIVE, and a close
never lands in the middle of an admission.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Callable, List, Optional

from models.entities.couchbase.auctions import CLOSED, LIVE, SCHEDULED, Auction, AuctionStatus

from utils import log

from .broadcaster import UpdateBroadcaster, UpdateEvent
from .errors import BidRejected, InvalidTransition, NotFound, RejectReason
from .ledger import Ledger
from .locks import AdmissionGates

logger = log.get_logger(__name__)

Clock = Callable[[], datetime]
TransitionHook = Callable[[Auction], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuctionStateMachine:
    def __init__(
        self,
        ledger: Ledger,
        broadcaster: UpdateBroadcaster,
        clock: Clock = utcnow,
        gates: Optional[AdmissionGates] = None,
    ):
        self.ledger = ledger
        self.broadcaster = broadcaster
        self.clock = clock
        self.gates = gates or AdmissionGates()
        # Called after a transition has landed, e.g. to arm/disarm deadlines
        self.on_live: List[TransitionHook] = []
        self.on_closed: List[TransitionHook] = []

    async def _load(self, auction_id: str) -> Auction:
        auction = await self.ledger.get_auction(auction_id)
        if not auction:
            raise NotFound(f"Auction {auction_id} not found")
        return auction

    async def _transition(
        self,
        auction: Auction,
        new_status: AuctionStatus,
        start_time: datetime,
        end_time: datetime,
    ) -> Optional[Auction]:
        return await self.ledger.update_auction_status(
            auction.id, auction.data.status, new_status, start_time, end_time
        )

    def _after(self, auction: Auction, hooks: List[TransitionHook], kind: str) -> None:
        for hook in hooks:
            try:
                hook(auction)
            except Exception as e:
                logger.error(f"Transition hook failed for auction {auction.id}: {e}", exc_info=True)
        self.broadcaster.publish(UpdateEvent(
            kind=kind,
            auction_id=auction.id,
            status=auction.data.status,
            timestamp=self.clock(),
        ))

    async def start(self, auction_id: str) -> Auction:
        async with self.gates.exclusive(auction_id):
            auction = await self._load(auction_id)
            if auction.data.status != SCHEDULED:
                raise InvalidTransition(
                    f"Cannot start auction {auction_id}: status is {auction.data.status}"
                )

            now = self.clock()
            end_time = now + timedelta(minutes=auction.data.duration_minutes)
            updated = await self._transition(auction, LIVE, now, end_time)
            if updated is None:
                raise InvalidTransition(f"Auction {auction_id} changed status while starting")

        logger.info(f"Auction {auction_id} is LIVE until {end_time.isoformat()}")
        self._after(updated, self.on_live, "auctionStarted")
        return updated

    async def close(self, auction_id: str) -> Auction:
        """Buyer-initiated close. Only a LIVE auction can be closed; a second close is rejected."""
        async with self.gates.exclusive(auction_id):
            auction = await self._load(auction_id)
            if auction.data.status != LIVE:
                raise InvalidTransition(
                    f"Cannot close auction {auction_id}: status is {auction.data.status}"
                )

            updated = await self._transition(auction, CLOSED, auction.data.start_time, self._closing_time(auction))
            if updated is None:
                raise InvalidTransition(f"Auction {auction_id} changed status while closing")

        logger.info(f"Auction {auction_id} closed by buyer")
        self._after(updated, self.on_closed, "auctionClosed")
        return updated

    async def expire(self, auction_id: str) -> bool:
        """Deadline-driven close. Returns True if this call closed the auction.

        A no-op for auctions that are already closed, not yet started, or
        whose deadline has not arrived.
        """
        async with self.gates.exclusive(auction_id):
            auction = await self.ledger.get_auction(auction_id)
            if auction is None:
                logger.warning(f"Deadline fired for unknown auction {auction_id}")
                return False
            if auction.data.status != LIVE:
                logger.debug(f"Deadline for auction {auction_id} ignored: status is {auction.data.status}")
                return False
            if self.clock() < auction.data.end_time:
                logger.debug(f"Deadline for auction {auction_id} fired early; ignoring")
                return False

            updated = await self._transition(auction, CLOSED, auction.data.start_time, self._closing_time(auction))
            if updated is None:
                return False

        logger.info(f"Auction {auction_id} closed at deadline")
        self._after(updated, self.on_closed, "auctionClosed")
        return True

    def _closing_time(self, auction: Auction) -> datetime:
        # endTime >= startTime even if the clock stepped backwards
        return max(self.clock(), auction.data.start_time)

    @asynccontextmanager
    async def admission(self, auction_id: str) -> AsyncIterator[Auction]:
        """Hold the auction open for one bid admission.

        Yields the auction if it is LIVE and before its deadline at this
        instant, otherwise raises ``BidRejected(AUCTION_NOT_LIVE)``. No
        transition can land until the block exits.
        """
        async with self.gates.shared(auction_id):
            auction = await self._load(auction_id)
            if auction.data.status != LIVE:
                raise BidRejected(
                    RejectReason.AUCTION_NOT_LIVE,
                    f"Auction is not live (status: {auction.data.status})",
                )
            if self.clock() >= auction.data.end_time:
                raise BidRejected(RejectReason.AUCTION_NOT_LIVE, "Auction has ended")
            yield auction
