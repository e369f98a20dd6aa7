"""
APScheduler-driven auction deadlines.

- One date job per LIVE auction closes it at its end_time.
- A sweep job on a fixed interval closes any LIVE auction whose deadline
  passed without its job firing (lost timer, restart, backend hiccup).
- ``recover`` rebuilds the jobs from the ledger at startup, so the schedule
  never lives only in memory.
"""

import asyncio
from datetime import timezone
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from models.entities.couchbase.auctions import LIVE, Auction

from utils import log

from .ledger import Ledger
from .state_machine import AuctionStateMachine

logger = log.get_logger(__name__)

SWEEP_JOB_ID = "auction-deadline-sweep"


def deadline_job_id(auction_id: str) -> str:
    return f"auction-deadline:{auction_id}"


class DeadlineScheduler:
    def __init__(
        self,
        state_machine: AuctionStateMachine,
        ledger: Ledger,
        sweep_seconds: float = 15.0,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.state_machine = state_machine
        self.ledger = ledger
        self.sweep_seconds = sweep_seconds
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

        state_machine.on_live.append(self.arm)
        state_machine.on_closed.append(lambda auction: self.disarm(auction.id))

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def pending(self) -> int:
        return len([j for j in self._scheduler.get_jobs() if j.id != SWEEP_JOB_ID])

    async def start(self) -> None:
        """Start the scheduler and rebuild deadlines from the ledger."""
        self._scheduler.start()
        self._scheduler.add_job(
            self.sweep,
            trigger=IntervalTrigger(seconds=self.sweep_seconds),
            id=SWEEP_JOB_ID,
            name="Auction deadline sweep",
            replace_existing=True,
            max_instances=1,  # prevent overlap
            coalesce=True,
        )
        logger.info(f"APScheduler started: deadline sweep every {self.sweep_seconds:g}s")
        await self.recover()

    async def shutdown(self) -> None:
        """Gracefully shut down the scheduler.

        APScheduler may defer the stop to the next loop iteration; yield once
        so no deadline job can fire after this returns.
        """
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            await asyncio.sleep(0)
            logger.info("APScheduler shut down")

    def arm(self, auction: Auction) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.add_job(
            self.expire,
            trigger=DateTrigger(run_date=auction.data.end_time),
            args=[auction.id],
            id=deadline_job_id(auction.id),
            name=f"Close auction {auction.id}",
            replace_existing=True,
            misfire_grace_time=None,  # late is better than never
        )
        logger.debug(f"Deadline armed for auction {auction.id} at {auction.data.end_time.isoformat()}")

    def disarm(self, auction_id: str) -> None:
        if not self._scheduler.running:
            return
        try:
            self._scheduler.remove_job(deadline_job_id(auction_id))
        except JobLookupError:
            pass

    async def expire(self, auction_id: str) -> bool:
        """Deadline job body. Failures are logged; the next sweep retries."""
        try:
            return await self.state_machine.expire(auction_id)
        except Exception as e:
            logger.error(f"Failed to close auction {auction_id} at deadline: {e}", exc_info=True)
            return False

    async def sweep(self, arm_pending: bool = False) -> int:
        """Close every LIVE auction past its deadline. Returns how many were closed.

        With ``arm_pending`` the remaining LIVE auctions get their deadline job.
        """
        try:
            live = await self.ledger.list_auctions(status=LIVE)
        except Exception as e:
            logger.error(f"Deadline sweep could not list live auctions: {e}")
            return 0

        now = self.state_machine.clock()
        closed = 0
        for auction in live:
            if auction.data.end_time <= now:
                if await self.expire(auction.id):
                    closed += 1
            elif arm_pending:
                self.arm(auction)

        if closed:
            logger.info(f"Deadline sweep closed {closed} overdue auction(s)")
        return closed

    async def recover(self) -> int:
        """Rebuild deadlines from durable state after a (re)start."""
        closed = await self.sweep(arm_pending=True)
        logger.info(f"Deadline recovery: closed {closed} overdue, {self.pending()} armed")
        return closed
