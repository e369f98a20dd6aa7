from datetime import datetime, timezone

import pytest

from bidding import AuctionService, InMemoryLedger, UpdateBroadcaster
from bidding.scheduler import SWEEP_JOB_ID, deadline_job_id
from conftest import FakeClock, create_auction, create_live_auction


@pytest.fixture
def clock() -> FakeClock:
    # Anchored at wall-clock time so armed jobs do not fire during a test
    return FakeClock(datetime.now(timezone.utc))


@pytest.fixture
async def running(service):
    await service.startup()
    yield service
    await service.shutdown()


def job(service, auction_id):
    return service.deadlines._scheduler.get_job(deadline_job_id(auction_id))


async def test_sweep_closes_only_overdue_auctions(service, clock):
    overdue, _ = await create_live_auction(service, duration_minutes=5)
    pending, _ = await create_live_auction(service, duration_minutes=60)
    scheduled, _ = await create_auction(service)
    clock.advance(minutes=10)

    assert await service.deadlines.sweep() == 1

    assert (await service.get_auction(overdue.id)).data.status == "CLOSED"
    assert (await service.get_auction(pending.id)).data.status == "LIVE"
    assert (await service.get_auction(scheduled.id)).data.status == "SCHEDULED"


async def test_sweep_survives_ledger_failure(service, monkeypatch):
    async def broken(status=None):
        raise RuntimeError("ledger down")

    monkeypatch.setattr(service.ledger, "list_auctions", broken)

    assert await service.deadlines.sweep() == 0


async def test_expire_job_logs_instead_of_raising(service, monkeypatch):
    auction, _ = await create_live_auction(service)

    async def broken(auction_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(service.state_machine, "expire", broken)

    assert await service.deadlines.expire(auction.id) is False


async def test_expire_job_closes_at_deadline(service, clock):
    auction, _ = await create_live_auction(service, duration_minutes=5)
    clock.advance(minutes=5)

    assert await service.deadlines.expire(auction.id) is True
    assert (await service.get_auction(auction.id)).data.status == "CLOSED"


async def test_arming_is_skipped_while_scheduler_is_stopped(service):
    await create_live_auction(service)

    assert not service.deadlines.running
    assert service.deadlines.pending() == 0


async def test_recovery_on_startup(service, clock):
    overdue, _ = await create_live_auction(service, duration_minutes=5)
    pending, _ = await create_live_auction(service, duration_minutes=60)
    clock.advance(minutes=10)

    await service.startup()
    try:
        assert (await service.get_auction(overdue.id)).data.status == "CLOSED"
        assert (await service.get_auction(pending.id)).data.status == "LIVE"
        assert job(service, overdue.id) is None
        assert job(service, pending.id) is not None
        assert service.deadlines.pending() == 1
        assert service.deadlines._scheduler.get_job(SWEEP_JOB_ID) is not None
    finally:
        await service.shutdown()


async def test_start_arms_and_close_disarms(running):
    auction, _ = await create_live_auction(running)

    armed = job(running, auction.id)
    assert armed is not None
    assert armed.trigger.run_date == auction.data.end_time

    await running.close(auction.id)

    assert job(running, auction.id) is None
    assert running.deadlines.pending() == 0


async def test_expiry_disarms(running, clock):
    auction, _ = await create_live_auction(running, duration_minutes=5)
    clock.advance(minutes=6)

    assert await running.deadlines.sweep() == 1
    assert job(running, auction.id) is None


async def test_shutdown_stops_scheduler(service):
    await service.startup()
    assert service.deadlines.running

    await service.shutdown()

    assert not service.deadlines.running


async def test_scheduler_is_stopped_before_the_ledger_closes(clock):
    class RecordingLedger(InMemoryLedger):
        scheduler_running_at_close = None

        async def close(self):
            self.scheduler_running_at_close = service.deadlines.running

    ledger = RecordingLedger()
    service = AuctionService(ledger, broadcaster=UpdateBroadcaster(), clock=clock)
    await service.startup()

    await service.shutdown()

    assert ledger.scheduler_running_at_close is False
