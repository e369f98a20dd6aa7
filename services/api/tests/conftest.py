from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bidding import AuctionService, InMemoryLedger, UpdateBroadcaster
from models.entities.couchbase.items import ItemData
from routes.base import router
from routes.errors import install_error_handlers


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def broadcaster() -> UpdateBroadcaster:
    return UpdateBroadcaster(queue_size=10)


@pytest.fixture
def service(ledger, broadcaster, clock) -> AuctionService:
    return AuctionService(ledger, broadcaster=broadcaster, clock=clock, max_append_retries=3)


def make_items(*descriptions: str) -> List[ItemData]:
    return [
        ItemData(auction_id="", description=d, quantity=Decimal(1), uom="NOS")
        for d in descriptions
    ]


async def create_auction(
    service: AuctionService,
    start_price: str = "1000",
    decrement_step: str = "50",
    duration_minutes: int = 30,
    items: int = 1,
    buyer_id: str = "buyer-1",
):
    view = await service.create_auction(
        buyer_id=buyer_id,
        title="Steel pipes",
        start_price=Decimal(start_price),
        decrement_step=Decimal(decrement_step),
        duration_minutes=duration_minutes,
        items=make_items(*[f"Item {n}" for n in range(1, items + 1)]),
    )
    return view.auction, [f.item for f in view.items]


async def create_live_auction(service: AuctionService, **kwargs):
    auction, items = await create_auction(service, **kwargs)
    auction = await service.start(auction.id)
    return auction, items


@pytest.fixture
def app(service) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    install_error_handlers(app)
    app.state.auction_service = service
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


BUYER = {"X-User-Id": "buyer-1", "X-User-Role": "buyer"}
OTHER_BUYER = {"X-User-Id": "buyer-2", "X-User-Role": "buyer"}
SUPPLIER_A = {"X-User-Id": "supplier-a", "X-User-Role": "supplier"}
SUPPLIER_B = {"X-User-Id": "supplier-b", "X-User-Role": "supplier"}
