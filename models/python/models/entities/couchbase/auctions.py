from typing import Optional, Literal
from datetime import datetime
from decimal import Decimal

from pydantic import Field, model_validator

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData

AuctionStatus = Literal["SCHEDULED", "LIVE", "CLOSED"]

SCHEDULED: AuctionStatus = "SCHEDULED"
LIVE: AuctionStatus = "LIVE"
CLOSED: AuctionStatus = "CLOSED"


class AuctionData(BaseCouchbaseEntityData):
    # Ownership
    buyer_id: str
    title: str

    # Pricing rules (immutable after creation)
    start_price: Decimal = Field(gt=0)
    decrement_step: Decimal = Field(gt=0)  # minimum undercut of the floor per bid
    duration_minutes: int = Field(gt=0)

    # Lifecycle
    status: AuctionStatus = SCHEDULED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _check_schedule(self) -> "AuctionData":
        if self.status == SCHEDULED:
            if self.start_time is not None or self.end_time is not None:
                raise ValueError("A scheduled auction has no start_time/end_time")
        else:
            if self.start_time is None or self.end_time is None:
                raise ValueError(f"A {self.status} auction needs start_time and end_time")
            if self.end_time < self.start_time:
                raise ValueError("end_time precedes start_time")
        return self


class Auction(BaseModelCouchbase[AuctionData]):
    _collection_name = "auctions"
