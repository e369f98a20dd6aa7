from decimal import Decimal

from pydantic import Field

from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class ItemData(BaseCouchbaseEntityData):
    auction_id: str
    description: str = Field(min_length=1)
    quantity: Decimal = Field(gt=0)
    uom: str = "NOS"
    position: int = 0  # order in the buyer's list


class Item(BaseModelCouchbase[ItemData]):
    _collection_name = "items"
