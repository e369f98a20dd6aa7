from typing import List, Optional

from models.entities.couchbase.items import Item, ItemData


async def item_create_many(items: List[ItemData], user_id: Optional[str] = None) -> List[Item]:
    created = []
    for position, data in enumerate(items):
        data.position = position
        created.append(await Item.create(data, user_id=user_id))
    return created


async def item_get(item_id: str) -> Optional[Item]:
    return await Item.get(item_id)


async def item_get_by_auction(auction_id: str) -> List[Item]:
    """Items of an auction in the order the buyer listed them.

    Request-plus consistency: the auction detail is read right after creation.
    """
    return await Item.query(
        "auction_id = $auction_id", "position ASC", consistent=True, auction_id=auction_id
    )


async def item_delete_many(auction_id: str) -> int:
    """Remove every item of an auction; used to undo a failed creation."""
    items = await Item.query(
        "auction_id = $auction_id", "position ASC", consistent=True, auction_id=auction_id
    )
    deleted = 0
    for item in items:
        if await Item.delete(item.id):
            deleted += 1
    return deleted
