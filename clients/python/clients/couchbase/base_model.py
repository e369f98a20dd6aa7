import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Generic, List, Optional, TypeVar, ClassVar

from pydantic import BaseModel
from couchbase.exceptions import DocumentNotFoundException
from couchbase.options import ReplaceOptions

from .keyspace import Keyspace, get_keyspace


class BaseCouchbaseEntityData(BaseModel):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


DataT = TypeVar("DataT", bound=BaseCouchbaseEntityData)
T = TypeVar("T", bound="BaseModelCouchbase")


class BaseModelCouchbase(BaseModel, Generic[DataT]):
    """Document envelope: key, typed payload and the CAS it was read with."""

    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @staticmethod
    def to_document(data: BaseCouchbaseEntityData) -> dict:
        # JSON mode renders Decimal as string and datetime as ISO-8601
        return data.model_dump(mode='json')

    @classmethod
    def get_keyspace(cls) -> Keyspace:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return get_keyspace(cls._collection_name)

    @classmethod
    def from_row(cls: type[T], row: Dict[str, Any]) -> Optional[T]:
        """Build an entity from a ``SELECT META().id, *`` row, or None if the row has no payload."""
        data = row.get(cls._collection_name)
        if not data:
            return None
        return cls(id=row["id"], data=data)

    @classmethod
    async def get(cls: type[T], id: str) -> Optional[T]:
        try:
            collection = await cls.get_keyspace().get_collection()
            result = await collection.get(id)
            return cls(id=id, data=result.content_as[dict], cas=result.cas)
        except DocumentNotFoundException:
            return None

    @classmethod
    async def create(cls: type[T], data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        """Insert a new document. Raises DocumentExistsException if ``key`` is already taken."""
        if key is None:
            key = str(uuid.uuid4())

        now = datetime.now(timezone.utc)
        if data.created_at is None:
            data.created_at = now
        data.updated_at = now
        if user_id:
            data.created_by_user_id = user_id

        result = await cls.get_keyspace().insert(cls.to_document(data), key=key)
        return cls(id=key, data=data, cas=result.cas)

    @classmethod
    async def update(cls: type[T], item: T) -> T:
        """Replace a document, guarded by the CAS it was read with (CASMismatchException on a lost race)."""
        collection = await cls.get_keyspace().get_collection()
        item.data.updated_at = datetime.now(timezone.utc)

        doc = cls.to_document(item.data)
        if item.cas:
            result = await collection.replace(item.id, doc, ReplaceOptions(cas=item.cas))
        else:
            result = await collection.replace(item.id, doc)
        item.cas = result.cas
        return item

    @classmethod
    async def delete(cls: type[T], id: str) -> bool:
        try:
            await cls.get_keyspace().remove(id)
            return True
        except DocumentNotFoundException:
            return False

    @classmethod
    async def query(cls: type[T], where: str, order_by: str, consistent: bool = False, **params) -> List[T]:
        """Select entities of this collection matching a N1QL WHERE clause."""
        keyspace = cls.get_keyspace()
        statement = (
            f"SELECT META().id, * FROM {keyspace} "
            f"WHERE {where} "
            f"ORDER BY {order_by}"
        )
        rows = await keyspace.query(statement, consistent=consistent, **params)
        return [entity for entity in (cls.from_row(row) for row in rows) if entity is not None]
