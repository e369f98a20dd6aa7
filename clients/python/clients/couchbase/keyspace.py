import uuid
from dataclasses import dataclass
from typing import Optional

from couchbase.result import MutationResult
from couchbase.n1ql import QueryScanConsistency
from couchbase.options import QueryOptions

from .config import get_cluster, DEFAULT_BUCKET_NAME


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str

    def __str__(self) -> str:
        return f"`{self.bucket_name}`.`{self.scope_name}`.`{self.collection_name}`"

    async def query(self, query: str, consistent: bool = False, **params) -> list:
        """Run a N1QL query with named parameters.

        With ``consistent=True`` the query waits for the index to catch up
        with every mutation made before it (REQUEST_PLUS), so a write is
        visible to the next read.
        """
        cluster = await get_cluster()
        options = QueryOptions(named_parameters=params)
        if consistent:
            options = QueryOptions(
                named_parameters=params,
                scan_consistency=QueryScanConsistency.REQUEST_PLUS,
            )
        result = cluster.query(query, options)
        return [row async for row in result]

    async def get_collection(self):
        cluster = await get_cluster()
        bucket = cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name).collection(self.collection_name)

    async def insert(self, value: dict, key: Optional[str] = None, **kwargs) -> MutationResult:
        """Insert a new document; fails with DocumentExistsException if the key is taken."""
        if key is None:
            key = str(uuid.uuid4())
        collection = await self.get_collection()
        return await collection.insert(key, value, **kwargs)

    async def remove(self, key: str, **kwargs) -> int:
        collection = await self.get_collection()
        result = await collection.remove(key, **kwargs)
        return result.cas


def get_keyspace(collection_name: str, scope_name: str = "_default", bucket_name: Optional[str] = None) -> Keyspace:
    """
    Create a Keyspace instance with optional scope and bucket parameters.

    Args:
        collection_name: Name of the collection
        scope_name: Name of the scope (defaults to "_default")
        bucket_name: Name of the bucket (defaults to COUCHBASE_BUCKET)
    """
    return Keyspace(bucket_name or DEFAULT_BUCKET_NAME, scope_name, collection_name)
