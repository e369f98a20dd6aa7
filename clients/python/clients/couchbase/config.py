import os
import asyncio
import logging
from datetime import timedelta
from typing import List, Optional

from couchbase.auth import PasswordAuthenticator
from acouchbase.cluster import Cluster as AsyncCluster
from couchbase.options import ClusterOptions

logger = logging.getLogger(__name__)

# Environment variables
USERNAME = os.environ.get('COUCHBASE_USERNAME', '')
PASSWORD = os.environ.get('COUCHBASE_PASSWORD', '')
DEFAULT_BUCKET_NAME = os.environ.get('COUCHBASE_BUCKET', '')
HOST = os.environ.get('COUCHBASE_HOST', '')
PROTOCOL = os.environ.get('COUCHBASE_PROTOCOL', '')

VALID_PROTOCOLS = ('couchbase', 'couchbases')

# Module-level cluster cache, owned by the process lifespan
_cluster: Optional[AsyncCluster] = None


def config_errors() -> List[str]:
    """Return the list of problems with the Couchbase environment (empty if valid)."""
    errors = []
    if not USERNAME:
        errors.append("COUCHBASE_USERNAME is missing or empty")
    if not PASSWORD:
        errors.append("COUCHBASE_PASSWORD is missing or empty")
    if not HOST:
        errors.append("COUCHBASE_HOST is missing or empty")
    if not DEFAULT_BUCKET_NAME:
        errors.append("COUCHBASE_BUCKET is missing or empty")
    if PROTOCOL not in VALID_PROTOCOLS:
        errors.append(f"COUCHBASE_PROTOCOL '{PROTOCOL}' is invalid. Must be one of {VALID_PROTOCOLS}")
    return errors


def auth() -> PasswordAuthenticator:
    errors = config_errors()
    if errors:
        raise ValueError("Invalid Couchbase Configuration:\n" + "\n".join(errors))
    return PasswordAuthenticator(USERNAME, PASSWORD)


async def get_cluster(max_retries: int = 10, initial_delay: float = 1.0, max_delay: float = 30.0) -> AsyncCluster:
    """
    Returns the shared Couchbase cluster connection.
    Creates it on first use, retrying with exponential backoff for startup race conditions.
    """
    global _cluster
    if _cluster is None:
        url = PROTOCOL + "://" + HOST
        authenticator = auth()
        delay = initial_delay

        for attempt in range(1, max_retries + 1):
            try:
                cluster = await AsyncCluster.connect(url, ClusterOptions(authenticator))
                break
            except Exception as e:
                if attempt == max_retries:
                    raise
                logger.warning(f"Couchbase connect attempt {attempt} failed: {e}; retrying in {delay:.1f}s")
                await asyncio.sleep(delay)
                delay = min(delay * 2, max_delay)

        await cluster.wait_until_ready(timedelta(seconds=50))
        _cluster = cluster
    return _cluster


async def check_connection():
    """
    Explicitly checks the connection to the Couchbase cluster.
    Useful for startup checks.
    """
    cluster = await get_cluster()
    await cluster.ping()


async def close_cluster():
    """Release the shared cluster connection (called at shutdown)."""
    global _cluster
    if _cluster is not None:
        await _cluster.close()
        _cluster = None
