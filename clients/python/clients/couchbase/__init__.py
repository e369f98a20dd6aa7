from .config import (
    DEFAULT_BUCKET_NAME,
    HOST,
    PROTOCOL,
    auth,
    config_errors,
    get_cluster,
    check_connection,
    close_cluster,
)
from .keyspace import (
    Keyspace,
    get_keyspace,
)
from .base_model import (
    BaseModelCouchbase,
    BaseCouchbaseEntityData,
    DataT,
    T,
)

from couchbase.exceptions import (
    CASMismatchException,
    CouchbaseException,
    DocumentExistsException,
    DocumentNotFoundException,
)
