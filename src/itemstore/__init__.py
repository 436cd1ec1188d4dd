# src/itemstore/__init__.py
"""
itemstore - a generic, schema-less item store with pluggable backends.

Items are bundles of typed maps (strings, booleans, unsigned integers and
nested string maps) with a numeric id, grouped in named collections. A
MongoDB backend and a file-per-item backend implement the same contract;
a one-time merger provisions the former from seed data kept in the latter,
hashing plain-text passwords with Argon2id on the way.
"""

from importlib.metadata import PackageNotFoundError, version

from .config import AppConfig, load_config
from .context import AppContext
from .exceptions import (
    CollectionNotFoundError,
    ConfigError,
    ItemStoreError,
    StorageError,
    StoreConnectionError,
    StoreWriteError,
)
from .models import MAX_ID, Item, ListResult, WriteResult, WriteStatus
from .storage import (
    BaseItemStore,
    FileItemStore,
    MergeReport,
    MongoItemStore,
    RetryPolicy,
    create_store,
    merge_database,
)

try:
    __version__ = version("itemstore")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "AppConfig",
    "AppContext",
    "load_config",
    "Item",
    "ListResult",
    "WriteResult",
    "WriteStatus",
    "MAX_ID",
    "BaseItemStore",
    "MongoItemStore",
    "FileItemStore",
    "RetryPolicy",
    "MergeReport",
    "create_store",
    "merge_database",
    "ItemStoreError",
    "ConfigError",
    "StorageError",
    "StoreConnectionError",
    "StoreWriteError",
    "CollectionNotFoundError",
    "__version__",
]
