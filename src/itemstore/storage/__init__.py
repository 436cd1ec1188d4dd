# src/itemstore/storage/__init__.py
"""
Storage backends for the itemstore library.

`BaseItemStore` defines the contract; `MongoItemStore` (MongoDB) and
`FileItemStore` (one JSON file per item) implement it. `merge_database`
copies one store into another for first-run provisioning.
"""

from .base_store import BaseItemStore
from .file_store import FileItemStore
from .index import CollectionIndex, IndexRegistry
from .manager import STORE_MAP, create_store, store_addresses
from .merger import MergeReport, merge_database
from .mongo_store import ConnectionState, MongoItemStore, RetryPolicy

__all__ = [
    "BaseItemStore",
    "MongoItemStore",
    "FileItemStore",
    "ConnectionState",
    "RetryPolicy",
    "CollectionIndex",
    "IndexRegistry",
    "STORE_MAP",
    "create_store",
    "store_addresses",
    "MergeReport",
    "merge_database",
]
