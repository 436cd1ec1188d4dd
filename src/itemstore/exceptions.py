# src/itemstore/exceptions.py
"""
Custom exceptions for the itemstore library.

Store operations deliberately degrade to empty results instead of raising
(see the read/write paths of the backends); the exceptions below are raised
from configuration loading, bounded connection attempts and settings
persistence, and give callers something specific to catch there.
"""


class ItemStoreError(Exception):
    """Base class for all itemstore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in itemstore."):
        super().__init__(message)


class ConfigError(ItemStoreError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)


class StorageError(ItemStoreError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)


class StoreConnectionError(StorageError):
    """
    Raised when a backend cannot be reached within the configured bound.

    The default retry policy is unbounded, in which case this is never raised
    and `connect` simply keeps waiting.
    """
    def __init__(self, url: str = "", database: str = "", message: str = "Could not connect to store."):
        self.url = url
        self.database = database
        super().__init__(f"{message} URL: '{url}', database: '{database}'")


class StoreWriteError(StorageError):
    """Raised when a settings or item file cannot be persisted."""
    def __init__(self, message: str = "Store write error."):
        super().__init__(message)


class CollectionNotFoundError(StorageError):
    """Raised when an operation requires a collection that was never registered."""
    def __init__(self, collection: str, message: str = "Collection not registered."):
        self.collection = collection
        super().__init__(f"{message} Collection: '{collection}'")
