# src/itemstore/storage/mongo_store.py
"""
MongoDB implementation of the item store contract.

Every registered collection maps to a MongoDB collection of the same name in
one logical database; items are stored as plain documents with their id in
an ``id`` field (BSON int64). Alongside the remote data the store keeps the
in-process secondary index from `itemstore.storage.index`, which serves
unsorted reads and id allocation without a round-trip.

The index assumes this instance is the only writer of the database. Sorted
reads always query MongoDB and therefore see writes made by other processes;
unsorted reads do not, until `refresh_index` is called.

Requires `pymongo` (>= 4.10) for its native asyncio client.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import bson
from bson.errors import InvalidDocument
from pydantic import ValidationError
from pymongo import ASCENDING, AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.models import MongoConfig, RetryConfig
from ..exceptions import StoreConnectionError
from ..logging_config import log_display
from ..models import Item, ListResult, WriteResult, WriteStatus
from .base_store import BaseItemStore, PageWindow
from .query import parse_filter

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "isabelle"
_INT64_MAX = 2**63 - 1

ClientFactory = Callable[..., Any]
SleepFn = Callable[[float], Awaitable[None]]


def _encodable_filter(filter_text: str) -> Dict[str, Any]:
    """
    Parse `filter_text` into a query MongoDB can accept.

    A filter that is valid JSON but not representable as BSON (integers
    beyond int64, keys containing NUL) matches everything, like any other
    malformed filter.
    """
    query = parse_filter(filter_text)
    try:
        bson.encode(query)
    except (InvalidDocument, OverflowError) as e:
        logger.warning(f"Filter cannot be sent to MongoDB, matching all documents: {e}")
        return {}
    return query


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class RetryPolicy:
    """
    How `connect` waits for an unreachable database.

    Attributes:
        interval: Seconds to wait after the first failed attempt.
        max_attempts: Attempts before giving up with StoreConnectionError;
                      None retries forever.
        backoff_factor: Delay multiplier per failure (1.0 keeps it fixed).
        max_interval: Cap for the delay.
    """
    interval: float = 30.0
    max_attempts: Optional[int] = None
    backoff_factor: float = 1.0
    max_interval: float = 300.0

    @classmethod
    def from_config(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            interval=config.interval_seconds,
            max_attempts=config.max_attempts,
            backoff_factor=config.backoff_factor,
            max_interval=config.max_interval_seconds,
        )

    def next_delay(self, delay: float) -> float:
        return min(delay * self.backoff_factor, self.max_interval)

    def exhausted(self, attempts: int) -> bool:
        return self.max_attempts is not None and attempts >= self.max_attempts


class MongoItemStore(BaseItemStore):
    """
    Item store backed by a MongoDB database.

    Settings, internals and credential files live in the local directory
    passed as the second argument of `connect`.
    """

    max_item_id = _INT64_MAX

    def __init__(
        self,
        database_name: str = DEFAULT_DATABASE_NAME,
        retry_policy: Optional[RetryPolicy] = None,
        server_selection_timeout_ms: int = 5000,
        index_on_connect: bool = False,
        client_factory: Optional[ClientFactory] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        super().__init__()
        self.database_name = database_name
        self.retry_policy = retry_policy or RetryPolicy()
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.index_on_connect = index_on_connect
        self._client_factory: ClientFactory = client_factory or AsyncMongoClient
        self._sleep: SleepFn = sleep or asyncio.sleep
        self._client: Optional[Any] = None
        self._state = ConnectionState.DISCONNECTED

    @classmethod
    def from_config(cls, config: MongoConfig, **kwargs: Any) -> "MongoItemStore":
        return cls(
            database_name=config.database,
            retry_policy=RetryPolicy.from_config(config.retry),
            server_selection_timeout_ms=config.server_selection_timeout_ms,
            index_on_connect=config.index_on_connect,
            **kwargs,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    # --- Connection management ---

    async def connect(self, url: str, alt_url: str) -> None:
        """
        Connect to MongoDB at `url` and register the declared collections.

        Blocks until the database answers a ping, retrying according to the
        retry policy (by default forever, every 30 seconds). Collections are
        taken from the internals document in `alt_url`; their indexes start
        empty unless `index_on_connect` is set.

        Raises:
            StoreConnectionError: Only when the retry policy has a finite
                                  `max_attempts` and all attempts failed.
        """
        self.path = url
        self.local_path = alt_url

        await self._do_connect()
        logger.info(f"Connected {url} / {self.database_name}!")

        for name in await self._declared_collections():
            self._register_collection(name)
            if self.index_on_connect:
                await self.refresh_index(name)
            logger.info(f"Collection {name} registered")

    async def connect_with_timeout(self, url: str, alt_url: str, timeout: float) -> None:
        """
        `connect`, abandoned after `timeout` seconds.

        Raises:
            StoreConnectionError: If the store is not connected in time.
        """
        try:
            await asyncio.wait_for(self.connect(url, alt_url), timeout)
        except asyncio.TimeoutError:
            raise StoreConnectionError(url, self.database_name, f"Not connected within {timeout} seconds.")

    async def _do_connect(self) -> None:
        if self._client is not None:
            return

        self._state = ConnectionState.CONNECTING
        attempts = 0
        delay = self.retry_policy.interval
        try:
            while True:
                attempts += 1
                if await self._try_open():
                    self._state = ConnectionState.CONNECTED
                    return
                if self.retry_policy.exhausted(attempts):
                    self._state = ConnectionState.DISCONNECTED
                    raise StoreConnectionError(
                        self.path, self.database_name, f"MongoDB unreachable after {attempts} attempts."
                    )
                log_display(logger, logging.WARNING, f"Retrying MongoDB connection in {delay:g} seconds")
                await self._sleep(delay)
                delay = self.retry_policy.next_delay(delay)
        except asyncio.CancelledError:
            self._state = ConnectionState.DISCONNECTED
            raise

    async def _try_open(self) -> bool:
        """One connection attempt. The client is lazy, so only a ping proves the server is there."""
        try:
            client = self._client_factory(self.path, serverSelectionTimeoutMS=self.server_selection_timeout_ms)
        except (PyMongoError, ValueError, TypeError) as e:
            log_display(
                logger, logging.WARNING,
                f"MongoDB connection failed ({self.path} / {self.database_name}): {e}",
            )
            return False

        try:
            await client.admin.command("ping")
        except asyncio.CancelledError:
            await self._close_client(client)
            raise
        except PyMongoError as e:
            log_display(
                logger, logging.WARNING,
                f"MongoDB ping failed ({self.path} / {self.database_name}): {e}",
            )
            await self._close_client(client)
            return False

        self._client = client
        return True

    @staticmethod
    async def _close_client(client: Any) -> None:
        try:
            await client.close()
        except PyMongoError as e:
            logger.debug(f"Error closing MongoDB client: {e}")

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._close_client(self._client)
            self._client = None
            logger.info(f"Disconnected {self.path} / {self.database_name}")
        self._state = ConnectionState.DISCONNECTED

    def _collection(self, collection: str) -> Any:
        return self._client[self.database_name][collection]

    # --- Index maintenance ---

    async def refresh_index(self, collection: str) -> int:
        """
        Rebuild the secondary index of `collection` from the remote ids.

        The counter never moves backwards. On error the existing index is
        kept.

        Returns:
            Number of ids now known for the collection.
        """
        index = self._indexes.get(collection)
        if index is None or self._client is None:
            return 0
        ids = []
        try:
            async for doc in self._collection(collection).find({}, {"id": 1, "_id": 0}):
                value = doc.get("id")
                if isinstance(value, int) and value >= 0:
                    ids.append(value)
        except PyMongoError as e:
            logger.warning(f"Could not refresh index of {collection}: {e}")
            return len(index)
        index.rebuild(ids)
        logger.info(f"Indexed {len(ids)} items of {collection} (counter {index.counter})")
        return len(ids)

    # --- Reads ---

    async def get_item(self, collection: str, item_id: int) -> Optional[Item]:
        if self._client is None:
            logger.warning(f"get_item({collection}, {item_id}) while not connected")
            return None
        if item_id > _INT64_MAX:
            return None
        try:
            doc = await self._collection(collection).find_one({"id": item_id})
        except PyMongoError as e:
            logger.debug(f"find_one failed for {collection} id {item_id}: {e}")
            return None
        if doc is None:
            return None
        try:
            return Item.from_document(doc)
        except ValidationError as e:
            logger.warning(f"Malformed document in {collection} id {item_id}: {e}")
            return None

    async def _query_sorted(
        self, collection: str, sort_key: str, filter_text: str, window: PageWindow
    ) -> ListResult:
        result = ListResult()
        if self._client is None:
            logger.warning(f"get_items({collection}) while not connected")
            return result

        query = _encodable_filter(filter_text)
        coll = self._collection(collection)
        try:
            result.total_count = await coll.count_documents(query)
        except PyMongoError as e:
            logger.debug(f"count_documents failed for {collection}: {e}")
            result.total_count = 0

        if window.limit == 0:
            return result

        cursor = coll.find(query).sort(sort_key, ASCENDING).skip(min(window.skip, _INT64_MAX))
        if window.limit is not None:
            cursor = cursor.limit(window.limit)
        try:
            async for doc in cursor:
                try:
                    item = Item.from_document(doc)
                except ValidationError as e:
                    logger.warning(f"Skipping malformed document in {collection}: {e}")
                    continue
                result.map[item.id] = item
        except PyMongoError as e:
            logger.debug(f"Error: {e}")
        return result

    # --- Writes ---

    async def put_item(self, collection: str, item: Item, merge: bool) -> WriteResult:
        index = self._indexes.get(collection)
        if index is None:
            return self._reject_unregistered(collection, item)
        rejected = self._reject_out_of_range(collection, index, item)
        if rejected is not None:
            return rejected

        to_store, existing = await self._resolve_write(collection, index, item, merge)
        operation = "insert_one" if existing is None else "replace_one"
        status = WriteStatus.OK
        error: Optional[str] = None

        if self._client is None:
            status, error = WriteStatus.RETRYABLE, "not connected"
        else:
            coll = self._collection(collection)
            try:
                if existing is None:
                    await coll.insert_one(to_store.to_document())
                else:
                    await coll.replace_one({"id": to_store.id}, to_store.to_document())
            except ConnectionFailure as e:
                status, error = WriteStatus.RETRYABLE, str(e)
            except (PyMongoError, InvalidDocument, OverflowError) as e:
                status, error = WriteStatus.FATAL, str(e)

        if error is None:
            logger.info(f"MongoDB {operation} succeeded for {collection} id {to_store.id}")
        else:
            logger.warning(f"MongoDB {operation} failed for {collection} id {to_store.id}: {error}")

        # The index is updated even for failed writes; callers inspect `status`.
        index.mark_live(to_store.id)
        return WriteResult(id=to_store.id, status=status, error=error)

    async def del_item(self, collection: str, item_id: int) -> bool:
        if self._client is not None and item_id <= _INT64_MAX:
            try:
                await self._collection(collection).delete_one({"id": item_id})
            except PyMongoError as e:
                logger.warning(f"MongoDB delete_one failed for {collection} id {item_id}: {e}")

        index = self._indexes.get(collection)
        if index is None:
            return False
        return index.forget(item_id)
