# src/itemstore/storage/base_store.py
"""
Abstract Base Class for item store backends.

This module defines the contract every backend implements: connection
management, collection and id enumeration, single and paginated reads,
insert-or-merge writes, deletes, and access to the per-store settings and
internals documents.

All operations are coroutines. Apart from the bounded-connect variants,
they do not raise on bad input or backend faults: reads degrade to None or
an empty ListResult, writes report their outcome through WriteResult, and
the details go to the log.
"""

import abc
import logging
import os
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..models import MAX_ID, Item, ListResult, WriteResult, WriteStatus
from .index import CollectionIndex, IndexRegistry
from .item_files import load_item_file, save_item_file

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.js"
INTERNALS_FILE = "internals.js"
CREDENTIALS_FILE = "credentials.json"
TOKEN_CACHE_FILE = "token.pickle"

_INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class PageWindow:
    """
    Normalized arguments of a paginated read.

    Attributes:
        id_min: Lower bound of the id range (MAX_ID input becomes 0).
        id_max: Upper bound of the id range, inclusive.
        skip: Rows to skip (MAX_ID input becomes 0).
        limit: Maximum rows to return, None when unbounded.
        sorted_mode: True when the read is served by the backend query
                     engine (sort key given and no explicit lower bound).
    """
    id_min: int
    id_max: int
    skip: int
    limit: Optional[int]
    sorted_mode: bool

    @classmethod
    def build(cls, id_min: int, id_max: int, sort_key: str, skip: int, limit: int) -> "PageWindow":
        sorted_mode = False
        if id_min == MAX_ID:
            id_min = 0
            sorted_mode = sort_key != ""
        if skip == MAX_ID:
            skip = 0
        return cls(
            id_min=id_min,
            id_max=id_max,
            skip=skip,
            limit=None if limit > _INT64_MAX else limit,
            sorted_mode=sorted_mode,
        )


class BaseItemStore(abc.ABC):
    """
    Abstract Base Class for item stores.

    Concrete stores own an `IndexRegistry` with one `CollectionIndex` per
    registered collection, and a local directory (`local_path`) holding the
    settings, internals and credential files.
    """

    #: Largest id the backend can persist; MAX_ID itself is the unassigned sentinel.
    max_item_id: int = MAX_ID - 1

    def __init__(self) -> None:
        self.path: str = ""
        self.local_path: str = ""
        self._indexes = IndexRegistry()

    # --- Connection management ---

    @abc.abstractmethod
    async def connect(self, url: str, alt_url: str) -> None:
        """
        Connect to the backend and register its collections.

        Args:
            url: Primary address (database URI or data directory).
            alt_url: Local directory for settings/internals/credential files.
        """

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Release backend resources. Safe to call more than once."""

    # --- Collections and ids ---

    async def get_collections(self) -> List[str]:
        """Names of the collections registered at connect time."""
        return self._indexes.names()

    async def get_item_ids(self, collection: str) -> Dict[int, bool]:
        """Copy of the known ids of `collection`; empty for unknown collections."""
        index = self._indexes.get(collection)
        if index is None:
            return {}
        return index.copy_ids()

    def _register_collection(self, collection: str) -> CollectionIndex:
        logger.info(f"Registering collection: {collection}")
        return self._indexes.register(collection)

    # --- Reads ---

    @abc.abstractmethod
    async def get_item(self, collection: str, item_id: int) -> Optional[Item]:
        """Return the item stored under `item_id`, or None."""

    @abc.abstractmethod
    async def _query_sorted(
        self, collection: str, sort_key: str, filter_text: str, window: PageWindow
    ) -> ListResult:
        """Serve a sorted-mode read from the backend's own query engine."""

    async def get_items(
        self,
        collection: str,
        id_min: int,
        id_max: int,
        sort_key: str,
        filter_text: str,
        skip: int,
        limit: int,
    ) -> ListResult:
        """
        Read a page of items.

        Sorted mode (``id_min == MAX_ID`` and a non-empty `sort_key`): the
        filter, an ascending sort on `sort_key`, skip and limit are evaluated
        against the authoritative store, and `total_count` counts every
        filter match.

        Unsorted mode: ids are taken from the secondary index in ascending
        order within ``[id_min, id_max]``, each item is fetched, skip/limit
        are applied in-process, `total_count` is the number of indexed ids in
        the range, and `filter_text` is ignored.
        """
        index = self._indexes.get(collection)
        if index is None:
            logger.warning(f"get_items on unregistered collection '{collection}'")
            return ListResult()

        window = PageWindow.build(id_min, id_max, sort_key, skip, limit)
        logger.debug(
            f"Getting {collection} in range {window.id_min} - {window.id_max} skip {window.skip} "
            f"limit {window.limit} sort key '{sort_key}' (sorted {window.sorted_mode}) filter '{filter_text}'"
        )
        if window.sorted_mode:
            result = await self._query_sorted(collection, sort_key, filter_text, window)
        else:
            result = await self._page_from_index(collection, index, window)
        logger.debug(f" - result: {len(result.map)} items, total {result.total_count}")
        return result

    async def _page_from_index(self, collection: str, index: CollectionIndex, window: PageWindow) -> ListResult:
        result = ListResult()
        in_range = index.ids_in_range(window.id_min, window.id_max)
        result.total_count = len(in_range)
        if window.limit == 0:
            return result

        seen = 0
        for item_id in in_range:
            item = await self.get_item(collection, item_id)
            if item is None:
                continue
            if seen >= window.skip:
                result.map[item_id] = item
                if window.limit is not None and len(result.map) >= window.limit:
                    break
            seen += 1
        return result

    async def get_all_items(self, collection: str, sort_key: str, filter_text: str) -> ListResult:
        """Every item of `collection` (no range, skip or limit)."""
        return await self.get_items(collection, MAX_ID, MAX_ID, sort_key, filter_text, MAX_ID, MAX_ID)

    # --- Writes ---

    @abc.abstractmethod
    async def put_item(self, collection: str, item: Item, merge: bool) -> WriteResult:
        """
        Insert or update `item`, reporting the outcome.

        A MAX_ID id is replaced by the collection counter + 1. Internal flags
        are stripped. With `merge` the item is overlaid onto the stored one,
        otherwise it replaces it. The index and counter are updated even when
        the backend rejected the write; the returned status tells them apart.
        Ids beyond `max_item_id` are rejected as fatal before the index is
        touched.
        """

    async def set_item(self, collection: str, item: Item, merge: bool) -> int:
        """Write `item` and return its final id (see `put_item` for the outcome)."""
        return (await self.put_item(collection, item, merge)).id

    def _reject_unregistered(self, collection: str, item: Item) -> WriteResult:
        logger.warning(f"Rejecting write to unregistered collection '{collection}' (id {item.id})")
        return WriteResult(id=item.id, status=WriteStatus.FATAL, error=f"collection '{collection}' is not registered")

    def _reject_out_of_range(self, collection: str, index: CollectionIndex, item: Item) -> Optional[WriteResult]:
        """A fatal result if the id `item` would be stored under is beyond `max_item_id`, else None."""
        item_id = index.next_id() if item.id == MAX_ID else item.id
        if item_id <= self.max_item_id:
            return None
        logger.warning(f"Rejecting {collection} item {item_id}: ids above {self.max_item_id} cannot be stored")
        return WriteResult(
            id=item_id, status=WriteStatus.FATAL, error=f"id {item_id} exceeds the largest storable id {self.max_item_id}"
        )

    async def _resolve_write(
        self, collection: str, index: CollectionIndex, item: Item, merge: bool
    ) -> Tuple[Item, Optional[Item]]:
        """
        Work out what a write should persist.

        Returns:
            The item to store (id assigned, internal flags removed, merged
            when requested) and the currently stored item, if any.
        """
        incoming = item.model_copy(deep=True)
        if incoming.id == MAX_ID:
            incoming.id = index.next_id()

        existing = await self.get_item(collection, incoming.id)
        if existing is not None and merge:
            to_store = existing.model_copy(deep=True).merge(incoming)
        else:
            to_store = incoming
        return to_store.strip_internal(), existing

    @abc.abstractmethod
    async def del_item(self, collection: str, item_id: int) -> bool:
        """
        Delete `item_id`.

        Returns:
            True only if the id was present in the secondary index.
        """

    # --- Singleton documents and derived paths ---

    def _local_file(self, name: str) -> str:
        return os.path.join(self.local_path, name)

    async def get_settings(self) -> Item:
        return await load_item_file(self._local_file(SETTINGS_FILE))

    async def set_settings(self, item: Item) -> None:
        """
        Overwrite the settings document.

        Raises:
            StoreWriteError: If the file cannot be written.
        """
        await save_item_file(self._local_file(SETTINGS_FILE), item)

    async def get_internals(self) -> Item:
        return await load_item_file(self._local_file(INTERNALS_FILE))

    async def get_credentials_path(self) -> str:
        return self._local_file(CREDENTIALS_FILE)

    async def get_token_cache_path(self) -> str:
        return self._local_file(TOKEN_CACHE_FILE)

    async def _declared_collections(self) -> List[str]:
        """Collection names listed in the internals document's `collections` map."""
        internals = await self.get_internals()
        collections = internals.safe_strstr("collections")
        logger.debug(f"Collections: {len(collections)}")
        return list(collections.values())
