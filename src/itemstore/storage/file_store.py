# src/itemstore/storage/file_store.py
"""
File-backed item store.

Each item is a JSON file named after its id under a directory per
collection::

    <root>/collection/<name>/<id>.js
    <root>/internals.js
    <root>/settings.js

This is the seed-data format used for first-run provisioning, and a
complete backend for single-user or offline deployments. Sorted reads are
evaluated in-process with `itemstore.storage.query`. File operations are
asynchronous (aiofiles).
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles.os as aios

from ..exceptions import StoreWriteError
from ..models import MAX_ID, Item, ListResult, WriteResult, WriteStatus
from .base_store import BaseItemStore, PageWindow
from .item_files import read_item_file, save_item_file
from .query import matches, parse_filter, sort_key_for

logger = logging.getLogger(__name__)

COLLECTION_DIR = "collection"
ITEM_FILE_SUFFIX = ".js"

_COLLECTION_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


class FileItemStore(BaseItemStore):
    """Item store persisting every item as its own JSON file."""

    def __init__(self) -> None:
        super().__init__()
        self._root: Optional[Path] = None

    @property
    def collection_root(self) -> Path:
        return Path(self.path) / COLLECTION_DIR

    def _collection_dir(self, collection: str) -> Path:
        return self.collection_root / collection

    def _item_path(self, collection: str, item_id: int) -> Path:
        return self._collection_dir(collection) / f"{item_id}{ITEM_FILE_SUFFIX}"

    # --- Connection management ---

    async def connect(self, url: str, alt_url: str) -> None:
        """
        Open the data directory `url` and index every collection found there.

        Collections are the subdirectories of ``<url>/collection`` plus the
        names declared in the internals document. Settings and internals are
        read from `alt_url`, or from `url` itself when `alt_url` is empty.
        """
        self.path = url
        self.local_path = alt_url or url
        self._root = Path(url)

        names: List[str] = []
        if await aios.path.isdir(self.collection_root):
            for entry in sorted(await aios.listdir(self.collection_root)):
                if await aios.path.isdir(self.collection_root / entry):
                    names.append(entry)
        for name in await self._declared_collections():
            if name not in names:
                names.append(name)

        for name in names:
            if not _COLLECTION_NAME.match(name):
                logger.warning(f"Skipping collection with unusable name {name!r}")
                continue
            index = self._register_collection(name)
            index.rebuild(await self._scan_ids(name))
            logger.info(f"Collection {name} registered with {len(index)} items (counter {index.counter})")

        logger.info(f"File store opened at {self._root.resolve()}")

    async def disconnect(self) -> None:
        if self._root is not None:
            logger.info(f"File store at {self._root} closed")
        self._root = None

    async def _scan_ids(self, collection: str) -> List[int]:
        """Ids of the item files currently present for `collection`."""
        directory = self._collection_dir(collection)
        if not await aios.path.isdir(directory):
            return []
        ids = []
        for filename in await aios.listdir(directory):
            stem, suffix = filename[:-len(ITEM_FILE_SUFFIX)], filename[-len(ITEM_FILE_SUFFIX):]
            if suffix != ITEM_FILE_SUFFIX or not (stem.isascii() and stem.isdecimal()):
                continue
            item_id = int(stem)
            if item_id <= self.max_item_id:
                ids.append(item_id)
        return ids

    # --- Reads ---

    async def get_item(self, collection: str, item_id: int) -> Optional[Item]:
        if collection not in self._indexes or item_id >= MAX_ID:
            return None
        item = await read_item_file(self._item_path(collection, item_id))
        if item is None:
            return None
        # The file name is authoritative for the id.
        item.id = item_id
        return item

    async def _load_documents(self, collection: str) -> List[Dict[str, Any]]:
        documents = []
        for item_id in sorted(await self._scan_ids(collection)):
            item = await self.get_item(collection, item_id)
            if item is not None:
                documents.append(item.to_document())
        return documents

    async def _query_sorted(
        self, collection: str, sort_key: str, filter_text: str, window: PageWindow
    ) -> ListResult:
        query = parse_filter(filter_text)
        documents = [doc for doc in await self._load_documents(collection) if matches(doc, query)]
        documents.sort(key=sort_key_for(sort_key))

        result = ListResult(total_count=len(documents))
        if window.limit == 0:
            return result
        end = None if window.limit is None else window.skip + window.limit
        for doc in documents[window.skip:end]:
            item = Item.from_document(doc)
            result.map[item.id] = item
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
        status = WriteStatus.OK
        error: Optional[str] = None
        try:
            await save_item_file(self._item_path(collection, to_store.id), to_store)
            logger.debug(f"{'Replaced' if existing else 'Created'} {collection} item {to_store.id}")
        except StoreWriteError as e:
            status, error = WriteStatus.FATAL, str(e)
            logger.warning(f"Writing {collection} item {to_store.id} failed: {e}")

        index.mark_live(to_store.id)
        return WriteResult(id=to_store.id, status=status, error=error)

    async def del_item(self, collection: str, item_id: int) -> bool:
        index = self._indexes.get(collection)
        if index is None:
            return False
        path = self._item_path(collection, item_id)
        try:
            await aios.remove(path)
        except FileNotFoundError:
            logger.debug(f"No file to delete for {collection} item {item_id}")
        except OSError as e:
            logger.warning(f"Cannot delete {path}: {e}")
        return index.forget(item_id)
