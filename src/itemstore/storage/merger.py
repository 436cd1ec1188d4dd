# src/itemstore/storage/merger.py
"""
One-time copy of every collection from one store into another.

Used for first-run provisioning: seed data kept in a file store is pushed
into the primary store. Plain-text passwords in the ``user`` collection are
hashed on the way. The copy is neither resumable nor transactional; failed
writes are logged, counted and skipped.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from ..models import Item
from ..utils.crypto import get_new_salt, get_password_hash, is_hashed_password
from .base_store import BaseItemStore

logger = logging.getLogger(__name__)

USER_COLLECTION = "user"
PASSWORD_FIELD = "password"


@dataclass
class MergeReport:
    """Counters describing one `merge_database` run."""
    collections: int = 0
    items_written: int = 0
    passwords_hashed: int = 0
    failed_writes: int = 0
    failed_ids: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed_writes == 0


def _hash_plaintext_password(item: Item) -> bool:
    password = item.safe_str(PASSWORD_FIELD)
    if not password or is_hashed_password(password):
        return False
    logger.info(f"Hashing plain-text password for user id {item.id}")
    item.set_str(PASSWORD_FIELD, get_password_hash(password, get_new_salt()))
    return True


async def merge_database(source: BaseItemStore, destination: BaseItemStore) -> MergeReport:
    """
    Copy all items of `source` into `destination`, keeping their ids.

    Items are written in ascending id order with ``merge=False``, so an
    existing destination item with the same id is replaced.
    """
    report = MergeReport()
    for collection in await source.get_collections():
        logger.info(f"Merge collection: {collection}")
        report.collections += 1
        items = await source.get_all_items(collection, "id", "")
        for item in items.ordered():
            logger.info(f"Setting {collection} item {item.id}")
            item = item.model_copy(deep=True)
            if collection == USER_COLLECTION and _hash_plaintext_password(item):
                report.passwords_hashed += 1

            result = await destination.put_item(collection, item, False)
            if result.ok:
                report.items_written += 1
            else:
                report.failed_writes += 1
                report.failed_ids.append(f"{collection}/{item.id}")
                logger.error(f"Merge of {collection} item {item.id} failed ({result.status.value}): {result.error}")

    logger.info(
        f"Merge finished: {report.collections} collections, {report.items_written} items, "
        f"{report.passwords_hashed} passwords hashed, {report.failed_writes} failures"
    )
    return report
