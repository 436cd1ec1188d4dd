# src/itemstore/storage/index.py
"""
In-process secondary index kept by item store backends.

For every registered collection the index remembers which ids are known to
exist and a high-water-mark counter used to allocate the next id. It is a
cache owned by one store instance: writes made to the same database by
another process are not reflected here until `refresh_index` (or a restart
with indexing enabled) rebuilds it.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional


@dataclass
class CollectionIndex:
    """
    Known ids and the id counter of one collection.

    Invariant: ``counter`` never decreases and is at least the largest id
    ever marked live.
    """
    ids: Dict[int, bool] = field(default_factory=dict)
    counter: int = 0

    def next_id(self) -> int:
        return self.counter + 1

    def mark_live(self, item_id: int) -> None:
        self.ids[item_id] = True
        if item_id > self.counter:
            self.counter = item_id

    def forget(self, item_id: int) -> bool:
        """Drop `item_id`; True if it was known."""
        return self.ids.pop(item_id, None) is not None

    def __contains__(self, item_id: object) -> bool:
        return item_id in self.ids

    def __len__(self) -> int:
        return len(self.ids)

    def ids_in_range(self, id_min: int, id_max: int) -> List[int]:
        """Known ids within ``[id_min, id_max]`` in ascending order."""
        return sorted(i for i in self.ids if id_min <= i <= id_max)

    def copy_ids(self) -> Dict[int, bool]:
        return dict(self.ids)

    def rebuild(self, item_ids: Iterable[int]) -> None:
        """Replace the known ids; the counter only moves forward."""
        self.ids = {}
        for item_id in item_ids:
            self.mark_live(item_id)


class IndexRegistry:
    """Ordered mapping of collection name to its `CollectionIndex`."""

    def __init__(self) -> None:
        self._indexes: Dict[str, CollectionIndex] = {}

    def register(self, collection: str) -> CollectionIndex:
        """Register `collection` with an empty index; a no-op if already known."""
        index = self._indexes.get(collection)
        if index is None:
            index = CollectionIndex()
            self._indexes[collection] = index
        return index

    def get(self, collection: str) -> Optional[CollectionIndex]:
        return self._indexes.get(collection)

    def names(self) -> List[str]:
        return list(self._indexes)

    def clear(self) -> None:
        self._indexes.clear()

    def __contains__(self, collection: object) -> bool:
        return collection in self._indexes

    def __iter__(self) -> Iterator[str]:
        return iter(self._indexes)

    def __len__(self) -> int:
        return len(self._indexes)
