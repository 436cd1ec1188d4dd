# tests/conftest.py
"""
Shared fixtures for the itemstore test-suite.

Provides an in-memory stand-in for pymongo's ``AsyncMongoClient`` so the
MongoDB backend can be exercised without a server, plus helpers that lay out
seed data in the file-store format.

Usage:
    async def test_something(mongo_server, make_mongo_store):
        store = make_mongo_store()
        await store.connect("mongodb://fake", str(tmp_path))
"""

import asyncio
import copy
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import bson
import pytest
from pymongo.errors import ConfigurationError, ServerSelectionTimeoutError

from itemstore.storage.mongo_store import MongoItemStore, RetryPolicy
from itemstore.storage.query import matches, sort_key_for

# =============================================================================
# IN-MEMORY MONGODB
# =============================================================================


class FakeCursor:
    """Lazy cursor supporting sort/skip/limit chaining and ``async for``."""

    def __init__(self, collection: "FakeCollection", query: Dict[str, Any], projection: Optional[Dict[str, Any]]):
        self._collection = collection
        self._query = query
        self._projection = projection
        self._sort: Optional[str] = None
        self._skip = 0
        self._limit = 0

    def sort(self, key: str, direction: int = 1) -> "FakeCursor":
        self._sort = key
        return self

    def skip(self, n: int) -> "FakeCursor":
        self._skip = n
        return self

    def limit(self, n: int) -> "FakeCursor":
        self._limit = n
        return self

    def _results(self) -> List[Dict[str, Any]]:
        server = self._collection.server
        if server.read_error is not None:
            raise server.read_error
        # the driver encodes the query when the cursor is first iterated
        bson.encode(self._query)
        docs = [d for d in self._collection.docs if matches(d, self._query)]
        if self._sort:
            docs.sort(key=sort_key_for(self._sort))
        docs = docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        if self._projection:
            keep = [k for k, v in self._projection.items() if v]
            docs = [{k: d[k] for k in keep if k in d} for d in docs]
        return [copy.deepcopy(d) for d in docs]

    def __aiter__(self):
        self._iter = iter(self._results())
        return self

    async def __anext__(self) -> Dict[str, Any]:
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


class FakeCollection:
    def __init__(self, server: "FakeMongoServer", name: str):
        self.server = server
        self.name = name
        self.docs: List[Dict[str, Any]] = []

    def _check_write(self) -> None:
        if self.server.write_error is not None:
            raise self.server.write_error

    def _find_index(self, query: Dict[str, Any]) -> Optional[int]:
        for i, doc in enumerate(self.docs):
            if matches(doc, query):
                return i
        return None

    async def find_one(self, query: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.server.read_error is not None:
            raise self.server.read_error
        i = self._find_index(query)
        return None if i is None else copy.deepcopy(self.docs[i])

    def find(self, query: Optional[Dict[str, Any]] = None, projection: Optional[Dict[str, Any]] = None) -> FakeCursor:
        return FakeCursor(self, query or {}, projection)

    async def count_documents(self, query: Dict[str, Any]) -> int:
        if self.server.read_error is not None:
            raise self.server.read_error
        bson.encode(query)
        return sum(1 for d in self.docs if matches(d, query))

    async def insert_one(self, document: Dict[str, Any]) -> None:
        self._check_write()
        self.server.next_object_id += 1
        doc = copy.deepcopy(document)
        doc["_id"] = f"oid{self.server.next_object_id}"
        self.docs.append(doc)
        self.server.operations.append(("insert_one", self.name, doc["id"]))

    async def replace_one(self, query: Dict[str, Any], document: Dict[str, Any]) -> None:
        self._check_write()
        i = self._find_index(query)
        if i is not None:
            doc = copy.deepcopy(document)
            doc["_id"] = self.docs[i]["_id"]
            self.docs[i] = doc
        self.server.operations.append(("replace_one", self.name, document["id"]))

    async def delete_one(self, query: Dict[str, Any]) -> None:
        self._check_write()
        i = self._find_index(query)
        if i is not None:
            del self.docs[i]
        self.server.operations.append(("delete_one", self.name, query.get("id")))


class FakeDatabase:
    def __init__(self, server: "FakeMongoServer", name: str):
        self.server = server
        self.name = name
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(self.server, name)
        return self.collections[name]


class FakeAdmin:
    def __init__(self, server: "FakeMongoServer"):
        self.server = server

    async def command(self, name: str) -> Dict[str, Any]:
        self.server.pings += 1
        if self.server.ping_delay:
            await asyncio.sleep(self.server.ping_delay)
        if self.server.ping_failures > 0:
            self.server.ping_failures -= 1
            raise ServerSelectionTimeoutError("No servers found yet")
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, server: "FakeMongoServer"):
        self.server = server
        self.admin = FakeAdmin(server)
        self.closed = False

    def __getitem__(self, name: str) -> FakeDatabase:
        return self.server.database(name)

    async def close(self) -> None:
        self.closed = True


class FakeMongoServer:
    """
    Shared state of all fake clients; also acts as the client factory.

    Attributes:
        ping_failures: Number of upcoming pings that fail.
        ping_delay: Seconds every ping takes before answering.
        construction_failures: Number of upcoming client constructions that fail.
        write_error: Exception raised by every write while set.
        read_error: Exception raised by every read while set.
    """

    def __init__(self):
        self.databases: Dict[str, FakeDatabase] = {}
        self.clients: List[FakeMongoClient] = []
        self.factory_calls: List[Dict[str, Any]] = []
        self.operations: List[tuple] = []
        self.ping_failures = 0
        self.ping_delay = 0.0
        self.construction_failures = 0
        self.pings = 0
        self.next_object_id = 0
        self.write_error: Optional[Exception] = None
        self.read_error: Optional[Exception] = None

    def database(self, name: str) -> FakeDatabase:
        if name not in self.databases:
            self.databases[name] = FakeDatabase(self, name)
        return self.databases[name]

    def __call__(self, url: str, **kwargs: Any) -> FakeMongoClient:
        self.factory_calls.append({"url": url, **kwargs})
        if self.construction_failures > 0:
            self.construction_failures -= 1
            raise ConfigurationError("Bad URI")
        client = FakeMongoClient(self)
        self.clients.append(client)
        return client


class RecordingSleep:
    """Replacement for asyncio.sleep that records delays and returns immediately."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# =============================================================================
# SEED DATA HELPERS
# =============================================================================


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")


def _write_internals(root: Path, collections: List[str], **strstrs: Dict[str, str]) -> None:
    """Write an internals.js declaring `collections` (plus any extra strstrs maps)."""
    maps = {"collections": {str(i): name for i, name in enumerate(collections)}}
    maps.update(strstrs)
    _write_json(root / "internals.js", {"id": 0, "strstrs": maps})


def _write_item(root: Path, collection: str, item_id: int, **fields: Any) -> None:
    _write_json(root / "collection" / collection / f"{item_id}.js", {"id": item_id, **fields})


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mongo_server() -> FakeMongoServer:
    return FakeMongoServer()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_mongo_store(mongo_server, recording_sleep):
    """Factory for MongoItemStore instances wired to the fake server."""
    def _make(**kwargs: Any) -> MongoItemStore:
        kwargs.setdefault("client_factory", mongo_server)
        kwargs.setdefault("sleep", recording_sleep)
        kwargs.setdefault("retry_policy", RetryPolicy(interval=30.0))
        return MongoItemStore(**kwargs)
    return _make


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """A data directory declaring the `user` and `item` collections."""
    root = tmp_path / "data"
    _write_internals(root, ["user", "item"])
    return root


@pytest.fixture
def write_internals():
    """Helper writing an internals.js: ``write_internals(root, ["user"], extra_route={...})``."""
    return _write_internals


@pytest.fixture
def write_item():
    """Helper writing one item file: ``write_item(root, "user", 3, strs={...})``."""
    return _write_item
