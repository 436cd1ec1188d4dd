# tests/storage/test_merger.py
"""
Tests for merge_database (first-run provisioning).

Covers:
- Every source collection and item is copied with its id
- Plain-text user passwords are hashed; existing hashes pass through unchanged
- Other collections are never touched by password handling
- Failed writes are counted, not raised
"""

import pytest
from pymongo.errors import OperationFailure

from itemstore.models import Item
from itemstore.storage.file_store import FileItemStore
from itemstore.storage.merger import MergeReport, merge_database
from itemstore.utils.crypto import get_new_salt, get_password_hash, is_hashed_password, verify_password

URL = "mongodb://fake:27017"


@pytest.fixture
def seed_dir(tmp_path, write_internals, write_item):
    root = tmp_path / "seed"
    write_internals(root, ["user", "item"])
    write_item(root, "user", 1, strs={"login": "admin", "password": "admin"})
    write_item(root, "user", 2, strs={"login": "nopw"})
    write_item(root, "item", 3, strs={"name": "widget", "password": "not-a-user"})
    write_item(root, "item", 1, strs={"name": "gadget"})
    return root


async def _open_seed(root) -> FileItemStore:
    seed = FileItemStore()
    await seed.connect(str(root), "")
    return seed


class TestMergeDatabase:

    @pytest.mark.asyncio
    async def test_copies_everything_with_ids(self, seed_dir, make_mongo_store, mongo_server):
        seed = await _open_seed(seed_dir)
        dest = make_mongo_store()
        await dest.connect(URL, str(seed_dir))

        report = await merge_database(seed, dest)

        assert report == MergeReport(collections=2, items_written=4, passwords_hashed=1, failed_writes=0)
        assert report.ok
        assert await dest.get_item_ids("user") == {1: True, 2: True}
        assert await dest.get_item_ids("item") == {1: True, 3: True}
        # written in ascending id order without merging
        ops = [op for op in mongo_server.operations if op[1] == "item"]
        assert ops == [("insert_one", "item", 1), ("insert_one", "item", 3)]
        # counters continue after the copied ids
        assert await dest.set_item("item", Item(), False) == 4

    @pytest.mark.asyncio
    async def test_plaintext_password_is_hashed(self, seed_dir, make_mongo_store):
        seed = await _open_seed(seed_dir)
        dest = make_mongo_store()
        await dest.connect(URL, str(seed_dir))
        await merge_database(seed, dest)

        stored = (await dest.get_item("user", 1)).safe_str("password")
        assert is_hashed_password(stored)
        assert verify_password("admin", stored)
        assert (await dest.get_item("user", 2)).safe_str("password") == ""
        # the source is left untouched
        assert (await seed.get_item("user", 1)).safe_str("password") == "admin"

    @pytest.mark.asyncio
    async def test_existing_hash_copied_unchanged(self, tmp_path, write_internals, write_item):
        existing = get_password_hash("s3cret", get_new_salt())
        root = tmp_path / "seed"
        write_internals(root, ["user"])
        write_item(root, "user", 5, strs={"login": "bob", "password": existing})

        seed = await _open_seed(root)
        dest = FileItemStore()
        await dest.connect(str(tmp_path / "dest"), str(root))

        report = await merge_database(seed, dest)
        assert report.passwords_hashed == 0
        assert (await dest.get_item("user", 5)).safe_str("password") == existing

    @pytest.mark.asyncio
    async def test_password_in_other_collections_untouched(self, seed_dir, make_mongo_store):
        seed = await _open_seed(seed_dir)
        dest = make_mongo_store()
        await dest.connect(URL, str(seed_dir))
        await merge_database(seed, dest)
        assert (await dest.get_item("item", 3)).safe_str("password") == "not-a-user"

    @pytest.mark.asyncio
    async def test_failed_writes_are_reported(self, seed_dir, make_mongo_store, mongo_server):
        seed = await _open_seed(seed_dir)
        dest = make_mongo_store()
        await dest.connect(URL, str(seed_dir))
        mongo_server.write_error = OperationFailure("unauthorized")

        report = await merge_database(seed, dest)

        assert report.failed_writes == 4
        assert report.items_written == 0
        assert not report.ok
        assert "user/1" in report.failed_ids

    @pytest.mark.asyncio
    async def test_empty_source(self, tmp_path, make_mongo_store):
        seed = await _open_seed(tmp_path / "nothing")
        dest = make_mongo_store()
        await dest.connect(URL, str(tmp_path))
        assert await merge_database(seed, dest) == MergeReport()
