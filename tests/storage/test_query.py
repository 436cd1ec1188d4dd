# tests/storage/test_query.py
"""
Tests for filter parsing and in-process query evaluation.
"""

import pytest

from itemstore.storage.query import matches, parse_filter, sort_key_for

DOC = {
    "id": 7,
    "strs": {"login": "admin", "name": "Ada"},
    "bools": {"active": True},
    "u64s": {"age": 36},
    "strstrs": {},
}


class TestParseFilter:

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]", "42", '"str"', "{broken"])
    def test_match_all_fallback(self, text):
        assert parse_filter(text) == {}

    def test_object(self):
        assert parse_filter('{"strs.login": "admin"}') == {"strs.login": "admin"}


class TestMatches:

    def test_empty_query_matches(self):
        assert matches(DOC, {})

    def test_implicit_equality_dotted(self):
        assert matches(DOC, {"strs.login": "admin"})
        assert not matches(DOC, {"strs.login": "root"})

    def test_missing_field(self):
        assert not matches(DOC, {"strs.email": "x"})
        assert matches(DOC, {"strs.email": None})
        assert matches(DOC, {"strs.email": {"$exists": False}})
        assert matches(DOC, {"strs.login": {"$exists": True}})

    def test_comparisons(self):
        assert matches(DOC, {"u64s.age": {"$gt": 30, "$lte": 36}})
        assert not matches(DOC, {"u64s.age": {"$lt": 36}})
        assert matches(DOC, {"id": {"$gte": 7}})
        assert not matches(DOC, {"u64s.age": {"$gt": "10"}})

    def test_ne_in_nin(self):
        assert matches(DOC, {"strs.name": {"$ne": "Bob"}})
        assert matches(DOC, {"strs.name": {"$in": ["Ada", "Bob"]}})
        assert not matches(DOC, {"strs.name": {"$nin": ["Ada"]}})

    def test_bool_does_not_equal_int(self):
        assert matches(DOC, {"bools.active": True})
        assert not matches(DOC, {"bools.active": 1})

    def test_logical_operators(self):
        assert matches(DOC, {"$or": [{"strs.login": "x"}, {"strs.login": "admin"}]})
        assert not matches(DOC, {"$and": [{"strs.login": "admin"}, {"u64s.age": 1}]})
        assert matches(DOC, {"$nor": [{"strs.login": "x"}]})

    def test_unknown_operator_never_matches(self):
        assert not matches(DOC, {"strs.login": {"$regex": "ad"}})
        assert not matches(DOC, {"$where": "true"})


class TestSortKey:

    def test_missing_values_first_then_numbers_then_strings(self):
        docs = [
            {"id": 1, "v": "b"},
            {"id": 2},
            {"id": 3, "v": 5},
            {"id": 4, "v": "a"},
            {"id": 5, "v": 1},
        ]
        ordered = sorted(docs, key=sort_key_for("v"))
        assert [d["id"] for d in ordered] == [2, 5, 3, 4, 1]

    def test_dotted_path(self):
        docs = [{"strs": {"n": "z"}}, {"strs": {"n": "a"}}]
        assert sorted(docs, key=sort_key_for("strs.n"))[0]["strs"]["n"] == "a"
