# src/itemstore/storage/query.py
"""
Filter parsing and in-process evaluation of document queries.

The document-store backend hands filters straight to MongoDB. Backends
without a query engine (the file store) evaluate the same filters here, so
both read paths agree on the supported subset:

* dotted field paths into the item document, e.g. ``{"strs.login": "admin"}``
* implicit equality, or ``$eq $ne $gt $gte $lt $lte $in $nin $exists``
* top-level ``$and``, ``$or`` and ``$nor`` over lists of sub-filters

Clauses using any other operator never match.
"""

import json
import logging
from typing import Any, Callable, Dict, Mapping, Tuple

logger = logging.getLogger(__name__)

_MISSING = object()


def parse_filter(text: str) -> Dict[str, Any]:
    """
    Parse a textual filter into a query document.

    An empty string, invalid JSON or anything that is not a JSON object is
    treated as the match-all filter ``{}``; this never raises.
    """
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, TypeError, ValueError):
        logger.debug(f"Using empty filter: cannot parse {text!r}")
        return {}
    if not isinstance(parsed, dict):
        logger.debug(f"Using empty filter: {text!r} is not an object")
        return {}
    return parsed


def _resolve(document: Mapping[str, Any], path: str) -> Any:
    node: Any = document
    for part in path.split("."):
        if isinstance(node, Mapping) and part in node:
            node = node[part]
        else:
            return _MISSING
    return node


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _comparable(a: Any, b: Any) -> bool:
    if _is_number(a) and _is_number(b):
        return True
    return type(a) is type(b) and isinstance(a, (str, bool))


def _compare(op: str, value: Any, operand: Any) -> bool:
    if value is _MISSING or not _comparable(value, operand):
        return False
    if op == "$gt":
        return value > operand
    if op == "$gte":
        return value >= operand
    if op == "$lt":
        return value < operand
    return value <= operand


def _equals(value: Any, operand: Any) -> bool:
    if value is _MISSING:
        return operand is None
    if isinstance(value, bool) or isinstance(operand, bool):
        return type(value) is type(operand) and value == operand
    return value == operand


def _match_operators(value: Any, condition: Mapping[str, Any]) -> bool:
    for op, operand in condition.items():
        if op == "$eq":
            ok = _equals(value, operand)
        elif op == "$ne":
            ok = not _equals(value, operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _compare(op, value, operand)
        elif op == "$in":
            ok = isinstance(operand, list) and any(_equals(value, o) for o in operand)
        elif op == "$nin":
            ok = isinstance(operand, list) and not any(_equals(value, o) for o in operand)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(operand)
        else:
            logger.debug(f"Unsupported filter operator {op!r}")
            ok = False
        if not ok:
            return False
    return True


def _is_operator_condition(condition: Any) -> bool:
    return isinstance(condition, Mapping) and bool(condition) and all(str(k).startswith("$") for k in condition)


def matches(document: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    """Return True if `document` satisfies `query`."""
    for key, condition in query.items():
        if key in ("$and", "$or", "$nor"):
            if not isinstance(condition, list) or not all(isinstance(q, Mapping) for q in condition):
                return False
            results = [matches(document, q) for q in condition]
            if key == "$and" and not all(results):
                return False
            if key == "$or" and not any(results):
                return False
            if key == "$nor" and any(results):
                return False
            continue
        if key.startswith("$"):
            return False
        value = _resolve(document, key)
        if _is_operator_condition(condition):
            if not _match_operators(value, condition):
                return False
        elif not _equals(value, condition):
            return False
    return True


def _type_rank(value: Any) -> int:
    # Ascending order used by MongoDB: null < numbers < strings < objects < booleans.
    if value is _MISSING or value is None:
        return 0
    if isinstance(value, bool):
        return 4
    if _is_number(value):
        return 1
    if isinstance(value, str):
        return 2
    return 3


def sort_key_for(path: str) -> Callable[[Mapping[str, Any]], Tuple[int, Any]]:
    """Key function ordering documents ascending by the value at `path`."""
    def key(document: Mapping[str, Any]) -> Tuple[int, Any]:
        value = _resolve(document, path)
        rank = _type_rank(value)
        if rank in (1, 2, 4):
            return rank, value
        if rank == 3:
            return rank, json.dumps(value, sort_keys=True, default=str)
        return rank, 0
    return key
