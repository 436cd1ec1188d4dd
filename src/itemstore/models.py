# src/itemstore/models.py
"""
Core data models for the itemstore library.

This module defines the Pydantic models used to represent the unit of
storage (`Item`), the result of a paginated read (`ListResult`) and the
typed outcome of a write (`WriteResult`).

An `Item` is schema-less: it is a bundle of typed maps keyed by field name
plus a distinguished unsigned 64-bit `id`. Two id values matter to callers:
0 is a perfectly valid assigned id, while `MAX_ID` means "no id yet, assign
one on write".
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_ID: int = 2**64 - 1
"""Unassigned-id sentinel, also used as the "unbounded" value for ranges, skip and limit."""

INTERNAL_FLAG_PREFIX = "__"


class Item(BaseModel):
    """
    A generic record belonging to exactly one collection.

    Attributes:
        id: Unique id within the collection, or MAX_ID when not yet assigned.
        strs: String fields.
        bools: Boolean fields. Names starting with ``__`` are internal flags
               that are never persisted.
        u64s: Unsigned integer fields.
        strstrs: Nested string-to-string maps (lists of names, routes, ...).
    """
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: int = Field(default=MAX_ID, ge=0, le=MAX_ID, description="Item id within its collection.")
    strs: Dict[str, str] = Field(default_factory=dict, description="String fields.")
    bools: Dict[str, bool] = Field(default_factory=dict, description="Boolean fields.")
    u64s: Dict[str, int] = Field(default_factory=dict, description="Unsigned integer fields.")
    strstrs: Dict[str, Dict[str, str]] = Field(default_factory=dict, description="Nested string maps.")

    # --- Accessors ---

    def safe_str(self, key: str, default: str = "") -> str:
        return self.strs.get(key, default)

    def safe_bool(self, key: str, default: bool = False) -> bool:
        return self.bools.get(key, default)

    def safe_u64(self, key: str, default: int = 0) -> int:
        return self.u64s.get(key, default)

    def safe_strstr(self, key: str, default: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        value = self.strstrs.get(key)
        if value is None:
            return dict(default) if default is not None else {}
        return dict(value)

    def set_str(self, key: str, value: str) -> None:
        self.strs[key] = value

    def set_bool(self, key: str, value: bool) -> None:
        self.bools[key] = value

    def set_u64(self, key: str, value: int) -> None:
        self.u64s[key] = value

    def set_strstr(self, key: str, value: Dict[str, str]) -> None:
        self.strstrs[key] = dict(value)

    def del_str(self, key: str) -> None:
        self.strs.pop(key, None)

    # --- Whole-item operations ---

    def merge(self, other: "Item") -> "Item":
        """
        Overlay `other` onto this item, field by field, in place.

        A field present in `other` replaces the field of the same name here;
        fields `other` does not mention are left untouched. Nested maps in
        `strstrs` are replaced as a whole.

        Returns:
            This item, for chaining.
        """
        if other.id != MAX_ID:
            self.id = other.id
        self.strs.update(other.strs)
        self.bools.update(other.bools)
        self.u64s.update(other.u64s)
        for key, value in other.strstrs.items():
            self.strstrs[key] = dict(value)
        return self

    def strip_internal(self) -> "Item":
        """Drop internal-only boolean flags (``__`` prefix) before persisting."""
        for key in [k for k in self.bools if k.startswith(INTERNAL_FLAG_PREFIX)]:
            del self.bools[key]
        return self

    def to_document(self) -> Dict[str, Any]:
        """Plain dictionary form handed to storage backends."""
        return self.model_dump()

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "Item":
        """Build an item from a stored document; unknown keys such as ``_id`` are ignored."""
        return cls.model_validate(document)


class ListResult(BaseModel):
    """
    Result of a paginated read.

    Attributes:
        map: Returned items keyed by id. No ordering is implied.
        total_count: Number of matching rows before skip/limit were applied,
                     which is generally not ``len(map)``.
    """
    map: Dict[int, Item] = Field(default_factory=dict)
    total_count: int = 0

    def ordered(self) -> list[Item]:
        """Items in ascending id order."""
        return [self.map[k] for k in sorted(self.map)]


class WriteStatus(str, Enum):
    """Outcome classes for a write."""
    OK = "ok"
    RETRYABLE = "retryable"  # transient backend fault, the same write may succeed later
    FATAL = "fatal"          # the backend rejected this write


class WriteResult(BaseModel):
    """
    Typed outcome of `put_item`.

    `id` is always the id the item was (or would have been) stored under, so
    callers that only care about ids can keep ignoring `status`.
    """
    id: int
    status: WriteStatus = WriteStatus.OK
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == WriteStatus.OK
