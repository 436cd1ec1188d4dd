# src/itemstore/utils/__init__.py
"""
Utility modules for the itemstore library.

Currently holds the credential hashing helpers used by the merger and by
the (external) login flow.
"""

from .crypto import (
    get_new_salt,
    get_otp_code,
    get_password_hash,
    is_hashed_password,
    verify_password,
    verify_password_async,
)

__all__ = [
    "get_new_salt",
    "get_otp_code",
    "get_password_hash",
    "is_hashed_password",
    "verify_password",
    "verify_password_async",
]
