# src/itemstore/utils/crypto.py
"""
Credential hashing helpers.

Passwords are hashed with Argon2id and stored as standard PHC strings
(``$argon2id$v=19$m=...,t=...,p=...$<salt>$<digest>``). None of the helpers
here raise: failures are reported through sentinel values (an empty string
or False) which callers must check.
"""

import asyncio
import base64
import binascii
import logging
import re
import secrets

from argon2 import PasswordHasher, extract_parameters
from argon2.exceptions import HashingError, InvalidHashError, VerificationError

logger = logging.getLogger(__name__)

# OWASP minimum for Argon2id: 19 MiB, 2 iterations, 1 lane.
_HASHER = PasswordHasher(time_cost=2, memory_cost=19456, parallelism=1, hash_len=32, salt_len=16)

_SALT_BYTES = 16
_B64_SALT_RE = re.compile(r"^[A-Za-z0-9+/]{4,64}$")
_MIN_SALT_BYTES = 8

_OTP_LOW = 100_000_000
_OTP_HIGH = 999_999_999


def _decode_salt(salt: str) -> bytes | None:
    """Decode an unpadded base64 salt string, or None if it is not one."""
    if not _B64_SALT_RE.match(salt):
        return None
    try:
        raw = base64.b64decode(salt + "=" * (-len(salt) % 4), validate=True)
    except (binascii.Error, ValueError):
        return None
    if len(raw) < _MIN_SALT_BYTES:
        return None
    return raw


def is_hashed_password(pw_hash: str) -> bool:
    """
    Return True when `pw_hash` is a well-formed Argon2 PHC string.

    This is a structural check only; it says nothing about which password the
    hash belongs to. The merger uses it to tell seed-data plaintext apart from
    values that were already hashed.
    """
    if not pw_hash or not pw_hash.startswith("$argon2"):
        return False
    try:
        extract_parameters(pw_hash)
    except (InvalidHashError, ValueError):
        return False
    return True


def verify_password(pw: str, pw_hash: str) -> bool:
    """
    Verify `pw` against a stored PHC hash.

    Returns False, never raises, for a mismatch and for any malformed
    `pw_hash`, including legacy plaintext values.
    """
    if not is_hashed_password(pw_hash):
        return False
    try:
        return _HASHER.verify(pw_hash, pw)
    except (VerificationError, InvalidHashError):
        return False


async def verify_password_async(pw: str, pw_hash: str) -> bool:
    """`verify_password` run in the default executor so the event loop keeps serving."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, verify_password, pw, pw_hash)


def get_new_salt() -> str:
    """Fresh random salt, unpadded standard base64 (22 characters)."""
    return base64.b64encode(secrets.token_bytes(_SALT_BYTES)).decode("ascii").rstrip("=")


def get_password_hash(pw: str, salt: str) -> str:
    """
    Derive the Argon2id PHC hash of `pw` with the given base64 `salt`.

    Returns an empty string when `salt` is not valid unpadded base64.
    """
    raw_salt = _decode_salt(salt)
    if raw_salt is None:
        logger.warning("Refusing to hash password: salt is not valid base64")
        return ""
    try:
        return _HASHER.hash(pw, salt=raw_salt)
    except HashingError as e:
        logger.error(f"Argon2 hashing failed: {e}")
        return ""


def get_otp_code() -> str:
    """Nine-digit one-time code for OTP flows. Not suitable as key material."""
    return str(_OTP_LOW + secrets.randbelow(_OTP_HIGH - _OTP_LOW))
