# tests/utils/test_crypto.py
"""
Tests for itemstore.utils.crypto.

Covers:
- Salt generation format
- Argon2id hashing and PHC detection
- Verification success, mismatch and malformed inputs (never raising)
- Invalid salts yield an empty hash
- One-time code range
"""

import base64
import re

import pytest

from itemstore.utils.crypto import (
    get_new_salt,
    get_otp_code,
    get_password_hash,
    is_hashed_password,
    verify_password,
    verify_password_async,
)


@pytest.fixture(scope="module")
def hashed_secret():
    return get_password_hash("secret", get_new_salt())


class TestSalt:

    def test_salt_is_unpadded_base64_of_16_bytes(self):
        salt = get_new_salt()
        assert "=" not in salt
        assert len(salt) == 22
        assert len(base64.b64decode(salt + "==")) == 16

    def test_salts_differ(self):
        assert get_new_salt() != get_new_salt()


class TestHashing:

    def test_hash_is_argon2id_phc(self, hashed_secret):
        assert hashed_secret.startswith("$argon2id$v=19$m=19456,t=2,p=1$")
        assert is_hashed_password(hashed_secret)

    def test_same_salt_same_hash(self):
        salt = get_new_salt()
        assert get_password_hash("pw", salt) == get_password_hash("pw", salt)

    def test_different_salt_different_hash(self):
        assert get_password_hash("pw", get_new_salt()) != get_password_hash("pw", get_new_salt())

    @pytest.mark.parametrize("salt", [
        "",
        "abc",                # too short
        "not base64!!",
        "QUJD",               # valid base64 but only 3 bytes
        "A" * 65,             # too long
    ])
    def test_invalid_salt_yields_empty_string(self, salt):
        assert get_password_hash("pw", salt) == ""


class TestIsHashedPassword:

    @pytest.mark.parametrize("value", [
        "",
        "secret",
        "$argon2id$",
        "$argon2id$v=19$m=19456,t=2,p=1$garbage",
        "$2b$12$abcdefghijklmnopqrstuv",
    ])
    def test_non_hashes(self, value):
        assert is_hashed_password(value) is False


class TestVerifyPassword:

    def test_correct_password(self, hashed_secret):
        assert verify_password("secret", hashed_secret) is True

    def test_wrong_password(self, hashed_secret):
        assert verify_password("Secret", hashed_secret) is False

    def test_plaintext_stored_value_never_matches(self):
        assert verify_password("secret", "secret") is False

    def test_malformed_hash(self):
        assert verify_password("secret", "$argon2id$v=19$broken") is False

    @pytest.mark.asyncio
    async def test_async_variant(self, hashed_secret):
        assert await verify_password_async("secret", hashed_secret) is True
        assert await verify_password_async("nope", hashed_secret) is False


class TestOtp:

    def test_nine_digits_in_range(self):
        for _ in range(200):
            code = get_otp_code()
            assert re.fullmatch(r"\d{9}", code)
            assert 100_000_000 <= int(code) < 999_999_999
