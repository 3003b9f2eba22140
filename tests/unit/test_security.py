"""Unit tests for password hashing."""

from __future__ import annotations

import bcrypt
import pytest

from app.core.security import hash_password


def test_hash_password_produces_a_verifiable_bcrypt_hash() -> None:
    hashed = hash_password("correct horse battery")

    assert hashed != "correct horse battery"
    assert bcrypt.checkpw(b"correct horse battery", hashed.encode("utf-8"))


def test_hash_password_salts_each_call() -> None:
    assert hash_password("same-password") != hash_password("same-password")


def test_hash_password_rejects_empty_values() -> None:
    with pytest.raises(ValueError):
        hash_password("")
