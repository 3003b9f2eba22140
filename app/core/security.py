"""Password hashing helpers."""

from __future__ import annotations

import bcrypt


def hash_password(plain_password: str) -> str:
    password = plain_password.encode("utf-8")
    if not password:
        raise ValueError("Password is empty")
    return bcrypt.hashpw(password, bcrypt.gensalt()).decode("utf-8")
